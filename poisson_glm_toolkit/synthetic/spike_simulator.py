"""
Poisson spike simulation from predicted rates.

Draws repeated spike-count trains from any fitted model's rate prediction,
e.g. to build a raster of responses to a repeated stimulus.
"""

from typing import Optional, Union
import numpy as np

from ..core.exceptions import ConfigurationError, DataValidationError, InvalidRateError

RandomSource = Union[None, int, np.random.Generator, np.random.RandomState]


def _as_generator(rng: RandomSource) -> Union[np.random.Generator, np.random.RandomState]:
    if isinstance(rng, (np.random.Generator, np.random.RandomState)):
        return rng
    return np.random.default_rng(rng)


class SpikeSimulator:
    """
    Independent Poisson draws given a rate per time bin.

    The source of randomness is injected: pass a seed or a numpy Generator
    for reproducible rasters. No other state is kept between calls.
    """

    def __init__(self, rng: RandomSource = None):
        """
        Parameters
        ----------
        rng : int, numpy.random.Generator or RandomState, optional
            Seed or random generator; None draws fresh OS entropy
        """
        self.rng = _as_generator(rng)

    def simulate(self, rate: np.ndarray, n_repeats: int = 1) -> np.ndarray:
        """
        Draw spike counts for each repeat and time bin.

        Parameters
        ----------
        rate : np.ndarray
            Expected spikes per bin, shape (n_time_bins,)
        n_repeats : int, default=1
            Number of repeated trials

        Returns
        -------
        np.ndarray
            Integer spike counts, shape (n_repeats, n_time_bins)

        Raises
        ------
        InvalidRateError
            If any rate is negative or non-finite
        """
        rate = self._validate_rate(rate)
        self._validate_repeats(n_repeats)

        return self.rng.poisson(np.broadcast_to(rate, (n_repeats, rate.shape[0]))).astype(np.int64)

    def simulate_fine(self, rate: np.ndarray, n_repeats: int = 1,
                      upsample_factor: int = 100) -> np.ndarray:
        """
        Simulate on a finer time grid.

        Each bin is split into upsample_factor sub-bins carrying
        ``rate / upsample_factor`` expected spikes, so that most sub-bins hold
        at most one spike.

        Parameters
        ----------
        rate : np.ndarray
            Expected spikes per original bin
        n_repeats : int, default=1
            Number of repeated trials
        upsample_factor : int, default=100
            Number of sub-bins per original bin

        Returns
        -------
        np.ndarray
            Integer spike counts, shape (n_repeats, n_time_bins * upsample_factor)
        """
        if int(upsample_factor) != upsample_factor or upsample_factor < 1:
            raise ConfigurationError(
                "upsample_factor must be a positive integer",
                parameter='upsample_factor', value=upsample_factor, valid_range=">= 1"
            )

        rate = self._validate_rate(rate)
        fine_rate = np.repeat(rate, int(upsample_factor)) / upsample_factor
        return self.simulate(fine_rate, n_repeats)

    @staticmethod
    def _validate_rate(rate: np.ndarray) -> np.ndarray:
        rate = np.asarray(rate, dtype=float)
        if rate.ndim != 1:
            raise DataValidationError(f"rate must be 1D, got shape {rate.shape}")

        invalid = ~np.isfinite(rate) | (rate < 0)
        if invalid.any():
            raise InvalidRateError(
                "Rates must be finite and non-negative to draw Poisson counts",
                n_invalid=int(invalid.sum()),
                first_index=int(np.flatnonzero(invalid)[0])
            )
        return rate

    @staticmethod
    def _validate_repeats(n_repeats: int) -> None:
        if int(n_repeats) != n_repeats or n_repeats < 1:
            raise ConfigurationError(
                "n_repeats must be a positive integer", parameter='n_repeats',
                value=n_repeats, valid_range=">= 1"
            )


def simulate_spikes(rate: np.ndarray, n_repeats: int = 1,
                    random_seed: Optional[int] = None) -> np.ndarray:
    """Convenience wrapper around SpikeSimulator.simulate."""
    return SpikeSimulator(random_seed).simulate(rate, n_repeats)
