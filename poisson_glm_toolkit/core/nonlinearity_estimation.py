"""
Nonlinearity estimation for the Poisson GLM Toolkit.

This module implements the non-parametric (binned, piecewise-constant)
estimate of the nonlinearity mapping filter output to firing rate. The filter
is held fixed: the filter output is binned and the mean spike count in each
bin, divided by the bin width dt, gives the rate in spikes per second.
"""

from typing import Dict, Union
import numpy as np

from ..core.exceptions import (
    ConfigurationError, DataValidationError, DegenerateInputError,
    DimensionMismatchError
)
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


def _frozen(values: np.ndarray) -> np.ndarray:
    values = np.array(values)
    values.flags.writeable = False
    return values


class NonparametricNonlinearity:
    """
    Piecewise-constant nonlinearity evaluated by nearest bin center.

    Evaluation returns the rate of whichever bin center is nearest to the
    input (ties go to the lower bin), so inputs beyond the fitted range get
    the rate of the edge bin. Bins that received no samples are flagged in
    ``empty_bins`` and take the rate of the nearest non-empty bin.
    """

    def __init__(self, bin_edges: np.ndarray, bin_sums: np.ndarray,
                 bin_counts: np.ndarray, dt: float):
        """
        Parameters
        ----------
        bin_edges : np.ndarray
            n_bins + 1 monotonically increasing bin edges
        bin_sums : np.ndarray
            Total spike count observed in each bin
        bin_counts : np.ndarray
            Number of time bins whose filter output fell in each bin
        dt : float
            Time bin width in seconds, converts counts per bin to rates
        """
        bin_edges = np.asarray(bin_edges, dtype=float)
        bin_sums = np.asarray(bin_sums, dtype=float)
        bin_counts = np.asarray(bin_counts, dtype=int)
        n_bins = bin_edges.shape[0] - 1

        if n_bins < 1 or bin_sums.shape != (n_bins,) or bin_counts.shape != (n_bins,):
            raise DimensionMismatchError(
                "bin_edges must have one more entry than bin_sums and bin_counts"
            )

        if not np.any(bin_counts > 0):
            raise DegenerateInputError("All nonlinearity bins are empty")

        self.dt = float(dt)
        self.n_bins = n_bins
        self.bin_edges = _frozen(bin_edges)
        self.bin_centers = _frozen((bin_edges[:-1] + bin_edges[1:]) / 2)
        self.bin_counts = _frozen(bin_counts)
        self.empty_bins = _frozen(bin_counts == 0)

        observed = np.zeros(n_bins)
        filled = bin_counts > 0
        observed[filled] = bin_sums[filled] / bin_counts[filled] / self.dt
        self.bin_rates = _frozen(self._fill_empty_bins(observed))

    def _fill_empty_bins(self, observed: np.ndarray) -> np.ndarray:
        """Give every empty bin the rate of the nearest non-empty bin."""
        rates = observed.copy()
        filled_idx = np.flatnonzero(~self.empty_bins)

        for i in np.flatnonzero(self.empty_bins):
            distances = np.abs(self.bin_centers[filled_idx] - self.bin_centers[i])
            # argmin keeps the first minimum: ties go to the lower bin
            rates[i] = observed[filled_idx[np.argmin(distances)]]

        return rates

    @property
    def raw_rates(self) -> np.ma.MaskedArray:
        """Observed per-bin rates with empty bins masked out."""
        observed = np.where(self.empty_bins, 0.0, self.bin_rates)
        return np.ma.masked_array(observed, mask=self.empty_bins)

    @property
    def n_empty_bins(self) -> int:
        return int(self.empty_bins.sum())

    @property
    def n_parameters(self) -> int:
        """One free rate per bin."""
        return self.n_bins

    @property
    def fit_range(self) -> tuple:
        return float(self.bin_edges[0]), float(self.bin_edges[-1])

    def nearest_bin(self, x: Union[float, np.ndarray]) -> np.ndarray:
        """
        Index of the nearest bin center for each input value.

        Parameters
        ----------
        x : float or np.ndarray
            Filter output values (any real number)

        Returns
        -------
        np.ndarray
            Bin indices, ties resolved toward the lower index
        """
        x = np.asarray(x, dtype=float)
        if not np.isfinite(x).all():
            raise DataValidationError("Cannot evaluate nonlinearity at non-finite values")

        if self.n_bins == 1:
            return np.zeros(x.shape, dtype=int)

        centers = self.bin_centers
        upper = np.clip(np.searchsorted(centers, x, side='left'), 1, self.n_bins - 1)
        lower = upper - 1
        take_lower = (x - centers[lower]) <= (centers[upper] - x)
        return np.where(take_lower, lower, upper)

    def evaluate(self, x: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
        """
        Evaluate the nonlinearity (spikes per second).

        Parameters
        ----------
        x : float or np.ndarray
            Filter output values

        Returns
        -------
        float or np.ndarray
            Rate of the nearest bin center; a float for scalar input
        """
        rates = self.bin_rates[self.nearest_bin(x)]
        if np.ndim(x) == 0:
            return float(rates)
        return rates

    __call__ = evaluate

    def predict_counts(self, x: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
        """Expected spikes per time bin, ``dt * evaluate(x)``."""
        return self.evaluate(x) * self.dt

    def to_dict(self) -> Dict[str, np.ndarray]:
        """Arrays describing the estimate, for reporting."""
        return {
            'bin_edges': np.array(self.bin_edges),
            'bin_centers': np.array(self.bin_centers),
            'bin_rates': np.array(self.bin_rates),
            'bin_counts': np.array(self.bin_counts),
            'empty_bins': np.array(self.empty_bins),
            'dt': self.dt
        }

    def __repr__(self) -> str:
        low, high = self.fit_range
        return (f"NonparametricNonlinearity(n_bins={self.n_bins}, "
                f"range=[{low:.3f}, {high:.3f}], empty={self.n_empty_bins})")


class NonlinearityEstimator:
    """
    Binning estimator of a static nonlinearity.

    The range of the filter output is split into n_bins equal-width bins
    spanning exactly [min, max]. Values on an interior edge belong to the
    upper bin and the maximum belongs to the last bin.
    """

    def __init__(self, n_bins: int = 25, dt: float = 1.0):
        """
        Parameters
        ----------
        n_bins : int, default=25
            Number of bins for discretizing the filter output
        dt : float, default=1.0
            Time bin width in seconds

        Raises
        ------
        ConfigurationError
            If n_bins or dt is invalid
        """
        if int(n_bins) != n_bins or n_bins < 1:
            raise ConfigurationError(
                "n_bins must be a positive integer", parameter='n_bins',
                value=n_bins, valid_range=">= 1"
            )

        if dt <= 0:
            raise ConfigurationError(
                "dt must be positive", parameter='dt', value=dt, valid_range="> 0"
            )

        self.n_bins = int(n_bins)
        self.dt = float(dt)

    def estimate(self, filter_output: np.ndarray,
                 spike_counts: np.ndarray) -> NonparametricNonlinearity:
        """
        Estimate the nonlinearity from filter output and observed counts.

        Parameters
        ----------
        filter_output : np.ndarray
            Linear predictor per time bin (intercept + X @ filter)
        spike_counts : np.ndarray
            Observed spike counts per time bin

        Returns
        -------
        NonparametricNonlinearity
            Frozen piecewise-constant estimate

        Raises
        ------
        DimensionMismatchError
            If the inputs differ in length
        DegenerateInputError
            If the filter output has zero range
        """
        filter_output, spike_counts = self._validate_inputs(filter_output, spike_counts)

        signal_min = float(np.min(filter_output))
        signal_max = float(np.max(filter_output))

        if signal_min == signal_max:
            raise DegenerateInputError(
                "Filter output has no variance - cannot estimate nonlinearity"
            )

        bin_edges = np.linspace(signal_min, signal_max, self.n_bins + 1)
        bin_indices = np.clip(
            np.searchsorted(bin_edges, filter_output, side='right') - 1,
            0, self.n_bins - 1
        )

        bin_counts = np.bincount(bin_indices, minlength=self.n_bins)
        bin_sums = np.bincount(bin_indices, weights=spike_counts, minlength=self.n_bins)

        nonlinearity = NonparametricNonlinearity(bin_edges, bin_sums, bin_counts, self.dt)

        if nonlinearity.n_empty_bins:
            logger.warning(
                f"{nonlinearity.n_empty_bins} out of {self.n_bins} bins are empty; "
                f"they take the rate of the nearest non-empty bin. "
                f"Consider reducing n_bins or using more data."
            )

        logger.debug(f"Estimated {nonlinearity!r}")
        return nonlinearity

    @staticmethod
    def _validate_inputs(filter_output: np.ndarray, spike_counts: np.ndarray) -> tuple:
        """Validate input data."""
        filter_output = np.asarray(filter_output, dtype=float)
        spike_counts = np.asarray(spike_counts, dtype=float)

        if filter_output.ndim != 1 or spike_counts.ndim != 1:
            raise DataValidationError("filter_output and spike_counts must be 1D")

        if filter_output.shape != spike_counts.shape:
            raise DimensionMismatchError(
                f"Shape mismatch: filter_output {filter_output.shape}, "
                f"spike_counts {spike_counts.shape}"
            )

        if filter_output.size == 0:
            raise DataValidationError("Input data is empty")

        if not (np.isfinite(filter_output).all() and np.isfinite(spike_counts).all()):
            raise DataValidationError("Inputs contain non-finite values")

        if np.any(spike_counts < 0):
            raise DataValidationError("Spike counts contain negative values")

        return filter_output, spike_counts


def estimate_nonlinearity(filter_output: np.ndarray, spike_counts: np.ndarray,
                          n_bins: int = 25, dt: float = 1.0) -> NonparametricNonlinearity:
    """
    Estimate a binned nonlinearity in one call.

    Parameters
    ----------
    filter_output : np.ndarray
        Linear predictor per time bin
    spike_counts : np.ndarray
        Observed spike counts per time bin
    n_bins : int, default=25
        Number of bins
    dt : float, default=1.0
        Time bin width in seconds

    Returns
    -------
    NonparametricNonlinearity
        Frozen piecewise-constant estimate
    """
    return NonlinearityEstimator(n_bins=n_bins, dt=dt).estimate(filter_output, spike_counts)
