"""
Synthetic data generation for the Poisson GLM Toolkit.

This module provides tools for generating stimulus-response data from a
known Poisson GLM, for testing filter and parameter recovery.
"""

from typing import Optional, Dict, Any
import numpy as np

from ..core.design_matrix import build_design_matrix
from ..core.exceptions import ConfigurationError, DataValidationError


class SyntheticDataGenerator:
    """
    Generate white noise stimulus and Poisson GLM responses.

    Spike counts are drawn from ``Poisson(exp(intercept + X @ filter))`` so
    the generating parameters are exactly those the Poisson GLM estimates.
    """

    def __init__(self, filter_true: np.ndarray, intercept_true: float = -2.0,
                 random_seed: Optional[int] = None):
        """
        Initialize synthetic data generator.

        Parameters
        ----------
        filter_true : np.ndarray
            True temporal filter (earliest lag first)
        intercept_true : float, default=-2.0
            True intercept of the linear predictor
        random_seed : int, optional
            Random seed for reproducibility

        Raises
        ------
        DataValidationError
            If the filter is empty or non-finite
        """
        self.filter_true = np.array(filter_true, dtype=float)
        self.intercept_true = float(intercept_true)
        self.random_seed = random_seed
        self.rng = np.random.default_rng(random_seed)

        if self.filter_true.ndim != 1 or self.filter_true.size == 0:
            raise DataValidationError("filter_true must be a non-empty 1D array")

        if not np.isfinite(self.filter_true).all():
            raise DataValidationError("filter_true contains non-finite values")

    @property
    def window_size(self) -> int:
        return self.filter_true.shape[0]

    def generate_white_noise_stimulus(self, n_time_bins: int,
                                      contrast_std: float = 1.0) -> np.ndarray:
        """
        Generate Gaussian white noise stimulus.

        Parameters
        ----------
        n_time_bins : int
            Number of time bins
        contrast_std : float, default=1.0
            Standard deviation of stimulus contrast

        Returns
        -------
        np.ndarray
            White noise stimulus, shape (n_time_bins,)
        """
        if n_time_bins <= 0:
            raise ConfigurationError(
                f"n_time_bins must be positive, got {n_time_bins}",
                parameter='n_time_bins', value=n_time_bins
            )

        if contrast_std <= 0:
            raise ConfigurationError(
                f"contrast_std must be positive, got {contrast_std}",
                parameter='contrast_std', value=contrast_std
            )

        return self.rng.normal(0, contrast_std, n_time_bins)

    def true_rate(self, stimulus: np.ndarray) -> np.ndarray:
        """Expected spikes per bin under the generating model."""
        design_matrix = build_design_matrix(stimulus, self.window_size)
        return np.exp(self.intercept_true + design_matrix @ self.filter_true)

    def generate_responses(self, stimulus: np.ndarray) -> np.ndarray:
        """
        Apply true filter and exponential nonlinearity, draw Poisson counts.

        Parameters
        ----------
        stimulus : np.ndarray
            Stimulus array

        Returns
        -------
        np.ndarray
            Spike counts per time bin
        """
        return self.rng.poisson(self.true_rate(stimulus)).astype(np.int64)

    def create_test_dataset(self, n_time_bins: int = 10000,
                            dt: float = 0.008) -> Dict[str, Any]:
        """
        Complete dataset generation pipeline with metadata.

        Parameters
        ----------
        n_time_bins : int, default=10000
            Number of stimulus frames
        dt : float, default=0.008
            Temporal bin size in seconds

        Returns
        -------
        dict
            Stimulus, spike counts and generating parameters
        """
        stimulus = self.generate_white_noise_stimulus(n_time_bins)
        spikes = self.generate_responses(stimulus)

        metadata = {
            'n_time_bins': n_time_bins,
            'dt': dt,
            'total_spikes': int(np.sum(spikes)),
            'mean_firing_rate_hz': np.sum(spikes) / (n_time_bins * dt),
            'filter_true': self.filter_true.copy(),
            'intercept_true': self.intercept_true,
            'random_seed': self.random_seed
        }

        return {
            'stimulus': stimulus,
            'spikes': spikes,
            'metadata': metadata
        }


def create_biphasic_filter(window_size: int = 25, amplitude: float = 0.5,
                           decay: float = 4.0, period: float = 12.0) -> np.ndarray:
    """
    Create a biphasic temporal filter typical of retinal ganglion cells.

    The filter is a damped sinusoid peaking just before the response bin,
    stored earliest lag first to match the design matrix columns.

    Parameters
    ----------
    window_size : int, default=25
        Length of filter in time bins
    amplitude : float, default=0.5
        Euclidean norm of the returned filter
    decay : float, default=4.0
        Exponential decay constant in bins
    period : float, default=12.0
        Oscillation period in bins

    Returns
    -------
    np.ndarray
        Biphasic filter with the given norm
    """
    lags = np.arange(window_size)
    profile = np.exp(-lags / decay) * np.sin(2 * np.pi * (lags + 1) / period)
    profile = profile / np.linalg.norm(profile) * amplitude
    # lag 0 goes in the last column
    return profile[::-1].copy()
