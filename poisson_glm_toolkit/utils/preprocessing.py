"""
Preprocessing utilities for spike train data.

This module converts spike times into spike counts aligned with stimulus
frames and checks that a stimulus and a response can be modelled together.
"""

from typing import Optional, Dict, Any
import numpy as np

from ..core.exceptions import (
    ConfigurationError, DataValidationError, DimensionMismatchError
)
from .logging_config import get_logger

logger = get_logger(__name__)


class SpikeProcessor:
    """
    Utilities for spike data preprocessing.
    """

    @staticmethod
    def bin_spike_times(spike_times: np.ndarray, n_time_bins: int, dt: float,
                        t_start: float = 0.0) -> np.ndarray:
        """
        Count spikes in each stimulus frame.

        Frame i covers ``[t_start + i*dt, t_start + (i+1)*dt)``; the final
        frame also includes its right edge. Spikes outside the stimulus are
        dropped.

        Parameters
        ----------
        spike_times : numpy.ndarray
            Spike times in seconds
        n_time_bins : int
            Number of stimulus frames
        dt : float
            Frame duration in seconds
        t_start : float, default=0.0
            Time of the first frame onset

        Returns
        -------
        numpy.ndarray
            Integer spike count per frame, shape (n_time_bins,)
        """
        if n_time_bins <= 0:
            raise ConfigurationError(
                "n_time_bins must be positive", parameter='n_time_bins', value=n_time_bins
            )
        if dt <= 0:
            raise ConfigurationError("dt must be positive", parameter='dt', value=dt)

        spike_times = np.asarray(spike_times, dtype=float).ravel()
        if not np.isfinite(spike_times).all():
            raise DataValidationError("Spike times contain non-finite values")

        bin_edges = t_start + np.arange(n_time_bins + 1) * dt
        counts, _ = np.histogram(spike_times, bins=bin_edges)

        n_outside = spike_times.size - int(counts.sum())
        if n_outside > 0:
            logger.info(f"Dropped {n_outside} spikes outside the stimulus period")

        return counts.astype(np.int64)

    @staticmethod
    def spike_statistics(spike_counts: np.ndarray, dt: float) -> Dict[str, float]:
        """
        Basic statistics of a binned spike train.

        Parameters
        ----------
        spike_counts : numpy.ndarray
            Spike counts per frame
        dt : float
            Frame duration in seconds

        Returns
        -------
        dict
            Number of frames, duration, spike total and mean rate
        """
        spike_counts = np.asarray(spike_counts)
        n_time_bins = spike_counts.shape[0]
        total_spikes = int(spike_counts.sum())
        duration = n_time_bins * dt

        return {
            'n_time_bins': n_time_bins,
            'duration_s': duration,
            'total_spikes': total_spikes,
            'mean_rate_hz': total_spikes / duration if duration > 0 else np.nan,
            'max_count_per_bin': int(spike_counts.max()) if n_time_bins else 0
        }


def validate_data_consistency(stimulus: np.ndarray, spike_counts: np.ndarray,
                              window_size: Optional[int] = None) -> Dict[str, Any]:
    """
    Validate that stimulus and spike counts describe the same time bins.

    Parameters
    ----------
    stimulus : numpy.ndarray
        Stimulus samples
    spike_counts : numpy.ndarray
        Spike counts per time bin
    window_size : int, optional
        Requested filter window; must not exceed the series length

    Returns
    -------
    dict
        Summary of the validated data

    Raises
    ------
    DimensionMismatchError
        If lengths differ or the window exceeds the series
    DataValidationError
        If values are malformed
    """
    stimulus = np.asarray(stimulus)
    spike_counts = np.asarray(spike_counts)

    if stimulus.ndim != 1 or spike_counts.ndim != 1:
        raise DataValidationError(
            "Stimulus and spike counts must be 1D series",
            actual_shape=(stimulus.shape, spike_counts.shape)
        )

    if stimulus.shape[0] != spike_counts.shape[0]:
        raise DimensionMismatchError(
            "Stimulus and spike counts have different lengths",
            expected_shape=stimulus.shape,
            actual_shape=spike_counts.shape
        )

    if stimulus.shape[0] == 0:
        raise DataValidationError("Stimulus is empty")

    if not np.isfinite(stimulus).all():
        raise DataValidationError("Stimulus contains non-finite values")

    if not np.isfinite(spike_counts).all() or np.any(spike_counts < 0):
        raise DataValidationError("Spike counts must be finite and non-negative")

    if not np.all(np.equal(np.mod(spike_counts, 1), 0)):
        raise DataValidationError("Spike counts must be whole numbers")

    if window_size is not None and not 1 <= window_size <= stimulus.shape[0]:
        raise DimensionMismatchError(
            f"window_size ({window_size}) must be between 1 and the series length "
            f"({stimulus.shape[0]})"
        )

    return {
        'n_time_bins': stimulus.shape[0],
        'total_spikes': int(spike_counts.sum()),
        'stimulus_mean': float(np.mean(stimulus)),
        'stimulus_std': float(np.std(stimulus))
    }
