"""
Design matrix construction for the Poisson GLM Toolkit.

This module builds the lagged (Hankel) design matrix used by every fitter:
row t holds the window_size stimulus samples ending at time bin t, earliest
first, so that ``X @ filter`` is the causal filter output at each bin.
"""

from typing import Optional
import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from ..core.exceptions import DataValidationError, DimensionMismatchError
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


class DesignMatrixBuilder:
    """
    Design matrix builder for a 1-D stimulus.

    The stimulus is padded with ``window_size - 1`` leading zeros and each
    output row is the sliding window ending at the corresponding time bin.
    Every row is therefore the row above shifted left by one sample.
    """

    def __init__(self, window_size: int, include_intercept: bool = False):
        """
        Initialize design matrix builder.

        Parameters
        ----------
        window_size : int
            Number of stimulus time bins used to predict each response bin
            (e.g., 25)
        include_intercept : bool, default=False
            Whether to prepend a constant column of ones

        Raises
        ------
        DimensionMismatchError
            If window_size is not a positive integer
        """
        if int(window_size) != window_size or window_size < 1:
            raise DimensionMismatchError(
                f"window_size must be a positive integer, got {window_size}"
            )

        self.window_size = int(window_size)
        self.include_intercept = include_intercept

    @property
    def n_columns(self) -> int:
        """Number of columns of the matrices this builder produces."""
        return self.window_size + (1 if self.include_intercept else 0)

    def build(self, stimulus: np.ndarray) -> np.ndarray:
        """
        Build the design matrix for a full stimulus.

        Parameters
        ----------
        stimulus : np.ndarray
            Stimulus samples, shape (n_time_bins,)

        Returns
        -------
        np.ndarray
            Design matrix with shape (n_time_bins, window_size [+1])

        Raises
        ------
        DataValidationError
            If the stimulus is not a finite 1-D series
        DimensionMismatchError
            If window_size exceeds the stimulus length
        """
        stimulus = self._validate_stimulus(stimulus)
        n_time_bins = stimulus.shape[0]

        padded_stimulus = np.concatenate([np.zeros(self.window_size - 1), stimulus])

        # Shape: (n_time_bins, window_size), a read-only strided view
        hankel_matrix = sliding_window_view(padded_stimulus, self.window_size)

        if self.include_intercept:
            design_matrix = np.empty((n_time_bins, self.window_size + 1))
            design_matrix[:, 0] = 1.0
            design_matrix[:, 1:] = hankel_matrix
        else:
            design_matrix = hankel_matrix.copy()

        logger.debug(
            f"Built design matrix {design_matrix.shape} "
            f"(window={self.window_size}, intercept={self.include_intercept})"
        )
        return design_matrix

    def _validate_stimulus(self, stimulus: np.ndarray) -> np.ndarray:
        """
        Validate the stimulus series and return it as a float array.

        Parameters
        ----------
        stimulus : np.ndarray
            Stimulus to validate

        Raises
        ------
        DataValidationError
            If stimulus is empty, multi-dimensional or non-finite
        DimensionMismatchError
            If window_size exceeds the stimulus length
        """
        stimulus = np.asarray(stimulus, dtype=float)

        if stimulus.ndim != 1:
            raise DataValidationError(
                f"Expected 1D temporal stimulus, got shape {stimulus.shape}"
            )

        if stimulus.size == 0:
            raise DataValidationError("Stimulus is empty")

        if not np.isfinite(stimulus).all():
            raise DataValidationError("Stimulus contains non-finite values")

        if self.window_size > stimulus.shape[0]:
            raise DimensionMismatchError(
                f"window_size ({self.window_size}) exceeds stimulus length "
                f"({stimulus.shape[0]})"
            )

        return stimulus


def build_design_matrix(stimulus: np.ndarray, window_size: int,
                        include_intercept: bool = False) -> np.ndarray:
    """
    Create design matrix for a full stimulus array.

    Parameters
    ----------
    stimulus : np.ndarray
        Stimulus samples
    window_size : int
        Number of time bins of stimulus history per row
    include_intercept : bool, default=False
        Whether to prepend a column of ones

    Returns
    -------
    np.ndarray
        Design matrix with shape (n_time_bins, window_size [+1])
    """
    builder = DesignMatrixBuilder(window_size, include_intercept=include_intercept)
    return builder.build(stimulus)


def lag_axis(window_size: int, dt: float = 1.0) -> np.ndarray:
    """
    Time of each design-matrix column relative to the response bin.

    The last column is lag zero (the current bin), the first column is the
    earliest sample of the window.
    """
    return np.arange(-window_size + 1, 1) * dt


def validate_design_matrix(design_matrix: np.ndarray, stimulus_length: int,
                           window_size: int, include_intercept: bool = False) -> dict:
    """
    Validate design matrix properties.

    Parameters
    ----------
    design_matrix : np.ndarray
        Design matrix to validate
    stimulus_length : int
        Length of original stimulus
    window_size : int
        Window size used
    include_intercept : bool, default=False
        Whether the matrix carries a leading intercept column

    Returns
    -------
    dict
        Validation results
    """
    expected_shape = (stimulus_length, window_size + (1 if include_intercept else 0))

    validation_results = {
        'shape_ok': True,
        'finite_values': True,
        'hankel_structure': True,
        'expected_shape': expected_shape,
        'actual_shape': design_matrix.shape,
        'warnings': []
    }

    if design_matrix.shape != expected_shape:
        validation_results['shape_ok'] = False
        validation_results['warnings'].append(
            f"Shape mismatch: expected {expected_shape}, got {design_matrix.shape}"
        )
        return validation_results

    if not np.isfinite(design_matrix).all():
        validation_results['finite_values'] = False
        n_nan = np.isnan(design_matrix).sum()
        n_inf = np.isinf(design_matrix).sum()
        validation_results['warnings'].append(
            f"Non-finite values found: {n_nan} NaN, {n_inf} infinite"
        )

    lagged = design_matrix[:, 1:] if include_intercept else design_matrix
    if include_intercept and not np.all(design_matrix[:, 0] == 1):
        validation_results['warnings'].append("Intercept column is not constant 1")

    # X[t, j] == X[t-1, j+1]
    if window_size > 1 and lagged.shape[0] > 1:
        if not np.array_equal(lagged[1:, :-1], lagged[:-1, 1:]):
            validation_results['hankel_structure'] = False
            validation_results['warnings'].append("Rows are not shifted copies of each other")

    if np.isfinite(lagged).any() and np.nanstd(lagged) == 0:
        validation_results['warnings'].append("Design matrix has zero variance")

    return validation_results
