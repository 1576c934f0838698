"""
Linear filter estimation for the Poisson GLM Toolkit.

This module implements the closed-form estimators of a temporal filter: the
spike-triggered average (STA), and the ordinary-least-squares fit of the
linear-Gaussian GLM (the "whitened STA"), with or without an offset. It also
defines FittedFilter, the immutable result shared by every fitter.
"""

from typing import Optional, Dict, Any
import numpy as np
import scipy.linalg

from ..core.exceptions import (
    DataValidationError, DimensionMismatchError, DegenerateInputError,
    SingularMatrixError
)
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

CONDITION_WARNING = 1e12


class FittedFilter:
    """
    Immutable temporal filter plus optional intercept.

    Produced once per fit call. The coefficient arrays are copied and marked
    read-only, so distinct fits never share mutable state.
    """

    LINKS = ('identity', 'exp')

    def __init__(self, filter_weights: np.ndarray, intercept: Optional[float] = None,
                 link: str = 'identity', method: str = 'unknown',
                 fit_info: Optional[Dict[str, Any]] = None):
        """
        Parameters
        ----------
        filter_weights : np.ndarray
            Temporal filter, one weight per design-matrix lag column
        intercept : float, optional
            Constant offset; None for models fitted without one
        link : str, default='identity'
            Inverse link used by predict_rate ('identity' or 'exp')
        method : str
            Name of the estimator that produced the filter
        fit_info : dict, optional
            Estimator diagnostics (iterations, convergence, ...)
        """
        if link not in self.LINKS:
            raise DataValidationError(f"Unknown link '{link}', expected one of {self.LINKS}")

        weights = np.array(filter_weights, dtype=float).ravel()
        weights.flags.writeable = False
        self._filter = weights
        self._intercept = None if intercept is None else float(intercept)
        self._link = link
        self._method = method
        self._fit_info = dict(fit_info or {})

    @property
    def filter(self) -> np.ndarray:
        return self._filter

    @property
    def intercept(self) -> Optional[float]:
        return self._intercept

    @property
    def link(self) -> str:
        return self._link

    @property
    def method(self) -> str:
        return self._method

    @property
    def fit_info(self) -> Dict[str, Any]:
        return dict(self._fit_info)

    @property
    def window_size(self) -> int:
        return self._filter.shape[0]

    @property
    def has_intercept(self) -> bool:
        return self._intercept is not None

    @property
    def n_parameters(self) -> int:
        """Number of free parameters (filter taps plus intercept)."""
        return self.window_size + (1 if self.has_intercept else 0)

    @property
    def coefficients(self) -> np.ndarray:
        """All coefficients, intercept first when present."""
        if self.has_intercept:
            return np.concatenate([[self._intercept], self._filter])
        return self._filter.copy()

    def filter_output(self, design_matrix: np.ndarray) -> np.ndarray:
        """
        Linear predictor ``intercept + X @ filter``.

        Parameters
        ----------
        design_matrix : np.ndarray
            Lagged design matrix without an intercept column

        Returns
        -------
        np.ndarray
            Filter output per time bin
        """
        design_matrix = np.asarray(design_matrix, dtype=float)
        if design_matrix.ndim != 2 or design_matrix.shape[1] != self.window_size:
            raise DimensionMismatchError(
                f"Design matrix must have {self.window_size} columns",
                expected_shape=(None, self.window_size),
                actual_shape=design_matrix.shape
            )

        output = design_matrix @ self._filter
        if self.has_intercept:
            output = output + self._intercept
        return output

    def predict_rate(self, design_matrix: np.ndarray) -> np.ndarray:
        """
        Predicted spike count per bin under the model's own link.

        Parameters
        ----------
        design_matrix : np.ndarray
            Lagged design matrix without an intercept column

        Returns
        -------
        np.ndarray
            Predicted spikes per bin
        """
        output = self.filter_output(design_matrix)
        if self.link == 'exp':
            return np.exp(output)
        return output

    def __repr__(self) -> str:
        intercept = 'None' if self._intercept is None else f"{self._intercept:.4f}"
        return (f"FittedFilter(method='{self.method}', window_size={self.window_size}, "
                f"intercept={intercept}, link='{self.link}')")


def _validate_regression_inputs(design_matrix: np.ndarray,
                                response: np.ndarray) -> tuple:
    """Check that X is 2-D, y is 1-D, both finite and temporally aligned."""
    design_matrix = np.asarray(design_matrix, dtype=float)
    response = np.asarray(response, dtype=float)

    if design_matrix.ndim != 2:
        raise DataValidationError(
            f"design_matrix must be 2D, got shape {design_matrix.shape}"
        )

    if response.ndim != 1:
        raise DataValidationError(
            f"response must be 1D, got shape {response.shape}"
        )

    if design_matrix.shape[0] != response.shape[0]:
        raise DimensionMismatchError(
            f"Temporal dimension mismatch: design matrix has {design_matrix.shape[0]} "
            f"time bins, response has {response.shape[0]}"
        )

    if design_matrix.size == 0:
        raise DataValidationError("design_matrix is empty")

    if not (np.isfinite(design_matrix).all() and np.isfinite(response).all()):
        raise DataValidationError("Inputs contain non-finite values")

    return design_matrix, response


def solve_normal_equations(design_matrix: np.ndarray, response: np.ndarray) -> np.ndarray:
    """
    Solve ``(X^T X) w = X^T y`` for the least-squares weights.

    Raises
    ------
    SingularMatrixError
        If X^T X is not invertible
    """
    n_rows, n_columns = design_matrix.shape

    if n_rows < n_columns or np.linalg.matrix_rank(design_matrix) < n_columns:
        raise SingularMatrixError(
            "X^T X is singular: design matrix is rank deficient",
            n_rows=n_rows,
            n_columns=n_columns
        )

    xtx = design_matrix.T @ design_matrix
    xty = design_matrix.T @ response

    condition_number = np.linalg.cond(xtx)
    if condition_number > CONDITION_WARNING:
        logger.warning(
            f"Design matrix is ill-conditioned (condition number: {condition_number:.2e})"
        )

    try:
        weights = scipy.linalg.solve(xtx, xty, assume_a='pos')
    except scipy.linalg.LinAlgError as e:
        raise SingularMatrixError(
            f"Failed to solve normal equations: {e}",
            condition_number=condition_number,
            n_rows=n_rows,
            n_columns=n_columns
        )

    return weights


class LinearGaussianFitter:
    """
    Ordinary-least-squares fit of a linear filter (linear-Gaussian GLM).

    The filter is the closed-form solution of the normal equations; with an
    intercept the design matrix is augmented with a column of ones and the
    first coefficient is split out as the offset.
    """

    def __init__(self, include_intercept: bool = False):
        """
        Parameters
        ----------
        include_intercept : bool, default=False
            Default intercept setting used by fit()
        """
        self.include_intercept = include_intercept

    def fit(self, design_matrix: np.ndarray, response: np.ndarray,
            include_intercept: Optional[bool] = None) -> FittedFilter:
        """
        Fit the linear filter by least squares.

        Parameters
        ----------
        design_matrix : np.ndarray
            Lagged design matrix (n_time_bins, window_size), no ones column
        response : np.ndarray
            Spike counts (or any real response) per time bin
        include_intercept : bool, optional
            Overrides the fitter's default intercept setting

        Returns
        -------
        FittedFilter
            Fitted filter with identity link

        Raises
        ------
        DimensionMismatchError
            If X and y are not aligned
        SingularMatrixError
            If X^T X is not invertible
        """
        if include_intercept is None:
            include_intercept = self.include_intercept

        design_matrix, response = _validate_regression_inputs(design_matrix, response)

        if include_intercept:
            augmented = np.column_stack([np.ones(design_matrix.shape[0]), design_matrix])
            weights = solve_normal_equations(augmented, response)
            intercept, filter_weights = weights[0], weights[1:]
            method = 'linear_gaussian_offset'
        else:
            filter_weights = solve_normal_equations(design_matrix, response)
            intercept = None
            method = 'linear_gaussian'

        fitted = FittedFilter(
            filter_weights, intercept=intercept, link='identity', method=method,
            fit_info={'n_samples': design_matrix.shape[0]}
        )
        logger.info(f"Fitted {method} filter with norm {np.linalg.norm(fitted.filter):.4f}")
        return fitted


def spike_triggered_average(design_matrix: np.ndarray, spike_counts: np.ndarray) -> np.ndarray:
    """
    Compute the spike-triggered average ``X^T y / n_spikes``.

    Parameters
    ----------
    design_matrix : np.ndarray
        Lagged design matrix
    spike_counts : np.ndarray
        Spike counts per time bin

    Returns
    -------
    np.ndarray
        Spike-triggered average filter

    Raises
    ------
    DegenerateInputError
        If no spikes were found
    """
    design_matrix, spike_counts = _validate_regression_inputs(design_matrix, spike_counts)

    n_spikes = spike_counts.sum()
    if n_spikes <= 0:
        raise DegenerateInputError(
            "No spikes found in data - cannot compute STA",
            spike_count=int(n_spikes)
        )

    return (design_matrix.T @ spike_counts) / n_spikes


def whitened_sta(design_matrix: np.ndarray, spike_counts: np.ndarray) -> np.ndarray:
    """
    Whitened STA: ``(X^T X)^-1 X^T y``.

    This is the maximum-likelihood filter of the linear-Gaussian GLM without
    offset, equivalently the STA decorrelated by the stimulus covariance.
    """
    return LinearGaussianFitter(include_intercept=False).fit(design_matrix, spike_counts).filter


def compare_filter_methods(sta: np.ndarray, wsta: np.ndarray,
                           correlation_threshold: float = 0.8) -> Dict[str, Any]:
    """
    Compare STA and whitened STA filters.

    Parameters
    ----------
    sta : np.ndarray
        Spike-triggered average filter
    wsta : np.ndarray
        Whitened STA filter
    correlation_threshold : float, default=0.8
        Threshold for considering filters similar

    Returns
    -------
    dict
        Comparison results
    """
    if sta.shape != wsta.shape:
        return {
            'correlation': None,
            'filters_similar': False,
            'error': f"Shape mismatch: STA {sta.shape}, whitened STA {wsta.shape}"
        }

    correlation = float(np.corrcoef(sta, wsta)[0, 1]) if sta.size > 1 else np.nan

    sta_norm = np.linalg.norm(sta)
    wsta_norm = np.linalg.norm(wsta)

    return {
        'correlation': correlation,
        'filters_similar': bool(correlation >= correlation_threshold),
        'magnitude_ratio': wsta_norm / sta_norm if sta_norm > 0 else np.inf,
        'sta_norm': sta_norm,
        'whitened_norm': wsta_norm
    }


def validate_filter_quality(filter_weights: np.ndarray,
                            filter_type: str = "unknown") -> Dict[str, Any]:
    """
    Validate extracted filter quality.

    Parameters
    ----------
    filter_weights : np.ndarray
        Extracted filter
    filter_type : str, default="unknown"
        Name of the estimator that produced the filter

    Returns
    -------
    dict
        Validation results
    """
    validation = {
        'filter_type': filter_type,
        'shape': filter_weights.shape,
        'is_finite': bool(np.isfinite(filter_weights).all()),
        'norm': float(np.linalg.norm(filter_weights)),
        'max_abs_value': float(np.max(np.abs(filter_weights))),
        'warnings': []
    }

    if not validation['is_finite']:
        n_nan = np.isnan(filter_weights).sum()
        n_inf = np.isinf(filter_weights).sum()
        validation['warnings'].append(f"Non-finite values: {n_nan} NaN, {n_inf} infinite")

    if validation['norm'] < 1e-10:
        validation['warnings'].append("Filter has very small norm - may be unreliable")

    if validation['max_abs_value'] > 1e6:
        validation['warnings'].append("Filter has very large values - may indicate numerical issues")

    return validation
