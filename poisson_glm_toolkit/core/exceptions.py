"""
Exception classes for the Poisson GLM Toolkit.

This module defines custom exceptions used throughout the toolkit to provide
specific error handling for the different failure modes of model fitting and
evaluation. Every error is a local, recoverable condition: callers can catch
the specific class and choose a fallback (adjust the window size, regularize,
re-seed a simulation).
"""

from typing import Any, Optional


class EncodingModelError(Exception):
    """Base exception for toolkit."""

    def __init__(self, message: str, details: Optional[str] = None):
        """
        Initialize base exception.

        Parameters
        ----------
        message : str
            Main error message
        details : str, optional
            Additional details about the error
        """
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}\nDetails: {self.details}"
        return self.message


class DataValidationError(EncodingModelError):
    """Raised when input values are malformed (NaN stimulus, negative counts)."""

    def __init__(self, message: str, expected_shape: Optional[tuple] = None,
                 actual_shape: Optional[tuple] = None):
        """
        Parameters
        ----------
        message : str
            Error message
        expected_shape : tuple, optional
            Expected data shape
        actual_shape : tuple, optional
            Actual data shape
        """
        if expected_shape is not None and actual_shape is not None:
            details = f"Expected shape {expected_shape}, got {actual_shape}"
        else:
            details = None
        super().__init__(message, details)
        self.expected_shape = expected_shape
        self.actual_shape = actual_shape


class DimensionMismatchError(DataValidationError):
    """Raised when series lengths disagree or a window exceeds the series."""


class SingularMatrixError(EncodingModelError):
    """Raised when the normal equations (or IRLS Hessian) cannot be solved."""

    def __init__(self, message: str, condition_number: Optional[float] = None,
                 n_rows: Optional[int] = None, n_columns: Optional[int] = None):
        """
        Parameters
        ----------
        message : str
            Error message
        condition_number : float, optional
            Condition number of X^T X
        n_rows, n_columns : int, optional
            Shape of the design matrix that produced the singular system
        """
        details_parts = []
        if condition_number is not None:
            details_parts.append(f"Condition number: {condition_number:.2e}")
        if n_rows is not None and n_columns is not None:
            details_parts.append(f"Design matrix: {n_rows} rows x {n_columns} columns")

        details = "; ".join(details_parts) if details_parts else None
        super().__init__(message, details)
        self.condition_number = condition_number
        self.n_rows = n_rows
        self.n_columns = n_columns


class ConvergenceFailure(EncodingModelError):
    """Raised when the Poisson maximum-likelihood iteration cap is reached."""

    def __init__(self, message: str, n_iterations: Optional[int] = None,
                 last_step: Optional[float] = None, tol: Optional[float] = None):
        """
        Parameters
        ----------
        message : str
            Error message
        n_iterations : int, optional
            Number of iterations performed
        last_step : float, optional
            Largest absolute coefficient change of the final iteration
        tol : float, optional
            Convergence tolerance that was not met
        """
        details_parts = []
        if n_iterations is not None:
            details_parts.append(f"Iterations: {n_iterations}")
        if last_step is not None:
            details_parts.append(f"Last step: {last_step:.3e}")
        if tol is not None:
            details_parts.append(f"Tolerance: {tol:.1e}")

        details = "; ".join(details_parts) if details_parts else None
        super().__init__(message, details)
        self.n_iterations = n_iterations
        self.last_step = last_step
        self.tol = tol


class DegenerateInputError(EncodingModelError):
    """Raised when the data cannot support an estimate (e.g. no spikes at all)."""

    def __init__(self, message: str, spike_count: Optional[int] = None):
        """
        Parameters
        ----------
        message : str
            Error message
        spike_count : int, optional
            Total number of spikes in the response
        """
        details = f"Total spike count: {spike_count}" if spike_count is not None else None
        super().__init__(message, details)
        self.spike_count = spike_count


class InvalidRateError(EncodingModelError):
    """Raised when a predicted rate makes the Poisson likelihood undefined."""

    def __init__(self, message: str, n_invalid: Optional[int] = None,
                 first_index: Optional[int] = None):
        """
        Parameters
        ----------
        message : str
            Error message
        n_invalid : int, optional
            Number of offending time bins
        first_index : int, optional
            Index of the first offending time bin
        """
        details_parts = []
        if n_invalid is not None:
            details_parts.append(f"Invalid bins: {n_invalid}")
        if first_index is not None:
            details_parts.append(f"First at index {first_index}")

        details = "; ".join(details_parts) if details_parts else None
        super().__init__(message, details)
        self.n_invalid = n_invalid
        self.first_index = first_index


class ConfigurationError(EncodingModelError):
    """Raised when configuration parameters are invalid."""

    def __init__(self, message: str, parameter: Optional[str] = None,
                 value: Optional[Any] = None, valid_range: Optional[str] = None):
        """
        Parameters
        ----------
        message : str
            Error message
        parameter : str, optional
            Name of invalid parameter
        value : any, optional
            Invalid value
        valid_range : str, optional
            Description of valid range
        """
        details_parts = []
        if parameter:
            details_parts.append(f"Parameter: {parameter}")
        if value is not None:
            details_parts.append(f"Value: {value}")
        if valid_range:
            details_parts.append(f"Valid range: {valid_range}")

        details = "; ".join(details_parts) if details_parts else None
        super().__init__(message, details)
        self.parameter = parameter
        self.value = value
        self.valid_range = valid_range
