"""
Poisson GLM fitting for the Poisson GLM Toolkit.

This module fits the linear-nonlinear-Poisson model

    r_t = exp(b + X_t . k)

by maximizing the Poisson log-likelihood sum_t (y_t log r_t - r_t) with
iteratively reweighted least squares (Newton's method on a concave
objective). The log-likelihood is concave in (b, k), so with a full-rank
design the iteration converges to the unique global optimum whenever a
finite optimum exists. When it does not (e.g. all spikes fall on the
largest filter outputs) the coefficients diverge and the fit raises
ConvergenceFailure.
"""

import warnings
from typing import Optional, Tuple
import numpy as np
import scipy.linalg

from .filter_extraction import FittedFilter
from ..core.exceptions import (
    ConvergenceFailure, DataValidationError, DegenerateInputError,
    DimensionMismatchError, SingularMatrixError, ConfigurationError
)
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

# Clip the linear predictor to keep exp() finite
MAX_LINEAR_PREDICTOR = 500.0


class PoissonGLMFitter:
    """
    Maximum-likelihood Poisson GLM with exponential nonlinearity.

    The intercept is always included. Each iteration solves the weighted
    normal equations ``(A^T W A) delta = A^T (y - r)`` with ``A = [1, X]``
    and ``W = diag(r)``; a step that decreases the log-likelihood is halved
    until it does not.
    """

    def __init__(self, max_iter: int = 100, tol: float = 1e-8,
                 max_step_halvings: int = 30):
        """
        Parameters
        ----------
        max_iter : int, default=100
            Iteration cap; reaching it without convergence raises
            ConvergenceFailure
        tol : float, default=1e-8
            Convergence threshold on the largest absolute component of the
            full Newton step
        max_step_halvings : int, default=30
            Maximum number of step halvings per iteration
        """
        if max_iter < 1:
            raise ConfigurationError(
                "max_iter must be at least 1", parameter='max_iter',
                value=max_iter, valid_range=">= 1"
            )
        if tol <= 0:
            raise ConfigurationError(
                "tol must be positive", parameter='tol', value=tol, valid_range="> 0"
            )
        if max_step_halvings < 0:
            raise ConfigurationError(
                "max_step_halvings must be non-negative", parameter='max_step_halvings',
                value=max_step_halvings, valid_range=">= 0"
            )

        self.max_iter = int(max_iter)
        self.tol = float(tol)
        self.max_step_halvings = int(max_step_halvings)

    def fit(self, design_matrix: np.ndarray, spike_counts: np.ndarray) -> FittedFilter:
        """
        Fit intercept and filter by maximum likelihood.

        Parameters
        ----------
        design_matrix : np.ndarray
            Lagged design matrix (n_time_bins, window_size), no ones column
        spike_counts : np.ndarray
            Observed spike counts per time bin

        Returns
        -------
        FittedFilter
            Filter with intercept and exponential link

        Raises
        ------
        DimensionMismatchError
            If X and y are not aligned
        DegenerateInputError
            If the response contains no spikes
        SingularMatrixError
            If the design is rank deficient
        ConvergenceFailure
            If the iteration cap is reached before the tolerance is met, if
            step halving cannot increase the likelihood, or if the Hessian
            becomes singular because no finite optimum exists
        """
        design_matrix, spike_counts = self._validate_inputs(design_matrix, spike_counts)

        n_time_bins = design_matrix.shape[0]
        augmented = np.column_stack([np.ones(n_time_bins), design_matrix])
        n_params = augmented.shape[1]

        if n_time_bins < n_params or np.linalg.matrix_rank(augmented) < n_params:
            raise SingularMatrixError(
                "Poisson GLM design is rank deficient",
                n_rows=n_time_bins, n_columns=n_params
            )

        # Start from the homogeneous-rate solution
        coefficients = np.zeros(n_params)
        coefficients[0] = np.log(spike_counts.mean())
        log_likelihood = self._log_likelihood(augmented, spike_counts, coefficients)

        max_step = np.inf
        for iteration in range(1, self.max_iter + 1):
            step = self._newton_step(augmented, spike_counts, coefficients, iteration)
            max_step = float(np.max(np.abs(step)))

            logger.debug(
                f"IRLS iteration {iteration}: log-likelihood {log_likelihood:.6f}, "
                f"max step {max_step:.3e}"
            )

            if max_step < self.tol:
                break

            update = self._damped_update(
                augmented, spike_counts, coefficients, step, log_likelihood
            )
            if update is None:
                raise ConvergenceFailure(
                    "Step halving could not increase the Poisson log-likelihood",
                    n_iterations=iteration, last_step=max_step, tol=self.tol
                )
            coefficients, log_likelihood = update
        else:
            raise ConvergenceFailure(
                "Poisson GLM did not converge within the iteration cap",
                n_iterations=self.max_iter, last_step=max_step, tol=self.tol
            )

        logger.info(
            f"Poisson GLM converged in {iteration} iterations "
            f"(log-likelihood {log_likelihood:.3f})"
        )

        return FittedFilter(
            coefficients[1:], intercept=coefficients[0], link='exp',
            method='poisson_glm',
            fit_info={
                'n_iterations': iteration,
                'converged': True,
                'log_likelihood': log_likelihood,
                'max_step': max_step,
                'n_samples': n_time_bins
            }
        )

    def _newton_step(self, augmented: np.ndarray, spike_counts: np.ndarray,
                     coefficients: np.ndarray, iteration: int) -> np.ndarray:
        """
        Solve the IRLS weighted normal equations for the Newton direction.

        The design has full rank at this point, so a Hessian that is singular
        to working precision means the rates have underflowed while the
        coefficients run off towards a supremum that no finite fit attains.
        """
        rate = np.exp(np.clip(augmented @ coefficients,
                              -MAX_LINEAR_PREDICTOR, MAX_LINEAR_PREDICTOR))
        gradient = augmented.T @ (spike_counts - rate)
        hessian = (augmented.T * rate) @ augmented

        try:
            with warnings.catch_warnings():
                warnings.simplefilter('error', scipy.linalg.LinAlgWarning)
                return scipy.linalg.solve(hessian, gradient, assume_a='pos')
        except (scipy.linalg.LinAlgError, scipy.linalg.LinAlgWarning) as e:
            raise ConvergenceFailure(
                f"IRLS Hessian became singular, the maximum-likelihood "
                f"estimate does not exist: {e}",
                n_iterations=iteration, tol=self.tol
            )

    def _damped_update(self, augmented: np.ndarray, spike_counts: np.ndarray,
                       coefficients: np.ndarray, step: np.ndarray,
                       log_likelihood: float) -> Optional[Tuple[np.ndarray, float]]:
        """
        Apply the Newton step, halving it while the likelihood decreases.

        Returns None when no halving gives a finite, non-decreasing likelihood.
        """
        scale = 1.0
        for _ in range(self.max_step_halvings + 1):
            candidate = coefficients + scale * step
            candidate_ll = self._log_likelihood(augmented, spike_counts, candidate)
            if np.isfinite(candidate_ll) and candidate_ll >= log_likelihood:
                return candidate, candidate_ll
            scale /= 2

        return None

    @staticmethod
    def _log_likelihood(augmented: np.ndarray, spike_counts: np.ndarray,
                        coefficients: np.ndarray) -> float:
        """Poisson log-likelihood without the log(y!) constant."""
        eta = np.clip(augmented @ coefficients, -MAX_LINEAR_PREDICTOR, MAX_LINEAR_PREDICTOR)
        return float(spike_counts @ eta - np.sum(np.exp(eta)))

    @staticmethod
    def _validate_inputs(design_matrix: np.ndarray,
                         spike_counts: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Validate alignment and count values."""
        design_matrix = np.asarray(design_matrix, dtype=float)
        spike_counts = np.asarray(spike_counts, dtype=float)

        if design_matrix.ndim != 2:
            raise DataValidationError(
                f"design_matrix must be 2D, got shape {design_matrix.shape}"
            )

        if spike_counts.ndim != 1:
            raise DataValidationError(
                f"spike_counts must be 1D, got shape {spike_counts.shape}"
            )

        if design_matrix.shape[0] != spike_counts.shape[0]:
            raise DimensionMismatchError(
                f"Temporal dimension mismatch: design matrix has {design_matrix.shape[0]} "
                f"time bins, spike_counts has {spike_counts.shape[0]}"
            )

        if not (np.isfinite(design_matrix).all() and np.isfinite(spike_counts).all()):
            raise DataValidationError("Inputs contain non-finite values")

        if np.any(spike_counts < 0):
            raise DataValidationError("Spike counts contain negative values")

        total_spikes = spike_counts.sum()
        if total_spikes == 0:
            raise DegenerateInputError(
                "Response contains no spikes - intercept diverges to -infinity",
                spike_count=0
            )

        return design_matrix, spike_counts
