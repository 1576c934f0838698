"""
Metrics and comparison utilities for encoding models.

This module provides filter similarity measures, squared-error performance
of count predictions, and a caller-level AIC comparison table.
"""

from typing import Dict, Any, Mapping
import numpy as np
from sklearn.metrics import r2_score, mean_squared_error

from ..core.exceptions import DataValidationError
from .logging_config import get_logger

logger = get_logger(__name__)


class FilterMetrics:
    """
    Metrics for comparing linear filter estimates.
    """

    @staticmethod
    def filter_consistency(filter1: np.ndarray,
                           filter2: np.ndarray,
                           metric: str = 'cosine') -> float:
        """
        Measure consistency between two filter estimates.

        Parameters
        ----------
        filter1, filter2 : numpy.ndarray
            Filter estimates to compare
        metric : str
            Consistency metric: 'cosine', 'correlation', 'rmse'

        Returns
        -------
        float
            Consistency measure
        """
        filter1 = np.asarray(filter1, dtype=float)
        filter2 = np.asarray(filter2, dtype=float)

        if filter1.shape != filter2.shape:
            raise DataValidationError(
                "Filters must have the same shape",
                expected_shape=filter1.shape,
                actual_shape=filter2.shape
            )

        if metric == 'cosine':
            norm1 = np.linalg.norm(filter1)
            norm2 = np.linalg.norm(filter2)
            if norm1 == 0 or norm2 == 0:
                return 0.0
            return float(np.dot(filter1, filter2) / (norm1 * norm2))

        elif metric == 'correlation':
            if np.std(filter1) == 0 or np.std(filter2) == 0:
                return 0.0
            return float(np.corrcoef(filter1, filter2)[0, 1])

        elif metric == 'rmse':
            return float(np.sqrt(np.mean((filter1 - filter2) ** 2)))

        else:
            raise ValueError(f"Unknown metric: {metric}")

    @staticmethod
    def normalized(filter_weights: np.ndarray) -> np.ndarray:
        """Filter rescaled to unit norm, for shape comparisons."""
        filter_weights = np.asarray(filter_weights, dtype=float)
        norm = np.linalg.norm(filter_weights)
        return filter_weights / norm if norm > 0 else filter_weights.copy()


class ModelMetrics:
    """
    Squared-error performance of spike count predictions.
    """

    @staticmethod
    def r_squared(spike_counts: np.ndarray, predicted_counts: np.ndarray) -> float:
        """
        Fraction of spike count variance explained (training R^2).

        Returns NaN when the counts have no variance.
        """
        spike_counts = np.asarray(spike_counts, dtype=float)
        predicted_counts = np.asarray(predicted_counts, dtype=float)

        if spike_counts.shape != predicted_counts.shape:
            raise DataValidationError("Arrays must have same length")

        if spike_counts.size < 2 or np.var(spike_counts) == 0:
            return np.nan

        return float(r2_score(spike_counts, predicted_counts))

    @staticmethod
    def mean_squared_error(spike_counts: np.ndarray, predicted_counts: np.ndarray) -> float:
        """Mean squared prediction error per bin."""
        spike_counts = np.asarray(spike_counts, dtype=float)
        predicted_counts = np.asarray(predicted_counts, dtype=float)

        if spike_counts.shape != predicted_counts.shape:
            raise DataValidationError("Arrays must have same length")

        return float(mean_squared_error(spike_counts, predicted_counts))


def compare_aic(scores: Mapping[str, Any]) -> Dict[str, Dict[str, float]]:
    """
    Tabulate AIC of several scored models relative to the lowest AIC.

    Parameters
    ----------
    scores : mapping
        Model name to ModelScore (anything with ``aic``, ``log_likelihood``
        and ``n_parameters`` attributes)

    Returns
    -------
    dict
        Model name to ``{'aic', 'delta_aic', 'log_likelihood', 'n_parameters'}``,
        ordered from lowest to highest AIC
    """
    if not scores:
        return {}

    best_aic = min(score.aic for score in scores.values())
    ranked = sorted(scores.items(), key=lambda item: item[1].aic)

    table = {}
    for name, score in ranked:
        table[name] = {
            'aic': score.aic,
            'delta_aic': score.aic - best_aic,
            'log_likelihood': score.log_likelihood,
            'n_parameters': score.n_parameters
        }
    return table
