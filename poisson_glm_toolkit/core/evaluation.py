"""
Model evaluation for the Poisson GLM Toolkit.

This module scores any rate prediction against observed spike counts with
the Poisson log-likelihood, the empirical single-spike information (bits per
spike relative to a homogeneous Poisson model) and the Akaike Information
Criterion. Choosing between models is left to the caller; the scores are
returned as plain floats so any comparison is deterministic.
"""

from typing import Dict, Any
import numpy as np

from ..core.exceptions import (
    ConfigurationError, DataValidationError, DegenerateInputError,
    DimensionMismatchError, InvalidRateError
)
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


class ModelScore:
    """Log-likelihood, AIC and single-spike information of one rate prediction."""

    __slots__ = ('log_likelihood', 'null_log_likelihood', 'aic', 'single_spike_info',
                 'n_parameters', 'total_spikes', 'n_time_bins')

    def __init__(self, log_likelihood: float, null_log_likelihood: float, aic: float,
                 single_spike_info: float, n_parameters: int, total_spikes: int,
                 n_time_bins: int):
        for name, value in (('log_likelihood', float(log_likelihood)),
                            ('null_log_likelihood', float(null_log_likelihood)),
                            ('aic', float(aic)),
                            ('single_spike_info', float(single_spike_info)),
                            ('n_parameters', int(n_parameters)),
                            ('total_spikes', int(total_spikes)),
                            ('n_time_bins', int(n_time_bins))):
            object.__setattr__(self, name, value)

    def __setattr__(self, name, value):
        raise AttributeError("ModelScore is immutable")

    def as_dict(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.__slots__}

    def __repr__(self) -> str:
        return (f"ModelScore(LL={self.log_likelihood:.3f}, AIC={self.aic:.3f}, "
                f"SSinfo={self.single_spike_info:.4f} bits/sp, k={self.n_parameters})")


def _validate_counts_and_rate(spike_counts: np.ndarray, predicted_rate: np.ndarray) -> tuple:
    spike_counts = np.asarray(spike_counts, dtype=float)
    predicted_rate = np.asarray(predicted_rate, dtype=float)

    if spike_counts.ndim != 1:
        raise DataValidationError(f"spike_counts must be 1D, got shape {spike_counts.shape}")

    if predicted_rate.shape != spike_counts.shape:
        raise DimensionMismatchError(
            "predicted_rate and spike_counts must have the same length",
            expected_shape=spike_counts.shape,
            actual_shape=predicted_rate.shape
        )

    if not np.isfinite(spike_counts).all() or np.any(spike_counts < 0):
        raise DataValidationError("Spike counts must be finite and non-negative")

    return spike_counts, predicted_rate


def poisson_log_likelihood(spike_counts: np.ndarray, predicted_rate: np.ndarray) -> float:
    """
    Poisson log-likelihood ``sum_t [y_t log r_t - r_t]`` (log y! dropped).

    Bins with ``y_t = 0`` contribute ``-r_t`` only, so a zero rate there is
    allowed.

    Parameters
    ----------
    spike_counts : np.ndarray
        Observed spike counts per bin
    predicted_rate : np.ndarray
        Predicted spikes per bin

    Returns
    -------
    float
        Log-likelihood in nats

    Raises
    ------
    InvalidRateError
        If a rate is non-finite, or non-positive where a spike was observed
    """
    spike_counts, predicted_rate = _validate_counts_and_rate(spike_counts, predicted_rate)

    invalid = ~np.isfinite(predicted_rate) | ((predicted_rate <= 0) & (spike_counts > 0))
    if invalid.any():
        raise InvalidRateError(
            "Predicted rate must be finite, and positive wherever spikes occur",
            n_invalid=int(invalid.sum()),
            first_index=int(np.flatnonzero(invalid)[0])
        )

    spiking = spike_counts > 0
    return float(spike_counts[spiking] @ np.log(predicted_rate[spiking])
                 - np.sum(predicted_rate))


def homogeneous_log_likelihood(spike_counts: np.ndarray) -> float:
    """
    Log-likelihood of a constant rate equal to the mean count per bin.

    Returns 0.0 for a response without spikes (zero rate, zero likelihood
    cost).
    """
    spike_counts = np.asarray(spike_counts, dtype=float)
    total_spikes = spike_counts.sum()
    if total_spikes == 0:
        return 0.0

    mean_rate = total_spikes / spike_counts.shape[0]
    return float(total_spikes * np.log(mean_rate) - spike_counts.shape[0] * mean_rate)


def single_spike_information(log_likelihood: float, null_log_likelihood: float,
                             total_spikes: int) -> float:
    """
    Empirical single-spike information in bits per spike.

    Raises
    ------
    DegenerateInputError
        If there are no spikes to normalize by
    """
    if total_spikes <= 0:
        raise DegenerateInputError(
            "Single-spike information is undefined without spikes",
            spike_count=int(total_spikes)
        )
    return (log_likelihood - null_log_likelihood) / (total_spikes * np.log(2))


def akaike_information_criterion(log_likelihood: float, n_parameters: int) -> float:
    """AIC = -2 LL + 2 k. Lower is better."""
    if n_parameters < 0:
        raise ConfigurationError(
            "n_parameters must be non-negative", parameter='n_parameters',
            value=n_parameters, valid_range=">= 0"
        )
    return -2.0 * log_likelihood + 2.0 * n_parameters


class ModelEvaluator:
    """Score rate predictions of any encoding model. Stateless."""

    def score(self, spike_counts: np.ndarray, predicted_rate: np.ndarray,
              n_parameters: int) -> ModelScore:
        """
        Compute log-likelihood, AIC and single-spike information.

        Parameters
        ----------
        spike_counts : np.ndarray
            Observed spike counts per bin
        predicted_rate : np.ndarray
            Predicted spikes per bin (not spikes per second)
        n_parameters : int
            Number of fitted parameters, used by AIC

        Returns
        -------
        ModelScore
            Scores of this prediction

        Raises
        ------
        InvalidRateError
            If the likelihood is undefined for the prediction
        DegenerateInputError
            If the response contains no spikes
        """
        log_likelihood = poisson_log_likelihood(spike_counts, predicted_rate)

        spike_counts = np.asarray(spike_counts, dtype=float)
        total_spikes = int(round(spike_counts.sum()))
        null_log_likelihood = homogeneous_log_likelihood(spike_counts)

        score = ModelScore(
            log_likelihood=log_likelihood,
            null_log_likelihood=null_log_likelihood,
            aic=akaike_information_criterion(log_likelihood, n_parameters),
            single_spike_info=single_spike_information(
                log_likelihood, null_log_likelihood, total_spikes),
            n_parameters=n_parameters,
            total_spikes=total_spikes,
            n_time_bins=spike_counts.shape[0]
        )
        logger.debug(f"Scored prediction: {score!r}")
        return score
