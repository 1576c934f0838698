"""
Encoding model analyzer for the Poisson GLM Toolkit.

This module provides the EncodingModelAnalyzer class that runs the complete
model-fitting and evaluation pipeline for a single neuron: design matrix,
spike-triggered averages, linear-Gaussian GLMs, the exponential Poisson GLM,
the non-parametric nonlinearity and the comparison scores.
"""

from typing import Optional, Dict, Any, Iterable
import numpy as np
from tqdm import tqdm

from .design_matrix import DesignMatrixBuilder, lag_axis, validate_design_matrix
from .filter_extraction import (
    FittedFilter, LinearGaussianFitter, spike_triggered_average,
    compare_filter_methods, validate_filter_quality
)
from .poisson_glm import PoissonGLMFitter
from .nonlinearity_estimation import NonlinearityEstimator, NonparametricNonlinearity
from .evaluation import ModelEvaluator, ModelScore
from ..synthetic.spike_simulator import SpikeSimulator, RandomSource
from ..utils.logging_config import get_logger, TimingLogger
from ..utils.metrics import ModelMetrics, compare_aic
from ..utils.preprocessing import validate_data_consistency
from ..core.exceptions import ConfigurationError, DataValidationError, EncodingModelError

MODELS = ('exp_glm', 'np_glm', 'linear_gaussian')


class EncodingModelAnalyzer:
    """
    Complete encoding model analysis for a single neuron.

    Fits every model of the pipeline on one stimulus/response pair and keeps
    the fitted filters, nonlinearity and scores for reporting. Each call to
    fit() starts from scratch.
    """

    def __init__(self, bin_size: float = 0.008, window_size: int = 25,
                 n_bins: int = 25, include_intercept: bool = True,
                 max_iter: int = 100, tol: float = 1e-8):
        """
        Initialize encoding model analyzer.

        Parameters
        ----------
        bin_size : float, default=0.008
            Temporal bin size in seconds
        window_size : int, default=25
            Number of time bins of stimulus history
        n_bins : int, default=25
            Number of bins of the non-parametric nonlinearity
        include_intercept : bool, default=True
            Whether the linear-Gaussian GLM gets an offset
        max_iter : int, default=100
            Iteration cap of the Poisson GLM fit
        tol : float, default=1e-8
            Convergence tolerance of the Poisson GLM fit

        Raises
        ------
        ConfigurationError
            If parameters are invalid
        """
        if bin_size <= 0:
            raise ConfigurationError(
                f"bin_size must be positive, got {bin_size}",
                parameter='bin_size', value=bin_size
            )
        if isinstance(window_size, bool) or int(window_size) != window_size or window_size < 1:
            raise ConfigurationError(
                f"window_size must be a positive integer, got {window_size}",
                parameter='window_size', value=window_size, valid_range=">= 1"
            )

        self.bin_size = bin_size
        self.window_size = int(window_size)
        self.n_bins = n_bins
        self.include_intercept = include_intercept

        self.design_matrix_builder = DesignMatrixBuilder(self.window_size)
        self.linear_fitter = LinearGaussianFitter(include_intercept=include_intercept)
        self.poisson_fitter = PoissonGLMFitter(max_iter=max_iter, tol=tol)
        self.nonlinearity_estimator = NonlinearityEstimator(n_bins=n_bins, dt=bin_size)
        self.evaluator = ModelEvaluator()

        self.logger = get_logger(__name__)

        self.reset()

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'EncodingModelAnalyzer':
        """Build an analyzer from a configuration dictionary."""
        analysis = config.get('analysis', {})
        glm = config.get('poisson_glm', {})
        nonlinearity = config.get('nonlinearity', {})

        return cls(
            bin_size=analysis.get('bin_size', 0.008),
            window_size=analysis.get('window_size', 25),
            n_bins=nonlinearity.get('n_bins', 25),
            include_intercept=analysis.get('include_intercept', True),
            max_iter=glm.get('max_iter', 100),
            tol=glm.get('tol', 1e-8)
        )

    def reset(self) -> None:
        """Clear results of a previous fit."""
        self.sta: Optional[np.ndarray] = None
        self.whitened_sta: Optional[FittedFilter] = None
        self.linear_filter: Optional[FittedFilter] = None
        self.poisson_filter: Optional[FittedFilter] = None
        self.nonlinearity: Optional[NonparametricNonlinearity] = None
        self.scores: Dict[str, ModelScore] = {}
        self.performance_metrics: Dict[str, Any] = {}
        self.analysis_metadata: Dict[str, Any] = {}
        self.fitted = False

    def fit(self, stimulus: np.ndarray, spike_counts: np.ndarray) -> 'EncodingModelAnalyzer':
        """
        Run the complete analysis pipeline.

        Parameters
        ----------
        stimulus : np.ndarray
            Stimulus samples, one per time bin
        spike_counts : np.ndarray
            Spike counts aligned with the stimulus

        Returns
        -------
        EncodingModelAnalyzer
            self, with fitted models and scores

        Raises
        ------
        EncodingModelError
            Any failure of an individual stage is propagated unchanged
        """
        self.logger.info("Starting encoding model analysis")
        self.reset()

        data_summary = validate_data_consistency(stimulus, spike_counts, self.window_size)
        spike_counts = np.asarray(spike_counts, dtype=float)

        self.analysis_metadata.update({
            'bin_size': self.bin_size,
            'window_size': self.window_size,
            'n_bins': self.n_bins,
            'include_intercept': self.include_intercept,
            **data_summary,
            'mean_rate_hz': data_summary['total_spikes'] / (data_summary['n_time_bins'] * self.bin_size)
        })
        self.logger.info(
            f"{data_summary['n_time_bins']} time bins, {data_summary['total_spikes']} spikes "
            f"(mean rate {self.analysis_metadata['mean_rate_hz']:.1f} Hz)"
        )

        timings = self.analysis_metadata.setdefault('stage_durations', {})
        try:
            with TimingLogger(self.logger, "design matrix construction", timings=timings):
                design_matrix = self.design_matrix_builder.build(stimulus)
                self.analysis_metadata['design_matrix_validation'] = validate_design_matrix(
                    design_matrix, data_summary['n_time_bins'], self.window_size
                )

            with TimingLogger(self.logger, "filter estimation", timings=timings):
                self._fit_filters(design_matrix, spike_counts)

            with TimingLogger(self.logger, "nonlinearity estimation", timings=timings):
                filter_output = self.poisson_filter.filter_output(design_matrix)
                self.nonlinearity = self.nonlinearity_estimator.estimate(filter_output, spike_counts)

            with TimingLogger(self.logger, "model evaluation", timings=timings):
                self._evaluate_models(design_matrix, filter_output, spike_counts)

        except EncodingModelError as e:
            self.logger.error(f"Analysis failed: {e}")
            raise

        self.fitted = True
        self.logger.info("Analysis completed successfully")
        return self

    def _fit_filters(self, design_matrix: np.ndarray, spike_counts: np.ndarray) -> None:
        """Fit STA, whitened STA, linear-Gaussian and Poisson GLM filters."""
        self.sta = spike_triggered_average(design_matrix, spike_counts)
        self.whitened_sta = self.linear_fitter.fit(design_matrix, spike_counts,
                                                   include_intercept=False)
        self.linear_filter = self.linear_fitter.fit(design_matrix, spike_counts)
        self.poisson_filter = self.poisson_fitter.fit(design_matrix, spike_counts)

        comparison = compare_filter_methods(self.sta, self.whitened_sta.filter)
        self.analysis_metadata['filter_comparison'] = comparison
        self.logger.info(f"STA / whitened STA correlation: {comparison['correlation']:.3f}")

        for name, weights in (('whitened_sta', self.whitened_sta.filter),
                              ('poisson_glm', self.poisson_filter.filter)):
            validation = validate_filter_quality(weights, name)
            for warning in validation['warnings']:
                self.logger.warning(f"Filter quality ({name}): {warning}")

    def _evaluate_models(self, design_matrix: np.ndarray, filter_output: np.ndarray,
                         spike_counts: np.ndarray) -> None:
        """Score exponential and non-parametric GLMs; R^2 for the linear fits."""
        exp_rate = self.poisson_filter.predict_rate(design_matrix)
        np_rate = self.nonlinearity.predict_counts(filter_output)

        self.scores['exp_glm'] = self.evaluator.score(
            spike_counts, exp_rate, self.poisson_filter.n_parameters)
        self.scores['np_glm'] = self.evaluator.score(
            spike_counts, np_rate,
            self.poisson_filter.n_parameters + self.nonlinearity.n_parameters)

        for name, score in self.scores.items():
            self.logger.info(
                f"{name}: LL={score.log_likelihood:.1f}, AIC={score.aic:.1f}, "
                f"SSinfo={score.single_spike_info:.3f} bits/sp"
            )

        self.performance_metrics.update({
            'r_squared_no_offset': ModelMetrics.r_squared(
                spike_counts, self.whitened_sta.predict_rate(design_matrix)),
            'r_squared_offset': ModelMetrics.r_squared(
                spike_counts, self.linear_filter.predict_rate(design_matrix)),
            'aic_comparison': compare_aic(self.scores)
        })

    def predict(self, stimulus: np.ndarray, model: str = 'exp_glm') -> np.ndarray:
        """
        Predict spikes per bin for a stimulus.

        Parameters
        ----------
        stimulus : np.ndarray
            Stimulus array
        model : str, default='exp_glm'
            'exp_glm', 'np_glm' or 'linear_gaussian'

        Returns
        -------
        np.ndarray
            Predicted spikes per bin

        Raises
        ------
        DataValidationError
            If model not fitted or unknown
        """
        if not self.fitted:
            raise DataValidationError("Model not fitted. Call fit() first.")

        if model not in MODELS:
            raise DataValidationError(f"Unknown model '{model}', expected one of {MODELS}")

        design_matrix = self.design_matrix_builder.build(stimulus)

        if model == 'exp_glm':
            return self.poisson_filter.predict_rate(design_matrix)
        if model == 'np_glm':
            return self.nonlinearity.predict_counts(self.poisson_filter.filter_output(design_matrix))
        return self.linear_filter.predict_rate(design_matrix)

    def simulate_raster(self, stimulus: np.ndarray, n_repeats: int = 50,
                        model: str = 'exp_glm', rng: RandomSource = None,
                        upsample_factor: int = 1) -> np.ndarray:
        """
        Simulate repeated responses to a stimulus.

        Parameters
        ----------
        stimulus : np.ndarray
            Stimulus segment to repeat
        n_repeats : int, default=50
            Number of repeats
        model : str, default='exp_glm'
            'exp_glm' or 'np_glm'
        rng : int or numpy Generator, optional
            Source of randomness
        upsample_factor : int, default=1
            Sub-bins per bin; values above 1 give finer rasters

        Returns
        -------
        np.ndarray
            Spike counts, shape (n_repeats, n_time_bins * upsample_factor)
        """
        if model not in ('exp_glm', 'np_glm'):
            raise DataValidationError("Only Poisson models can be simulated")

        rate = self.predict(stimulus, model=model)
        simulator = SpikeSimulator(rng)
        if upsample_factor > 1:
            return simulator.simulate_fine(rate, n_repeats, upsample_factor)
        return simulator.simulate(rate, n_repeats)

    def get_results(self) -> Dict[str, Any]:
        """
        Return structured results dictionary.

        Returns
        -------
        dict
            Complete analysis results

        Raises
        ------
        DataValidationError
            If model not fitted
        """
        if not self.fitted:
            raise DataValidationError("Model not fitted. Call fit() first.")

        return {
            'lags': lag_axis(self.window_size, self.bin_size),
            'sta': self.sta.copy(),
            'whitened_sta': self.whitened_sta.filter.copy(),
            'linear_filter': self.linear_filter.filter.copy(),
            'linear_intercept': self.linear_filter.intercept,
            'poisson_filter': self.poisson_filter.filter.copy(),
            'poisson_intercept': self.poisson_filter.intercept,
            'nonlinearity': self.nonlinearity.to_dict(),
            'scores': {name: score.as_dict() for name, score in self.scores.items()},
            'performance_metrics': dict(self.performance_metrics),
            'metadata': dict(self.analysis_metadata)
        }


def sweep_window_sizes(stimulus: np.ndarray, spike_counts: np.ndarray,
                       window_sizes: Iterable[int], max_iter: int = 100,
                       tol: float = 1e-8, progress_bar: bool = True) -> Dict[int, Dict[str, Any]]:
    """
    Fit the exponential Poisson GLM for several window sizes and score each.

    Parameters
    ----------
    stimulus : np.ndarray
        Stimulus samples
    spike_counts : np.ndarray
        Spike counts aligned with the stimulus
    window_sizes : iterable of int
        Window sizes to try
    max_iter, tol
        Poisson GLM solver settings
    progress_bar : bool, default=True
        Whether to show a progress bar

    Returns
    -------
    dict
        Window size to score dictionary; failed fits map to ``{'error': str}``
    """
    logger = get_logger(__name__)
    fitter = PoissonGLMFitter(max_iter=max_iter, tol=tol)
    evaluator = ModelEvaluator()
    spike_counts = np.asarray(spike_counts, dtype=float)
    window_sizes = list(window_sizes)

    results: Dict[int, Dict[str, Any]] = {}
    for window_size in tqdm(window_sizes, desc="Window sweep", unit="fits",
                            leave=False, disable=not progress_bar):
        try:
            design_matrix = DesignMatrixBuilder(window_size).build(stimulus)
            fitted = fitter.fit(design_matrix, spike_counts)
            score = evaluator.score(spike_counts, fitted.predict_rate(design_matrix),
                                    fitted.n_parameters)
            results[window_size] = score.as_dict()
        except EncodingModelError as e:
            logger.warning(f"Window size {window_size} failed: {e}")
            results[window_size] = {'error': str(e)}

    return results
