"""Core module for Poisson GLM encoding analysis."""

from .encoding_analyzer import EncodingModelAnalyzer, sweep_window_sizes
from .design_matrix import (
    DesignMatrixBuilder, build_design_matrix, lag_axis, validate_design_matrix
)
from .filter_extraction import (
    FittedFilter, LinearGaussianFitter, solve_normal_equations,
    spike_triggered_average, whitened_sta, compare_filter_methods,
    validate_filter_quality
)
from .poisson_glm import PoissonGLMFitter
from .nonlinearity_estimation import (
    NonparametricNonlinearity, NonlinearityEstimator, estimate_nonlinearity
)
from .evaluation import (
    ModelScore, ModelEvaluator, poisson_log_likelihood, homogeneous_log_likelihood,
    single_spike_information, akaike_information_criterion
)
from .exceptions import *

__all__ = [
    'EncodingModelAnalyzer',
    'sweep_window_sizes',
    'DesignMatrixBuilder',
    'build_design_matrix',
    'lag_axis',
    'validate_design_matrix',
    'FittedFilter',
    'LinearGaussianFitter',
    'solve_normal_equations',
    'spike_triggered_average',
    'whitened_sta',
    'compare_filter_methods',
    'validate_filter_quality',
    'PoissonGLMFitter',
    'NonparametricNonlinearity',
    'NonlinearityEstimator',
    'estimate_nonlinearity',
    'ModelScore',
    'ModelEvaluator',
    'poisson_log_likelihood',
    'homogeneous_log_likelihood',
    'single_spike_information',
    'akaike_information_criterion'
]
