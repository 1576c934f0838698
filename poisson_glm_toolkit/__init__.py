"""
Poisson GLM Toolkit

A research-grade Python toolkit for fitting and comparing encoding models of
neuronal spike trains driven by a one-dimensional stimulus. It estimates
temporal filters (STA, whitened STA, linear-Gaussian and exponential Poisson
GLMs), a non-parametric output nonlinearity, and scores models by
log-likelihood, AIC and single-spike information.
"""

__version__ = "0.1.0"
__author__ = "Poisson GLM Toolkit Team"
__email__ = "contact@poissonglm.toolkit"

# Import main classes for easy access
from .core.encoding_analyzer import EncodingModelAnalyzer, sweep_window_sizes
from .core.design_matrix import DesignMatrixBuilder, build_design_matrix, lag_axis
from .core.filter_extraction import (
    FittedFilter,
    LinearGaussianFitter,
    spike_triggered_average,
    whitened_sta
)
from .core.poisson_glm import PoissonGLMFitter
from .core.nonlinearity_estimation import (
    NonparametricNonlinearity,
    NonlinearityEstimator,
    estimate_nonlinearity
)
from .core.evaluation import (
    ModelScore,
    ModelEvaluator,
    poisson_log_likelihood,
    homogeneous_log_likelihood,
    single_spike_information,
    akaike_information_criterion
)

# Utilities
from .utils.logging_config import setup_logging, get_logger
from .utils.config import load_config, load_default_config, get_config_path
from .utils.preprocessing import SpikeProcessor, validate_data_consistency
from .utils.metrics import FilterMetrics, ModelMetrics, compare_aic

# Synthetic data and simulation
from .synthetic import (
    SyntheticDataGenerator, create_biphasic_filter, SpikeSimulator, simulate_spikes
)

# Import exceptions
from .core.exceptions import (
    EncodingModelError,
    DataValidationError,
    DimensionMismatchError,
    SingularMatrixError,
    ConvergenceFailure,
    DegenerateInputError,
    InvalidRateError,
    ConfigurationError
)

__all__ = [
    # Main classes
    'EncodingModelAnalyzer',
    'sweep_window_sizes',
    'DesignMatrixBuilder',
    'build_design_matrix',
    'lag_axis',
    'FittedFilter',
    'LinearGaussianFitter',
    'spike_triggered_average',
    'whitened_sta',
    'PoissonGLMFitter',
    'NonparametricNonlinearity',
    'NonlinearityEstimator',
    'estimate_nonlinearity',

    # Evaluation
    'ModelScore',
    'ModelEvaluator',
    'poisson_log_likelihood',
    'homogeneous_log_likelihood',
    'single_spike_information',
    'akaike_information_criterion',

    # Utilities
    'load_config',
    'load_default_config',
    'get_config_path',
    'SpikeProcessor',
    'validate_data_consistency',
    'FilterMetrics',
    'ModelMetrics',
    'compare_aic',

    # Synthetic data and simulation
    'SyntheticDataGenerator',
    'create_biphasic_filter',
    'SpikeSimulator',
    'simulate_spikes',

    # Logging
    'setup_logging',
    'get_logger',

    # Exceptions
    'EncodingModelError',
    'DataValidationError',
    'DimensionMismatchError',
    'SingularMatrixError',
    'ConvergenceFailure',
    'DegenerateInputError',
    'InvalidRateError',
    'ConfigurationError',

    # Package info
    '__version__'
]


# Configure default logging
try:
    from .utils.logging_config import configure_logging_from_config
    configure_logging_from_config(load_default_config())
except EncodingModelError:
    # Fallback to basic logging
    setup_logging(level='INFO')


def test_installation():
    """Quick test to verify installation."""
    try:
        import numpy as np

        generator = SyntheticDataGenerator(
            filter_true=create_biphasic_filter(10),
            intercept_true=-1.0,
            random_seed=0
        )
        dataset = generator.create_test_dataset(n_time_bins=2000)

        analyzer = EncodingModelAnalyzer(window_size=10, n_bins=10)
        analyzer.fit(dataset['stimulus'], dataset['spikes'])

        if not np.isfinite(analyzer.scores['exp_glm'].log_likelihood):
            return False, "Installation test failed: non-finite log-likelihood"

        return True, "Installation test passed"

    except (EncodingModelError, ImportError) as e:
        return False, f"Installation test failed: {e}"


if __name__ == "__main__":
    # Quick test when module is run directly
    success, message = test_installation()
    print(f"Poisson GLM Toolkit v{__version__}")
    print(message)
    if not success:
        exit(1)
