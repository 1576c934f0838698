"""
Utility modules for the Poisson GLM Toolkit.

This package provides logging, configuration, preprocessing, metrics, and
other supporting functionality.
"""

from .logging_config import (
    setup_logging, get_logger, TimingLogger, configure_logging_from_config
)
from .config import load_config, load_default_config, get_config_path, validate_config
from .preprocessing import SpikeProcessor, validate_data_consistency
from .metrics import FilterMetrics, ModelMetrics, compare_aic

__all__ = [
    # Logging
    'setup_logging', 'get_logger', 'TimingLogger', 'configure_logging_from_config',

    # Configuration
    'load_config', 'load_default_config', 'get_config_path', 'validate_config',

    # Preprocessing
    'SpikeProcessor', 'validate_data_consistency',

    # Metrics
    'FilterMetrics', 'ModelMetrics', 'compare_aic'
]
