"""
Configuration loading for the Poisson GLM Toolkit.

Configuration is a nested dictionary read from YAML. User files are merged
over the packaged defaults, so they only need the keys they change.
"""

import copy
from pathlib import Path
from typing import Optional, Union
import yaml

from ..core.exceptions import ConfigurationError
from .logging_config import VALID_LEVELS, resolve_level

DEFAULT_CONFIG = {
    'analysis': {
        'bin_size': 0.008,
        'window_size': 25,
        'include_intercept': True
    },
    'poisson_glm': {
        'max_iter': 100,
        'tol': 1e-8
    },
    'nonlinearity': {
        'n_bins': 25
    },
    'simulation': {
        'n_repeats': 50,
        'upsample_factor': 100
    },
    'logging': {
        'level': 'INFO',
        'log_file': None,
        'log_timing': True
    }
}

# (section, key, check, description)
_RULES = [
    ('analysis', 'bin_size', lambda v: v > 0, "> 0"),
    ('analysis', 'window_size', lambda v: int(v) == v and v >= 1, "integer >= 1"),
    ('poisson_glm', 'max_iter', lambda v: int(v) == v and v >= 1, "integer >= 1"),
    ('poisson_glm', 'tol', lambda v: v > 0, "> 0"),
    ('nonlinearity', 'n_bins', lambda v: int(v) == v and v >= 1, "integer >= 1"),
    ('simulation', 'n_repeats', lambda v: int(v) == v and v >= 1, "integer >= 1"),
    ('simulation', 'upsample_factor', lambda v: int(v) == v and v >= 1, "integer >= 1"),
]


def get_config_path() -> Optional[str]:
    """Get path to default configuration file."""
    config_path = Path(__file__).parent.parent / 'config' / 'default.yaml'

    if config_path.exists():
        return str(config_path)
    return None


def _merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_yaml(config_path: Union[str, Path]) -> dict:
    try:
        with open(config_path, 'r') as f:
            loaded = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise ConfigurationError(f"Configuration file not found: {config_path}")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML configuration: {e}")

    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Configuration must be a mapping: {config_path}")
    return loaded


def validate_config(config: dict) -> dict:
    """
    Check numeric settings and the logging level of a configuration
    dictionary.

    Raises
    ------
    ConfigurationError
        If a setting is out of range or of the wrong type
    """
    for section, key, check, valid_range in _RULES:
        value = config.get(section, {}).get(key)
        if value is None:
            continue
        try:
            ok = not isinstance(value, bool) and check(value)
        except (TypeError, ValueError):
            ok = False
        if not ok:
            raise ConfigurationError(
                f"Invalid configuration value for {section}.{key}",
                parameter=f"{section}.{key}", value=value, valid_range=valid_range
            )

    level = config.get('logging', {}).get('level')
    if level is not None:
        if not isinstance(level, str):
            raise ConfigurationError(
                "Invalid configuration value for logging.level",
                parameter='logging.level', value=level,
                valid_range=f"One of {list(VALID_LEVELS)}"
            )
        resolve_level(level)
    return config


def load_default_config() -> dict:
    """Load default configuration."""
    config_path = get_config_path()
    if config_path is None:
        return copy.deepcopy(DEFAULT_CONFIG)
    return validate_config(_merge(DEFAULT_CONFIG, _read_yaml(config_path)))


def load_config(config_path: Union[str, Path]) -> dict:
    """
    Load a user configuration file merged over the defaults.

    Parameters
    ----------
    config_path : str or Path
        Path to YAML configuration file

    Returns
    -------
    dict
        Complete, validated configuration

    Raises
    ------
    ConfigurationError
        If the file is missing, malformed or holds invalid values
    """
    return validate_config(_merge(load_default_config(), _read_yaml(config_path)))
