"""
Logging for the Poisson GLM Toolkit.

Every toolkit logger lives under the ``poisson_glm_toolkit`` namespace. The
package logger is configured from the ``logging`` section of the toolkit
configuration, and pipeline stages are timed with :class:`TimingLogger`.
"""

import logging
import sys
import time
from pathlib import Path
from typing import Dict, Optional, Union

from ..core.exceptions import ConfigurationError

PACKAGE_LOGGER = 'poisson_glm_toolkit'
VALID_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')

TIMED_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
PLAIN_FORMAT = '%(name)s - %(levelname)s - %(message)s'


def resolve_level(level: Union[str, int]) -> int:
    """
    Translate a level name such as ``'info'`` into its numeric value.

    Raises
    ------
    ConfigurationError
        If the name is not one of VALID_LEVELS
    """
    if isinstance(level, str):
        if level.upper() not in VALID_LEVELS:
            raise ConfigurationError(
                f"Invalid logging level: {level}",
                parameter='logging.level',
                value=level,
                valid_range=f"One of {list(VALID_LEVELS)}"
            )
        return getattr(logging, level.upper())
    return int(level)


def format_duration(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds * 1000:.1f} ms"
    if seconds < 60:
        return f"{seconds:.1f} s"
    return f"{seconds / 60:.1f} min"


class TimingLogger:
    """
    Context manager that logs the start, end and duration of a pipeline stage.

    If a ``timings`` dictionary is given, the stage duration in seconds is
    stored in it under the stage name, whether or not the stage fails.
    Exceptions are never suppressed.
    """

    def __init__(self, logger: logging.Logger, stage: str, level: int = logging.INFO,
                 timings: Optional[Dict[str, float]] = None):
        self.logger = logger
        self.stage = stage
        self.level = level
        self.timings = timings
        self.duration: Optional[float] = None
        self._start: Optional[float] = None

    def __enter__(self):
        self._start = time.perf_counter()
        self.logger.log(self.level, f"Starting {self.stage}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.perf_counter() - self._start
        if self.timings is not None:
            self.timings[self.stage] = self.duration

        elapsed = format_duration(self.duration)
        if exc_type is None:
            self.logger.log(self.level, f"Finished {self.stage} in {elapsed}")
        else:
            self.logger.error(f"{self.stage} failed after {elapsed}: {exc_val}")
        return False


def setup_logging(level: Union[str, int] = logging.INFO,
                  log_file: Optional[Union[str, Path]] = None,
                  format_string: Optional[str] = None,
                  include_timing: bool = True) -> logging.Logger:
    """
    Configure the package logger.

    Existing handlers are replaced, so calling this again reconfigures the
    toolkit instead of duplicating output.

    Parameters
    ----------
    level : str or int
        Logging level name or value
    log_file : str or Path, optional
        Also write records to this file; parent directories are created
    format_string : str, optional
        Record format; overrides ``include_timing``
    include_timing : bool
        Prefix records with a timestamp

    Returns
    -------
    logging.Logger
        The package logger

    Raises
    ------
    ConfigurationError
        If the level name is unknown
    """
    numeric_level = resolve_level(level)

    if format_string is None:
        format_string = TIMED_FORMAT if include_timing else PLAIN_FORMAT
    formatter = logging.Formatter(format_string)

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(numeric_level)
    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    # Toolkit records are handled here only
    logger.propagate = False

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger inside the toolkit namespace (the package logger for None)."""
    if not name or name == PACKAGE_LOGGER:
        return logging.getLogger(PACKAGE_LOGGER)
    if not name.startswith(PACKAGE_LOGGER + '.'):
        name = f'{PACKAGE_LOGGER}.{name}'
    return logging.getLogger(name)


def configure_logging_from_config(config: dict) -> logging.Logger:
    """
    Configure the package logger from the ``logging`` section of a
    configuration dictionary as returned by ``load_config``.
    """
    settings = config.get('logging') or {}

    return setup_logging(
        level=settings.get('level', 'INFO'),
        log_file=settings.get('log_file'),
        include_timing=settings.get('log_timing', True)
    )
