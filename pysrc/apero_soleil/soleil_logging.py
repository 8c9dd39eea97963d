"""
Logging for Apéro Soleil.

Thin wrapper over the standard logging module that keeps a registry of
named loggers so the command line can raise or lower verbosity for the
whole package at once.

Usage:
    from apero_soleil.soleil_logging import get_logger

    logger = get_logger(__name__)
    logger.info("DSM loaded: 4000×4000 pixels")
    logger.debug(f"Terrace {terrace.id}: h={height:.2f} m")
    logger.warning("Cloud cover unavailable, weather adjustment disabled")
"""

from __future__ import annotations

import logging
import sys
from enum import IntEnum


class LogLevel(IntEnum):
    """Log levels matching Python logging."""

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40


class SoleilLogger:
    """
    Named logger with its own minimum level.

    Messages below ``level`` are dropped before reaching the logging module,
    so per-terrace debug lines cost nothing in normal runs.
    """

    def __init__(self, name: str, level: LogLevel = LogLevel.INFO):
        """
        Initialize logger.

        Args:
            name: Logger name (usually module name)
            level: Minimum log level to emit
        """
        self.name = name
        self.level = level
        self._logger = logging.getLogger(name)

    def _log(self, level: LogLevel, message: str) -> None:
        if level < self.level:
            return
        self._logger.log(level, message)

    def debug(self, message: str) -> None:
        """Log debug message."""
        self._log(LogLevel.DEBUG, message)

    def info(self, message: str) -> None:
        """Log info message."""
        self._log(LogLevel.INFO, message)

    def warning(self, message: str) -> None:
        """Log warning message."""
        self._log(LogLevel.WARNING, message)

    def error(self, message: str) -> None:
        """Log error message."""
        self._log(LogLevel.ERROR, message)

    def set_level(self, level: LogLevel | int) -> None:
        """Set minimum log level."""
        self.level = LogLevel(level) if isinstance(level, int) else level
        if self.level < logging.getLogger().level:
            logging.getLogger().setLevel(self.level)


# Global logger registry
_loggers: dict[str, SoleilLogger] = {}
_global_level: LogLevel = LogLevel.INFO


def get_logger(name: str, level: LogLevel | int | None = None) -> SoleilLogger:
    """
    Get or create a logger for the given name.

    Args:
        name: Logger name (usually module name or __name__)
        level: Minimum log level. Defaults to the current global level.

    Returns:
        SoleilLogger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Processing started")
    """
    if name not in _loggers:
        initial = _global_level if level is None else LogLevel(level)
        _loggers[name] = SoleilLogger(name, initial)
    return _loggers[name]


def set_global_level(level: LogLevel | int) -> None:
    """
    Set log level for all existing and future loggers.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR)

    Example:
        >>> import apero_soleil.soleil_logging as slog
        >>> slog.set_global_level(slog.LogLevel.DEBUG)
    """
    global _global_level
    _global_level = LogLevel(level)
    for logger in _loggers.values():
        logger.set_level(_global_level)


# Configure Python logging to be less verbose by default
logging.basicConfig(
    level=logging.INFO,
    format="%(name)s: %(message)s",
    stream=sys.stdout,
)
