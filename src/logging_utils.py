"""
Logging utilities for the lab engine.

Provides consistent logging configuration across all modules.

Usage:
    from logging_utils import get_logger

    logger = get_logger(__name__)
    logger.info("Ledger record appended")
    logger.debug("Drop rejected at weighing-scale")
    logger.error("No reference data for reducer/Q4")
"""

import logging
import sys
from typing import Optional

# Default format for log messages
DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

ROOT_LOGGER_NAME = "labsim"

# Track if root logger has been configured
_root_configured = False


def configure_logging(
    level: int = logging.INFO,
    format_str: str = DEFAULT_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
    stream: Optional[object] = None,
) -> None:
    """
    Configure the root logger for the lab engine.

    Call this once at application startup to set up logging.
    Subsequent calls will be ignored.

    Args:
        level: Logging level (default: INFO)
        format_str: Log message format
        date_format: Date format for timestamps
        stream: Output stream (default: sys.stderr)
    """
    global _root_configured
    if _root_configured:
        return

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(logging.NOTSET)
    handler.setFormatter(logging.Formatter(format_str, date_format))

    root.addHandler(handler)
    _root_configured = True


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Logger instance under the labsim hierarchy.
    """
    configure_logging()

    if name.startswith("src."):
        name = name[4:]

    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def set_verbose(verbose: bool) -> None:
    """
    Set verbose mode for all lab engine loggers.

    Args:
        verbose: If True, set level to DEBUG. If False, set to INFO.
    """
    set_level(logging.DEBUG if verbose else logging.INFO)


def set_level(level: int) -> None:
    """Set the level of the labsim root logger."""
    logging.getLogger(ROOT_LOGGER_NAME).setLevel(level)


def level_from_name(name: str) -> int:
    """Translate a level name like "debug" into a logging constant (INFO if unknown)."""
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


class LoggerAdapter:
    """
    Adapter that provides print-like interface but uses logging.

    Usage:
        log = LoggerAdapter(get_logger(__name__), verbose=True)
        log("Step advanced to COOLING")
        log.debug("Generation 3 started")
    """

    def __init__(self, logger: logging.Logger, verbose: bool = True):
        self.logger = logger
        self.verbose = verbose

    def __call__(self, message: str) -> None:
        """Log at INFO level when called like a function."""
        if self.verbose:
            self.logger.info(message)

    def debug(self, message: str) -> None:
        """Log at DEBUG level."""
        if self.verbose:
            self.logger.debug(message)

    def info(self, message: str) -> None:
        """Log at INFO level."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log at WARNING level."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log at ERROR level."""
        self.logger.error(message)
