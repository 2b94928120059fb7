"""Logging utilities for runnerserver."""

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logger(
    name: str, log_file: Path | None = None, level: int = logging.INFO
) -> logging.Logger:
    """Set up a logger with console and optional file handlers.

    Args:
        name: Logger name
        log_file: Optional file path for file logging
        level: Logging level

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Avoid adding duplicate handlers
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.NOTSET)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(console_handler)

    if log_file:
        add_file_handler(logger, log_file)

    return logger


def add_file_handler(logger: logging.Logger, log_file: Path) -> None:
    """Attach a file handler to an existing logger.

    Args:
        logger: Logger to extend
        log_file: Destination file, parent directories are created
    """
    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_file)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(file_handler)


def set_package_level(level: int) -> None:
    """Apply a level to every logger created under the runnerserver package."""
    logging.getLogger("runnerserver").setLevel(level)
    for name, logger in logging.Logger.manager.loggerDict.items():
        if name.startswith("runnerserver.") and isinstance(logger, logging.Logger):
            logger.setLevel(level)
