"""Diagnostic events emitted by the web server."""

import logging
from typing import Any, Protocol

from .utils.logging import setup_logger

LOG_DEBUG = "log:debug"
LOG_INFO = "log:info"
LOG_WARN = "log:warn"
LOG_ERROR = "log:error"

_LEVELS = {
    LOG_DEBUG: logging.DEBUG,
    LOG_INFO: logging.INFO,
    LOG_WARN: logging.WARNING,
    LOG_ERROR: logging.ERROR,
}


class EventSink(Protocol):
    """Receives diagnostic events as ``(event, *args)``."""

    def __call__(self, event: str, *args: Any) -> None: ...


class LoggingEventSink:
    """Forwards diagnostic events to a logger at the matching level."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or setup_logger("runnerserver.events")

    def __call__(self, event: str, *args: Any) -> None:
        level = _LEVELS.get(event, logging.INFO)
        if self.logger.isEnabledFor(level):
            self.logger.log(level, " ".join(str(arg) for arg in args))
