"""
Central logging configuration.
Console handler plus an optional file handler, both filtered to the
configured TRACE/DEBUG/INFO/WARNING/ERROR levels.
"""
from __future__ import annotations

import functools
import logging
import os
import time
from typing import Any, Callable, Optional, TypeVar

from crm.core.config import settings

F = TypeVar("F", bound=Callable[..., Any])

TRACE_LEVEL = 5
logging.addLevelName(TRACE_LEVEL, "TRACE")

_LEVEL_NAMES = {
    "TRACE": TRACE_LEVEL,
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def trace(self: logging.Logger, message: str, *args, **kwargs) -> None:
    """Emit a TRACE-level message on the logger instance."""
    if self.isEnabledFor(TRACE_LEVEL):
        self._log(TRACE_LEVEL, message, args, **kwargs)


logging.Logger.trace = trace  # type: ignore[attr-defined]


class LogLevelFilter(logging.Filter):
    """Filter log records to an allowed set of levels."""

    def __init__(self, allowed_levels: set[int]) -> None:
        super().__init__()
        self._allowed_levels = allowed_levels

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno in self._allowed_levels


def parse_allowed_levels(raw: Optional[str]) -> set[int]:
    """Parse a comma-separated list of level names into numeric levels."""
    default_levels = {TRACE_LEVEL, logging.INFO, logging.WARNING, logging.ERROR}
    if not raw:
        return default_levels
    levels = {
        _LEVEL_NAMES[name.strip().upper()]
        for name in raw.split(",")
        if name.strip().upper() in _LEVEL_NAMES
    }
    return levels or default_levels


def resolve_level(level_name: Optional[str]) -> int:
    """Resolve the configured log level string to its numeric value."""
    if not level_name:
        return logging.INFO
    normalized = level_name.strip().upper()
    if normalized == "TRACE":
        return TRACE_LEVEL
    return getattr(logging, normalized, logging.INFO)


def configure_logging() -> None:
    """Configure root logger with a console handler and, if set, a file handler."""
    root_logger = logging.getLogger()
    root_logger.setLevel(resolve_level(settings.LOG_LEVEL))
    root_logger.handlers.clear()

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    )
    level_filter = LogLevelFilter(parse_allowed_levels(settings.LOG_LEVELS))

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.LOG_FILE_PATH:
        log_dir = os.path.dirname(settings.LOG_FILE_PATH)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(settings.LOG_FILE_PATH))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(level_filter)
        root_logger.addHandler(handler)


def log_timing(category: str) -> Callable[[F], F]:
    """
    Decorator factory that logs how long a storage operation took.

    Only the operation name and duration are logged, never the arguments
    (store methods receive raw token strings).
    """
    def decorator(func: F) -> F:
        logger = logging.getLogger(func.__module__)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                elapsed_ms = (time.perf_counter() - start_time) * 1000
                logger.error(
                    "%s | %s | duration=%.3fms | error=%s",
                    category,
                    func.__qualname__,
                    elapsed_ms,
                    exc,
                )
                raise
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.trace(  # type: ignore[attr-defined]
                "%s | %s | duration=%.3fms", category, func.__qualname__, elapsed_ms
            )
            return result

        return wrapper  # type: ignore[return-value]

    return decorator
