"""Structured logging configuration for Mycel."""

import logging
import sys
from typing import Any

from mycel.core.config import get_settings

PACKAGE_LOGGER = "mycel"

_CONTEXT_FIELDS = ("session_id", "run_id")

# Attributes present on every LogRecord; anything else came in through `extra`
_RESERVED = set(logging.LogRecord("", 0, "", 0, "", None, None).__dict__) | {
    "message",
    "asctime",
    "extra_data",
}


class StructuredFormatter(logging.Formatter):
    """key=value structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured output."""
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "module": record.module,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        for name in _CONTEXT_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        # Plain `extra={...}` keys
        for key, value in record.__dict__.items():
            if key not in _RESERVED and key not in log_data:
                log_data[key] = value

        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        parts = [f"{k}={v}" for k, v in log_data.items()]
        line = " ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _configure_package_logger() -> None:
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if package_logger.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter())
    package_logger.addHandler(handler)
    package_logger.propagate = False

    env = get_settings().MYCEL_ENV
    package_logger.setLevel(logging.DEBUG if env == "dev" else logging.INFO)


def get_logger(name: str) -> logging.Logger:
    """
    Module logger; every `mycel.*` logger writes through one shared stdout handler.

    Args:
        name: Logger name (typically __name__)
    """
    _configure_package_logger()
    return logging.getLogger(name)


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log with additional context fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **kwargs: Additional context fields (e.g., session_id)
    """
    extra: dict[str, Any] = {}
    for name in _CONTEXT_FIELDS:
        if name in kwargs:
            extra[name] = kwargs.pop(name)
    extra["extra_data"] = kwargs

    logger.log(level, msg, extra=extra)
