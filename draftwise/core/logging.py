"""Structured logging for the Draftwise gateway.

Lines are emitted as ``key=value`` pairs. Context identifiers passed to
``log_with_context`` are promoted right after the message, in a fixed order,
so that a turn can be followed across the pipeline by grepping for its user
or document.
"""

import logging
import sys
from typing import Any

# Promoted ahead of free-form extras, in this order
CONTEXT_FIELDS = ("user_id", "document_id", "project_id", "mode")

# Third-party loggers that are noisy at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "hpack")


class StructuredFormatter(logging.Formatter):
    """Key=value log formatter with promoted context fields."""

    def format(self, record: logging.LogRecord) -> str:
        fields = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None) or {}
        for key in CONTEXT_FIELDS:
            if context.get(key) is not None:
                fields[key] = context[key]
        for key, value in context.items():
            if key not in fields:
                fields[key] = value

        if record.exc_info:
            fields["exc"] = self.formatException(record.exc_info).replace("\n", " | ")

        return " ".join(f"{k}={v}" for k, v in fields.items())


def _level_for_env() -> int:
    try:
        from draftwise.core.config import get_settings

        return logging.DEBUG if get_settings().DRAFTWISE_ENV == "dev" else logging.INFO
    except Exception:
        # Settings not loadable yet (e.g. missing env during import)
        return logging.INFO


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger writing structured lines to stdout.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.setLevel(_level_for_env())
        logger.propagate = False

        for noisy in _QUIET_LOGGERS:
            logging.getLogger(noisy).setLevel(logging.WARNING)

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **context: Any) -> None:
    """
    Log with identifying context attached to the line.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **context: Fields such as user_id, document_id, chunk_count
    """
    logger.log(level, msg, extra={"context": context})
