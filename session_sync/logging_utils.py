"""
Structured logging for the sync engine.

Sync work runs in the background, so every log line carries the identity it
concerns. The JSON formatter always writes user_id, session_id and device_id
as top-level keys (null when a record has none), letting a log shipper
filter one learner's or one session's history without parsing messages.

Sync components log through get_sync_logger("upload"), get_sync_logger("reconcile")
and so on, all children of the "session_sync" package logger, and attach the
identity of the work at hand with SyncLoggerAdapter.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

PACKAGE_LOGGER = "session_sync"

# Always present in formatted output, in this order
CONTEXT_FIELDS = ("user_id", "session_id", "device_id")


class StructuredJsonFormatter(logging.Formatter):
    """
    Formats records as single-line JSON objects.

    Keys:
    - timestamp: record creation time, ISO 8601 in UTC
    - level, logger, message
    - user_id, session_id, device_id: sync identity, null when unknown
    - any names passed as extra_fields that the record carries
    - exception: formatted traceback, when the record has one
    """

    def __init__(self, extra_fields: tuple[str, ...] = ()):
        super().__init__()
        self.extra_fields = extra_fields

    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in CONTEXT_FIELDS:
            log_obj[key] = getattr(record, key, None)

        for key in self.extra_fields:
            if hasattr(record, key):
                log_obj[key] = getattr(record, key)

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


def configure_structured_logging(
    level: int | str = logging.INFO,
    logger_name: str = PACKAGE_LOGGER,
) -> logging.Logger:
    """
    Send a logger's records to stdout as JSON.

    Calling it again replaces the handler instead of adding a second one.

    Args:
        level: Logging level, as a number or a name such as "DEBUG"
        logger_name: Logger to configure (default: the package logger)

    Returns:
        The configured logger
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level}")
        level = resolved

    logger = logging.getLogger(logger_name)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())
    logger.addHandler(handler)
    logger.setLevel(level)

    return logger


def get_sync_logger(name: str) -> logging.Logger:
    """Get the logger of a sync component, named 'session_sync.{name}'."""
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")


class SyncLoggerAdapter(logging.LoggerAdapter):
    """
    Stamps every record with the identity of one unit of sync work.

    Example:
        >>> log = SyncLoggerAdapter(get_sync_logger("reconcile"), {"user_id": "user-123"})
        >>> log.bind(session_id="sess-1").info("Updated session")
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        # Context from the adapter wins over per-call extra
        kwargs["extra"] = {**kwargs.get("extra", {}), **self.extra}
        return msg, kwargs

    def bind(self, **context: Any) -> "SyncLoggerAdapter":
        """Return an adapter on the same logger with additional context."""
        return SyncLoggerAdapter(self.logger, {**self.extra, **context})
