"""
Structured logging for study sync.

Users only ever see a sync indicator, so failed reads, failed writes and
blocked writes are diagnosed from the log stream. Engine records carry
the active identity context (user_id, generation) and, for remote
writes, the write sequence number; the JSON formatter lifts those into
top-level fields.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

ROOT_LOGGER_NAME = "study_sync"

# Context fields the engine attaches to its records
SYNC_CONTEXT_FIELDS = ("user_id", "generation", "sequence", "operation")

_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


class StructuredJsonFormatter(logging.Formatter):
    """
    Render each record as one JSON line.

    Output fields:
    - timestamp: record creation time, ISO 8601 in UTC
    - level, logger, message
    - sync context (user_id, generation, sequence, operation) when present
    - any other ``extra`` values, stringified if not JSON-serializable
    - exception: formatted traceback, if any
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in SYNC_CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value

        for key, value in vars(record).items():
            if key in _RECORD_ATTRS or key in entry or key.startswith("_"):
                continue
            entry[key] = value if _is_json_value(value) else str(value)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def _is_json_value(value: Any) -> bool:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return False
    return True


def configure_structured_logging(
    level: int | str = logging.INFO,
    logger_name: str = ROOT_LOGGER_NAME,
) -> logging.Logger:
    """
    Send a logger's records to stdout as JSON lines.

    Calling again replaces the JSON handler installed by a previous
    call instead of adding a second one. Other handlers are left alone.

    Args:
        level: Level name or number (default: INFO)
        logger_name: Logger to configure (default: the study_sync package logger)

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)
    for handler in list(logger.handlers):
        if isinstance(handler.formatter, StructuredJsonFormatter):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())
    logger.addHandler(handler)
    logger.setLevel(level.upper() if isinstance(level, str) else level)
    return logger


def get_sync_logger(name: str) -> logging.Logger:
    """Get the package logger for a component, e.g. ``study_sync.engine``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


class SyncLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that stamps identity context onto every record.

    The engine rebinds it on every identity transition. Per-call
    ``extra`` values (such as a write sequence) take precedence over the
    bound context.
    """

    def bind(self, **context: Any) -> "SyncLoggerAdapter":
        """Return an adapter for the same logger with updated context."""
        return SyncLoggerAdapter(self.logger, {**(self.extra or {}), **context})

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **kwargs.get("extra", {})}
        return msg, kwargs
