"""
Structured JSON logging utilities.

Every offline storage component logs through a standard library logger
named ``offline_storage.<component>``. Applications that ship logs to a
collector can switch that namespace to one JSON object per line.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

LOGGER_NAMESPACE = "offline_storage"

# Attributes every LogRecord carries; anything else came in through `extra`
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "taskName",
}


def _component(logger_name: str) -> str | None:
    prefix = LOGGER_NAMESPACE + "."
    if logger_name.startswith(prefix):
        return logger_name[len(prefix):]
    return None


def _context_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Collect fields passed through ``extra``, stringifying what JSON cannot hold."""
    context: dict[str, Any] = {}
    for key, value in vars(record).items():
        if key in _RECORD_ATTRS or key.startswith("_"):
            continue
        try:
            json.dumps(value)
        except (TypeError, ValueError):
            value = str(value)
        context[key] = value
    return context


class StructuredJsonFormatter(logging.Formatter):
    """
    Formats records as single-line JSON objects.

    Fields:
    - timestamp: record creation time, ISO 8601 in UTC
    - level, logger, message
    - component: logger name below the offline_storage namespace, if any
    - exception: formatted traceback when exc_info is set
    - any static fields given at construction, then fields from ``extra``
    """

    def __init__(self, static_fields: dict[str, Any] | None = None):
        super().__init__()
        self.static_fields = dict(static_fields or {})

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        component = _component(record.name)
        if component:
            entry["component"] = component
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        entry.update(self.static_fields)
        entry.update(_context_fields(record))
        return json.dumps(entry, default=str)


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str | None = LOGGER_NAMESPACE,
    stream: TextIO | None = None,
    static_fields: dict[str, Any] | None = None,
) -> logging.Logger:
    """
    Send a logger's output to a stream as JSON lines.

    Args:
        level: Logging level (default: INFO)
        logger_name: Logger to configure (default: the offline_storage
            namespace; None configures the root logger)
        stream: Destination (default: stdout)
        static_fields: Fields added to every line, e.g. an app or host name

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)

    # Calling this twice must not duplicate output
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredJsonFormatter(static_fields))
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def get_storage_logger(name: str) -> logging.Logger:
    """Logger for a component, named ``offline_storage.<name>``."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


class StorageLoggerAdapter(logging.LoggerAdapter):
    """
    Tags every record with fixed context, such as the replay queue name.

    Fields passed through ``extra`` at the call site take precedence over
    the adapter's own context.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs
