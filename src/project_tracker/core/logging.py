"""Logging setup shared by the client layer and the API server.

Records are rendered as one JSON object per line. :class:`OperationContextFilter`
copies the operation id and the fields bound through
:func:`~project_tracker.core.context.bind_log_fields` onto every record, so a
cache warning raised deep inside a load carries the sync state and the cache
namespace of the operation that caused it.
"""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any

from .config import Settings
from .context import get_log_fields, get_operation_id

# Attributes every LogRecord has; anything else arrived through ``extra`` or the filter.
_STANDARD_RECORD_FIELDS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonLogFormatter(logging.Formatter):
    def __init__(self, *, service: str, environment: str) -> None:
        super().__init__()
        self._service = service
        self._environment = environment

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self._service,
            "environment": self._environment,
        }
        for key, value in vars(record).items():
            if key not in _STANDARD_RECORD_FIELDS:
                payload.setdefault(key, value)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class OperationContextFilter(logging.Filter):
    """Stamp the operation id and bound context fields onto each record.

    Values passed explicitly through ``extra`` win over bound ones.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if not hasattr(record, "operation_id"):
            record.operation_id = get_operation_id()
        for key, value in get_log_fields().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


def token_preview(token: str | None, length: int = 8) -> str:
    """Return a loggable prefix of a bearer credential."""

    if not token:
        return "<none>"
    return f"{token[:length]}..."


def configure_logging(settings: Settings) -> None:
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    handler = {"handlers": ["stdout"], "level": level, "propagate": False}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {
                    "()": JsonLogFormatter,
                    "service": settings.project_name,
                    "environment": settings.environment,
                }
            },
            "filters": {"operation_context": {"()": OperationContextFilter}},
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stdout",
                    "formatter": "json",
                    "filters": ["operation_context"],
                }
            },
            "loggers": {
                "": {"handlers": ["stdout"], "level": level},
                "uvicorn": handler,
                # Request lines are logged by CorrelationIdMiddleware instead.
                "uvicorn.access": {"handlers": [], "level": logging.WARNING, "propagate": False},
                "httpx": {**handler, "level": logging.WARNING},
            },
        }
    )


__all__ = ["JsonLogFormatter", "OperationContextFilter", "configure_logging", "token_preview"]
