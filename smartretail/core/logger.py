from __future__ import annotations

import json
import logging
import sys
from typing import Any

from smartretail.core.config import settings

# Attributes every LogRecord carries; anything else was passed via ``extra=``
_RESERVED_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}

# Promoted to top-level keys so declaration events can be filtered per family
DOMAIN_FIELDS = ("declaration_id", "store_id", "period_type", "period_key", "version", "actor_id")


def declaration_context(record: Any, **fields: Any) -> dict[str, Any]:
    """``extra=`` mapping describing a declaration row (or anything shaped like one)."""
    context = {
        "declaration_id": getattr(record, "id", None),
        "store_id": getattr(record, "store_id", None),
        "period_type": getattr(record, "period_type", None),
        "period_key": getattr(record, "period_key", None),
        "version": getattr(record, "version", None),
    }
    context.update(fields)
    return {key: value for key, value in context.items() if value is not None}


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Declaration fields from ``DOMAIN_FIELDS`` sit next to the message; any
    other ``extra=`` values are grouped under ``extra``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in DOMAIN_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        for key, value in record.__dict__.items():
            if key.startswith("_") or key in _RESERVED_ATTRS or key in payload or key in DOMAIN_FIELDS:
                continue
            payload.setdefault("extra", {})[key] = value
        return json.dumps(payload, default=str)


def init_logging(level: int | None = None) -> None:
    if logging.getLogger().handlers:
        return
    effective_level = level or getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    handler = logging.StreamHandler(sys.stdout)
    if settings.LOG_FORMAT.lower() == "json":
        handler.setFormatter(JsonFormatter())
    else:
        fmt = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
        handler.setFormatter(logging.Formatter(fmt))
    root = logging.getLogger()
    root.setLevel(effective_level)
    root.addHandler(handler)
