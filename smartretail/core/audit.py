"""Activity (audit) logging utilities.

Writes structured JSON lines to a dedicated audit log file and the ``audit``
logger. The sink is fire-and-forget: callers invoke it after their transaction
has committed, and nothing raised in here ever reaches them.
"""
from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Protocol

from smartretail.core.config import settings

_logger = logging.getLogger("audit")


class ActivitySink(Protocol):
    def __call__(
        self,
        actor_id: int | None,
        action: str,
        entity_type: str,
        entity_id: int | None,
        description: str,
        **metadata: Any,
    ) -> None: ...


def log_audit_event(action: str, user_id: int | None = None, status: str = "success", **metadata: Any) -> None:
    """Record an audit event.

    Parameters:
        action: A machine-readable action key (e.g. 'tax_declaration.create').
        user_id: The acting user's ID (if available).
        status: 'success' | 'failure' | 'denied'.
        **metadata: Additional context fields (ids, counts, etc.).
    """
    event = {
        "ts": int(time.time()),
        "action": action,
        "user_id": user_id,
        "status": status,
        **metadata,
    }
    line = json.dumps(event, separators=(",", ":"), default=str)
    path = settings.AUDIT_LOG_FILE
    # Append to file (best effort)
    try:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
    except OSError:
        _logger.debug("Failed to write audit event to file: %s", event)
    # Emit via logger for aggregation
    _logger.info(line)


def log_activity(
    actor_id: int | None,
    action: str,
    entity_type: str,
    entity_id: int | None,
    description: str,
    **metadata: Any,
) -> None:
    """Default ``ActivitySink``: one audit event per committed change."""
    try:
        log_audit_event(
            f"{entity_type.lower()}.{action}",
            user_id=actor_id,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            **metadata,
        )
    except Exception:  # noqa: BLE001
        _logger.exception("Failed to record activity %s for %s %s", action, entity_type, entity_id)


def log_denied(action: str, user_id: int | None = None, reason: str | None = None, **extra: Any) -> None:
    log_audit_event(action, user_id=user_id, status="denied", reason=reason, **extra)
