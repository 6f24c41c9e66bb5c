"""Transaction boundary for mutating declaration operations.

``serializable_transaction`` commits when the block succeeds and rolls back
on any exception, so a failed operation never leaves partial state behind.
Storage-level conflicts are translated into domain errors:

* ``IntegrityError`` (a unique index rejected the write) becomes the error
  produced by ``on_conflict``, or ``ConcurrentModificationError``.
* Serialization failures, deadlocks and SQLite lock timeouts become
  ``ConcurrentModificationError``.

Only reads may happen on the session before the block starts: a read-only
transaction that is already open is rolled back so the block starts clean,
but pending or flushed-yet-uncommitted writes raise ``RuntimeError`` rather
than being discarded.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Generator

from sqlalchemy import event
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

from smartretail.core.exceptions import ConcurrentModificationError

logger = logging.getLogger(__name__)

# SQLSTATE serialization_failure and deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}
# Session.info flag set by the flush hook below, cleared when the transaction ends
WRITES_KEY = "smartretail.flushed_writes"


def is_serialization_failure(exc: DBAPIError) -> bool:
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _RETRYABLE_SQLSTATES:
        return True
    message = str(orig).lower()
    return "database is locked" in message or "could not serialize" in message


def _has_flushed_writes(db: Session) -> bool:
    return bool(db.info.get(WRITES_KEY))


@contextmanager
def serializable_transaction(
    db: Session,
    on_conflict: Callable[[], Exception] | None = None,
) -> Generator[Session, None, None]:
    if db.in_transaction():
        if db.new or db.dirty or db.deleted or _has_flushed_writes(db):
            raise RuntimeError("serializable_transaction needs a session without uncommitted changes")
        db.rollback()
    try:
        yield db
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.info("Transaction rejected by unique constraint: %s", exc.orig)
        if on_conflict is not None:
            raise on_conflict() from exc
        raise ConcurrentModificationError("unique constraint") from exc
    except DBAPIError as exc:
        db.rollback()
        if is_serialization_failure(exc):
            logger.warning("Transaction aborted by concurrent write: %s", exc.orig)
            raise ConcurrentModificationError("serialization failure") from exc
        raise
    except Exception:
        db.rollback()
        raise


@event.listens_for(Session, "after_flush")
def _mark_flushed_writes(session: Session, flush_context) -> None:
    session.info[WRITES_KEY] = True


@event.listens_for(Session, "after_transaction_end")
def _clear_flushed_writes(session: Session, transaction) -> None:
    if transaction.parent is None:
        session.info.pop(WRITES_KEY, None)
