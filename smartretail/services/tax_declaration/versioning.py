"""Declaration family versioning: clones, deletion and promotion.

Every function here runs inside the caller's transaction and never commits.
Writers always lock the family row first, so two writers of the same family
are serialized on that row (``SELECT ... FOR UPDATE`` on PostgreSQL, the
database write lock taken by ``BEGIN IMMEDIATE`` on SQLite).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from smartretail.core.exceptions import DeclarationNotFoundError
from smartretail.core.logger import declaration_context
from smartretail.models.tax_models import DeclarationStatus, TaxDeclaration, TaxDeclarationFamily
from smartretail.models.types import utcnow

from .line_items import copy_line_items

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeletionResult:
    deleted_id: int
    promoted_id: int | None = None
    was_clone: bool = False


def _family_filter(model, store_id: int, period_type: str, period_key: str):
    return (
        model.store_id == store_id,
        model.period_type == period_type,
        model.period_key == period_key,
    )


def lock_family(
    db: Session, store_id: int, period_type: str, period_key: str, create: bool = False
) -> TaxDeclarationFamily | None:
    """Lock the family counter row, inserting it when ``create`` is set.

    A concurrent insert of the same family surfaces as ``IntegrityError`` on
    ``uq_tax_declaration_family`` when the transaction flushes.
    """
    stmt = (
        select(TaxDeclarationFamily)
        .where(*_family_filter(TaxDeclarationFamily, store_id, period_type, period_key))
        .with_for_update()
    )
    family = db.execute(stmt).scalar_one_or_none()
    if family is None and create:
        family = TaxDeclarationFamily(
            store_id=store_id, period_type=period_type, period_key=period_key, last_version=0
        )
        db.add(family)
        db.flush()
    return family


def family_of(db: Session, record: TaxDeclaration) -> TaxDeclarationFamily:
    return lock_family(db, record.store_id, record.period_type, record.period_key, create=True)


def allocate_version(db: Session, family: TaxDeclarationFamily) -> int:
    """Issue the next version number of ``family`` and advance its counter."""
    highest = db.execute(
        select(func.max(TaxDeclaration.version)).where(
            *_family_filter(TaxDeclaration, family.store_id, family.period_type, family.period_key)
        )
    ).scalar_one()
    version = max(family.last_version or 0, highest or 0) + 1
    family.last_version = version
    return version


def find_original(db: Session, store_id: int, period_type: str, period_key: str) -> TaxDeclaration | None:
    stmt = select(TaxDeclaration).where(
        *_family_filter(TaxDeclaration, store_id, period_type, period_key),
        TaxDeclaration.is_clone.is_(False),
    )
    return db.execute(stmt).scalar_one_or_none()


def load_for_update(db: Session, declaration_id: int) -> TaxDeclaration:
    record = db.execute(
        select(TaxDeclaration).where(TaxDeclaration.id == declaration_id).with_for_update()
    ).scalar_one_or_none()
    if record is None:
        raise DeclarationNotFoundError(declaration_id)
    return record


def clone_declaration(db: Session, source_id: int, actor_id: int) -> TaxDeclaration:
    """Copy ``source_id`` into a new clone with the next family version.

    The system revenue snapshot, the taxpayer block and every line item are
    copied, never recomputed or shared.
    """
    source = load_for_update(db, source_id)
    family = family_of(db, source)
    # Re-read after the family lock so a concurrent promotion is visible
    db.refresh(source)
    version = allocate_version(db, family)

    clone = TaxDeclaration(
        store_id=source.store_id,
        period_type=source.period_type,
        period_key=source.period_key,
        is_clone=True,
        original_id=source.original_id or source.id,
        version=version,
        system_revenue=source.system_revenue,
        declared_revenue=source.declared_revenue,
        gtgt_rate=source.gtgt_rate,
        tncn_rate=source.tncn_rate,
        gtgt_amount=source.gtgt_amount,
        tncn_amount=source.tncn_amount,
        total_tax=source.total_tax,
        is_first_time=source.is_first_time,
        supplement_number=source.supplement_number,
        taxpayer_info=dict(source.taxpayer_info or {}),
        status=DeclarationStatus.SAVED.value,
        notes=source.notes,
        internal_notes=source.internal_notes,
        created_by=actor_id,
    )
    copy_line_items(source, clone)
    db.add(clone)
    db.flush()
    logger.info(
        "Cloned declaration %s into %s (%s:%s v%s)",
        source.id,
        clone.id,
        clone.period_type,
        clone.period_key,
        version,
        extra=declaration_context(clone, source_id=source.id),
    )
    return clone


def promotion_candidate(db: Session, original: TaxDeclaration) -> TaxDeclaration | None:
    """Highest version clone; ties go to the earliest created, then the lowest id."""
    stmt = (
        select(TaxDeclaration)
        .where(
            *_family_filter(TaxDeclaration, original.store_id, original.period_type, original.period_key),
            TaxDeclaration.is_clone.is_(True),
            TaxDeclaration.id != original.id,
        )
        .order_by(
            TaxDeclaration.version.desc(),
            TaxDeclaration.created_at.asc(),
            TaxDeclaration.id.asc(),
        )
        .limit(1)
    )
    return db.execute(stmt).scalar_one_or_none()


def delete_declaration(db: Session, declaration_id: int) -> DeletionResult:
    """Delete a declaration, promoting a clone when the original goes away.

    The family's version counter row is kept even when the family becomes
    empty so version numbers are never issued twice.
    """
    record = load_for_update(db, declaration_id)
    family = family_of(db, record)
    db.refresh(record)
    # The counter must cover every version ever issued before any row disappears
    family.last_version = max(family.last_version or 0, record.version)

    if record.is_clone:
        db.delete(record)
        db.flush()
        logger.info("Deleted clone declaration %s", declaration_id, extra=declaration_context(record))
        return DeletionResult(deleted_id=declaration_id, was_clone=True)

    candidate = promotion_candidate(db, record)
    if candidate is None:
        db.delete(record)
        db.flush()
        logger.info(
            "Deleted original declaration %s; family is now empty", declaration_id, extra=declaration_context(record)
        )
        return DeletionResult(deleted_id=declaration_id)

    # Re-point the family at the survivor before the root row disappears
    db.execute(
        update(TaxDeclaration)
        .where(
            *_family_filter(TaxDeclaration, record.store_id, record.period_type, record.period_key),
            TaxDeclaration.is_clone.is_(True),
            TaxDeclaration.id != candidate.id,
        )
        .values(original_id=candidate.id)
        .execution_options(synchronize_session="fetch")
    )
    candidate.original_id = None
    db.flush()

    db.delete(record)
    db.flush()

    candidate.is_clone = False
    candidate.updated_at = utcnow()
    db.flush()
    logger.info(
        "Deleted original declaration %s; promoted clone %s (v%s)",
        declaration_id,
        candidate.id,
        candidate.version,
        extra=declaration_context(record, promoted_id=candidate.id),
    )
    return DeletionResult(deleted_id=declaration_id, promoted_id=candidate.id)
