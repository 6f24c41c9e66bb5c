"""Tax Declaration Service.

Entry point for every declaration operation. Each mutating operation:

1. checks the actor's permission and validates input (nothing written yet)
2. runs its reads and writes inside one ``serializable_transaction``
3. records an activity through the audit sink after the commit

A failure in step 1 or 2 leaves the database untouched; a failure in step 3
is logged and never reaches the caller.
"""
from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from smartretail.core.audit import ActivitySink, log_activity
from smartretail.core.config import settings
from smartretail.core.logger import declaration_context
from smartretail.core.exceptions import (
    DeclarationNotFoundError,
    DeclarationValidationError,
    DuplicatePeriodError,
    NotEditableError,
)
from smartretail.core.rbac import Actor, require_creator_or_manager, require_manager, require_permission
from smartretail.db.transaction import serializable_transaction
from smartretail.models.store_models import Store
from smartretail.models.tax_models import DeclarationStatus, TaxDeclaration
from smartretail.models.types import utcnow

from . import versioning
from .computations import (
    TaxRates,
    compute_declaration_taxes,
    format_money,
    format_rate,
    parse_money,
)
from .export import EXPORT_FORMATS, ExportedFile, render_declaration
from .line_items import (
    build_category_revenues,
    build_environmental_items,
    build_special_consumption_items,
    serialize_line_items,
    taxpayer_snapshot,
)
from .period_utils import PERIOD_TYPES, PeriodRange, format_period_label, normalize_period_key, resolve_period
from .revenue import compute_system_revenue, get_active_store

logger = logging.getLogger(__name__)

ENTITY_TYPE = "TaxDeclaration"
DEFAULT_PAGE_LIMIT = 20


@dataclass(frozen=True)
class DeclarationPage:
    items: list[TaxDeclaration]
    page: int
    limit: int
    total: int
    total_pages: int


def serialize_declaration(record: TaxDeclaration) -> dict[str, Any]:
    """Wire representation; money and rates are decimal strings."""
    return {
        "id": record.id,
        "store_id": record.store_id,
        "period_type": record.period_type,
        "period_key": record.period_key,
        "period_label": format_period_label(record.period_type, record.period_key),
        "is_clone": bool(record.is_clone),
        "original_id": record.original_id,
        "version": record.version,
        "system_revenue": format_money(record.system_revenue),
        "declared_revenue": format_money(record.declared_revenue),
        "tax_rates": {"gtgt": format_rate(record.gtgt_rate), "tncn": format_rate(record.tncn_rate)},
        "tax_amounts": {
            "gtgt": format_money(record.gtgt_amount),
            "tncn": format_money(record.tncn_amount),
            "total": format_money(record.total_tax),
        },
        "is_first_time": bool(record.is_first_time),
        "supplement_number": record.supplement_number,
        "taxpayer_info": dict(record.taxpayer_info or {}),
        **serialize_line_items(record),
        "status": record.status,
        "notes": record.notes,
        "internal_notes": record.internal_notes,
        "created_by": record.created_by,
        "created_at": record.created_at.isoformat() if record.created_at else None,
        "updated_at": record.updated_at.isoformat() if record.updated_at else None,
    }


class TaxDeclarationService:
    """Service for versioned tax declarations.

    Responsibilities:
    - Revenue preview for a store and period
    - Create / update with exact tax computation
    - Clone and delete with promotion (see ``versioning``)
    - Listing with filters and pagination
    - CSV / PDF export
    """

    def __init__(self, db: Session, activity_sink: ActivitySink | None = None):
        self.db = db
        self.activity_sink = activity_sink or log_activity

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _record_activity(self, actor: Actor, action: str, record_id: int | None, description: str, **meta) -> None:
        try:
            self.activity_sink(actor.id, action, ENTITY_TYPE, record_id, description, **meta)
        except Exception:  # noqa: BLE001
            logger.exception("Activity sink failed for %s on declaration %s", action, record_id)

    @staticmethod
    def _check_internal_notes(actor: Actor, internal_notes: str | None) -> None:
        if internal_notes is not None:
            require_manager(actor, "tax:internal_notes")

    @staticmethod
    def _supplement_number(value) -> int:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise DeclarationValidationError(
                "supplement_number must be a non-negative integer", field="supplement_number"
            )
        return value

    @staticmethod
    def _line_items(revenue_by_category, special_consumption_tax, environmental_tax) -> dict[str, list]:
        """Parsed line item groups; a group left as ``None`` is not part of the result."""
        items: dict[str, list] = {}
        if revenue_by_category is not None:
            items["category_revenues"] = build_category_revenues(revenue_by_category)
        if special_consumption_tax is not None:
            items["special_consumption_items"] = build_special_consumption_items(special_consumption_tax)
        if environmental_tax is not None:
            items["environmental_items"] = build_environmental_items(environmental_tax)
        return items

    @staticmethod
    def _resolve(period_type: str, period_key: str | None, range_from: str | None, range_to: str | None) -> PeriodRange:
        return resolve_period(period_type, period_key=period_key, range_from=range_from, range_to=range_to)

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def preview_revenue(
        self,
        store_id: int,
        period_type: str,
        actor: Actor,
        period_key: str | None = None,
        range_from: str | None = None,
        range_to: str | None = None,
    ) -> dict[str, Any]:
        """System revenue for a period without writing anything."""
        require_permission(actor, "tax:preview")
        period = self._resolve(period_type, period_key, range_from, range_to)
        store = get_active_store(self.db, store_id)
        revenue = compute_system_revenue(self.db, store.id, period)
        return {
            "store_id": store_id,
            "period_type": period.period_type,
            "period_key": period.period_key,
            "period_label": format_period_label(period.period_type, period.period_key),
            "start": period.start.isoformat(),
            "end": period.end.isoformat(),
            "system_revenue": format_money(revenue),
        }

    def get_declaration(self, declaration_id: int, actor: Actor | None = None) -> TaxDeclaration:
        if actor is not None:
            require_permission(actor, "tax:list")
        record = self.db.get(TaxDeclaration, declaration_id)
        if record is None:
            raise DeclarationNotFoundError(declaration_id)
        return record

    def list_declarations(
        self,
        store_id: int,
        actor: Actor | None = None,
        period_type: str | None = None,
        period_key: str | None = None,
        status: str | None = None,
        is_clone: bool | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
    ) -> DeclarationPage:
        """Newest first, filtered, paginated."""
        if actor is not None:
            require_permission(actor, "tax:list")
        if page < 1:
            raise DeclarationValidationError("page must be >= 1", field="page")
        if limit < 1:
            raise DeclarationValidationError("limit must be >= 1", field="limit")
        limit = min(limit, settings.DECLARATION_PAGE_LIMIT_MAX)

        filters = [TaxDeclaration.store_id == store_id]
        if period_type:
            if period_type not in PERIOD_TYPES:
                raise DeclarationValidationError(f"Unknown period_type '{period_type}'", field="period_type")
            filters.append(TaxDeclaration.period_type == period_type)
        if period_key:
            # Same canonical form create stores, e.g. 2024-q1 -> 2024-Q1
            key = normalize_period_key(period_type, period_key) if period_type else period_key.strip()
            filters.append(TaxDeclaration.period_key == key)
        if status:
            filters.append(TaxDeclaration.status == status)
        if is_clone is not None:
            filters.append(TaxDeclaration.is_clone.is_(is_clone))

        total = self.db.execute(select(func.count(TaxDeclaration.id)).where(*filters)).scalar_one()
        items = list(
            self.db.execute(
                select(TaxDeclaration)
                .where(*filters)
                .order_by(TaxDeclaration.created_at.desc(), TaxDeclaration.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            ).scalars()
        )
        return DeclarationPage(
            items=items,
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if total else 0,
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_declaration(
        self,
        store_id: int,
        period_type: str,
        declared_revenue,
        actor: Actor,
        period_key: str | None = None,
        rates: TaxRates | None = None,
        range_from: str | None = None,
        range_to: str | None = None,
        notes: str | None = None,
        internal_notes: str | None = None,
        is_first_time: bool = True,
        supplement_number: int = 0,
        revenue_by_category: Iterable[Mapping[str, Any]] | None = None,
        special_consumption_tax: Iterable[Mapping[str, Any]] | None = None,
        environmental_tax: Iterable[Mapping[str, Any]] | None = None,
    ) -> TaxDeclaration:
        """Create the original declaration of a period.

        Line item groups are optional; the taxpayer block is copied from the
        store. Only managers may set ``internal_notes``.

        Raises:
            ForbiddenError: actor lacks ``tax:create``, or sets internal notes without being a manager
            InvalidPeriodError / DeclarationValidationError: bad input
            StoreNotFoundError: store missing or deleted
            DuplicatePeriodError: an original already exists for the period
            RevenueAggregationError: order data unreadable
        """
        require_permission(actor, "tax:create")
        self._check_internal_notes(actor, internal_notes)
        period = self._resolve(period_type, period_key, range_from, range_to)
        revenue = parse_money(declared_revenue)
        rates = rates or TaxRates.defaults()
        taxes = compute_declaration_taxes(revenue, rates)
        supplement_number = self._supplement_number(supplement_number)
        line_items = self._line_items(revenue_by_category or [], special_consumption_tax or [], environmental_tax or [])

        def duplicate() -> DuplicatePeriodError:
            return DuplicatePeriodError(store_id, period.period_type, period.period_key)

        with serializable_transaction(self.db, on_conflict=duplicate):
            store = get_active_store(self.db, store_id)
            family = versioning.lock_family(
                self.db, store_id, period.period_type, period.period_key, create=True
            )
            if versioning.find_original(self.db, store_id, period.period_type, period.period_key):
                raise duplicate()

            system_revenue = compute_system_revenue(self.db, store_id, period)
            version = versioning.allocate_version(self.db, family)
            record = TaxDeclaration(
                store_id=store_id,
                period_type=period.period_type,
                period_key=period.period_key,
                is_clone=False,
                original_id=None,
                version=version,
                system_revenue=system_revenue,
                declared_revenue=revenue,
                gtgt_rate=rates.gtgt,
                tncn_rate=rates.tncn,
                gtgt_amount=taxes.gtgt,
                tncn_amount=taxes.tncn,
                total_tax=taxes.total,
                is_first_time=bool(is_first_time),
                supplement_number=supplement_number,
                taxpayer_info=taxpayer_snapshot(store),
                status=DeclarationStatus.SAVED.value,
                notes=notes,
                internal_notes=internal_notes,
                created_by=actor.id,
                **line_items,
            )
            self.db.add(record)
            self.db.flush()

        logger.info(
            "Created declaration %s store=%s %s:%s v%s",
            record.id,
            store_id,
            record.period_type,
            record.period_key,
            record.version,
            extra=declaration_context(record, actor_id=actor.id),
        )
        self._record_activity(
            actor,
            "create",
            record.id,
            f"Created tax declaration {record.period_key} v{record.version}",
            store_id=store_id,
            period_type=record.period_type,
            period_key=record.period_key,
            version=record.version,
        )
        return record

    def update_declaration(
        self,
        declaration_id: int,
        declared_revenue,
        actor: Actor,
        rates: TaxRates | None = None,
        notes: str | None = None,
        internal_notes: str | None = None,
        is_first_time: bool | None = None,
        supplement_number: int | None = None,
        revenue_by_category: Iterable[Mapping[str, Any]] | None = None,
        special_consumption_tax: Iterable[Mapping[str, Any]] | None = None,
        environmental_tax: Iterable[Mapping[str, Any]] | None = None,
    ) -> TaxDeclaration:
        """Edit a saved declaration.

        Tax amounts are recomputed from the declared revenue (kept when
        ``declared_revenue`` is None) and the stored or overriding rates; the
        system revenue snapshot is left alone. Arguments left as ``None`` keep
        their stored value; a line item group that is passed replaces the
        stored one. Only managers may change ``internal_notes``.
        """
        require_permission(actor, "tax:update")
        self._check_internal_notes(actor, internal_notes)
        revenue = None if declared_revenue is None else parse_money(declared_revenue)
        if supplement_number is not None:
            supplement_number = self._supplement_number(supplement_number)
        line_items = self._line_items(revenue_by_category, special_consumption_tax, environmental_tax)

        with serializable_transaction(self.db):
            record = versioning.load_for_update(self.db, declaration_id)
            require_creator_or_manager(actor, record.created_by, "tax:update")
            if not record.is_editable:
                raise NotEditableError(declaration_id, record.status)

            if revenue is None:
                revenue = record.declared_revenue
            effective = rates or TaxRates(gtgt=record.gtgt_rate, tncn=record.tncn_rate)
            taxes = compute_declaration_taxes(revenue, effective)
            record.declared_revenue = revenue
            record.gtgt_rate = effective.gtgt
            record.tncn_rate = effective.tncn
            record.gtgt_amount = taxes.gtgt
            record.tncn_amount = taxes.tncn
            record.total_tax = taxes.total
            if notes is not None:
                record.notes = notes
            if internal_notes is not None:
                record.internal_notes = internal_notes
            if is_first_time is not None:
                record.is_first_time = bool(is_first_time)
            if supplement_number is not None:
                record.supplement_number = supplement_number
            for attribute, rows in line_items.items():
                setattr(record, attribute, rows)
            record.updated_at = utcnow()
            self.db.flush()

        self._record_activity(
            actor,
            "update",
            record.id,
            f"Updated tax declaration {record.period_key} v{record.version}",
            declared_revenue=format_money(revenue),
            replaced_line_items=sorted(line_items),
        )
        return record

    def clone_declaration(self, declaration_id: int, actor: Actor) -> TaxDeclaration:
        require_permission(actor, "tax:clone")
        with serializable_transaction(self.db):
            clone = versioning.clone_declaration(self.db, declaration_id, actor.id)

        self._record_activity(
            actor,
            "clone",
            clone.id,
            f"Cloned tax declaration {declaration_id} into v{clone.version}",
            source_id=declaration_id,
            original_id=clone.original_id,
            version=clone.version,
        )
        return clone

    def delete_declaration(self, declaration_id: int, actor: Actor) -> versioning.DeletionResult:
        """Managers only. Deleting an original promotes its highest-version clone."""
        require_manager(actor, "tax:delete")
        with serializable_transaction(self.db):
            result = versioning.delete_declaration(self.db, declaration_id)

        self._record_activity(
            actor,
            "delete",
            declaration_id,
            f"Deleted tax declaration {declaration_id}",
            was_clone=result.was_clone,
        )
        if result.promoted_id is not None:
            self._record_activity(
                actor,
                "restore",
                result.promoted_id,
                f"Promoted clone {result.promoted_id} to original after deleting {declaration_id}",
                deleted_id=declaration_id,
            )
        return result

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_declaration(self, declaration_id: int, fmt: str, actor: Actor) -> ExportedFile:
        require_permission(actor, "tax:export")
        fmt = (fmt or "").strip().lower()
        if fmt not in EXPORT_FORMATS:
            raise DeclarationValidationError(
                f"Unsupported export format '{fmt}'. Use one of: {', '.join(EXPORT_FORMATS)}",
                field="format",
            )
        record = self.get_declaration(declaration_id)
        store = self.db.get(Store, record.store_id)
        exported = render_declaration(record, fmt, store=store)
        self._record_activity(
            actor,
            "export",
            record.id,
            f"Exported tax declaration {record.period_key} v{record.version} as {fmt}",
            format=fmt,
        )
        return exported
