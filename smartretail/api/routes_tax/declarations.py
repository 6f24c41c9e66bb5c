"""
Tax Declaration Routes.

Versioned tax declarations per store and filing period: revenue preview,
create / update, clone, delete with promotion, listing and export.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Query, Response, status
from pydantic import BaseModel

from smartretail.api.dependencies import ActorDep, DbDep
from smartretail.services.tax_declaration import TaxDeclarationService, TaxRates, serialize_declaration

from .schemas import (
    DeclarationCreate,
    DeclarationListOut,
    DeclarationOut,
    DeclarationUpdate,
    PeriodTypeLiteral,
    RevenuePreviewOut,
    TaxRatesIn,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/declarations", tags=["tax-declarations"])


def _dump(items: list[BaseModel] | None) -> list[dict] | None:
    return None if items is None else [item.model_dump() for item in items]


def _rates(payload: TaxRatesIn | None) -> TaxRates | None:
    if payload is None or (payload.gtgt is None and payload.tncn is None):
        return None
    return TaxRates.from_values(gtgt=payload.gtgt, tncn=payload.tncn)


@router.get("/preview", response_model=RevenuePreviewOut)
def preview_revenue(
    actor: ActorDep,
    db: DbDep,
    store_id: int = Query(..., ge=1),
    period_type: PeriodTypeLiteral = Query(...),
    period_key: str | None = Query(None),
    range_from: str | None = Query(None, description="Custom range first month, YYYY-MM"),
    range_to: str | None = Query(None, description="Custom range last month, YYYY-MM"),
):
    """System revenue of a period; nothing is written."""
    return TaxDeclarationService(db).preview_revenue(
        store_id,
        period_type,
        actor,
        period_key=period_key,
        range_from=range_from,
        range_to=range_to,
    )


@router.post("", response_model=DeclarationOut, status_code=status.HTTP_201_CREATED)
def create_declaration(data: DeclarationCreate, actor: ActorDep, db: DbDep):
    record = TaxDeclarationService(db).create_declaration(
        store_id=data.store_id,
        period_type=data.period_type,
        declared_revenue=data.declared_revenue,
        actor=actor,
        period_key=data.period_key,
        rates=_rates(data.tax_rates),
        range_from=data.range_from,
        range_to=data.range_to,
        notes=data.notes,
        internal_notes=data.internal_notes,
        is_first_time=data.is_first_time,
        supplement_number=data.supplement_number,
        revenue_by_category=_dump(data.revenue_by_category),
        special_consumption_tax=_dump(data.special_consumption_tax),
        environmental_tax=_dump(data.environmental_tax),
    )
    return serialize_declaration(record)


@router.get("", response_model=DeclarationListOut)
def list_declarations(
    actor: ActorDep,
    db: DbDep,
    store_id: int = Query(..., ge=1),
    period_type: PeriodTypeLiteral | None = Query(None),
    period_key: str | None = Query(None),
    status_filter: str | None = Query(None, alias="status"),
    is_clone: bool | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
):
    """Newest first. ``limit`` is capped server side."""
    result = TaxDeclarationService(db).list_declarations(
        store_id,
        actor=actor,
        period_type=period_type,
        period_key=period_key,
        status=status_filter,
        is_clone=is_clone,
        page=page,
        limit=limit,
    )
    return {
        "data": [serialize_declaration(item) for item in result.items],
        "pagination": {
            "page": result.page,
            "limit": result.limit,
            "total": result.total,
            "total_pages": result.total_pages,
        },
    }


@router.get("/{declaration_id}", response_model=DeclarationOut)
def get_declaration(declaration_id: int, actor: ActorDep, db: DbDep):
    return serialize_declaration(TaxDeclarationService(db).get_declaration(declaration_id, actor=actor))


@router.put("/{declaration_id}", response_model=DeclarationOut)
def update_declaration(declaration_id: int, data: DeclarationUpdate, actor: ActorDep, db: DbDep):
    record = TaxDeclarationService(db).update_declaration(
        declaration_id,
        data.declared_revenue,
        actor,
        rates=_rates(data.tax_rates),
        notes=data.notes,
        internal_notes=data.internal_notes,
        is_first_time=data.is_first_time,
        supplement_number=data.supplement_number,
        revenue_by_category=_dump(data.revenue_by_category),
        special_consumption_tax=_dump(data.special_consumption_tax),
        environmental_tax=_dump(data.environmental_tax),
    )
    return serialize_declaration(record)


@router.post("/{declaration_id}/clone", response_model=DeclarationOut, status_code=status.HTTP_201_CREATED)
def clone_declaration(declaration_id: int, actor: ActorDep, db: DbDep):
    return serialize_declaration(TaxDeclarationService(db).clone_declaration(declaration_id, actor))


@router.delete("/{declaration_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_declaration(declaration_id: int, actor: ActorDep, db: DbDep):
    """Managers only. Deleting an original promotes its newest clone."""
    result = TaxDeclarationService(db).delete_declaration(declaration_id, actor)
    headers = {"X-Promoted-Id": str(result.promoted_id)} if result.promoted_id is not None else None
    return Response(status_code=status.HTTP_204_NO_CONTENT, headers=headers)


@router.get("/{declaration_id}/export")
def export_declaration(
    declaration_id: int,
    actor: ActorDep,
    db: DbDep,
    fmt: str = Query("pdf", alias="format", description="csv or pdf"),
):
    exported = TaxDeclarationService(db).export_declaration(declaration_id, fmt, actor)
    return Response(
        content=exported.content,
        media_type=exported.content_type,
        headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
    )
