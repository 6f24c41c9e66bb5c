"""Itemised parts of the household business declaration (form 01/CNKD).

- revenue by business category, lines [28]-[31]
- special consumption tax items, codes [33a], [33b], ...
- resource tax [34x], environmental protection tax [35x] and fee [36x] items
- the taxpayer block [04]-[16], snapshotted from the store

Builders take plain mappings (request bodies) and return unattached ORM rows;
every amount goes through the same exact parsing as the declared revenue.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

from smartretail.core.exceptions import DeclarationValidationError
from smartretail.models.store_models import Store
from smartretail.models.tax_models import (
    DeclarationCategoryRevenue,
    DeclarationEnvironmentalItem,
    DeclarationSpecialConsumptionItem,
    TaxDeclaration,
)

from .computations import format_money, format_quantity, format_rate, parse_money, parse_quantity, parse_rate

CATEGORY_CODES = {
    "goods_distribution": "[28]",
    "service_construction": "[29]",
    "manufacturing_transport": "[30]",
    "other_business": "[31]",
}
CATEGORY_NAMES = {
    "goods_distribution": "Distribution and supply of goods",
    "service_construction": "Services and construction without materials",
    "manufacturing_transport": "Manufacturing, transport, goods-related services, construction with materials",
    "other_business": "Other business activities",
}
ENVIRONMENTAL_TYPES = {
    "resource": "34",
    "environmental_tax": "35",
    "environmental_fee": "36",
}
SPECIAL_CONSUMPTION_PREFIX = "33"
# Item codes run a..z within a group
MAX_ITEMS_PER_GROUP = 26

ZERO = Decimal("0")


def item_code(prefix: str, index: int, field: str) -> str:
    if index >= MAX_ITEMS_PER_GROUP:
        raise DeclarationValidationError(
            f"{field} accepts at most {MAX_ITEMS_PER_GROUP} items per group", field=field
        )
    return f"[{prefix}{chr(ord('a') + index)}]"


def _text(item: Mapping[str, Any], key: str, field: str, required: bool = False, max_length: int = 255) -> str | None:
    value = item.get(key)
    if value is None or not str(value).strip():
        if required:
            raise DeclarationValidationError(f"{field}.{key} is required", field=field)
        return None
    value = str(value).strip()
    if len(value) > max_length:
        raise DeclarationValidationError(f"{field}.{key} is too long", field=field)
    return value


def _money(item: Mapping[str, Any], key: str, field: str) -> Decimal:
    value = item.get(key)
    return parse_money(ZERO if value is None else value, field=f"{field}.{key}")


def _rate(item: Mapping[str, Any], key: str, field: str) -> Decimal:
    value = item.get(key)
    return parse_rate(ZERO if value is None else value, f"{field}.{key}")


def build_category_revenues(items: Iterable[Mapping[str, Any]]) -> list[DeclarationCategoryRevenue]:
    field = "revenue_by_category"
    rows: list[DeclarationCategoryRevenue] = []
    seen: set[str] = set()
    for position, item in enumerate(items):
        category = (_text(item, "category", field, required=True) or "").lower()
        if category not in CATEGORY_CODES:
            raise DeclarationValidationError(
                f"Unknown business category '{category}'. Use one of: {', '.join(CATEGORY_CODES)}",
                field=field,
            )
        if category in seen:
            raise DeclarationValidationError(f"Business category '{category}' is listed twice", field=field)
        seen.add(category)
        rows.append(
            DeclarationCategoryRevenue(
                position=position,
                category=category,
                category_code=CATEGORY_CODES[category],
                revenue=_money(item, "revenue", field),
                gtgt_tax=_money(item, "gtgt_tax", field),
                tncn_tax=_money(item, "tncn_tax", field),
            )
        )
    return rows


def build_special_consumption_items(items: Iterable[Mapping[str, Any]]) -> list[DeclarationSpecialConsumptionItem]:
    field = "special_consumption_tax"
    return [
        DeclarationSpecialConsumptionItem(
            position=position,
            item_code=item_code(SPECIAL_CONSUMPTION_PREFIX, position, field),
            item_name=_text(item, "item_name", field, required=True),
            unit=_text(item, "unit", field, max_length=32),
            revenue=_money(item, "revenue", field),
            tax_rate=_rate(item, "tax_rate", field),
            tax_amount=_money(item, "tax_amount", field),
        )
        for position, item in enumerate(items)
    ]


def build_environmental_items(items: Iterable[Mapping[str, Any]]) -> list[DeclarationEnvironmentalItem]:
    """Codes are lettered per tax type, so the first fee is [36a] even after two resource lines."""
    field = "environmental_tax"
    rows: list[DeclarationEnvironmentalItem] = []
    per_type: dict[str, int] = {}
    for position, item in enumerate(items):
        tax_type = (_text(item, "type", field, required=True) or "").lower()
        if tax_type not in ENVIRONMENTAL_TYPES:
            raise DeclarationValidationError(
                f"Unknown environmental tax type '{tax_type}'. Use one of: {', '.join(ENVIRONMENTAL_TYPES)}",
                field=field,
            )
        index = per_type.get(tax_type, 0)
        per_type[tax_type] = index + 1
        quantity = item.get("quantity")
        rows.append(
            DeclarationEnvironmentalItem(
                position=position,
                tax_type=tax_type,
                item_code=item_code(ENVIRONMENTAL_TYPES[tax_type], index, field),
                item_name=_text(item, "item_name", field, required=True),
                unit=_text(item, "unit", field, max_length=32),
                quantity=parse_quantity(ZERO if quantity is None else quantity, f"{field}.quantity"),
                unit_price=_money(item, "unit_price", field),
                tax_rate=_rate(item, "tax_rate", field),
                tax_amount=_money(item, "tax_amount", field),
            )
        )
    return rows


def taxpayer_snapshot(store: Store) -> dict[str, str]:
    """Taxpayer block of the form as it stands when the declaration is created."""
    return {
        "name": store.owner_name or "",
        "store_name": store.name or "",
        "tax_code": store.tax_code or "",
        "bank_account": store.bank_account or "",
        "business_sector": store.business_sector or "",
        "business_address": store.address or "",
        "phone": store.phone or "",
        "email": store.email or "",
    }


def copy_line_items(source: TaxDeclaration, target: TaxDeclaration) -> None:
    """Give ``target`` its own copies of every line item of ``source``."""
    target.category_revenues = [
        DeclarationCategoryRevenue(
            position=row.position,
            category=row.category,
            category_code=row.category_code,
            revenue=row.revenue,
            gtgt_tax=row.gtgt_tax,
            tncn_tax=row.tncn_tax,
        )
        for row in source.category_revenues
    ]
    target.special_consumption_items = [
        DeclarationSpecialConsumptionItem(
            position=row.position,
            item_code=row.item_code,
            item_name=row.item_name,
            unit=row.unit,
            revenue=row.revenue,
            tax_rate=row.tax_rate,
            tax_amount=row.tax_amount,
        )
        for row in source.special_consumption_items
    ]
    target.environmental_items = [
        DeclarationEnvironmentalItem(
            position=row.position,
            tax_type=row.tax_type,
            item_code=row.item_code,
            item_name=row.item_name,
            unit=row.unit,
            quantity=row.quantity,
            unit_price=row.unit_price,
            tax_rate=row.tax_rate,
            tax_amount=row.tax_amount,
        )
        for row in source.environmental_items
    ]


def line_item_totals(record: TaxDeclaration) -> dict[str, Decimal]:
    return {
        "special_consumption_tax": sum((row.tax_amount for row in record.special_consumption_items), ZERO),
        "environmental_tax": sum((row.tax_amount for row in record.environmental_items), ZERO),
    }


def serialize_line_items(record: TaxDeclaration) -> dict[str, list[dict[str, Any]]]:
    return {
        "revenue_by_category": [
            {
                "category": row.category,
                "category_code": row.category_code,
                "category_name": CATEGORY_NAMES.get(row.category, row.category),
                "revenue": format_money(row.revenue),
                "gtgt_tax": format_money(row.gtgt_tax),
                "tncn_tax": format_money(row.tncn_tax),
            }
            for row in record.category_revenues
        ],
        "special_consumption_tax": [
            {
                "item_code": row.item_code,
                "item_name": row.item_name,
                "unit": row.unit,
                "revenue": format_money(row.revenue),
                "tax_rate": format_rate(row.tax_rate),
                "tax_amount": format_money(row.tax_amount),
            }
            for row in record.special_consumption_items
        ],
        "environmental_tax": [
            {
                "type": row.tax_type,
                "item_code": row.item_code,
                "item_name": row.item_name,
                "unit": row.unit,
                "quantity": format_quantity(row.quantity),
                "unit_price": format_money(row.unit_price),
                "tax_rate": format_rate(row.tax_rate),
                "tax_amount": format_money(row.tax_amount),
            }
            for row in record.environmental_items
        ],
    }
