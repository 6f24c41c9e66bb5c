"""
Pydantic schemas for tax declaration routes.

Money and rates travel as decimal strings in responses. Requests accept
strings or JSON numbers; the service converts them to exact decimals.
"""
from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel, Field

Numeric = Union[str, int, float]
PeriodTypeLiteral = Literal["month", "quarter", "year", "custom", "adhoc"]


class TaxRatesIn(BaseModel):
    gtgt: Numeric | None = Field(None, description="VAT rate in percent (1.0 means 1%)")
    tncn: Numeric | None = Field(None, description="Personal income tax rate in percent")


class CategoryRevenueIn(BaseModel):
    category: Literal["goods_distribution", "service_construction", "manufacturing_transport", "other_business"]
    revenue: Numeric | None = None
    gtgt_tax: Numeric | None = None
    tncn_tax: Numeric | None = None


class SpecialConsumptionItemIn(BaseModel):
    item_name: str = Field(..., min_length=1, max_length=255)
    unit: str | None = Field(None, max_length=32)
    revenue: Numeric | None = None
    tax_rate: Numeric | None = Field(None, description="Percent")
    tax_amount: Numeric | None = None


class EnvironmentalItemIn(BaseModel):
    type: Literal["resource", "environmental_tax", "environmental_fee"]
    item_name: str = Field(..., min_length=1, max_length=255)
    unit: str | None = Field(None, max_length=32)
    quantity: Numeric | None = None
    unit_price: Numeric | None = None
    tax_rate: Numeric | None = Field(None, description="Percent")
    tax_amount: Numeric | None = None


class DeclarationCreate(BaseModel):
    """Create the original declaration for a store and period."""

    store_id: int = Field(..., ge=1)
    period_type: PeriodTypeLiteral
    period_key: str | None = Field(None, max_length=32, description="Required unless custom bounds are given")
    range_from: str | None = Field(None, description="Custom range first month, YYYY-MM")
    range_to: str | None = Field(None, description="Custom range last month, YYYY-MM (inclusive)")
    declared_revenue: Numeric
    tax_rates: TaxRatesIn | None = None
    notes: str | None = Field(None, max_length=5000)
    internal_notes: str | None = Field(None, max_length=5000, description="Managers only")
    is_first_time: bool = True
    supplement_number: int = Field(0, ge=0)
    revenue_by_category: list[CategoryRevenueIn] = Field(default_factory=list)
    special_consumption_tax: list[SpecialConsumptionItemIn] = Field(default_factory=list)
    environmental_tax: list[EnvironmentalItemIn] = Field(default_factory=list)


class DeclarationUpdate(BaseModel):
    """Fields left out keep their stored value; a line item list replaces the stored one."""

    declared_revenue: Numeric | None = None
    tax_rates: TaxRatesIn | None = None
    notes: str | None = Field(None, max_length=5000)
    internal_notes: str | None = Field(None, max_length=5000, description="Managers only")
    is_first_time: bool | None = None
    supplement_number: int | None = Field(None, ge=0)
    revenue_by_category: list[CategoryRevenueIn] | None = None
    special_consumption_tax: list[SpecialConsumptionItemIn] | None = None
    environmental_tax: list[EnvironmentalItemIn] | None = None


class TaxRatesOut(BaseModel):
    gtgt: str
    tncn: str


class TaxAmountsOut(BaseModel):
    gtgt: str
    tncn: str
    total: str


class CategoryRevenueOut(BaseModel):
    category: str
    category_code: str
    category_name: str
    revenue: str
    gtgt_tax: str
    tncn_tax: str


class SpecialConsumptionItemOut(BaseModel):
    item_code: str
    item_name: str
    unit: str | None
    revenue: str
    tax_rate: str
    tax_amount: str


class EnvironmentalItemOut(BaseModel):
    type: str
    item_code: str
    item_name: str
    unit: str | None
    quantity: str
    unit_price: str
    tax_rate: str
    tax_amount: str


class DeclarationOut(BaseModel):
    id: int
    store_id: int
    period_type: str
    period_key: str
    period_label: str
    is_clone: bool
    original_id: int | None
    version: int
    system_revenue: str
    declared_revenue: str
    tax_rates: TaxRatesOut
    tax_amounts: TaxAmountsOut
    is_first_time: bool
    supplement_number: int
    taxpayer_info: dict[str, str]
    revenue_by_category: list[CategoryRevenueOut]
    special_consumption_tax: list[SpecialConsumptionItemOut]
    environmental_tax: list[EnvironmentalItemOut]
    status: str
    notes: str | None
    internal_notes: str | None
    created_by: int
    created_at: str | None
    updated_at: str | None


class PaginationOut(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class DeclarationListOut(BaseModel):
    data: list[DeclarationOut]
    pagination: PaginationOut


class RevenuePreviewOut(BaseModel):
    store_id: int
    period_type: str
    period_key: str
    period_label: str
    start: str
    end: str
    system_revenue: str
