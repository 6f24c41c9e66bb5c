"""
Tax declaration models.

A declaration family is every declaration sharing ``(store_id, period_type,
period_key)``. Inside a family:
- exactly zero or one record has ``is_clone = False`` (the original)
- versions strictly increase and are never reused, even after deletions

``TaxDeclarationFamily`` holds the version counter and is the row writers lock
before touching the family.

Line items of the 01/CNKD form (revenue by business category, special
consumption tax, resource and environmental taxes) live in child tables owned
by their declaration and are copied, never shared, when a declaration is
cloned.
"""
from __future__ import annotations

import datetime as dt
import enum
from decimal import Decimal

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from smartretail.db.base_class import Base
from smartretail.models.types import Money, Percent, Quantity, UTCDateTime, utcnow


class DeclarationStatus(str, enum.Enum):
    """Lifecycle states. Only SAVED is produced today; the rest are reserved."""
    DRAFT = "draft"
    SAVED = "saved"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class TaxDeclarationFamily(Base):
    __tablename__ = "tax_declaration_families"
    __table_args__ = (
        UniqueConstraint("store_id", "period_type", "period_key", name="uq_tax_declaration_family"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    store_id: Mapped[int] = mapped_column(ForeignKey("store.id"), nullable=False)
    period_type: Mapped[str] = mapped_column(String(16), nullable=False)
    period_key: Mapped[str] = mapped_column(String(32), nullable=False)
    # Highest version ever issued in this family
    last_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)


class TaxDeclaration(Base):
    """One versioned tax declaration of a store for a filing period."""

    __tablename__ = "tax_declarations"
    __table_args__ = (
        UniqueConstraint(
            "store_id", "period_type", "period_key", "version", name="uq_tax_declaration_version"
        ),
        # At most one original per family
        Index(
            "uq_tax_declaration_original",
            "store_id",
            "period_type",
            "period_key",
            unique=True,
            sqlite_where=text("is_clone = 0"),
            postgresql_where=text("NOT is_clone"),
        ),
        Index("ix_tax_declarations_store_created", "store_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    store_id: Mapped[int] = mapped_column(ForeignKey("store.id"), nullable=False)
    period_type: Mapped[str] = mapped_column(String(16), nullable=False)
    period_key: Mapped[str] = mapped_column(String(32), nullable=False)

    is_clone: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    original_id: Mapped[int | None] = mapped_column(
        ForeignKey("tax_declarations.id"), nullable=True, index=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Snapshot taken at creation; never recomputed
    system_revenue: Mapped[Decimal] = mapped_column(Money, nullable=False)
    declared_revenue: Mapped[Decimal] = mapped_column(Money, nullable=False)
    gtgt_rate: Mapped[Decimal] = mapped_column(Percent, nullable=False)
    tncn_rate: Mapped[Decimal] = mapped_column(Percent, nullable=False)
    gtgt_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    tncn_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_tax: Mapped[Decimal] = mapped_column(Money, nullable=False)

    # [02] first filing, [03] supplement number
    is_first_time: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    supplement_number: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Taxpayer details copied from the store at creation
    taxpayer_info: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    status: Mapped[str] = mapped_column(String(16), default=DeclarationStatus.SAVED.value, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Managers only; never exported
    internal_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    category_revenues: Mapped[list[DeclarationCategoryRevenue]] = relationship(
        "DeclarationCategoryRevenue",
        back_populates="declaration",
        cascade="all, delete-orphan",
        order_by="DeclarationCategoryRevenue.position",
        lazy="selectin",
    )
    special_consumption_items: Mapped[list[DeclarationSpecialConsumptionItem]] = relationship(
        "DeclarationSpecialConsumptionItem",
        back_populates="declaration",
        cascade="all, delete-orphan",
        order_by="DeclarationSpecialConsumptionItem.position",
        lazy="selectin",
    )
    environmental_items: Mapped[list[DeclarationEnvironmentalItem]] = relationship(
        "DeclarationEnvironmentalItem",
        back_populates="declaration",
        cascade="all, delete-orphan",
        order_by="DeclarationEnvironmentalItem.position",
        lazy="selectin",
    )

    @property
    def is_editable(self) -> bool:
        return self.status == DeclarationStatus.SAVED.value

    def __repr__(self) -> str:
        kind = "clone" if self.is_clone else "original"
        return f"<TaxDeclaration id={self.id} {self.period_type}:{self.period_key} v{self.version} {kind}>"


class DeclarationCategoryRevenue(Base):
    """Revenue and taxes of one business category, form lines [28]-[31]."""

    __tablename__ = "tax_declaration_category_revenues"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    declaration_id: Mapped[int] = mapped_column(
        ForeignKey("tax_declarations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    category_code: Mapped[str] = mapped_column(String(8), nullable=False)
    revenue: Mapped[Decimal] = mapped_column(Money, nullable=False)
    gtgt_tax: Mapped[Decimal] = mapped_column(Money, nullable=False)
    tncn_tax: Mapped[Decimal] = mapped_column(Money, nullable=False)

    declaration: Mapped[TaxDeclaration] = relationship("TaxDeclaration", back_populates="category_revenues")


class DeclarationSpecialConsumptionItem(Base):
    """Special consumption tax line, form codes [33a], [33b], ..."""

    __tablename__ = "tax_declaration_special_consumption_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    declaration_id: Mapped[int] = mapped_column(
        ForeignKey("tax_declarations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    item_code: Mapped[str] = mapped_column(String(8), nullable=False)
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit: Mapped[str | None] = mapped_column(String(32), nullable=True)
    revenue: Mapped[Decimal] = mapped_column(Money, nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Percent, nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)

    declaration: Mapped[TaxDeclaration] = relationship("TaxDeclaration", back_populates="special_consumption_items")


class DeclarationEnvironmentalItem(Base):
    """Resource tax [34x], environmental protection tax [35x] or fee [36x] line."""

    __tablename__ = "tax_declaration_environmental_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    declaration_id: Mapped[int] = mapped_column(
        ForeignKey("tax_declarations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tax_type: Mapped[str] = mapped_column(String(32), nullable=False)
    item_code: Mapped[str] = mapped_column(String(8), nullable=False)
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit: Mapped[str | None] = mapped_column(String(32), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Percent, nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)

    declaration: Mapped[TaxDeclaration] = relationship("TaxDeclaration", back_populates="environmental_items")
