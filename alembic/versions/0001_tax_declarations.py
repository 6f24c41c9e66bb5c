from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "0001_tax_declarations"
down_revision = None
branch_labels = None
depends_on = None

# Money columns hold integer cents and rate columns hold ten-thousandths
# of a percent, quantities thousandths (see smartretail.models.types.FixedDecimal).


def upgrade() -> None:
    op.create_table(
        "store",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("tax_code", sa.String(length=32), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("owner_name", sa.String(length=255), nullable=True),
        sa.Column("business_sector", sa.String(length=255), nullable=True),
        sa.Column("bank_account", sa.String(length=64), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_store_id", "store", ["id"])

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("store_id", sa.Integer(), sa.ForeignKey("store.id"), nullable=False),
        sa.Column("total_amount", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("printed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_orders_id", "orders", ["id"])
    op.create_index("ix_orders_store_status_paid_at", "orders", ["store_id", "status", "paid_at"])

    op.create_table(
        "tax_declaration_families",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("store_id", sa.Integer(), sa.ForeignKey("store.id"), nullable=False),
        sa.Column("period_type", sa.String(length=16), nullable=False),
        sa.Column("period_key", sa.String(length=32), nullable=False),
        sa.Column("last_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("store_id", "period_type", "period_key", name="uq_tax_declaration_family"),
    )

    op.create_table(
        "tax_declarations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("store_id", sa.Integer(), sa.ForeignKey("store.id"), nullable=False),
        sa.Column("period_type", sa.String(length=16), nullable=False),
        sa.Column("period_key", sa.String(length=32), nullable=False),
        sa.Column("is_clone", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("original_id", sa.Integer(), sa.ForeignKey("tax_declarations.id"), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("system_revenue", sa.BigInteger(), nullable=False),
        sa.Column("declared_revenue", sa.BigInteger(), nullable=False),
        sa.Column("gtgt_rate", sa.BigInteger(), nullable=False),
        sa.Column("tncn_rate", sa.BigInteger(), nullable=False),
        sa.Column("gtgt_amount", sa.BigInteger(), nullable=False),
        sa.Column("tncn_amount", sa.BigInteger(), nullable=False),
        sa.Column("total_tax", sa.BigInteger(), nullable=False),
        sa.Column("is_first_time", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("supplement_number", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("taxpayer_info", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="saved"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("internal_notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "store_id", "period_type", "period_key", "version", name="uq_tax_declaration_version"
        ),
    )
    op.create_index("ix_tax_declarations_id", "tax_declarations", ["id"])
    op.create_index("ix_tax_declarations_original_id", "tax_declarations", ["original_id"])
    op.create_index("ix_tax_declarations_store_created", "tax_declarations", ["store_id", "created_at"])
    op.create_index(
        "uq_tax_declaration_original",
        "tax_declarations",
        ["store_id", "period_type", "period_key"],
        unique=True,
        sqlite_where=sa.text("is_clone = 0"),
        postgresql_where=sa.text("NOT is_clone"),
    )

    op.create_table(
        "tax_declaration_category_revenues",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "declaration_id",
            sa.Integer(),
            sa.ForeignKey("tax_declarations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("category_code", sa.String(length=8), nullable=False),
        sa.Column("revenue", sa.BigInteger(), nullable=False),
        sa.Column("gtgt_tax", sa.BigInteger(), nullable=False),
        sa.Column("tncn_tax", sa.BigInteger(), nullable=False),
    )
    op.create_index(
        "ix_tax_declaration_category_revenues_declaration_id",
        "tax_declaration_category_revenues",
        ["declaration_id"],
    )

    op.create_table(
        "tax_declaration_special_consumption_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "declaration_id",
            sa.Integer(),
            sa.ForeignKey("tax_declarations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("item_code", sa.String(length=8), nullable=False),
        sa.Column("item_name", sa.String(length=255), nullable=False),
        sa.Column("unit", sa.String(length=32), nullable=True),
        sa.Column("revenue", sa.BigInteger(), nullable=False),
        sa.Column("tax_rate", sa.BigInteger(), nullable=False),
        sa.Column("tax_amount", sa.BigInteger(), nullable=False),
    )
    op.create_index(
        "ix_tax_declaration_special_consumption_items_declaration_id",
        "tax_declaration_special_consumption_items",
        ["declaration_id"],
    )

    op.create_table(
        "tax_declaration_environmental_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "declaration_id",
            sa.Integer(),
            sa.ForeignKey("tax_declarations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tax_type", sa.String(length=32), nullable=False),
        sa.Column("item_code", sa.String(length=8), nullable=False),
        sa.Column("item_name", sa.String(length=255), nullable=False),
        sa.Column("unit", sa.String(length=32), nullable=True),
        sa.Column("quantity", sa.BigInteger(), nullable=False),
        sa.Column("unit_price", sa.BigInteger(), nullable=False),
        sa.Column("tax_rate", sa.BigInteger(), nullable=False),
        sa.Column("tax_amount", sa.BigInteger(), nullable=False),
    )
    op.create_index(
        "ix_tax_declaration_environmental_items_declaration_id",
        "tax_declaration_environmental_items",
        ["declaration_id"],
    )


def downgrade() -> None:
    for table in (
        "tax_declaration_environmental_items",
        "tax_declaration_special_consumption_items",
        "tax_declaration_category_revenues",
    ):
        op.drop_index(f"ix_{table}_declaration_id", table_name=table)
        op.drop_table(table)
    op.drop_index("uq_tax_declaration_original", table_name="tax_declarations")
    op.drop_index("ix_tax_declarations_store_created", table_name="tax_declarations")
    op.drop_index("ix_tax_declarations_original_id", table_name="tax_declarations")
    op.drop_index("ix_tax_declarations_id", table_name="tax_declarations")
    op.drop_table("tax_declarations")
    op.drop_table("tax_declaration_families")
    op.drop_index("ix_orders_store_status_paid_at", table_name="orders")
    op.drop_index("ix_orders_id", table_name="orders")
    op.drop_table("orders")
    op.drop_index("ix_store_id", table_name="store")
    op.drop_table("store")
