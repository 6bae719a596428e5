"""credit notes, quotations and purchase orders

Revision ID: 0002_returns_quotes_purchases
Revises: 0001_initial_schema
Create Date: 2026-10-19 00:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0002_returns_quotes_purchases"
down_revision: Union[str, None] = "0001_initial_schema"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

payment_method = postgresql.ENUM(name="paymentmethod", create_type=False)
credit_note_status = postgresql.ENUM(
    "PENDING", "PROCESSED", "CANCELLED", name="creditnotestatus", create_type=False
)
quotation_status = postgresql.ENUM(
    "DRAFT", "SENT", "ACCEPTED", "REJECTED", "EXPIRED", "CONVERTED", "CANCELLED",
    name="quotationstatus", create_type=False
)
purchase_order_status = postgresql.ENUM(
    "PENDING", "RECEIVED", "CANCELLED", name="purchaseorderstatus", create_type=False
)

ENUMS = (credit_note_status, quotation_status, purchase_order_status)


def _uuid(name, *args, **kwargs):
    return sa.Column(name, postgresql.UUID(as_uuid=True), *args, **kwargs)


def _money(name, nullable=False, **kwargs):
    return sa.Column(name, sa.Numeric(15, 2), nullable=nullable, **kwargs)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _tenant(table):
    op.create_index(f"ix_{table}_tenant_id", table, ["tenant_id"])


def upgrade() -> None:
    bind = op.get_bind()
    # ADD VALUE no puede ejecutarse dentro de un bloque de transacción
    with op.get_context().autocommit_block():
        op.execute("ALTER TYPE possalestatus ADD VALUE IF NOT EXISTS 'PARTIALLY_REFUNDED'")
        op.execute("ALTER TYPE possalestatus ADD VALUE IF NOT EXISTS 'FULLY_REFUNDED'")
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    # ===== NOTAS DE CRÉDITO =====
    op.create_table(
        "credit_notes",
        _uuid("id", primary_key=True),
        _uuid("tenant_id", nullable=False),
        sa.Column("credit_note_number", sa.String(20), nullable=False),
        sa.Column("status", credit_note_status, nullable=False),
        _uuid("pos_sale_id", sa.ForeignKey("pos_sales.id"), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        _money("subtotal"),
        sa.Column("tax_rate", sa.Numeric(5, 2), nullable=False),
        _money("tax_amount"),
        _money("total"),
        sa.Column("refund_method", payment_method, nullable=True),
        sa.Column("refund_reference", sa.String(100), nullable=True),
        _uuid("cash_register_id", sa.ForeignKey("cash_registers.id"), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        _uuid("processed_by", nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _uuid("created_by", nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "credit_note_number", name="uq_credit_note_tenant_number"),
    )
    _tenant("credit_notes")
    op.create_index("ix_credit_notes_status", "credit_notes", ["status"])
    op.create_index("ix_credit_notes_pos_sale_id", "credit_notes", ["pos_sale_id"])

    op.create_table(
        "credit_note_items",
        _uuid("id", primary_key=True),
        _uuid("tenant_id", nullable=False),
        _uuid("credit_note_id", sa.ForeignKey("credit_notes.id", ondelete="CASCADE"), nullable=False),
        _uuid("part_id", sa.ForeignKey("parts.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("part_name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        _money("unit_price"),
        _money("total"),
        sa.Column("reason", sa.String(255), nullable=True),
        sa.CheckConstraint("quantity > 0", name="ck_credit_note_item_quantity_positive"),
    )
    _tenant("credit_note_items")
    op.create_index("ix_credit_note_items_credit_note_id", "credit_note_items", ["credit_note_id"])

    # ===== COTIZACIONES =====
    op.create_table(
        "quotations",
        _uuid("id", primary_key=True),
        _uuid("tenant_id", nullable=False),
        sa.Column("quotation_number", sa.String(20), nullable=False),
        sa.Column("status", quotation_status, nullable=False),
        _uuid("customer_id", sa.ForeignKey("customers.id"), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("customer_phone", sa.String(50), nullable=True),
        sa.Column("customer_email", sa.String(255), nullable=True),
        _money("subtotal"),
        sa.Column("tax_rate", sa.Numeric(5, 2), nullable=False),
        _money("tax_amount"),
        _money("discount_amount"),
        _money("total"),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        _uuid("converted_sale_id", sa.ForeignKey("pos_sales.id"), nullable=True),
        _uuid("created_by", nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "quotation_number", name="uq_quotation_tenant_number"),
    )
    _tenant("quotations")
    op.create_index("ix_quotations_status", "quotations", ["status"])

    op.create_table(
        "quotation_items",
        _uuid("id", primary_key=True),
        _uuid("tenant_id", nullable=False),
        _uuid("quotation_id", sa.ForeignKey("quotations.id", ondelete="CASCADE"), nullable=False),
        _uuid("part_id", sa.ForeignKey("parts.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("part_name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        _money("unit_price"),
        _money("total"),
        sa.CheckConstraint("quantity > 0", name="ck_quotation_item_quantity_positive"),
    )
    _tenant("quotation_items")
    op.create_index("ix_quotation_items_quotation_id", "quotation_items", ["quotation_id"])

    # ===== ÓRDENES DE COMPRA =====
    op.create_table(
        "purchase_orders",
        _uuid("id", primary_key=True),
        _uuid("tenant_id", nullable=False),
        sa.Column("order_number", sa.String(20), nullable=False),
        sa.Column("status", purchase_order_status, nullable=False),
        sa.Column("supplier", sa.String(255), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        _money("total_cost"),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
        _uuid("received_by", nullable=True),
        _uuid("created_by", nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "order_number", name="uq_purchase_order_tenant_number"),
    )
    _tenant("purchase_orders")
    op.create_index("ix_purchase_orders_status", "purchase_orders", ["status"])

    op.create_table(
        "purchase_items",
        _uuid("id", primary_key=True),
        _uuid("tenant_id", nullable=False),
        _uuid("order_id", sa.ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False),
        _uuid("part_id", sa.ForeignKey("parts.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("part_name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        _money("unit_cost"),
        sa.CheckConstraint("quantity > 0", name="ck_purchase_item_quantity_positive"),
    )
    _tenant("purchase_items")
    op.create_index("ix_purchase_items_order_id", "purchase_items", ["order_id"])


def downgrade() -> None:
    for table in (
        "purchase_items", "purchase_orders", "quotation_items", "quotations",
        "credit_note_items", "credit_notes",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
    # PostgreSQL no permite quitar valores de un ENUM; PARTIALLY_REFUNDED y FULLY_REFUNDED quedan
