"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

stock_movement_type = postgresql.ENUM("OUT", "IN", "RESTORE", name="stockmovementtype", create_type=False)
ticket_status = postgresql.ENUM(
    "OPEN", "IN_PROGRESS", "WAITING_FOR_PARTS", "RESOLVED", "CLOSED", "CANCELLED",
    name="ticketstatus", create_type=False
)
ticket_priority = postgresql.ENUM("LOW", "MEDIUM", "HIGH", "URGENT", name="ticketpriority", create_type=False)
cash_transaction_type = postgresql.ENUM("INCOME", "EXPENSE", "WITHDRAWAL", name="cashtransactiontype", create_type=False)
payment_method = postgresql.ENUM("CASH", "CARD", "TRANSFER", "CHECK", "OTHER", name="paymentmethod", create_type=False)
pos_sale_status = postgresql.ENUM("COMPLETED", "VOIDED", name="possalestatus", create_type=False)
invoice_status = postgresql.ENUM(
    "DRAFT", "PENDING", "PAID", "OVERDUE", "CANCELLED", name="invoicestatus", create_type=False
)

ENUMS = (
    stock_movement_type, ticket_status, ticket_priority, cash_transaction_type,
    payment_method, pos_sale_status, invoice_status
)


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
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "document_sequences",
        _uuid("id", primary_key=True),
        _uuid("tenant_id", nullable=False),
        sa.Column("document_type", sa.String(20), nullable=False),
        sa.Column("prefix", sa.String(10), nullable=False),
        sa.Column("current_number", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "document_type", name="uq_sequence_tenant_type"),
    )
    _tenant("document_sequences")

    op.create_table(
        "tenant_settings",
        _uuid("id", primary_key=True),
        _uuid("tenant_id", nullable=False),
        sa.Column("tax_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_tenant_settings_tenant_id", "tenant_settings", ["tenant_id"], unique=True)

    op.create_table(
        "customers",
        _uuid("id", primary_key=True),
        _uuid("tenant_id", nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("nit", sa.String(20), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        *_timestamps(),
    )
    _tenant("customers")

    op.create_table(
        "parts",
        _uuid("id", primary_key=True),
        _uuid("tenant_id", nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("sku", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("min_stock", sa.Integer(), nullable=False),
        _money("cost"),
        _money("price"),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "sku", name="uq_part_tenant_sku"),
        sa.CheckConstraint("quantity >= 0", name="ck_part_quantity_non_negative"),
    )
    _tenant("parts")

    op.create_table(
        "stock_movements",
        _uuid("id", primary_key=True),
        _uuid("tenant_id", nullable=False),
        _uuid("part_id", sa.ForeignKey("parts.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("movement_type", stock_movement_type, nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("reference", sa.String(100), nullable=True),
        _uuid("created_by", nullable=True),
        *_timestamps(),
    )
    _tenant("stock_movements")
    op.create_index("ix_stock_movements_part_id", "stock_movements", ["part_id"])

    op.create_table(
        "notifications",
        _uuid("id", primary_key=True),
        _uuid("tenant_id", nullable=False),
        sa.Column("event", sa.String(50), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    _tenant("notifications")
    op.create_index("ix_notifications_event", "notifications", ["event"])

    op.create_table(
        "service_templates",
        _uuid("id", primary_key=True),
        _uuid("tenant_id", nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(50), nullable=True),
        sa.Column("default_title", sa.String(255), nullable=False),
        sa.Column("default_description", sa.Text(), nullable=True),
        sa.Column("default_priority", sa.String(20), nullable=False),
        sa.Column("estimated_duration", sa.Integer(), nullable=True),
        _money("labor_cost"),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "name", name="uq_service_template_tenant_name"),
    )
    _tenant("service_templates")

    op.create_table(
        "template_default_parts",
        _uuid("id", primary_key=True),
        _uuid("tenant_id", nullable=False),
        _uuid("template_id", sa.ForeignKey("service_templates.id", ondelete="CASCADE"), nullable=False),
        _uuid("part_id", sa.ForeignKey("parts.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("required", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("template_id", "part_id", name="uq_template_part"),
        sa.CheckConstraint("quantity > 0", name="ck_template_part_quantity_positive"),
    )
    _tenant("template_default_parts")
    op.create_index("ix_template_default_parts_template_id", "template_default_parts", ["template_id"])

    op.create_table(
        "tickets",
        _uuid("id", primary_key=True),
        _uuid("tenant_id", nullable=False),
        sa.Column("ticket_number", sa.String(20), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", ticket_status, nullable=False),
        sa.Column("priority", ticket_priority, nullable=False),
        sa.Column("device_type", sa.String(100), nullable=False),
        sa.Column("device_model", sa.String(255), nullable=False),
        _uuid("customer_id", sa.ForeignKey("customers.id"), nullable=False),
        _uuid("service_template_id", sa.ForeignKey("service_templates.id"), nullable=True),
        _uuid("assigned_to", nullable=True),
        _uuid("created_by", nullable=True),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("suggested_parts", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "ticket_number", name="uq_ticket_tenant_number"),
    )
    _tenant("tickets")
    op.create_index("ix_tickets_status", "tickets", ["status"])
    op.create_index("ix_tickets_customer_id", "tickets", ["customer_id"])

    op.create_table(
        "part_usages",
        _uuid("id", primary_key=True),
        _uuid("tenant_id", nullable=False),
        _uuid("ticket_id", sa.ForeignKey("tickets.id"), nullable=False),
        _uuid("part_id", sa.ForeignKey("parts.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        _money("unit_price"),
        _uuid("created_by", nullable=True),
        *_timestamps(),
        sa.CheckConstraint("quantity > 0", name="ck_part_usage_quantity_positive"),
    )
    _tenant("part_usages")
    op.create_index("ix_part_usages_ticket_id", "part_usages", ["ticket_id"])
    op.create_index("ix_part_usages_part_id", "part_usages", ["part_id"])

    op.create_table(
        "cash_registers",
        _uuid("id", primary_key=True),
        _uuid("tenant_id", nullable=False),
        sa.Column("is_open", sa.Boolean(), nullable=False),
        _money("opening_balance"),
        _uuid("opened_by", nullable=True),
        sa.Column("opened_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("opening_notes", sa.Text(), nullable=True),
        _money("closing_balance", nullable=True),
        _money("expected_balance", nullable=True),
        _money("discrepancy", nullable=True),
        _uuid("closed_by", nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closing_notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    _tenant("cash_registers")
    op.create_index(
        "uq_cash_register_one_open_per_tenant",
        "cash_registers",
        ["tenant_id"],
        unique=True,
        postgresql_where=sa.text("is_open"),
    )

    op.create_table(
        "cash_transactions",
        _uuid("id", primary_key=True),
        _uuid("tenant_id", nullable=False),
        _uuid("cash_register_id", sa.ForeignKey("cash_registers.id"), nullable=False),
        sa.Column("type", cash_transaction_type, nullable=False),
        _money("amount"),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("reference", sa.String(100), nullable=True),
        _uuid("created_by", nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_cash_transaction_amount_positive"),
    )
    _tenant("cash_transactions")
    op.create_index("ix_cash_transactions_cash_register_id", "cash_transactions", ["cash_register_id"])

    op.create_table(
        "pos_sales",
        _uuid("id", primary_key=True),
        _uuid("tenant_id", nullable=False),
        sa.Column("sale_number", sa.String(20), nullable=False),
        sa.Column("status", pos_sale_status, nullable=False),
        _uuid("customer_id", sa.ForeignKey("customers.id"), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("customer_nit", sa.String(20), nullable=False),
        _money("subtotal"),
        sa.Column("tax_rate", sa.Numeric(5, 2), nullable=False),
        _money("tax_amount"),
        _money("discount_amount"),
        _money("total"),
        _money("amount_paid"),
        _money("change_given"),
        sa.Column("notes", sa.Text(), nullable=True),
        _uuid("cash_register_id", sa.ForeignKey("cash_registers.id"), nullable=False),
        _uuid("created_by", nullable=True),
        sa.Column("void_reason", sa.Text(), nullable=True),
        sa.Column("voided_at", sa.DateTime(timezone=True), nullable=True),
        _uuid("voided_by", nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "sale_number", name="uq_pos_sale_tenant_number"),
    )
    _tenant("pos_sales")
    op.create_index("ix_pos_sales_status", "pos_sales", ["status"])

    op.create_table(
        "pos_sale_items",
        _uuid("id", primary_key=True),
        _uuid("tenant_id", nullable=False),
        _uuid("sale_id", sa.ForeignKey("pos_sales.id", ondelete="CASCADE"), nullable=False),
        _uuid("part_id", sa.ForeignKey("parts.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("part_name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        _money("unit_price"),
        _money("total"),
        sa.CheckConstraint("quantity > 0", name="ck_pos_sale_item_quantity_positive"),
    )
    _tenant("pos_sale_items")
    op.create_index("ix_pos_sale_items_sale_id", "pos_sale_items", ["sale_id"])

    op.create_table(
        "pos_sale_payments",
        _uuid("id", primary_key=True),
        _uuid("tenant_id", nullable=False),
        _uuid("sale_id", sa.ForeignKey("pos_sales.id", ondelete="CASCADE"), nullable=False),
        _money("amount"),
        sa.Column("payment_method", payment_method, nullable=False),
        sa.Column("transaction_ref", sa.String(100), nullable=True),
    )
    _tenant("pos_sale_payments")
    op.create_index("ix_pos_sale_payments_sale_id", "pos_sale_payments", ["sale_id"])

    op.create_table(
        "invoices",
        _uuid("id", primary_key=True),
        _uuid("tenant_id", nullable=False),
        sa.Column("invoice_number", sa.String(20), nullable=False),
        sa.Column("status", invoice_status, nullable=False),
        _uuid("ticket_id", sa.ForeignKey("tickets.id"), nullable=True, unique=True),
        _uuid("customer_id", sa.ForeignKey("customers.id"), nullable=False),
        _money("labor_cost"),
        _money("parts_cost"),
        _money("subtotal"),
        sa.Column("tax_rate", sa.Numeric(5, 2), nullable=False),
        _money("tax_amount"),
        _money("discount_amount"),
        _money("total"),
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("customer_nit", sa.String(20), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _uuid("created_by", nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "invoice_number", name="uq_invoice_tenant_number"),
    )
    _tenant("invoices")
    op.create_index("ix_invoices_status", "invoices", ["status"])
    op.create_index("ix_invoices_customer_id", "invoices", ["customer_id"])

    op.create_table(
        "payments",
        _uuid("id", primary_key=True),
        _uuid("tenant_id", nullable=False),
        sa.Column("payment_number", sa.String(20), nullable=False),
        _uuid("invoice_id", sa.ForeignKey("invoices.id"), nullable=False),
        _money("amount"),
        sa.Column("payment_method", payment_method, nullable=False),
        sa.Column("transaction_ref", sa.String(100), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _uuid("received_by", nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "payment_number", name="uq_payment_tenant_number"),
        sa.CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
    )
    _tenant("payments")
    op.create_index("ix_payments_invoice_id", "payments", ["invoice_id"])


def downgrade() -> None:
    for table in (
        "payments", "invoices", "pos_sale_payments", "pos_sale_items", "pos_sales",
        "cash_transactions", "cash_registers", "part_usages", "tickets",
        "template_default_parts", "service_templates", "notifications",
        "stock_movements", "parts", "customers", "tenant_settings", "document_sequences",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
