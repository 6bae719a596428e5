from app.database.database import Base
from sqlalchemy import (
    Column, String, DateTime, ForeignKey, Numeric, Enum, Date, Text,
    UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
from app.modules.pos.models import PaymentMethod
import enum


class InvoiceStatus(str, enum.Enum):
    DRAFT = "DRAFT"          # Borrador
    PENDING = "PENDING"      # Emitida, pendiente de pago
    PAID = "PAID"            # Pagada completamente
    OVERDUE = "OVERDUE"      # Vencida sin pago completo
    CANCELLED = "CANCELLED"  # Cancelada, no admite pagos


# Estados que aceptan pagos
PAYABLE_STATUSES = (InvoiceStatus.DRAFT, InvoiceStatus.PENDING, InvoiceStatus.OVERDUE)


class Invoice(Base, TenantMixin, TimestampMixin):
    __tablename__ = "invoices"
    display_name = "Factura"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    invoice_number = Column(String(20), nullable=False)
    status = Column(Enum(InvoiceStatus), nullable=False, default=InvoiceStatus.PENDING, index=True)

    # Una factura por ticket
    ticket_id = Column(UUID(as_uuid=True), ForeignKey("tickets.id"), nullable=True, unique=True)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False, index=True)

    # Desglose financiero
    labor_cost = Column(Numeric(15, 2), nullable=False, default=0)
    parts_cost = Column(Numeric(15, 2), nullable=False, default=0)
    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(15, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(15, 2), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False, default=0)

    # Snapshot del cliente
    customer_name = Column(String(255), nullable=False)
    customer_nit = Column(String(20), nullable=True)

    due_date = Column(Date, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=True)

    payments = relationship("Payment", back_populates="invoice", order_by="Payment.created_at")
    ticket = relationship("Ticket")

    __table_args__ = (
        UniqueConstraint("tenant_id", "invoice_number", name="uq_invoice_tenant_number"),
    )


class Payment(Base, TenantMixin, TimestampMixin):
    __tablename__ = "payments"
    display_name = "Pago"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    payment_number = Column(String(20), nullable=False)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("invoices.id"), nullable=False, index=True)

    amount = Column(Numeric(15, 2), nullable=False)
    payment_method = Column(Enum(PaymentMethod), nullable=False)
    transaction_ref = Column(String(100), nullable=True)  # Referencia bancaria, cheque, etc.
    notes = Column(Text, nullable=True)
    received_by = Column(UUID(as_uuid=True), nullable=True)

    invoice = relationship("Invoice", back_populates="payments")

    __table_args__ = (
        UniqueConstraint("tenant_id", "payment_number", name="uq_payment_tenant_number"),
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
    )
