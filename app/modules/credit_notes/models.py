"""
Modelos de notas de crédito

Una nota de crédito devuelve parte (o todo) de una venta POS. La cantidad
devuelta de cada repuesto, sumada entre todas las notas no canceladas de la
venta, nunca supera la cantidad vendida.
"""
from app.database.database import Base
from sqlalchemy import (
    Column, String, Integer, DateTime, ForeignKey, Numeric, Enum, Text,
    UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
from app.modules.pos.models import PaymentMethod
import enum


class CreditNoteStatus(str, enum.Enum):
    PENDING = "PENDING"      # Stock repuesto, reembolso pendiente
    PROCESSED = "PROCESSED"  # Reembolso entregado al cliente
    CANCELLED = "CANCELLED"  # Stock descontado de nuevo


class CreditNote(Base, TenantMixin, TimestampMixin):
    __tablename__ = "credit_notes"
    display_name = "Nota de crédito"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    credit_note_number = Column(String(20), nullable=False)
    status = Column(Enum(CreditNoteStatus), nullable=False, default=CreditNoteStatus.PENDING, index=True)
    pos_sale_id = Column(UUID(as_uuid=True), ForeignKey("pos_sales.id"), nullable=False, index=True)
    reason = Column(Text, nullable=False)

    subtotal = Column(Numeric(15, 2), nullable=False)
    tax_rate = Column(Numeric(5, 2), nullable=False)  # La de la venta original
    tax_amount = Column(Numeric(15, 2), nullable=False)
    total = Column(Numeric(15, 2), nullable=False)

    refund_method = Column(Enum(PaymentMethod), nullable=True)
    refund_reference = Column(String(100), nullable=True)
    cash_register_id = Column(UUID(as_uuid=True), ForeignKey("cash_registers.id"), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    processed_by = Column(UUID(as_uuid=True), nullable=True)

    notes = Column(Text, nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=True)

    items = relationship("CreditNoteItem", back_populates="credit_note", cascade="all, delete-orphan")
    sale = relationship("POSSale")

    __table_args__ = (
        UniqueConstraint("tenant_id", "credit_note_number", name="uq_credit_note_tenant_number"),
    )


class CreditNoteItem(Base, TenantMixin):
    __tablename__ = "credit_note_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    credit_note_id = Column(
        UUID(as_uuid=True), ForeignKey("credit_notes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    part_id = Column(UUID(as_uuid=True), ForeignKey("parts.id", ondelete="RESTRICT"), nullable=False)
    part_name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)  # Precio de la línea vendida
    total = Column(Numeric(15, 2), nullable=False)
    reason = Column(String(255), nullable=True)

    credit_note = relationship("CreditNote", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_credit_note_item_quantity_positive"),
    )
