"""
Modelos de cotizaciones

Estados: DRAFT → SENT → ACCEPTED → CONVERTED, con salidas a REJECTED,
EXPIRED y CANCELLED. CONVERTED solo se alcanza al convertir en venta.
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
import enum


class QuotationStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    CONVERTED = "CONVERTED"
    CANCELLED = "CANCELLED"


VALID_TRANSITIONS = {
    QuotationStatus.DRAFT: (QuotationStatus.SENT, QuotationStatus.CANCELLED),
    QuotationStatus.SENT: (
        QuotationStatus.ACCEPTED, QuotationStatus.REJECTED, QuotationStatus.EXPIRED, QuotationStatus.CANCELLED
    ),
    QuotationStatus.ACCEPTED: (QuotationStatus.CONVERTED, QuotationStatus.CANCELLED),
}

# Pueden vencer por fecha
EXPIRABLE_STATUSES = (QuotationStatus.DRAFT, QuotationStatus.SENT)


class Quotation(Base, TenantMixin, TimestampMixin):
    __tablename__ = "quotations"
    display_name = "Cotización"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    quotation_number = Column(String(20), nullable=False)
    status = Column(Enum(QuotationStatus), nullable=False, default=QuotationStatus.DRAFT, index=True)

    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=True)
    customer_name = Column(String(255), nullable=False, default="Consumidor Final")
    customer_phone = Column(String(50), nullable=True)
    customer_email = Column(String(255), nullable=True)

    subtotal = Column(Numeric(15, 2), nullable=False)
    tax_rate = Column(Numeric(5, 2), nullable=False)
    tax_amount = Column(Numeric(15, 2), nullable=False)
    discount_amount = Column(Numeric(15, 2), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False)

    valid_until = Column(DateTime(timezone=True), nullable=False)
    notes = Column(Text, nullable=True)
    converted_sale_id = Column(UUID(as_uuid=True), ForeignKey("pos_sales.id"), nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=True)

    items = relationship("QuotationItem", back_populates="quotation", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("tenant_id", "quotation_number", name="uq_quotation_tenant_number"),
    )


class QuotationItem(Base, TenantMixin):
    __tablename__ = "quotation_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    quotation_id = Column(
        UUID(as_uuid=True), ForeignKey("quotations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    part_id = Column(UUID(as_uuid=True), ForeignKey("parts.id", ondelete="RESTRICT"), nullable=False)
    part_name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)  # Precio cotizado
    total = Column(Numeric(15, 2), nullable=False)

    quotation = relationship("Quotation", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_quotation_item_quantity_positive"),
    )
