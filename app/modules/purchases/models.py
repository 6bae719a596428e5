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


class PurchaseOrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    RECEIVED = "RECEIVED"
    CANCELLED = "CANCELLED"


class PurchaseOrder(Base, TenantMixin, TimestampMixin):
    __tablename__ = "purchase_orders"
    display_name = "Orden de compra"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    order_number = Column(String(20), nullable=False)
    status = Column(Enum(PurchaseOrderStatus), nullable=False, default=PurchaseOrderStatus.PENDING, index=True)
    supplier = Column(String(255), nullable=False)
    notes = Column(Text, nullable=True)
    total_cost = Column(Numeric(15, 2), nullable=False, default=0)
    received_at = Column(DateTime(timezone=True), nullable=True)
    received_by = Column(UUID(as_uuid=True), nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=True)

    items = relationship(
        "PurchaseItem", back_populates="order", cascade="all, delete-orphan", order_by="PurchaseItem.part_name"
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "order_number", name="uq_purchase_order_tenant_number"),
    )


class PurchaseItem(Base, TenantMixin):
    __tablename__ = "purchase_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    order_id = Column(
        UUID(as_uuid=True), ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    part_id = Column(UUID(as_uuid=True), ForeignKey("parts.id", ondelete="RESTRICT"), nullable=False)
    part_name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_cost = Column(Numeric(15, 2), nullable=False)

    order = relationship("PurchaseOrder", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_purchase_item_quantity_positive"),
    )
