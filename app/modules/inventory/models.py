"""
Modelos de inventario de repuestos

- Part: repuesto con existencia autoritativa (quantity >= 0)
- StockMovement: bitácora de cada cambio de existencia

La columna quantity solo se modifica a través de StockLedger.
"""
from app.database.database import Base
from sqlalchemy import Column, String, Integer, ForeignKey, Numeric, Enum, Text, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
import enum


class StockMovementType(str, enum.Enum):
    """Tipos de movimiento de inventario"""
    OUT = "out"           # Consumo (ticket, venta POS)
    IN = "in"             # Ingreso de mercadería o ajuste
    RESTORE = "restore"   # Reversión de un consumo previo


class Part(Base, TenantMixin, TimestampMixin):
    __tablename__ = "parts"
    display_name = "Repuesto"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    sku = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=False, default=0)
    min_stock = Column(Integer, nullable=False, default=0)
    cost = Column(Numeric(15, 2), nullable=False, default=0)
    price = Column(Numeric(15, 2), nullable=False, default=0)

    movements = relationship("StockMovement", back_populates="part")

    __table_args__ = (
        UniqueConstraint("tenant_id", "sku", name="uq_part_tenant_sku"),
        CheckConstraint("quantity >= 0", name="ck_part_quantity_non_negative"),
    )

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.min_stock


class StockMovement(Base, TenantMixin, TimestampMixin):
    __tablename__ = "stock_movements"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    part_id = Column(UUID(as_uuid=True), ForeignKey("parts.id", ondelete="RESTRICT"), nullable=False, index=True)
    movement_type = Column(Enum(StockMovementType), nullable=False)
    quantity = Column(Integer, nullable=False)  # Siempre positiva; el tipo define el signo
    reference = Column(String(100), nullable=True)  # "TICKET T-000001", "POS V-000001", ...
    created_by = Column(UUID(as_uuid=True), nullable=True)

    part = relationship("Part", back_populates="movements")
