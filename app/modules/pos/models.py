"""
Modelos SQLAlchemy para el módulo POS (Point of Sale)

Este módulo maneja las operaciones de punto de venta:
- CashRegister: caja con apertura/cierre y arqueo
- CashTransaction: libro de movimientos de caja (solo se agregan filas)
- POSSale / POSSaleItem / POSSalePayment: ventas de mostrador

Integración con inventario:
- Ventas POS → descuentan stock a través del StockLedger
- Anulaciones → reponen exactamente las cantidades vendidas
- Notas de crédito → reponen lo devuelto; la venta pasa a PARTIALLY/FULLY_REFUNDED

Arquitectura multi-tenant: todas las tablas incluyen tenant_id
"""

from app.database.database import Base
from sqlalchemy import (
    Column, String, Boolean, DateTime, ForeignKey, Numeric, Integer, Enum, Text,
    UniqueConstraint, CheckConstraint, Index, text
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
import enum


# ===== ENUMS =====

class CashTransactionType(str, enum.Enum):
    """Tipos de movimiento de caja"""
    INCOME = "INCOME"           # Ingreso (+)
    EXPENSE = "EXPENSE"         # Egreso (-)
    WITHDRAWAL = "WITHDRAWAL"   # Retiro (-)


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CARD = "CARD"
    TRANSFER = "TRANSFER"
    CHECK = "CHECK"
    OTHER = "OTHER"


class POSSaleStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"  # Con notas de crédito activas
    FULLY_REFUNDED = "FULLY_REFUNDED"
    VOIDED = "VOIDED"


# ===== CAJA =====

class CashRegister(Base, TenantMixin, TimestampMixin):
    """
    Caja registradora

    Solo puede existir una caja abierta por tenant; lo garantiza el índice
    único parcial sobre tenant_id WHERE is_open.
    El saldo esperado siempre se deriva de las transacciones.
    """
    __tablename__ = "cash_registers"
    display_name = "Caja"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    is_open = Column(Boolean, nullable=False, default=True)

    opening_balance = Column(Numeric(15, 2), nullable=False, default=0)
    opened_by = Column(UUID(as_uuid=True), nullable=True)
    opened_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    opening_notes = Column(Text, nullable=True)

    # Solo se llenan al cerrar
    closing_balance = Column(Numeric(15, 2), nullable=True)
    expected_balance = Column(Numeric(15, 2), nullable=True)
    discrepancy = Column(Numeric(15, 2), nullable=True)
    closed_by = Column(UUID(as_uuid=True), nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    closing_notes = Column(Text, nullable=True)

    transactions = relationship(
        "CashTransaction",
        back_populates="cash_register",
        order_by="CashTransaction.created_at"
    )

    __table_args__ = (
        Index(
            "uq_cash_register_one_open_per_tenant",
            "tenant_id",
            unique=True,
            postgresql_where=text("is_open"),
            sqlite_where=text("is_open = 1"),
        ),
    )


class CashTransaction(Base, TenantMixin, TimestampMixin):
    """Movimiento de caja; nunca se modifica ni elimina, se compensa con otro"""
    __tablename__ = "cash_transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    cash_register_id = Column(UUID(as_uuid=True), ForeignKey("cash_registers.id"), nullable=False, index=True)
    type = Column(Enum(CashTransactionType), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    description = Column(String(255), nullable=False)
    reference = Column(String(100), nullable=True)  # "V-000001", "INV-0001", ...
    created_by = Column(UUID(as_uuid=True), nullable=True)

    cash_register = relationship("CashRegister", back_populates="transactions")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_cash_transaction_amount_positive"),
    )


# ===== VENTAS =====

class POSSale(Base, TenantMixin, TimestampMixin):
    """Venta de mostrador; inmutable una vez anulada"""
    __tablename__ = "pos_sales"
    display_name = "Venta"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    sale_number = Column(String(20), nullable=False)
    status = Column(Enum(POSSaleStatus), nullable=False, default=POSSaleStatus.COMPLETED, index=True)

    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=True)
    customer_name = Column(String(255), nullable=False, default="Consumidor Final")
    customer_nit = Column(String(20), nullable=False, default="C/F")

    subtotal = Column(Numeric(15, 2), nullable=False)
    tax_rate = Column(Numeric(5, 2), nullable=False)
    tax_amount = Column(Numeric(15, 2), nullable=False)
    discount_amount = Column(Numeric(15, 2), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False)
    amount_paid = Column(Numeric(15, 2), nullable=False)
    change_given = Column(Numeric(15, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)

    cash_register_id = Column(UUID(as_uuid=True), ForeignKey("cash_registers.id"), nullable=False)
    created_by = Column(UUID(as_uuid=True), nullable=True)

    # Anulación
    void_reason = Column(Text, nullable=True)
    voided_at = Column(DateTime(timezone=True), nullable=True)
    voided_by = Column(UUID(as_uuid=True), nullable=True)

    items = relationship("POSSaleItem", back_populates="sale", cascade="all, delete-orphan")
    payments = relationship("POSSalePayment", back_populates="sale", cascade="all, delete-orphan")
    cash_register = relationship("CashRegister")

    __table_args__ = (
        UniqueConstraint("tenant_id", "sale_number", name="uq_pos_sale_tenant_number"),
    )


class POSSaleItem(Base, TenantMixin):
    __tablename__ = "pos_sale_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    sale_id = Column(UUID(as_uuid=True), ForeignKey("pos_sales.id", ondelete="CASCADE"), nullable=False, index=True)
    part_id = Column(UUID(as_uuid=True), ForeignKey("parts.id", ondelete="RESTRICT"), nullable=False)
    part_name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)  # Precio al momento de la venta
    total = Column(Numeric(15, 2), nullable=False)

    sale = relationship("POSSale", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_pos_sale_item_quantity_positive"),
    )


class POSSalePayment(Base, TenantMixin):
    __tablename__ = "pos_sale_payments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    sale_id = Column(UUID(as_uuid=True), ForeignKey("pos_sales.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    payment_method = Column(Enum(PaymentMethod), nullable=False)
    transaction_ref = Column(String(100), nullable=True)

    sale = relationship("POSSale", back_populates="payments")
