"""
Esquemas Pydantic para el módulo POS (Point of Sale)

Define la validación de datos de entrada y salida para:
- CashRegister: apertura/cierre de caja y resumen
- CashTransaction: movimientos de caja
- POSSale: ventas de mostrador y anulaciones

Todos los montos son Decimal con 2 decimales.
"""

from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional, List, Dict
from uuid import UUID
from datetime import datetime

from app.modules.pos.models import CashTransactionType, PaymentMethod, POSSaleStatus


# ===== CASH REGISTER SCHEMAS =====

class CashRegisterOpen(BaseModel):
    """Esquema para abrir caja registradora"""
    opening_balance: Decimal = Field(..., ge=0, decimal_places=2, description="Saldo inicial de apertura")
    opening_notes: Optional[str] = Field(None, max_length=500, description="Notas de apertura")


class CashRegisterClose(BaseModel):
    """Esquema para cerrar caja registradora"""
    counted_balance: Decimal = Field(..., ge=0, decimal_places=2, description="Efectivo contado al cierre")
    closing_notes: Optional[str] = Field(None, max_length=500, description="Notas de cierre")


class CashRegisterOut(BaseModel):
    id: UUID
    is_open: bool
    opening_balance: Decimal
    opened_by: Optional[UUID] = None
    opened_at: datetime
    opening_notes: Optional[str] = None
    closing_balance: Optional[Decimal] = None
    expected_balance: Optional[Decimal] = None
    discrepancy: Optional[Decimal] = None
    closed_by: Optional[UUID] = None
    closed_at: Optional[datetime] = None
    closing_notes: Optional[str] = None

    model_config = {"from_attributes": True}


class CashRegisterSummary(BaseModel):
    """Resumen de caja derivado de su libro de transacciones"""
    cash_register_id: UUID
    is_open: bool
    opening_balance: Decimal
    total_income: Decimal
    total_expense: Decimal
    total_withdrawal: Decimal
    expected_balance: Decimal
    closing_balance: Optional[Decimal] = None
    discrepancy: Optional[Decimal] = None
    transaction_count: int


# ===== CASH TRANSACTION SCHEMAS =====

class CashTransactionCreate(BaseModel):
    type: CashTransactionType
    amount: Decimal = Field(..., gt=0, decimal_places=2, description="Monto positivo; el tipo define el signo")
    description: str = Field(..., min_length=1, max_length=255)
    reference: Optional[str] = Field(None, max_length=100)


class CashTransactionOut(BaseModel):
    id: UUID
    cash_register_id: UUID
    type: CashTransactionType
    amount: Decimal
    description: str
    reference: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: datetime

    model_config = {"from_attributes": True}


# ===== POS SALE SCHEMAS =====

class POSSaleItemCreate(BaseModel):
    part_id: UUID
    quantity: int = Field(..., gt=0)


class POSSalePaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    payment_method: PaymentMethod
    transaction_ref: Optional[str] = Field(None, max_length=100)


class POSSaleCreate(BaseModel):
    """Esquema para crear venta POS"""
    items: List[POSSaleItemCreate] = Field(..., min_length=1, description="Debe agregar al menos un producto")
    payments: List[POSSalePaymentCreate] = Field(..., min_length=1, description="Debe agregar al menos un método de pago")
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    customer_id: Optional[UUID] = None
    customer_name: Optional[str] = Field(None, max_length=255)
    customer_nit: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = None


class POSSaleVoid(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500, description="Razón de la anulación")

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v: str) -> str:
        cleaned = v.strip()
        if not cleaned:
            raise ValueError("Debe proporcionar una razón para anular la venta")
        return cleaned


class POSSaleItemOut(BaseModel):
    id: UUID
    part_id: UUID
    part_name: str
    quantity: int
    unit_price: Decimal
    total: Decimal

    model_config = {"from_attributes": True}


class POSSalePaymentOut(BaseModel):
    id: UUID
    amount: Decimal
    payment_method: PaymentMethod
    transaction_ref: Optional[str] = None

    model_config = {"from_attributes": True}


class POSSaleOut(BaseModel):
    id: UUID
    sale_number: str
    status: POSSaleStatus
    customer_id: Optional[UUID] = None
    customer_name: str
    customer_nit: str
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total: Decimal
    amount_paid: Decimal
    change_given: Decimal
    notes: Optional[str] = None
    cash_register_id: UUID
    void_reason: Optional[str] = None
    voided_at: Optional[datetime] = None
    voided_by: Optional[UUID] = None
    created_at: datetime
    items: List[POSSaleItemOut] = []
    payments: List[POSSalePaymentOut] = []

    model_config = {"from_attributes": True}


class POSSalesSummary(BaseModel):
    sales_count: int
    total_sales: Decimal
    total_tax: Decimal
    total_discount: Decimal
    by_payment_method: Dict[str, Decimal]
