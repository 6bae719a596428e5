from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime
from decimal import Decimal

from app.modules.invoices.models import InvoiceStatus
from app.modules.pos.models import PaymentMethod


# Invoice Schemas
class InvoiceFromTicket(BaseModel):
    """Datos para facturar un ticket resuelto o cerrado"""
    ticket_id: UUID
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    tax_rate: Optional[Decimal] = Field(
        None, ge=0, le=100, decimal_places=2,
        description="Tasa en porcentaje; si se omite se usa la configurada para la empresa"
    )
    due_date: Optional[date] = None
    notes: Optional[str] = None


class InvoiceCancelRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500, description="Motivo de cancelación")

    @field_validator('reason')
    @classmethod
    def strip_reason(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('El motivo de cancelación es obligatorio')
        return v


class InvoiceOut(BaseModel):
    id: UUID
    invoice_number: str
    status: InvoiceStatus
    ticket_id: Optional[UUID] = None
    customer_id: UUID
    customer_name: str
    customer_nit: Optional[str] = None
    labor_cost: Decimal
    parts_cost: Decimal
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total: Decimal
    due_date: Optional[date] = None
    paid_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


# Payment Schemas
class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2, description="Monto debe ser mayor a 0")
    payment_method: PaymentMethod
    transaction_ref: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class PaymentOut(BaseModel):
    id: UUID
    payment_number: str
    invoice_id: UUID
    amount: Decimal
    payment_method: PaymentMethod
    transaction_ref: Optional[str] = None
    notes: Optional[str] = None
    received_by: Optional[UUID] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class InvoiceDetail(InvoiceOut):
    payments: List[PaymentOut] = []
    amount_paid: Decimal = Decimal("0.00")
    balance_due: Decimal = Decimal("0.00")


class PaymentResult(BaseModel):
    """Resultado de registrar un pago"""
    payment: PaymentOut
    invoice: InvoiceOut
    remaining: Decimal
    cash_mirrored: bool
    warning: Optional[str] = None


class InvoiceList(BaseModel):
    invoices: List[InvoiceOut]
    total: int
    limit: int
    offset: int
