from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from decimal import Decimal

from app.modules.credit_notes.models import CreditNoteStatus
from app.modules.pos.models import PaymentMethod


def _required_reason(value: str) -> str:
    cleaned = value.strip()
    if not cleaned:
        raise ValueError("Debe especificar el motivo")
    return cleaned


class CreditNoteItemCreate(BaseModel):
    part_id: UUID
    quantity: int = Field(..., gt=0)
    reason: Optional[str] = Field(None, max_length=255)


class CreditNoteCreate(BaseModel):
    """Devolución de parte de una venta POS"""
    pos_sale_id: UUID
    items: List[CreditNoteItemCreate] = Field(..., min_length=1, description="Debe incluir al menos un producto")
    reason: str = Field(..., min_length=1, max_length=500, description="Motivo de la devolución")
    refund_method: Optional[PaymentMethod] = Field(
        None, description="Si se indica, el reembolso se procesa en la misma operación"
    )
    refund_reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v: str) -> str:
        return _required_reason(v)


class CreditNoteRefund(BaseModel):
    refund_method: PaymentMethod
    refund_reference: Optional[str] = Field(None, max_length=100)


class CreditNoteCancel(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v: str) -> str:
        return _required_reason(v)


class CreditNoteItemOut(BaseModel):
    id: UUID
    part_id: UUID
    part_name: str
    quantity: int
    unit_price: Decimal
    total: Decimal
    reason: Optional[str] = None

    model_config = {"from_attributes": True}


class CreditNoteOut(BaseModel):
    id: UUID
    credit_note_number: str
    status: CreditNoteStatus
    pos_sale_id: UUID
    reason: str
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    refund_method: Optional[PaymentMethod] = None
    refund_reference: Optional[str] = None
    cash_register_id: Optional[UUID] = None
    processed_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime
    items: List[CreditNoteItemOut] = []

    model_config = {"from_attributes": True}
