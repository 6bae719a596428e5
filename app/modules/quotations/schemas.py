from pydantic import BaseModel, Field
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from decimal import Decimal

from app.modules.pos.schemas import POSSalePaymentCreate
from app.modules.quotations.models import QuotationStatus


class QuotationItemCreate(BaseModel):
    part_id: UUID
    quantity: int = Field(..., gt=0)
    unit_price: Optional[Decimal] = Field(None, ge=0, decimal_places=2, description="Por defecto, el precio del repuesto")


class QuotationCreate(BaseModel):
    items: List[QuotationItemCreate] = Field(..., min_length=1, description="Debe incluir al menos un producto")
    customer_id: Optional[UUID] = None
    customer_name: Optional[str] = Field(None, max_length=255)
    customer_phone: Optional[str] = Field(None, max_length=50)
    customer_email: Optional[str] = Field(None, max_length=255)
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    valid_days: int = Field(15, ge=1)
    notes: Optional[str] = None


class QuotationStatusUpdate(BaseModel):
    status: QuotationStatus


class QuotationConvert(BaseModel):
    payments: List[POSSalePaymentCreate] = Field(..., min_length=1, description="Debe incluir al menos un método de pago")
    customer_nit: Optional[str] = Field(None, max_length=20)


class QuotationItemOut(BaseModel):
    id: UUID
    part_id: UUID
    part_name: str
    quantity: int
    unit_price: Decimal
    total: Decimal

    model_config = {"from_attributes": True}


class QuotationOut(BaseModel):
    id: UUID
    quotation_number: str
    status: QuotationStatus
    customer_id: Optional[UUID] = None
    customer_name: str
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total: Decimal
    valid_until: datetime
    notes: Optional[str] = None
    converted_sale_id: Optional[UUID] = None
    created_at: datetime
    items: List[QuotationItemOut] = []

    model_config = {"from_attributes": True}
