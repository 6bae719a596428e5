from pydantic import BaseModel, Field
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from decimal import Decimal

from app.modules.purchases.models import PurchaseOrderStatus


class PurchaseItemCreate(BaseModel):
    part_id: UUID
    quantity: int = Field(..., gt=0)
    unit_cost: Decimal = Field(..., ge=0, decimal_places=2)


class PurchaseOrderCreate(BaseModel):
    supplier: str = Field(..., min_length=1, max_length=255)
    notes: Optional[str] = None
    items: List[PurchaseItemCreate] = []


class PurchaseItemOut(BaseModel):
    id: UUID
    part_id: UUID
    part_name: str
    quantity: int
    unit_cost: Decimal

    model_config = {"from_attributes": True}


class PurchaseOrderOut(BaseModel):
    id: UUID
    order_number: str
    status: PurchaseOrderStatus
    supplier: str
    notes: Optional[str] = None
    total_cost: Decimal
    received_at: Optional[datetime] = None
    created_at: datetime
    items: List[PurchaseItemOut] = []

    model_config = {"from_attributes": True}
