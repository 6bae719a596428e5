from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from decimal import Decimal
from app.modules.inventory.models import StockMovementType


# Esquemas de repuestos
class PartCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    sku: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    quantity: int = Field(default=0, ge=0, description="Existencia inicial")
    min_stock: int = Field(default=0, ge=0, description="Umbral de stock bajo")
    cost: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    price: Decimal = Field(..., ge=0, decimal_places=2)

    @field_validator("name", "sku")
    @classmethod
    def strip_text(cls, v: str) -> str:
        cleaned = v.strip()
        if not cleaned:
            raise ValueError("El campo no puede estar vacío")
        return cleaned


class PartOut(BaseModel):
    id: UUID
    name: str
    sku: str
    description: Optional[str] = None
    quantity: int
    min_stock: int
    cost: Decimal
    price: Decimal
    is_low_stock: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class PartList(BaseModel):
    items: List[PartOut]
    total: int
    limit: int
    offset: int


# Esquemas de movimientos
class StockReceive(BaseModel):
    quantity: int = Field(..., gt=0, description="Unidades recibidas")
    reference: Optional[str] = Field(None, max_length=100, description="Referencia de compra o ajuste")


class StockMovementOut(BaseModel):
    id: UUID
    part_id: UUID
    movement_type: StockMovementType
    quantity: int
    reference: Optional[str]
    created_by: Optional[UUID]
    created_at: datetime

    model_config = {"from_attributes": True}
