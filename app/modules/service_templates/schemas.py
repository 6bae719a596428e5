from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from decimal import Decimal

from app.modules.tickets.models import TicketPriority
from app.modules.tickets.schemas import TicketDetail


# ===== TEMPLATES =====

class DefaultPartCreate(BaseModel):
    part_id: UUID
    quantity: int = Field(default=1, gt=0)
    required: bool = True


class DefaultPartOut(BaseModel):
    id: UUID
    part_id: UUID
    quantity: int
    required: bool

    model_config = {"from_attributes": True}


class ServiceTemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    category: Optional[str] = Field(None, max_length=50)
    default_title: str = Field(..., min_length=1, max_length=255)
    default_description: Optional[str] = None
    default_priority: str = Field(default="MEDIUM", max_length=20)
    estimated_duration: Optional[int] = Field(None, gt=0, description="Duración estimada en minutos")
    labor_cost: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    default_parts: List[DefaultPartCreate] = []

    @field_validator("default_parts")
    @classmethod
    def unique_parts(cls, v: List[DefaultPartCreate]) -> List[DefaultPartCreate]:
        ids = [p.part_id for p in v]
        if len(ids) != len(set(ids)):
            raise ValueError("Un repuesto no puede repetirse en la plantilla")
        return v


class ServiceTemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    category: Optional[str] = Field(None, max_length=50)
    default_title: Optional[str] = Field(None, min_length=1, max_length=255)
    default_description: Optional[str] = None
    default_priority: Optional[str] = Field(None, max_length=20)
    estimated_duration: Optional[int] = Field(None, gt=0)
    labor_cost: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    is_active: Optional[bool] = None


class ServiceTemplateOut(BaseModel):
    id: UUID
    name: str
    category: Optional[str] = None
    default_title: str
    default_description: Optional[str] = None
    default_priority: str
    estimated_duration: Optional[int] = None
    labor_cost: Decimal
    is_active: bool
    default_parts: List[DefaultPartOut] = []
    created_at: datetime

    model_config = {"from_attributes": True}


# ===== INSTANCIACIÓN =====

class TicketFromTemplateCreate(BaseModel):
    """Datos del equipo y overrides opcionales sobre la plantilla"""
    customer_id: UUID
    device_type: Optional[str] = Field(None, max_length=100)
    device_model: Optional[str] = Field(None, max_length=255)
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    priority: Optional[TicketPriority] = None
    optional_parts: Optional[List[UUID]] = Field(
        None, description="Repuestos opcionales a sugerir; nunca se consumen"
    )


class TicketFromTemplateOut(TicketDetail):
    pass
