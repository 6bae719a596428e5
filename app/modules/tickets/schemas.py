from pydantic import BaseModel, Field
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from decimal import Decimal

from app.modules.tickets.models import TicketStatus, TicketPriority


# ===== TICKETS =====

class TicketCreate(BaseModel):
    """Esquema para crear un ticket sin plantilla"""
    customer_id: UUID
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    priority: TicketPriority = TicketPriority.MEDIUM
    device_type: str = Field(default="PC", max_length=100)
    device_model: str = Field(default="", max_length=255)
    due_date: Optional[datetime] = None


class PartUsageOut(BaseModel):
    id: UUID
    ticket_id: UUID
    part_id: UUID
    quantity: int
    unit_price: Decimal
    created_at: datetime

    model_config = {"from_attributes": True}


class SuggestedPart(BaseModel):
    part_id: UUID
    part_name: str
    quantity: int
    available: int


class TicketOut(BaseModel):
    id: UUID
    ticket_number: str
    title: str
    description: Optional[str] = None
    status: TicketStatus
    priority: TicketPriority
    device_type: str
    device_model: str
    customer_id: UUID
    service_template_id: Optional[UUID] = None
    assigned_to: Optional[UUID] = None
    due_date: Optional[datetime] = None
    suggested_parts: Optional[List[SuggestedPart]] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class TicketDetail(TicketOut):
    part_usages: List[PartUsageOut] = []


# ===== PART USAGE =====

class PartUsageCreate(BaseModel):
    part_id: UUID
    quantity: int = Field(..., gt=0, description="Unidades a consumir")


class PartUsageUpdate(BaseModel):
    quantity: int = Field(..., gt=0, description="Nueva cantidad total del uso")


class TicketStatusUpdate(BaseModel):
    status: TicketStatus
