from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime


class CustomerCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    nit: str = Field(default="C/F", max_length=20, description="NIT o C/F (Consumidor Final)")
    address: Optional[str] = None

    @field_validator("nit")
    @classmethod
    def normalize_nit(cls, v: str) -> str:
        cleaned = v.strip().upper()
        return cleaned or "C/F"


class CustomerOut(BaseModel):
    id: UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    nit: str
    address: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class CustomerList(BaseModel):
    items: List[CustomerOut]
    total: int
