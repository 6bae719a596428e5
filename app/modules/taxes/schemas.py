from pydantic import BaseModel, Field
from decimal import Decimal
from uuid import UUID


class TaxRateUpdate(BaseModel):
    """Esquema para actualizar la tasa de impuesto de la empresa"""
    tax_rate: Decimal = Field(..., ge=0, le=100, decimal_places=2, description="Tasa en porcentaje (ej. 12.00)")


class TaxRateOut(BaseModel):
    tenant_id: UUID
    tax_rate: Decimal
    currency: str
