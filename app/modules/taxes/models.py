"""
Configuración fiscal por empresa (tenant)
"""
from sqlalchemy import Column, String, Numeric
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4

from app.database.database import Base
from app.common.mixins import TimestampMixin


class TenantSettings(Base, TimestampMixin):
    """Tasa de impuesto y moneda de cada empresa; una fila por tenant"""
    __tablename__ = "tenant_settings"
    display_name = "Configuración"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), nullable=False, unique=True, index=True)
    tax_rate = Column(Numeric(5, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="GTQ")
