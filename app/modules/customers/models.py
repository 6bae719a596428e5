from app.database.database import Base
from sqlalchemy import Column, String, Text
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin


class Customer(Base, TenantMixin, TimestampMixin):
    """Cliente del taller"""
    __tablename__ = "customers"
    display_name = "Cliente"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    nit = Column(String(20), nullable=False, default="C/F")  # C/F = Consumidor Final
    address = Column(Text, nullable=True)
