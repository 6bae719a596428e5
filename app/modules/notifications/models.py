from app.database.database import Base
from sqlalchemy import Column, String, Boolean, JSON
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin


class Notification(Base, TenantMixin, TimestampMixin):
    """Notificación entregada a la empresa (ticket creado, stock bajo, ...)"""
    __tablename__ = "notifications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    event = Column(String(50), nullable=False, index=True)
    payload = Column(JSON, nullable=False, default=dict)
    is_read = Column(Boolean, nullable=False, default=False)
