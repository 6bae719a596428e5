from app.database.database import Base
from sqlalchemy import Column, String, Integer, Boolean, ForeignKey, Numeric, Text, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin


class ServiceTemplate(Base, TenantMixin, TimestampMixin):
    """
    Plantilla de servicio (ej. "Mantenimiento preventivo laptop")

    Al instanciarla se crea un ticket y se consumen sus repuestos requeridos.
    """
    __tablename__ = "service_templates"
    display_name = "Plantilla"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    category = Column(String(50), nullable=True)
    default_title = Column(String(255), nullable=False)
    default_description = Column(Text, nullable=True)
    default_priority = Column(String(20), nullable=False, default="MEDIUM")
    estimated_duration = Column(Integer, nullable=True)  # minutos
    labor_cost = Column(Numeric(15, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    default_parts = relationship(
        "TemplateDefaultPart",
        back_populates="template",
        cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_service_template_tenant_name"),
    )


class TemplateDefaultPart(Base, TenantMixin, TimestampMixin):
    """Repuesto de una plantilla: required se consume, opcional solo se sugiere"""
    __tablename__ = "template_default_parts"
    display_name = "Repuesto de plantilla"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    template_id = Column(UUID(as_uuid=True), ForeignKey("service_templates.id", ondelete="CASCADE"), nullable=False, index=True)
    part_id = Column(UUID(as_uuid=True), ForeignKey("parts.id", ondelete="RESTRICT"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    required = Column(Boolean, nullable=False, default=True)

    template = relationship("ServiceTemplate", back_populates="default_parts")
    part = relationship("Part")

    __table_args__ = (
        UniqueConstraint("template_id", "part_id", name="uq_template_part"),
        CheckConstraint("quantity > 0", name="ck_template_part_quantity_positive"),
    )
