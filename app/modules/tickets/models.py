"""
Modelos de tickets de servicio

- Ticket: orden de trabajo de un equipo de un cliente
- PartUsage: consumo de repuestos asociado a un ticket

Cada alta, cambio o baja de PartUsage va acompañada de exactamente una
llamada al StockLedger dentro de la misma transacción.
"""
from app.database.database import Base
from sqlalchemy import (
    Column, String, Integer, DateTime, ForeignKey, Numeric, Enum, Text, JSON,
    UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
import enum


# ===== ENUMS =====

class TicketStatus(str, enum.Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    WAITING_FOR_PARTS = "WAITING_FOR_PARTS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class TicketPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


# Estados en los que ya no se puede consumir ni devolver repuestos
FINAL_STATUSES = (TicketStatus.CLOSED, TicketStatus.CANCELLED)

# Estado actual -> estados alcanzables. CLOSED y CANCELLED solo salen por reapertura.
VALID_TRANSITIONS = {
    TicketStatus.OPEN: (TicketStatus.IN_PROGRESS, TicketStatus.CANCELLED),
    TicketStatus.IN_PROGRESS: (TicketStatus.WAITING_FOR_PARTS, TicketStatus.RESOLVED, TicketStatus.CANCELLED),
    TicketStatus.WAITING_FOR_PARTS: (TicketStatus.IN_PROGRESS, TicketStatus.CANCELLED),
    TicketStatus.RESOLVED: (TicketStatus.CLOSED, TicketStatus.IN_PROGRESS, TicketStatus.CANCELLED),
    TicketStatus.CLOSED: (TicketStatus.IN_PROGRESS,),
    TicketStatus.CANCELLED: (TicketStatus.OPEN,),
}


def is_valid_transition(current: TicketStatus, new_status: TicketStatus) -> bool:
    return new_status in VALID_TRANSITIONS.get(current, ())


def normalize_priority(value) -> TicketPriority:
    """'Normal' y valores desconocidos se interpretan como MEDIUM"""
    if isinstance(value, TicketPriority):
        return value
    upper = (value or "").strip().upper()
    if upper == "NORMAL":
        return TicketPriority.MEDIUM
    try:
        return TicketPriority(upper)
    except ValueError:
        return TicketPriority.MEDIUM


# ===== MODELOS =====

class Ticket(Base, TenantMixin, TimestampMixin):
    __tablename__ = "tickets"
    display_name = "Ticket"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    ticket_number = Column(String(20), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(Enum(TicketStatus), nullable=False, default=TicketStatus.OPEN, index=True)
    priority = Column(Enum(TicketPriority), nullable=False, default=TicketPriority.MEDIUM)
    device_type = Column(String(100), nullable=False, default="PC")
    device_model = Column(String(255), nullable=False, default="")

    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False, index=True)
    service_template_id = Column(UUID(as_uuid=True), ForeignKey("service_templates.id"), nullable=True)
    assigned_to = Column(UUID(as_uuid=True), nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)

    # Repuestos opcionales de la plantilla: solo sugerencias, nunca consumidos
    suggested_parts = Column(JSON, nullable=True)

    customer = relationship("Customer")
    service_template = relationship("ServiceTemplate")
    part_usages = relationship("PartUsage", back_populates="ticket", order_by="PartUsage.created_at")

    __table_args__ = (
        UniqueConstraint("tenant_id", "ticket_number", name="uq_ticket_tenant_number"),
    )


class PartUsage(Base, TenantMixin, TimestampMixin):
    __tablename__ = "part_usages"
    display_name = "Uso de repuesto"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    ticket_id = Column(UUID(as_uuid=True), ForeignKey("tickets.id"), nullable=False, index=True)
    part_id = Column(UUID(as_uuid=True), ForeignKey("parts.id", ondelete="RESTRICT"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)  # Precio al momento del consumo
    created_by = Column(UUID(as_uuid=True), nullable=True)

    ticket = relationship("Ticket", back_populates="part_usages")
    part = relationship("Part")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_part_usage_quantity_positive"),
    )
