"""
Servicios de tickets y consumo manual de repuestos

- TicketService: alta y consulta de tickets
- PartUsageService: agregar, ajustar y quitar repuestos de un ticket

Cada operación de PartUsageService es una única transacción: el cambio de
existencia y la fila de uso se confirman juntos o no se confirman.
"""
from typing import List, Optional
from uuid import UUID
import logging

from app.common.exceptions import StateConflictError
from app.common.sequences import next_document_number
from app.common.tenancy import TenantScope
from app.database.database import transactional
from app.modules.customers.models import Customer
from app.modules.inventory.ledger import StockLedger
from app.modules.inventory.models import Part
from app.modules.notifications import service as notifications
from app.modules.tickets.models import Ticket, PartUsage, TicketStatus, FINAL_STATUSES, is_valid_transition
from app.modules.tickets.schemas import TicketCreate

logger = logging.getLogger(__name__)


def ticket_reference(ticket: Ticket) -> str:
    return f"TICKET {ticket.ticket_number}"


class TicketService:
    def __init__(self, scope: TenantScope):
        self.scope = scope
        self.db = scope.db

    def create_ticket(self, data: TicketCreate, user_role: Optional[str] = None) -> Ticket:
        with transactional(self.db):
            self.scope.require(Customer, data.customer_id)
            ticket = self.scope.add(Ticket(
                ticket_number=next_document_number(self.scope, "ticket"),
                title=data.title,
                description=data.description,
                priority=data.priority,
                device_type=data.device_type,
                device_model=data.device_model,
                customer_id=data.customer_id,
                due_date=data.due_date,
                assigned_to=self.scope.user_id if user_role == "technician" else None,
                created_by=self.scope.user_id
            ))
        self.db.refresh(ticket)
        logger.info(f"Ticket {ticket.ticket_number} creado en tenant {self.scope.tenant_id}")
        return ticket

    def update_status(self, ticket_id: UUID, new_status: TicketStatus) -> Ticket:
        """
        Cambiar el estado según VALID_TRANSITIONS.

        Al cancelar se repone el stock de todos los repuestos usados y se
        eliminan los usos en la misma transacción; una reapertura posterior
        parte sin usos y no vuelve a reponer nada.
        """
        ledger = StockLedger(self.scope)
        with transactional(self.db):
            ticket = self.scope.require(Ticket, ticket_id, lock=True)
            previous = ticket.status
            if not is_valid_transition(previous, new_status):
                raise StateConflictError(
                    f"Transición inválida para el ticket {ticket.ticket_number}: "
                    f"{previous.value} -> {new_status.value}",
                    status=previous.value,
                    requested=new_status.value
                )
            restored = 0
            if new_status == TicketStatus.CANCELLED:
                restored = self._release_usages(ticket, ledger)
            ticket.status = new_status

        self.db.refresh(ticket)
        logger.info(f"Ticket {ticket.ticket_number}: {previous.value} -> {new_status.value}")
        if restored:
            logger.info(f"Ticket {ticket.ticket_number}: stock repuesto de {restored} usos al cancelar")
        return ticket

    def _release_usages(self, ticket: Ticket, ledger: StockLedger) -> int:
        usages = (
            self.scope.query(PartUsage)
            .filter(PartUsage.ticket_id == ticket.id)
            .with_for_update()
            .all()
        )
        reference = f"CANCELACION {ticket.ticket_number}"
        for usage in usages:
            ledger.restore(usage.part_id, usage.quantity, reference=reference)
            self.db.delete(usage)
        return len(usages)

    def get_ticket(self, ticket_id: UUID) -> Ticket:
        return self.scope.require(Ticket, ticket_id)

    def list_tickets(self, status: Optional[TicketStatus] = None, limit: int = 20, offset: int = 0) -> List[Ticket]:
        query = self.scope.query(Ticket)
        if status:
            query = query.filter(Ticket.status == status)
        return query.order_by(Ticket.created_at.desc()).offset(offset).limit(limit).all()


class PartUsageService:
    """Consumo manual de repuestos en tickets"""

    def __init__(self, scope: TenantScope):
        self.scope = scope
        self.db = scope.db

    def _editable_ticket(self, ticket_id: UUID) -> Ticket:
        ticket = self.scope.require(Ticket, ticket_id)
        if ticket.status in FINAL_STATUSES:
            raise StateConflictError(
                f"No se pueden modificar repuestos de un ticket {ticket.status.value}",
                status=ticket.status.value
            )
        return ticket

    def add_usage(self, ticket_id: UUID, part_id: UUID, quantity: int) -> PartUsage:
        """Consumir stock y registrar el uso; sin stock no se crea la fila"""
        ledger = StockLedger(self.scope)
        with transactional(self.db):
            ticket = self._editable_ticket(ticket_id)
            part = self.scope.require(Part, part_id)
            ledger.consume(part.id, quantity, reference=ticket_reference(ticket))
            usage = self.scope.add(PartUsage(
                ticket_id=ticket.id,
                part_id=part.id,
                quantity=quantity,
                unit_price=part.price,
                created_by=self.scope.user_id
            ))

        self.db.refresh(usage)
        logger.info(f"Uso de {quantity} x {part_id} agregado al ticket {ticket_id}")
        notifications.notify_low_stock(self.scope.tenant_id, ledger.low_stock)
        return usage

    def update_usage(self, usage_id: UUID, new_quantity: int) -> PartUsage:
        """
        Ajustar la cantidad de un uso por diferencia:
        - delta > 0: consume(delta), puede fallar
        - delta < 0: restore(-delta)
        La fila se actualiza solo después de la operación de stock.
        """
        ledger = StockLedger(self.scope)
        with transactional(self.db):
            usage = self.scope.require(PartUsage, usage_id, lock=True)
            ticket = self._editable_ticket(usage.ticket_id)
            delta = new_quantity - usage.quantity
            if delta > 0:
                ledger.consume(usage.part_id, delta, reference=ticket_reference(ticket))
            elif delta < 0:
                ledger.restore(usage.part_id, -delta, reference=ticket_reference(ticket))
            usage.quantity = new_quantity

        self.db.refresh(usage)
        logger.info(f"Uso {usage_id} ajustado a {new_quantity} (delta {delta})")
        notifications.notify_low_stock(self.scope.tenant_id, ledger.low_stock)
        return usage

    def remove_usage(self, usage_id: UUID) -> None:
        """Reponer el stock consumido y eliminar el uso"""
        ledger = StockLedger(self.scope)
        with transactional(self.db):
            usage = self.scope.require(PartUsage, usage_id, lock=True)
            ticket = self._editable_ticket(usage.ticket_id)
            ledger.restore(usage.part_id, usage.quantity, reference=ticket_reference(ticket))
            self.db.delete(usage)

        logger.info(f"Uso {usage_id} eliminado y stock repuesto")
