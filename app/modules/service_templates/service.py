"""
Servicio de plantillas de servicio

- CRUD de plantillas y sus repuestos por defecto
- create_ticket_from_template: crea el ticket y consume sus repuestos
  requeridos en una sola transacción. Si falta stock de cualquiera, no se
  crea el ticket ni se descuenta nada, y el error enumera todos los faltantes.
"""
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from uuid import UUID
import logging

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError

from app.common.exceptions import StateConflictError
from app.common.sequences import next_document_number
from app.common.tenancy import TenantScope
from app.database.database import transactional
from app.modules.customers.models import Customer
from app.modules.inventory.ledger import StockLedger
from app.modules.inventory.models import Part
from app.modules.notifications import service as notifications
from app.modules.service_templates.models import ServiceTemplate, TemplateDefaultPart
from app.modules.service_templates.schemas import (
    ServiceTemplateCreate, ServiceTemplateUpdate, DefaultPartCreate, TicketFromTemplateCreate
)
from app.modules.tickets.models import Ticket, PartUsage, normalize_priority

logger = logging.getLogger(__name__)


class ServiceTemplateService:
    def __init__(self, scope: TenantScope):
        self.scope = scope
        self.db = scope.db

    # ===== PLANTILLAS =====

    def _add_part(self, template: ServiceTemplate, data: DefaultPartCreate) -> TemplateDefaultPart:
        self.scope.require(Part, data.part_id)
        if any(dp.part_id == data.part_id for dp in template.default_parts):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="El repuesto ya está en la plantilla"
            )
        default_part = self.scope.stamp(TemplateDefaultPart(
            part_id=data.part_id,
            quantity=data.quantity,
            required=data.required
        ))
        template.default_parts.append(default_part)
        return default_part

    def _flush_template(self, name: str):
        try:
            self.db.flush()
        except IntegrityError:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Ya existe una plantilla llamada '{name}'"
            )

    def create_template(self, data: ServiceTemplateCreate) -> ServiceTemplate:
        with transactional(self.db):
            template = self.scope.add(ServiceTemplate(
                **data.model_dump(exclude={"default_parts", "default_priority"}),
                default_priority=normalize_priority(data.default_priority).value
            ))
            for part_data in data.default_parts:
                self._add_part(template, part_data)
            self._flush_template(data.name)

        self.db.refresh(template)
        logger.info(f"Plantilla '{template.name}' creada en tenant {self.scope.tenant_id}")
        return template

    def update_template(self, template_id: UUID, data: ServiceTemplateUpdate) -> ServiceTemplate:
        with transactional(self.db):
            template = self.scope.require(ServiceTemplate, template_id)
            changes = data.model_dump(exclude_unset=True)
            if "default_priority" in changes:
                changes["default_priority"] = normalize_priority(changes["default_priority"]).value
            for field, value in changes.items():
                setattr(template, field, value)
            self._flush_template(template.name)

        self.db.refresh(template)
        return template

    def get_template(self, template_id: UUID) -> ServiceTemplate:
        return self.scope.require(ServiceTemplate, template_id)

    def list_templates(self, active_only: bool = True) -> List[ServiceTemplate]:
        query = self.scope.query(ServiceTemplate)
        if active_only:
            query = query.filter(ServiceTemplate.is_active.is_(True))
        return query.order_by(ServiceTemplate.name).all()

    def add_default_part(self, template_id: UUID, data: DefaultPartCreate) -> ServiceTemplate:
        with transactional(self.db):
            template = self.scope.require(ServiceTemplate, template_id)
            self._add_part(template, data)

        self.db.refresh(template)
        return template

    def remove_default_part(self, template_id: UUID, part_id: UUID) -> ServiceTemplate:
        with transactional(self.db):
            template = self.scope.require(ServiceTemplate, template_id)
            default_part = next((dp for dp in template.default_parts if dp.part_id == part_id), None)
            if default_part is None:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail="El repuesto no está en la plantilla"
                )
            template.default_parts.remove(default_part)

        self.db.refresh(template)
        return template

    # ===== INSTANCIACIÓN =====

    def _suggestions(self, optional_parts: List[TemplateDefaultPart], selected: Optional[List[UUID]]) -> List[dict]:
        if selected is not None:
            optional_ids = {dp.part_id for dp in optional_parts}
            unknown = [str(part_id) for part_id in selected if part_id not in optional_ids]
            if unknown:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Repuestos opcionales no pertenecen a la plantilla: {', '.join(unknown)}"
                )
            optional_parts = [dp for dp in optional_parts if dp.part_id in set(selected)]

        suggestions = []
        for dp in optional_parts:
            name, available = self.db.execute(
                self.scope.select(Part, Part.name, Part.quantity).where(Part.id == dp.part_id)
            ).one()
            suggestions.append({
                "part_id": str(dp.part_id),
                "part_name": name,
                "quantity": dp.quantity,
                "available": available,
            })
        return suggestions

    def create_ticket_from_template(
        self,
        template_id: UUID,
        data: TicketFromTemplateCreate,
        user_role: Optional[str] = None
    ) -> Ticket:
        """
        Crear un ticket desde una plantilla activa.

        - Repuestos requeridos: se consumen todos o ninguno; si alguno no
          alcanza, InsufficientStockError con la lista completa de faltantes.
        - Repuestos opcionales: se guardan como sugerencias, sin tocar stock.
        - Título, descripción y prioridad salen de la plantilla salvo que el
          llamador los envíe.
        - Notificaciones (ticket creado, stock bajo) solo después del commit.
        """
        ledger = StockLedger(self.scope)
        with transactional(self.db):
            template = self.scope.require(ServiceTemplate, template_id)
            if not template.is_active:
                raise StateConflictError("Esta plantilla está inactiva", template_id=str(template.id))
            customer = self.scope.require(Customer, data.customer_id)

            required = [dp for dp in template.default_parts if dp.required]
            optional = [dp for dp in template.default_parts if not dp.required]

            ticket_number = next_document_number(self.scope, "ticket")
            ledger.consume_many(
                [(dp.part_id, dp.quantity) for dp in required],
                reference=f"TICKET {ticket_number}"
            )

            due_date = None
            if template.estimated_duration:
                due_date = datetime.now(timezone.utc) + timedelta(minutes=template.estimated_duration)

            ticket = self.scope.add(Ticket(
                ticket_number=ticket_number,
                title=data.title or template.default_title,
                description=data.description if data.description is not None else template.default_description,
                priority=data.priority or normalize_priority(template.default_priority),
                device_type=data.device_type or "PC",
                device_model=data.device_model or "",
                customer_id=customer.id,
                service_template_id=template.id,
                assigned_to=self.scope.user_id if user_role == "technician" else None,
                created_by=self.scope.user_id,
                due_date=due_date,
                suggested_parts=self._suggestions(optional, data.optional_parts) or None
            ))

            prices = {
                part.id: part.price
                for part in self.scope.query(Part).filter(Part.id.in_([dp.part_id for dp in required]))
            } if required else {}
            for dp in required:
                ticket.part_usages.append(self.scope.stamp(PartUsage(
                    part_id=dp.part_id,
                    quantity=dp.quantity,
                    unit_price=prices[dp.part_id],
                    created_by=self.scope.user_id
                )))

        self.db.refresh(ticket)
        logger.info(
            f"Ticket {ticket.ticket_number} creado desde plantilla '{template.name}' "
            f"con {len(required)} repuestos consumidos"
        )
        notifications.notify(notifications.TICKET_CREATED, self.scope.tenant_id, {
            "ticket_id": str(ticket.id),
            "ticket_number": ticket.ticket_number,
            "title": ticket.title,
            "customer_id": str(ticket.customer_id),
        })
        notifications.notify_low_stock(self.scope.tenant_id, ledger.low_stock)
        return ticket
