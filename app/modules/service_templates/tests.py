"""
Tests para el módulo de Plantillas de Servicio

- Instanciación todo-o-nada con reporte de todos los faltantes
- Repuestos opcionales como sugerencias, nunca consumidos
- Overrides de título / prioridad y fecha compromiso
"""

from decimal import Decimal

import pytest
from fastapi import HTTPException

from app.common.exceptions import InsufficientStockError, StateConflictError
from app.modules.service_templates.schemas import (
    ServiceTemplateCreate, ServiceTemplateUpdate, DefaultPartCreate, TicketFromTemplateCreate
)
from app.modules.service_templates.service import ServiceTemplateService
from app.modules.tickets.models import Ticket, TicketPriority


@pytest.fixture
def customer(make_customer):
    return make_customer()


@pytest.fixture
def build_template(scope):
    def build(parts, **overrides):
        data = dict(
            name="Mantenimiento preventivo",
            default_title="Mantenimiento preventivo laptop",
            default_priority="Normal",
            estimated_duration=120,
            labor_cost=Decimal("150.00"),
            default_parts=[
                DefaultPartCreate(part_id=part.id, quantity=quantity, required=required)
                for part, quantity, required in parts
            ],
        )
        data.update(overrides)
        return ServiceTemplateService(scope).create_template(ServiceTemplateCreate(**data))
    return build


class TestTemplateInstantiation:

    def test_consumes_required_parts(self, scope, customer, make_part, build_template, stock_of):
        paste = make_part(quantity=5, price="25.00")
        fan = make_part(quantity=3, price="90.00")
        template = build_template([(paste, 1, True), (fan, 2, True)])

        ticket = ServiceTemplateService(scope).create_ticket_from_template(
            template.id, TicketFromTemplateCreate(customer_id=customer.id, device_model="HP 240 G8")
        )

        assert stock_of(paste.id) == 4
        assert stock_of(fan.id) == 1
        assert ticket.title == "Mantenimiento preventivo laptop"
        assert ticket.priority == TicketPriority.MEDIUM
        assert ticket.service_template_id == template.id
        assert ticket.due_date is not None
        assert sorted(u.quantity for u in ticket.part_usages) == [1, 2]
        assert {u.unit_price for u in ticket.part_usages} == {Decimal("25.00"), Decimal("90.00")}

    def test_all_or_nothing_reports_every_shortage(self, scope, customer, make_part, build_template, stock_of):
        ok = make_part(quantity=10)
        short_a = make_part(quantity=1)
        short_b = make_part(quantity=0)
        template = build_template([(ok, 2, True), (short_a, 2, True), (short_b, 1, True)])

        with pytest.raises(InsufficientStockError) as exc_info:
            ServiceTemplateService(scope).create_ticket_from_template(
                template.id, TicketFromTemplateCreate(customer_id=customer.id)
            )

        assert {s.part_id for s in exc_info.value.shortages} == {short_a.id, short_b.id}
        assert stock_of(ok.id) == 10
        assert stock_of(short_a.id) == 1
        assert scope.query(Ticket).count() == 0

    def test_failed_instantiation_does_not_burn_ticket_number(self, scope, customer, make_part, build_template):
        empty = make_part(quantity=0)
        stocked = make_part(quantity=5)
        failing = build_template([(empty, 1, True)])
        working = build_template([(stocked, 1, True)], name="Limpieza")
        service = ServiceTemplateService(scope)

        with pytest.raises(InsufficientStockError):
            service.create_ticket_from_template(failing.id, TicketFromTemplateCreate(customer_id=customer.id))
        ticket = service.create_ticket_from_template(working.id, TicketFromTemplateCreate(customer_id=customer.id))

        assert ticket.ticket_number == "T-000001"

    def test_optional_parts_are_suggested_not_consumed(self, scope, customer, make_part, build_template, stock_of):
        required = make_part(quantity=5)
        optional = make_part(quantity=2, name="Teclado")
        template = build_template([(required, 1, True), (optional, 1, False)])

        ticket = ServiceTemplateService(scope).create_ticket_from_template(
            template.id, TicketFromTemplateCreate(customer_id=customer.id)
        )

        assert stock_of(optional.id) == 2
        assert len(ticket.part_usages) == 1
        assert ticket.suggested_parts == [{
            "part_id": str(optional.id),
            "part_name": "Teclado",
            "quantity": 1,
            "available": 2,
        }]

    def test_unknown_optional_selection_rejected(self, scope, customer, make_part, build_template, stock_of):
        required = make_part(quantity=5)
        outsider = make_part(quantity=5)
        template = build_template([(required, 1, True)])

        with pytest.raises(HTTPException) as exc_info:
            ServiceTemplateService(scope).create_ticket_from_template(
                template.id,
                TicketFromTemplateCreate(customer_id=customer.id, optional_parts=[outsider.id])
            )

        assert exc_info.value.status_code == 400
        assert stock_of(required.id) == 5

    def test_overrides_take_precedence(self, scope, customer, make_part, build_template):
        template = build_template([(make_part(quantity=5), 1, True)])

        ticket = ServiceTemplateService(scope).create_ticket_from_template(
            template.id,
            TicketFromTemplateCreate(customer_id=customer.id, title="Urgente: equipo de gerencia", priority="URGENT")
        )

        assert ticket.title == "Urgente: equipo de gerencia"
        assert ticket.priority == TicketPriority.URGENT

    def test_inactive_template_rejected(self, scope, customer, make_part, build_template, stock_of):
        part = make_part(quantity=5)
        template = build_template([(part, 1, True)])
        service = ServiceTemplateService(scope)
        service.update_template(template.id, ServiceTemplateUpdate(is_active=False))

        with pytest.raises(StateConflictError):
            service.create_ticket_from_template(template.id, TicketFromTemplateCreate(customer_id=customer.id))

        assert stock_of(part.id) == 5


class TestTemplateManagement:

    def test_duplicate_default_part_rejected(self, scope, make_part, build_template):
        part = make_part()
        template = build_template([(part, 1, True)])

        with pytest.raises(HTTPException) as exc_info:
            ServiceTemplateService(scope).add_default_part(template.id, DefaultPartCreate(part_id=part.id))

        assert exc_info.value.status_code == 409

    def test_duplicate_name_rejected(self, build_template):
        build_template([])

        with pytest.raises(HTTPException) as exc_info:
            build_template([])

        assert exc_info.value.status_code == 409

    def test_remove_default_part(self, scope, make_part, build_template):
        keep = make_part()
        drop = make_part()
        template = build_template([(keep, 1, True), (drop, 1, False)])

        updated = ServiceTemplateService(scope).remove_default_part(template.id, drop.id)

        assert [dp.part_id for dp in updated.default_parts] == [keep.id]


class TestTemplateEndpoints:

    def test_create_and_instantiate(self, client, auth_headers, customer, make_part, stock_of):
        part = make_part(quantity=2)
        headers = auth_headers()

        response = client.post("/api/v1/service-templates", json={
            "name": "Formateo",
            "default_title": "Formateo e instalación de Windows",
            "labor_cost": "200.00",
            "default_parts": [{"part_id": str(part.id), "quantity": 1}]
        }, headers=headers)
        assert response.status_code == 201
        template_id = response.json()["id"]

        response = client.post(f"/api/v1/service-templates/{template_id}/tickets", json={
            "customer_id": str(customer.id)
        }, headers=auth_headers("technician"))
        assert response.status_code == 201
        assert len(response.json()["part_usages"]) == 1
        assert stock_of(part.id) == 1

        response = client.get("/api/v1/service-templates", headers=headers)
        assert [t["name"] for t in response.json()] == ["Formateo"]
