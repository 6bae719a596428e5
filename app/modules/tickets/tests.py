"""
Tests para el módulo de Tickets

- Alta de tickets con numeración secuencial por empresa
- Consumo manual de repuestos (agregar, ajustar, quitar)
- Máquina de estados: transiciones válidas y reaperturas
- Cancelar repone el stock de todos los usos; cerrado o cancelado no admite cambios
"""

from decimal import Decimal

import pytest

from app.common.exceptions import InsufficientStockError, StateConflictError, TenantIsolationError
from app.modules.inventory.models import StockMovement, StockMovementType
from app.modules.tickets.models import PartUsage, TicketStatus, TicketPriority, is_valid_transition, normalize_priority
from app.modules.tickets.schemas import TicketCreate
from app.modules.tickets.service import TicketService, PartUsageService


@pytest.fixture
def customer(make_customer):
    return make_customer()


@pytest.fixture
def ticket(scope, customer):
    return TicketService(scope).create_ticket(TicketCreate(
        customer_id=customer.id,
        title="Laptop no enciende",
        device_type="Laptop",
        device_model="Dell Latitude 5420"
    ))


# ===== TICKETS =====

class TestTicketService:

    def test_sequential_numbers_per_tenant(self, scope, other_scope, customer, make_customer):
        service = TicketService(scope)
        first = service.create_ticket(TicketCreate(customer_id=customer.id, title="Uno"))
        second = service.create_ticket(TicketCreate(customer_id=customer.id, title="Dos"))

        other_customer = make_customer(target_scope=other_scope)
        other = TicketService(other_scope).create_ticket(TicketCreate(customer_id=other_customer.id, title="Otro"))

        assert first.ticket_number == "T-000001"
        assert second.ticket_number == "T-000002"
        assert other.ticket_number == "T-000001"

    def test_technician_is_auto_assigned(self, scope, customer, user_id):
        ticket = TicketService(scope).create_ticket(
            TicketCreate(customer_id=customer.id, title="Cambio de pantalla"),
            user_role="technician"
        )

        assert ticket.assigned_to == user_id

    def test_customer_of_other_tenant_rejected(self, scope, other_scope, make_customer):
        foreign = make_customer(target_scope=other_scope)

        with pytest.raises(TenantIsolationError):
            TicketService(scope).create_ticket(TicketCreate(customer_id=foreign.id, title="X"))

    @pytest.mark.parametrize("target", [TicketStatus.CLOSED, TicketStatus.RESOLVED, TicketStatus.WAITING_FOR_PARTS])
    def test_open_ticket_rejects_skipping_work(self, scope, ticket, target):
        service = TicketService(scope)

        with pytest.raises(StateConflictError) as exc_info:
            service.update_status(ticket.id, target)

        assert exc_info.value.detail["requested"] == target.value
        assert service.get_ticket(ticket.id).status == TicketStatus.OPEN

    def test_full_lifecycle_and_reopen_after_close(self, scope, ticket):
        service = TicketService(scope)
        for status in (TicketStatus.IN_PROGRESS, TicketStatus.WAITING_FOR_PARTS, TicketStatus.IN_PROGRESS,
                       TicketStatus.RESOLVED, TicketStatus.CLOSED):
            service.update_status(ticket.id, status)

        with pytest.raises(StateConflictError):
            service.update_status(ticket.id, TicketStatus.OPEN)

        reopened = service.update_status(ticket.id, TicketStatus.IN_PROGRESS)
        assert reopened.status == TicketStatus.IN_PROGRESS

    def test_cancelled_ticket_reopens_as_open_only(self, scope, ticket):
        service = TicketService(scope)
        service.update_status(ticket.id, TicketStatus.CANCELLED)

        with pytest.raises(StateConflictError):
            service.update_status(ticket.id, TicketStatus.IN_PROGRESS)

        assert service.update_status(ticket.id, TicketStatus.OPEN).status == TicketStatus.OPEN

    def test_valid_transitions_table(self):
        assert is_valid_transition(TicketStatus.RESOLVED, TicketStatus.CANCELLED)
        assert not is_valid_transition(TicketStatus.CLOSED, TicketStatus.CANCELLED)
        assert not is_valid_transition(TicketStatus.OPEN, TicketStatus.OPEN)

    @pytest.mark.parametrize("raw, expected", [
        ("Normal", TicketPriority.MEDIUM),
        ("high", TicketPriority.HIGH),
        ("desconocida", TicketPriority.MEDIUM),
        (None, TicketPriority.MEDIUM),
    ])
    def test_normalize_priority(self, raw, expected):
        assert normalize_priority(raw) == expected


# ===== USO DE REPUESTOS =====

class TestPartUsage:

    def test_add_usage_consumes_stock(self, scope, ticket, make_part, stock_of):
        part = make_part(quantity=5, price="80.00")

        usage = PartUsageService(scope).add_usage(ticket.id, part.id, 2)

        assert usage.quantity == 2
        assert usage.unit_price == Decimal("80.00")
        assert stock_of(part.id) == 3

    def test_add_usage_without_stock_creates_nothing(self, scope, ticket, make_part, stock_of):
        part = make_part(quantity=1)

        with pytest.raises(InsufficientStockError):
            PartUsageService(scope).add_usage(ticket.id, part.id, 2)

        assert stock_of(part.id) == 1
        assert scope.query(PartUsage).count() == 0

    def test_update_usage_by_delta(self, scope, ticket, make_part, stock_of):
        part = make_part(quantity=10)
        service = PartUsageService(scope)
        usage = service.add_usage(ticket.id, part.id, 2)

        service.update_usage(usage.id, 5)
        assert stock_of(part.id) == 5

        service.update_usage(usage.id, 1)
        assert stock_of(part.id) == 9

    def test_update_usage_beyond_stock_keeps_row(self, scope, ticket, make_part, stock_of):
        part = make_part(quantity=3)
        service = PartUsageService(scope)
        usage = service.add_usage(ticket.id, part.id, 2)

        with pytest.raises(InsufficientStockError):
            service.update_usage(usage.id, 10)

        assert stock_of(part.id) == 1
        assert scope.get(PartUsage, usage.id).quantity == 2

    def test_remove_usage_restores_stock(self, scope, ticket, make_part, stock_of):
        part = make_part(quantity=4)
        service = PartUsageService(scope)
        usage = service.add_usage(ticket.id, part.id, 3)

        service.remove_usage(usage.id)

        assert stock_of(part.id) == 4
        assert scope.get(PartUsage, usage.id) is None

    def test_closed_ticket_rejects_usage(self, scope, ticket, make_part, stock_of):
        part = make_part(quantity=4)
        service = PartUsageService(scope)
        usage = service.add_usage(ticket.id, part.id, 1)
        tickets = TicketService(scope)
        for status in (TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED, TicketStatus.CLOSED):
            tickets.update_status(ticket.id, status)

        with pytest.raises(StateConflictError):
            service.add_usage(ticket.id, part.id, 1)
        with pytest.raises(StateConflictError):
            service.remove_usage(usage.id)

        assert stock_of(part.id) == 3

    def test_cancel_restores_every_usage(self, scope, ticket, make_part, stock_of):
        screen = make_part(quantity=10)
        battery = make_part(quantity=5)
        service = PartUsageService(scope)
        service.add_usage(ticket.id, screen.id, 3)
        service.add_usage(ticket.id, battery.id, 2)
        assert stock_of(screen.id) == 7

        TicketService(scope).update_status(ticket.id, TicketStatus.CANCELLED)

        assert stock_of(screen.id) == 10
        assert stock_of(battery.id) == 5
        assert scope.query(PartUsage).filter(PartUsage.ticket_id == ticket.id).count() == 0
        restores = (
            scope.query(StockMovement)
            .filter(StockMovement.movement_type == StockMovementType.RESTORE)
            .all()
        )
        assert {m.reference for m in restores} == {"CANCELACION T-000001"}

        with pytest.raises(StateConflictError):
            service.add_usage(ticket.id, screen.id, 1)

    def test_reopen_after_cancel_does_not_restore_twice(self, scope, ticket, make_part, stock_of):
        part = make_part(quantity=10)
        service = PartUsageService(scope)
        service.add_usage(ticket.id, part.id, 3)
        tickets = TicketService(scope)

        tickets.update_status(ticket.id, TicketStatus.CANCELLED)
        tickets.update_status(ticket.id, TicketStatus.OPEN)
        assert stock_of(part.id) == 10

        service.add_usage(ticket.id, part.id, 4)
        tickets.update_status(ticket.id, TicketStatus.CANCELLED)

        assert stock_of(part.id) == 10


# ===== ENDPOINTS =====

class TestTicketEndpoints:

    def test_usage_flow(self, client, auth_headers, customer, make_part, stock_of):
        part = make_part(quantity=6)
        headers = auth_headers("technician")

        response = client.post("/api/v1/tickets", json={
            "customer_id": str(customer.id),
            "title": "Mantenimiento",
        }, headers=headers)
        assert response.status_code == 201
        ticket_id = response.json()["id"]

        response = client.post(f"/api/v1/tickets/{ticket_id}/parts", json={
            "part_id": str(part.id), "quantity": 2
        }, headers=headers)
        assert response.status_code == 201
        usage_id = response.json()["id"]

        response = client.patch(f"/api/v1/tickets/parts/{usage_id}", json={"quantity": 4}, headers=headers)
        assert response.status_code == 200
        assert stock_of(part.id) == 2

        response = client.get(f"/api/v1/tickets/{ticket_id}", headers=headers)
        assert response.status_code == 200
        assert response.json()["part_usages"][0]["quantity"] == 4

        response = client.delete(f"/api/v1/tickets/parts/{usage_id}", headers=headers)
        assert response.status_code == 204
        assert stock_of(part.id) == 6

    def test_insufficient_stock_response(self, client, auth_headers, ticket, make_part):
        part = make_part(quantity=1)

        response = client.post(f"/api/v1/tickets/{ticket.id}/parts", json={
            "part_id": str(part.id), "quantity": 5
        }, headers=auth_headers())

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["code"] == "insufficient_stock"
        assert detail["shortages"][0]["available"] == 1
