"""
Tests para órdenes de compra

- Recepción: ingreso de stock con movimientos IN y último costo
- Una orden se recibe una sola vez; canceladas y vacías no se reciben
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from app.common.exceptions import StateConflictError, TenantIsolationError
from app.modules.inventory.models import Part, StockMovement, StockMovementType
from app.modules.purchases.models import PurchaseOrderStatus
from app.modules.purchases.schemas import PurchaseOrderCreate, PurchaseItemCreate
from app.modules.purchases.service import PurchaseOrderService


def order_data(items, supplier="Distribuidora Central"):
    return PurchaseOrderCreate(
        supplier=supplier,
        items=[PurchaseItemCreate(part_id=part.id, quantity=quantity, unit_cost=Decimal(cost))
               for part, quantity, cost in items],
    )


class TestPurchaseOrders:

    def test_receive_adds_stock_and_updates_cost(self, scope, db_session, make_part, stock_of):
        screen = make_part(quantity=2, cost="50.00")
        battery = make_part(quantity=0, cost="20.00")
        service = PurchaseOrderService(scope)
        order = service.create_order(order_data([(screen, 5, "45.00")]))
        service.add_item(order.id, PurchaseItemCreate(part_id=battery.id, quantity=3, unit_cost=Decimal("22.50")))

        received = service.receive_order(order.id)

        assert order.order_number == "OC-000001"
        assert received.status == PurchaseOrderStatus.RECEIVED
        assert received.received_at is not None
        assert received.total_cost == Decimal("292.50")
        assert stock_of(screen.id) == 7
        assert stock_of(battery.id) == 3
        assert db_session.execute(select(Part.cost).where(Part.id == screen.id)).scalar_one() == Decimal("45.00")

        movements = scope.query(StockMovement).filter(
            StockMovement.reference == "OC OC-000001"
        ).all()
        assert sorted(m.quantity for m in movements) == [3, 5]
        assert {m.movement_type for m in movements} == {StockMovementType.IN}

    def test_order_is_received_once(self, scope, make_part, stock_of):
        part = make_part(quantity=1)
        service = PurchaseOrderService(scope)
        order = service.create_order(order_data([(part, 4, "10.00")]))
        service.receive_order(order.id)

        with pytest.raises(StateConflictError):
            service.receive_order(order.id)
        with pytest.raises(StateConflictError):
            service.add_item(order.id, PurchaseItemCreate(part_id=part.id, quantity=1, unit_cost=Decimal("1")))

        assert stock_of(part.id) == 5

    def test_cancelled_and_empty_orders_are_not_received(self, scope, make_part, stock_of):
        part = make_part(quantity=1)
        service = PurchaseOrderService(scope)
        empty = service.create_order(order_data([]))
        cancelled = service.create_order(order_data([(part, 2, "10.00")]))
        service.cancel_order(cancelled.id)

        with pytest.raises(StateConflictError):
            service.receive_order(empty.id)
        with pytest.raises(StateConflictError):
            service.receive_order(cancelled.id)

        assert stock_of(part.id) == 1

    def test_foreign_part_rejected(self, scope, other_scope, make_part):
        foreign = make_part(target_scope=other_scope)

        with pytest.raises(TenantIsolationError):
            PurchaseOrderService(scope).create_order(order_data([(foreign, 1, "1.00")]))


class TestPurchaseOrderEndpoints:

    def test_create_and_receive(self, client, auth_headers, make_part, stock_of):
        part = make_part(quantity=0)

        response = client.post("/api/v1/purchase-orders", json={
            "supplier": "Repuestos GT",
            "items": [{"part_id": str(part.id), "quantity": 6, "unit_cost": "12.00"}],
        }, headers=auth_headers("admin"))
        assert response.status_code == 201
        order_id = response.json()["id"]

        response = client.post(f"/api/v1/purchase-orders/{order_id}/receive", headers=auth_headers("admin"))
        assert response.status_code == 200
        assert response.json()["status"] == "RECEIVED"
        assert stock_of(part.id) == 6

        response = client.post(f"/api/v1/purchase-orders/{order_id}/receive", headers=auth_headers("admin"))
        assert response.status_code == 409

    def test_seller_cannot_receive(self, client, auth_headers, make_part):
        part = make_part()
        response = client.post("/api/v1/purchase-orders", json={
            "supplier": "Repuestos GT",
            "items": [{"part_id": str(part.id), "quantity": 1, "unit_cost": "1.00"}],
        }, headers=auth_headers())
        order_id = response.json()["id"]

        response = client.post(f"/api/v1/purchase-orders/{order_id}/receive", headers=auth_headers("seller"))

        assert response.status_code == 403
