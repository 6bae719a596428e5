"""
Tests para el módulo de Inventario

Cubren:
- Primitivas del StockLedger (consume, consume_many, restore, receive)
- Existencia nunca negativa, incluso con consumos concurrentes
- Bitácora de movimientos
- Alertas de stock bajo
- Endpoints /api/v1/parts
"""

import threading
from uuid import uuid4

import pytest
from fastapi import HTTPException
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.common.exceptions import InsufficientStockError, TenantIsolationError, EntityNotFoundError
from app.common.tenancy import TenantScope
from app.database.database import Base, transactional, run_with_retry
from app.modules.inventory.ledger import StockLedger
from app.modules.inventory.models import StockMovement, StockMovementType
from app.modules.inventory.schemas import PartCreate
from app.modules.inventory.service import PartService


# ===== STOCK LEDGER =====

class TestStockLedger:
    """Primitivas de consumo y reposición"""

    def test_consume_decrements_and_records_movement(self, scope, make_part, stock_of):
        part = make_part(quantity=10)

        with transactional(scope.db):
            new_quantity = StockLedger(scope).consume(part.id, 3, reference="TICKET T-000001")

        assert new_quantity == 7
        assert stock_of(part.id) == 7
        movements = scope.query(StockMovement).filter(
            StockMovement.part_id == part.id,
            StockMovement.movement_type == StockMovementType.OUT
        ).all()
        assert len(movements) == 1
        assert movements[0].quantity == 3
        assert movements[0].reference == "TICKET T-000001"

    def test_consume_more_than_available_fails_without_changes(self, scope, make_part, stock_of):
        part = make_part(quantity=2, name="Pasta térmica")

        with pytest.raises(InsufficientStockError) as exc_info:
            with transactional(scope.db):
                StockLedger(scope).consume(part.id, 3)

        error = exc_info.value
        assert error.status_code == 409
        assert error.detail["code"] == "insufficient_stock"
        assert error.shortages[0].requested == 3
        assert error.shortages[0].available == 2
        assert error.shortages[0].part_name == "Pasta térmica"
        assert stock_of(part.id) == 2

    def test_consume_exact_quantity_reaches_zero(self, scope, make_part, stock_of):
        part = make_part(quantity=4)

        with transactional(scope.db):
            StockLedger(scope).consume(part.id, 4)

        assert stock_of(part.id) == 0

    def test_consume_then_restore_returns_to_original(self, scope, make_part, stock_of):
        part = make_part(quantity=10)

        with transactional(scope.db):
            StockLedger(scope).consume(part.id, 6)
        with transactional(scope.db):
            StockLedger(scope).restore(part.id, 6)

        assert stock_of(part.id) == 10
        types = {m.movement_type for m in scope.query(StockMovement).filter(StockMovement.part_id == part.id)}
        assert StockMovementType.RESTORE in types

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity_is_rejected(self, scope, make_part, quantity):
        part = make_part(quantity=5)

        with pytest.raises(HTTPException) as exc_info:
            with transactional(scope.db):
                StockLedger(scope).consume(part.id, quantity)

        assert exc_info.value.status_code == 400

    def test_consume_many_reports_every_shortage(self, scope, make_part, stock_of):
        enough = make_part(quantity=5)
        short_a = make_part(quantity=1)
        short_b = make_part(quantity=0)

        with pytest.raises(InsufficientStockError) as exc_info:
            with transactional(scope.db):
                StockLedger(scope).consume_many([(enough.id, 2), (short_a.id, 2), (short_b.id, 1)])

        shortage_ids = {s.part_id for s in exc_info.value.shortages}
        assert shortage_ids == {short_a.id, short_b.id}
        # La transacción completa se revierte, incluido el repuesto que sí alcanzaba
        assert stock_of(enough.id) == 5
        assert stock_of(short_a.id) == 1

    def test_low_stock_alert_collected_on_threshold(self, scope, make_part):
        part = make_part(quantity=5, min_stock=3)
        ledger = StockLedger(scope)

        with transactional(scope.db):
            ledger.consume(part.id, 2)

        assert len(ledger.low_stock) == 1
        assert ledger.low_stock[0].as_payload()["quantity"] == 3

    def test_no_alert_above_threshold(self, scope, make_part):
        part = make_part(quantity=10, min_stock=3)
        ledger = StockLedger(scope)

        with transactional(scope.db):
            ledger.consume(part.id, 2)

        assert ledger.low_stock == []

    def test_consume_part_of_other_tenant_is_rejected(self, scope, other_scope, make_part, stock_of):
        foreign = make_part(quantity=10, target_scope=other_scope)

        with pytest.raises(TenantIsolationError):
            with transactional(scope.db):
                StockLedger(scope).consume(foreign.id, 1)

        assert stock_of(foreign.id) == 10

    def test_restore_unknown_part_is_not_found(self, scope):
        with pytest.raises(EntityNotFoundError):
            with transactional(scope.db):
                StockLedger(scope).restore(uuid4(), 1)


# ===== CONCURRENCIA =====

class TestConcurrentConsumption:
    """Dos consumos simultáneos de la última unidad: exactamente uno gana"""

    def test_last_unit_is_sold_once(self, tmp_path, tenant_id, user_id):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'stock.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        Base.metadata.create_all(bind=engine)
        factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

        setup = factory()
        part = PartService(TenantScope(setup, tenant_id, user_id)).create_part(
            PartCreate(name="Disco SSD", sku="SSD-1", quantity=1, price="500.00")
        )
        part_id = part.id
        setup.close()

        barrier = threading.Barrier(2)
        results = []
        lock = threading.Lock()

        def consume_once(scope):
            with transactional(scope.db):
                StockLedger(scope).consume(part_id, 1, reference="CONCURRENTE")

        def worker():
            session = factory()
            scope = TenantScope(session, tenant_id, user_id)
            try:
                barrier.wait()
                run_with_retry(lambda: consume_once(scope), max_retries=20)
                outcome = "ok"
            except InsufficientStockError:
                outcome = "insufficient"
            finally:
                session.close()
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        assert sorted(results) == ["insufficient", "ok"]

        check = factory()
        assert PartService(TenantScope(check, tenant_id)).get_part(part_id).quantity == 0
        check.close()
        engine.dispose()


# ===== SERVICIO =====

class TestPartService:

    def test_initial_stock_is_an_in_movement(self, scope, make_part):
        part = make_part(quantity=8)

        movements = PartService(scope).list_movements(part.id)
        assert len(movements) == 1
        assert movements[0].movement_type == StockMovementType.IN
        assert movements[0].reference == "STOCK INICIAL"

    def test_duplicate_sku_conflict(self, scope, make_part):
        make_part(sku="RAM-8GB")

        with pytest.raises(HTTPException) as exc_info:
            make_part(sku="RAM-8GB")

        assert exc_info.value.status_code == 409

    def test_same_sku_allowed_in_other_tenant(self, scope, other_scope, make_part):
        make_part(sku="RAM-8GB")
        other = make_part(sku="RAM-8GB", target_scope=other_scope)

        assert other.tenant_id == other_scope.tenant_id

    def test_receive_stock(self, scope, make_part):
        part = make_part(quantity=1)

        updated = PartService(scope).receive_stock(part.id, 4, reference="COMPRA 001")

        assert updated.quantity == 5

    def test_low_stock_listing(self, scope, make_part):
        low = make_part(quantity=1, min_stock=2)
        make_part(quantity=10, min_stock=2)

        listed = PartService(scope).list_low_stock()

        assert [p.id for p in listed] == [low.id]


# ===== ENDPOINTS =====

class TestPartsEndpoints:

    def test_create_and_get_part(self, client, auth_headers):
        response = client.post("/api/v1/parts", json={
            "name": "Batería laptop",
            "sku": "BAT-01",
            "quantity": 3,
            "min_stock": 1,
            "price": "350.00"
        }, headers=auth_headers())

        assert response.status_code == 201
        data = response.json()
        assert data["quantity"] == 3
        assert data["is_low_stock"] is False

        response = client.get(f"/api/v1/parts/{data['id']}", headers=auth_headers("viewer"))
        assert response.status_code == 200
        assert response.json()["sku"] == "BAT-01"

    def test_create_requires_admin_role(self, client, auth_headers):
        response = client.post("/api/v1/parts", json={
            "name": "Cable", "sku": "CAB-1", "price": "10.00"
        }, headers=auth_headers("technician"))

        assert response.status_code == 403

    def test_requires_token(self, client):
        response = client.get("/api/v1/parts")

        assert response.status_code in (401, 403)

    def test_part_of_other_tenant_is_forbidden(self, client, auth_headers, make_part, other_scope, other_tenant_id):
        foreign = make_part(target_scope=other_scope)

        response = client.get(f"/api/v1/parts/{foreign.id}", headers=auth_headers())
        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "tenant_isolation"

        response = client.get(f"/api/v1/parts/{foreign.id}", headers=auth_headers(tenant=other_tenant_id))
        assert response.status_code == 200

    def test_receive_and_movements(self, client, auth_headers, make_part):
        part = make_part(quantity=0)

        response = client.post(
            f"/api/v1/parts/{part.id}/receive",
            json={"quantity": 5, "reference": "COMPRA 77"},
            headers=auth_headers()
        )
        assert response.status_code == 200
        assert response.json()["quantity"] == 5

        response = client.get(f"/api/v1/parts/{part.id}/movements", headers=auth_headers())
        assert response.status_code == 200
        assert [m["reference"] for m in response.json()] == ["COMPRA 77"]
