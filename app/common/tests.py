"""
Tests de la infraestructura compartida: transacciones, reintentos,
aislamiento por tenant y numeración de documentos.
"""

import pytest
from fastapi import status
from sqlalchemy import func
from sqlalchemy.exc import OperationalError

from app.common.exceptions import (
    EntityNotFoundError, InternalServiceError, StateConflictError, TenantIsolationError,
    TransientTransactionError
)
from app.common.sequences import next_document_number
from app.core.config import settings
from app.database.database import run_with_retry, transactional
from app.modules.customers.models import Customer
from app.modules.inventory.models import Part


class DriverError(Exception):
    def __init__(self, message, pgcode=None):
        super().__init__(message)
        self.pgcode = pgcode


def driver_failure(message, pgcode=None):
    return OperationalError("UPDATE parts ...", {}, DriverError(message, pgcode))


@pytest.fixture
def no_backoff(monkeypatch):
    monkeypatch.setattr(settings, "TRANSACTION_RETRY_BACKOFF", 0)


class TestTransactional:

    def test_serialization_failure_is_transient(self, db_session):
        with pytest.raises(TransientTransactionError) as exc_info:
            with transactional(db_session):
                raise driver_failure("could not serialize access", pgcode="40001")

        assert exc_info.value.status_code == status.HTTP_503_SERVICE_UNAVAILABLE

    def test_sqlite_lock_is_transient(self, db_session):
        with pytest.raises(TransientTransactionError):
            with transactional(db_session):
                raise driver_failure("database is locked")

    def test_other_driver_errors_are_internal(self, db_session):
        with pytest.raises(InternalServiceError):
            with transactional(db_session):
                raise driver_failure("disk full")

    def test_unexpected_errors_are_internal(self, db_session):
        with pytest.raises(InternalServiceError) as exc_info:
            with transactional(db_session):
                raise ValueError("boom")

        assert exc_info.value.detail["code"] == "internal_error"

    def test_domain_errors_pass_through_and_roll_back(self, scope):
        with pytest.raises(StateConflictError):
            with transactional(scope.db):
                scope.add(Customer(name="Temporal"))
                scope.db.flush()
                raise StateConflictError("conflicto")

        assert scope.query(Customer).count() == 0


class TestRunWithRetry:

    def test_retries_transient_then_succeeds(self, no_backoff):
        attempts = []

        def operation():
            attempts.append(1)
            if len(attempts) < 3:
                raise TransientTransactionError()
            return "ok"

        assert run_with_retry(operation, max_retries=3) == "ok"
        assert len(attempts) == 3

    def test_gives_up_after_max_retries(self, no_backoff):
        attempts = []

        def operation():
            attempts.append(1)
            raise TransientTransactionError()

        with pytest.raises(TransientTransactionError):
            run_with_retry(operation, max_retries=2)
        assert len(attempts) == 3

    def test_business_errors_are_never_retried(self, no_backoff):
        attempts = []

        def operation():
            attempts.append(1)
            raise StateConflictError("no")

        with pytest.raises(StateConflictError):
            run_with_retry(operation, max_retries=5)
        assert len(attempts) == 1


class TestTenantScope:

    def test_require_distinguishes_foreign_from_missing(self, scope, other_scope, make_customer):
        foreign = make_customer(target_scope=other_scope)
        foreign_id = foreign.id

        with pytest.raises(TenantIsolationError) as exc_info:
            scope.require(Customer, foreign_id)
        assert exc_info.value.status_code == status.HTTP_403_FORBIDDEN

        scope.db.delete(foreign)
        scope.db.commit()
        with pytest.raises(EntityNotFoundError):
            scope.require(Customer, foreign_id)

    def test_query_only_sees_own_tenant(self, scope, other_scope, make_customer):
        make_customer(name="Propio")
        make_customer(name="Ajeno", target_scope=other_scope)

        assert [c.name for c in scope.query(Customer)] == ["Propio"]

    def test_core_select_only_sees_own_tenant(self, scope, other_scope, make_customer):
        make_customer(name="Propio")
        make_customer(name="Ajeno", target_scope=other_scope)

        names = scope.db.execute(scope.select(Customer, Customer.name)).scalars().all()
        counted = scope.db.execute(scope.select(Customer, func.count(Customer.id))).scalar()

        assert names == ["Propio"]
        assert counted == 1

    def test_core_update_never_touches_other_tenant(self, scope, other_scope, make_part, stock_of):
        own = make_part(quantity=5)
        foreign = make_part(quantity=5, target_scope=other_scope)

        with transactional(scope.db):
            result = scope.db.execute(
                scope.update(Part)
                .where(Part.id.in_([own.id, foreign.id]))
                .values(quantity=0)
                .execution_options(synchronize_session=False)
            )

        assert result.rowcount == 1
        assert stock_of(own.id) == 0
        assert stock_of(foreign.id) == 5

    def test_add_and_stamp_assign_tenant(self, scope, tenant_id):
        customer = Customer(name="Sin tenant", nit="C/F")

        assert scope.stamp(customer).tenant_id == tenant_id
        assert customer not in scope.db
        assert scope.add(customer) in scope.db


class TestDocumentNumbers:

    @pytest.mark.parametrize("document_type, first, second", [
        ("ticket", "T-000001", "T-000002"),
        ("pos_sale", "V-000001", "V-000002"),
        ("invoice", "INV-0001", "INV-0002"),
        ("payment", "PAY-0001", "PAY-0002"),
        ("credit_note", "NC-000001", "NC-000002"),
        ("quotation", "COT-000001", "COT-000002"),
        ("purchase_order", "OC-000001", "OC-000002"),
    ])
    def test_formats(self, scope, document_type, first, second):
        with transactional(scope.db):
            assert next_document_number(scope, document_type) == first
        with transactional(scope.db):
            assert next_document_number(scope, document_type) == second

    def test_rolled_back_number_is_reused(self, scope):
        with pytest.raises(StateConflictError):
            with transactional(scope.db):
                next_document_number(scope, "invoice")
                raise StateConflictError("abortada")

        with transactional(scope.db):
            assert next_document_number(scope, "invoice") == "INV-0001"


class TestHttpLayer:

    def test_health_is_public(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_api_responses_carry_request_id(self, client, auth_headers):
        response = client.get("/api/v1/parts", headers={**auth_headers(), "X-Request-ID": "abc123"})

        assert response.headers["X-Request-ID"] == "abc123"
        assert response.headers["Cache-Control"] == "no-store"
        assert response.headers["X-Content-Type-Options"] == "nosniff"
