"""
Tests para el módulo POS

Cubren:
- Ventas POS: stock todo-o-nada, pagos, cambio, descuento, impuesto
- Anulaciones: reposición exacta y egreso compensatorio
- Caja registradora: una sola abierta, saldo esperado desde el libro,
  arqueo al cierre e inmutabilidad de cajas cerradas
- Endpoints /api/v1/pos y /api/v1/cash-registers
"""

from decimal import Decimal

import pytest

from app.common.exceptions import (
    InsufficientPaymentError, InsufficientStockError, NoOpenRegisterError,
    RegisterAlreadyOpenError, StateConflictError
)
from app.modules.pos.models import CashTransaction, CashTransactionType, PaymentMethod, POSSale, POSSaleStatus
from app.modules.pos.schemas import POSSaleCreate, POSSaleItemCreate, POSSalePaymentCreate
from app.modules.pos.services import CashRegisterService, POSSaleService
from app.modules.taxes.service import TenantSettingsService
from app.modules.tickets.schemas import TicketCreate
from app.modules.tickets.service import TicketService, PartUsageService


def sale_data(items, paid, method=PaymentMethod.CASH, discount="0"):
    return POSSaleCreate(
        items=[POSSaleItemCreate(part_id=part.id, quantity=quantity) for part, quantity in items],
        payments=[POSSalePaymentCreate(amount=Decimal(paid), payment_method=method)],
        discount_amount=Decimal(discount),
    )


@pytest.fixture
def register(scope):
    return CashRegisterService(scope).open_register(Decimal("500.00"))


@pytest.fixture
def no_tax(scope):
    TenantSettingsService(scope).update_tax_rate(Decimal("0"))


# ===== VENTAS =====

class TestPOSSale:

    def test_sale_void_roundtrip_restores_stock(self, scope, register, make_part, stock_of):
        part = make_part(quantity=10, price="100.00")
        service = POSSaleService(scope)

        first = service.create_sale(sale_data([(part, 2)], "224.00"))
        assert stock_of(part.id) == 8
        second = service.create_sale(sale_data([(part, 3)], "336.00"))
        assert stock_of(part.id) == 5

        service.void_sale(second.id, "Cliente devolvió el equipo")
        assert stock_of(part.id) == 8
        service.void_sale(first.id, "Error de cobro")
        assert stock_of(part.id) == 10

        assert CashRegisterService(scope).expected_balance(register.id) == Decimal("500.00")

    def test_usage_sale_and_void_share_one_stock(self, scope, register, make_part, make_customer, stock_of):
        part = make_part(quantity=10, price="100.00")
        ticket = TicketService(scope).create_ticket(
            TicketCreate(customer_id=make_customer().id, title="Cambio de teclado")
        )
        usages = PartUsageService(scope)

        usage = usages.add_usage(ticket.id, part.id, 2)
        assert stock_of(part.id) == 8

        sale = POSSaleService(scope).create_sale(sale_data([(part, 3)], "336.00"))
        assert stock_of(part.id) == 5

        POSSaleService(scope).void_sale(sale.id, "Devolución")
        assert stock_of(part.id) == 8

        usages.remove_usage(usage.id)
        assert stock_of(part.id) == 10

    def test_totals_use_half_up_tax_and_discount_after_tax(self, scope, register, make_part):
        part = make_part(quantity=5, price="100.00")

        sale = POSSaleService(scope).create_sale(sale_data([(part, 2)], "300.00", discount="20.00"))

        assert sale.subtotal == Decimal("200.00")
        assert sale.tax_amount == Decimal("24.00")
        assert sale.total == Decimal("204.00")
        assert sale.change_given == Decimal("96.00")
        assert sale.sale_number == "V-000001"

    def test_repeated_lines_are_merged(self, scope, register, make_part, stock_of):
        part = make_part(quantity=5, price="10.00")

        sale = POSSaleService(scope).create_sale(sale_data([(part, 1), (part, 2)], "100.00"))

        assert len(sale.items) == 1
        assert sale.items[0].quantity == 3
        assert stock_of(part.id) == 2

    def test_insufficient_payment_changes_nothing(self, scope, register, make_part, stock_of):
        part = make_part(quantity=5, price="100.00")

        with pytest.raises(InsufficientPaymentError) as exc_info:
            POSSaleService(scope).create_sale(sale_data([(part, 1)], "50.00"))

        assert exc_info.value.detail["total"] == "112.00"
        assert stock_of(part.id) == 5
        assert scope.query(POSSale).count() == 0
        assert scope.query(CashTransaction).count() == 0

    def test_insufficient_stock_aborts_whole_sale(self, scope, register, make_part, stock_of):
        plenty = make_part(quantity=10, price="10.00")
        scarce = make_part(quantity=1, price="10.00")

        with pytest.raises(InsufficientStockError):
            POSSaleService(scope).create_sale(sale_data([(plenty, 2), (scarce, 2)], "100.00"))

        assert stock_of(plenty.id) == 10
        assert stock_of(scarce.id) == 1
        assert scope.query(CashTransaction).count() == 0

    def test_sale_requires_open_register(self, scope, make_part, stock_of):
        part = make_part(quantity=5)

        with pytest.raises(NoOpenRegisterError):
            POSSaleService(scope).create_sale(sale_data([(part, 1)], "500.00"))

        assert stock_of(part.id) == 5

    def test_void_twice_is_state_conflict(self, scope, register, make_part, stock_of):
        part = make_part(quantity=5, price="10.00")
        service = POSSaleService(scope)
        sale = service.create_sale(sale_data([(part, 2)], "50.00"))
        service.void_sale(sale.id, "Anulación")

        with pytest.raises(StateConflictError):
            service.void_sale(sale.id, "Otra vez")

        assert stock_of(part.id) == 5
        expenses = scope.query(CashTransaction).filter(CashTransaction.type == CashTransactionType.EXPENSE).count()
        assert expenses == 1

    def test_void_without_open_register_restores_nothing(self, scope, register, make_part, stock_of):
        part = make_part(quantity=5, price="10.00")
        service = POSSaleService(scope)
        sale = service.create_sale(sale_data([(part, 2)], "50.00"))
        CashRegisterService(scope).close_register(register.id, Decimal("522.40"))

        with pytest.raises(NoOpenRegisterError):
            service.void_sale(sale.id, "Sin caja")

        assert stock_of(part.id) == 3
        assert service.get_sale(sale.id).status == POSSaleStatus.COMPLETED

    def test_sales_summary_excludes_voided(self, scope, register, make_part, no_tax):
        part = make_part(quantity=10, price="10.00")
        service = POSSaleService(scope)
        service.create_sale(sale_data([(part, 1)], "10.00"))
        voided = service.create_sale(sale_data([(part, 2)], "20.00", method=PaymentMethod.CARD))
        service.void_sale(voided.id, "Devolución")

        summary = service.sales_summary()

        assert summary.sales_count == 1
        assert summary.total_sales == Decimal("10.00")
        assert summary.by_payment_method == {"CASH": Decimal("10.00")}


# ===== CAJA =====

class TestCashRegister:

    def test_expected_balance_from_ledger(self, scope, register, make_part, no_tax):
        part = make_part(quantity=5, price="100.00")
        cash = CashRegisterService(scope)

        POSSaleService(scope).create_sale(sale_data([(part, 1)], "100.00"))
        assert cash.expected_balance(register.id) == Decimal("600.00")

        cash.record_transaction(register.id, CashTransactionType.WITHDRAWAL, Decimal("50.00"), "Depósito bancario")
        assert cash.expected_balance(register.id) == Decimal("550.00")

        summary = cash.register_summary(register.id)
        assert summary.total_income == Decimal("100.00")
        assert summary.total_withdrawal == Decimal("50.00")
        assert summary.transaction_count == 2

    def test_second_open_rejected(self, scope, register):
        with pytest.raises(RegisterAlreadyOpenError):
            CashRegisterService(scope).open_register(Decimal("100.00"))

    def test_other_tenant_can_open_its_own(self, register, other_scope):
        other = CashRegisterService(other_scope).open_register(Decimal("0"))

        assert other.is_open is True

    def test_unique_index_blocks_concurrent_open(self, scope, register, monkeypatch):
        # Simula la carrera: la verificación previa no ve la caja ya abierta
        monkeypatch.setattr(CashRegisterService, "get_open_register", lambda self, lock=False: None)

        with pytest.raises(RegisterAlreadyOpenError):
            CashRegisterService(scope).open_register(Decimal("100.00"))

    def test_close_records_discrepancy(self, scope, register):
        cash = CashRegisterService(scope)
        cash.record_transaction(register.id, CashTransactionType.INCOME, Decimal("100.00"), "Ingreso")
        cash.record_transaction(register.id, CashTransactionType.EXPENSE, Decimal("30.00"), "Compra de café")

        closed = cash.close_register(register.id, Decimal("560.00"))

        assert closed.is_open is False
        assert closed.expected_balance == Decimal("570.00")
        assert closed.discrepancy == Decimal("-10.00")

    def test_closed_register_is_immutable(self, scope, register):
        cash = CashRegisterService(scope)
        cash.close_register(register.id, Decimal("500.00"))

        with pytest.raises(StateConflictError):
            cash.record_transaction(register.id, CashTransactionType.INCOME, Decimal("10.00"), "Tarde")
        with pytest.raises(StateConflictError):
            cash.close_register(register.id, Decimal("500.00"))

        reopened = cash.open_register(Decimal("500.00"))
        assert reopened.id != register.id


# ===== ENDPOINTS =====

class TestPOSEndpoints:

    def test_sale_and_void_flow(self, client, auth_headers, make_part, stock_of):
        part = make_part(quantity=4, price="50.00")
        cashier = auth_headers("cashier")

        response = client.post("/api/v1/cash-registers/open", json={"opening_balance": "200.00"}, headers=cashier)
        assert response.status_code == 201
        register_id = response.json()["id"]

        response = client.post("/api/v1/pos/sales", json={
            "items": [{"part_id": str(part.id), "quantity": 2}],
            "payments": [{"amount": "112.00", "payment_method": "CASH"}]
        }, headers=cashier)
        assert response.status_code == 201
        sale = response.json()
        assert sale["total"] == "112.00"
        assert stock_of(part.id) == 2

        response = client.post(f"/api/v1/pos/sales/{sale['id']}/void", json={"reason": "Devolución"}, headers=auth_headers())
        assert response.status_code == 200
        assert response.json()["status"] == "VOIDED"
        assert stock_of(part.id) == 4

        response = client.get(f"/api/v1/cash-registers/{register_id}/summary", headers=cashier)
        assert response.status_code == 200
        assert response.json()["expected_balance"] == "200.00"

    def test_double_open_conflict(self, client, auth_headers):
        headers = auth_headers()
        client.post("/api/v1/cash-registers/open", json={"opening_balance": "0"}, headers=headers)

        response = client.post("/api/v1/cash-registers/open", json={"opening_balance": "0"}, headers=headers)

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "register_already_open"

    def test_insufficient_payment_response(self, client, auth_headers, make_part):
        part = make_part(quantity=4, price="50.00")
        headers = auth_headers()
        client.post("/api/v1/cash-registers/open", json={"opening_balance": "0"}, headers=headers)

        response = client.post("/api/v1/pos/sales", json={
            "items": [{"part_id": str(part.id), "quantity": 1}],
            "payments": [{"amount": "10.00", "payment_method": "CASH"}]
        }, headers=headers)

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "insufficient_payment"
