"""
Tests para notas de crédito

- Devoluciones parciales: reposición de stock y tope por lo vendido
- Reembolso en efectivo como EGRESO de la caja abierta
- Cancelación: vuelve a descontar lo repuesto
- Relación con la anulación de ventas
"""

from decimal import Decimal

import pytest
from fastapi import HTTPException

from app.common.exceptions import InsufficientStockError, NoOpenRegisterError, StateConflictError
from app.modules.credit_notes.models import CreditNoteStatus
from app.modules.credit_notes.schemas import CreditNoteCreate, CreditNoteItemCreate
from app.modules.credit_notes.service import CreditNoteService
from app.modules.inventory.models import StockMovement, StockMovementType
from app.modules.pos.models import CashTransactionType, PaymentMethod, POSSaleStatus
from app.modules.pos.schemas import POSSaleCreate, POSSaleItemCreate, POSSalePaymentCreate
from app.modules.pos.services import CashRegisterService, POSSaleService
from app.modules.taxes.service import TenantSettingsService


@pytest.fixture
def register(scope):
    return CashRegisterService(scope).open_register(Decimal("500.00"))


@pytest.fixture
def no_tax(scope):
    TenantSettingsService(scope).update_tax_rate(Decimal("0"))


@pytest.fixture
def make_sale(scope, register):
    def make(items, paid, discount="0"):
        return POSSaleService(scope).create_sale(POSSaleCreate(
            items=[POSSaleItemCreate(part_id=part.id, quantity=quantity) for part, quantity in items],
            payments=[POSSalePaymentCreate(amount=Decimal(paid), payment_method=PaymentMethod.CASH)],
            discount_amount=Decimal(discount),
        ))
    return make


def return_data(sale, items, refund_method=None, reason="Producto defectuoso"):
    return CreditNoteCreate(
        pos_sale_id=sale.id,
        items=[CreditNoteItemCreate(part_id=part.id, quantity=quantity) for part, quantity in items],
        reason=reason,
        refund_method=refund_method,
    )


# ===== DEVOLUCIONES =====

class TestCreditNoteCreation:

    def test_partial_return_restores_stock(self, scope, no_tax, make_sale, make_part, stock_of):
        part = make_part(quantity=10, price="100.00")
        sale = make_sale([(part, 3)], "300.00")
        assert stock_of(part.id) == 7

        note = CreditNoteService(scope).create_credit_note(return_data(sale, [(part, 2)]))

        assert note.credit_note_number == "NC-000001"
        assert note.status == CreditNoteStatus.PENDING
        assert note.total == Decimal("200.00")
        assert note.items[0].unit_price == Decimal("100.00")
        assert stock_of(part.id) == 9
        assert POSSaleService(scope).get_sale(sale.id).status == POSSaleStatus.PARTIALLY_REFUNDED

        restores = scope.query(StockMovement).filter(
            StockMovement.movement_type == StockMovementType.RESTORE
        ).all()
        assert [(m.quantity, m.reference) for m in restores] == [(2, "DEVOLUCION NC-000001")]

    def test_returns_never_exceed_sold_quantity(self, scope, no_tax, make_sale, make_part, stock_of):
        part = make_part(quantity=10, price="100.00")
        sale = make_sale([(part, 3)], "300.00")
        service = CreditNoteService(scope)
        service.create_credit_note(return_data(sale, [(part, 2)]))

        with pytest.raises(StateConflictError) as exc_info:
            service.create_credit_note(return_data(sale, [(part, 2)]))

        assert exc_info.value.detail["available"] == 1
        assert exc_info.value.detail["requested"] == 2
        assert stock_of(part.id) == 9
        assert len(service.list_credit_notes(sale_id=sale.id)) == 1

    def test_repeated_lines_are_merged_before_checking(self, scope, no_tax, make_sale, make_part, stock_of):
        part = make_part(quantity=10, price="100.00")
        sale = make_sale([(part, 2)], "200.00")

        with pytest.raises(StateConflictError):
            CreditNoteService(scope).create_credit_note(return_data(sale, [(part, 2), (part, 1)]))

        assert stock_of(part.id) == 8

    def test_full_return_closes_sale_for_more_returns(self, scope, no_tax, make_sale, make_part):
        screen = make_part(quantity=5, price="100.00")
        cable = make_part(quantity=5, price="10.00")
        sale = make_sale([(screen, 1), (cable, 2)], "120.00")
        service = CreditNoteService(scope)

        service.create_credit_note(return_data(sale, [(screen, 1)]))
        service.create_credit_note(return_data(sale, [(cable, 2)]))

        assert POSSaleService(scope).get_sale(sale.id).status == POSSaleStatus.FULLY_REFUNDED
        with pytest.raises(StateConflictError):
            service.create_credit_note(return_data(sale, [(cable, 1)]))

    def test_part_outside_sale_rejected(self, scope, no_tax, make_sale, make_part, stock_of):
        sold = make_part(quantity=5)
        other = make_part(quantity=5)
        sale = make_sale([(sold, 1)], "100.00")

        with pytest.raises(HTTPException) as exc_info:
            CreditNoteService(scope).create_credit_note(return_data(sale, [(other, 1)]))

        assert exc_info.value.status_code == 400
        assert stock_of(other.id) == 5

    def test_uses_sale_tax_rate(self, scope, make_sale, make_part):
        part = make_part(quantity=5, price="100.00")
        sale = make_sale([(part, 2)], "224.00")
        TenantSettingsService(scope).update_tax_rate(Decimal("5"))

        note = CreditNoteService(scope).create_credit_note(return_data(sale, [(part, 1)]))

        assert note.tax_rate == Decimal("12.00")
        assert note.tax_amount == Decimal("12.00")
        assert note.total == Decimal("112.00")

    def test_credit_capped_at_sale_total(self, scope, no_tax, make_sale, make_part):
        part = make_part(quantity=5, price="100.00")
        sale = make_sale([(part, 2)], "150.00", discount="50.00")

        note = CreditNoteService(scope).create_credit_note(return_data(sale, [(part, 2)]))

        assert note.subtotal == Decimal("200.00")
        assert note.total == Decimal("150.00")

    def test_voided_sale_has_no_returns(self, scope, no_tax, make_sale, make_part):
        part = make_part(quantity=5)
        sale = make_sale([(part, 1)], "100.00")
        POSSaleService(scope).void_sale(sale.id, "Error")

        with pytest.raises(StateConflictError):
            CreditNoteService(scope).create_credit_note(return_data(sale, [(part, 1)]))


# ===== REEMBOLSOS =====

class TestRefunds:

    def test_cash_refund_is_expense_in_open_register(self, scope, no_tax, register, make_sale, make_part):
        part = make_part(quantity=5, price="100.00")
        sale = make_sale([(part, 3)], "300.00")
        cash = CashRegisterService(scope)
        assert cash.expected_balance(register.id) == Decimal("800.00")

        note = CreditNoteService(scope).create_credit_note(
            return_data(sale, [(part, 1)], refund_method=PaymentMethod.CASH)
        )

        assert note.status == CreditNoteStatus.PROCESSED
        assert note.cash_register_id == register.id
        assert cash.expected_balance(register.id) == Decimal("700.00")
        expense = [t for t in cash.list_transactions(register.id) if t.type == CashTransactionType.EXPENSE]
        assert [(t.amount, t.reference) for t in expense] == [(Decimal("100.00"), "NC-000001")]

    def test_cash_refund_needs_open_register(self, scope, no_tax, register, make_sale, make_part):
        part = make_part(quantity=5, price="100.00")
        sale = make_sale([(part, 1)], "100.00")
        service = CreditNoteService(scope)
        note = service.create_credit_note(return_data(sale, [(part, 1)]))
        CashRegisterService(scope).close_register(register.id, Decimal("600.00"))

        with pytest.raises(NoOpenRegisterError):
            service.process_refund(note.id, PaymentMethod.CASH)
        assert service.get_credit_note(note.id).status == CreditNoteStatus.PENDING

        refunded = service.process_refund(note.id, PaymentMethod.TRANSFER, "TRX-9")
        assert refunded.status == CreditNoteStatus.PROCESSED
        assert refunded.cash_register_id is None

    def test_refund_only_once(self, scope, no_tax, make_sale, make_part):
        part = make_part(quantity=5)
        sale = make_sale([(part, 1)], "100.00")
        service = CreditNoteService(scope)
        note = service.create_credit_note(return_data(sale, [(part, 1)], refund_method=PaymentMethod.CARD))

        with pytest.raises(StateConflictError):
            service.process_refund(note.id, PaymentMethod.CASH)


# ===== CANCELACIÓN =====

class TestCreditNoteCancellation:

    def test_cancel_consumes_stock_again(self, scope, no_tax, make_sale, make_part, stock_of):
        part = make_part(quantity=10, price="100.00")
        sale = make_sale([(part, 3)], "300.00")
        service = CreditNoteService(scope)
        note = service.create_credit_note(return_data(sale, [(part, 3)]))
        assert stock_of(part.id) == 10

        cancelled = service.cancel_credit_note(note.id, "Registrada por error")

        assert cancelled.status == CreditNoteStatus.CANCELLED
        assert cancelled.notes.endswith("CANCELADA: Registrada por error")
        assert stock_of(part.id) == 7
        assert POSSaleService(scope).get_sale(sale.id).status == POSSaleStatus.COMPLETED

        again = service.create_credit_note(return_data(sale, [(part, 3)]))
        assert again.credit_note_number == "NC-000002"

    def test_cancel_without_stock_keeps_note(self, scope, no_tax, make_sale, make_part, stock_of):
        part = make_part(quantity=2, price="100.00")
        sale = make_sale([(part, 2)], "200.00")
        service = CreditNoteService(scope)
        note = service.create_credit_note(return_data(sale, [(part, 2)]))
        make_sale([(part, 2)], "200.00")

        with pytest.raises(InsufficientStockError):
            service.cancel_credit_note(note.id, "Error")

        assert stock_of(part.id) == 0
        assert service.get_credit_note(note.id).status == CreditNoteStatus.PENDING

    def test_processed_note_cannot_be_cancelled(self, scope, no_tax, make_sale, make_part):
        part = make_part(quantity=5)
        sale = make_sale([(part, 1)], "100.00")
        service = CreditNoteService(scope)
        note = service.create_credit_note(return_data(sale, [(part, 1)], refund_method=PaymentMethod.CARD))

        with pytest.raises(StateConflictError):
            service.cancel_credit_note(note.id, "Tarde")

    def test_sale_with_active_returns_cannot_be_voided(self, scope, no_tax, make_sale, make_part, stock_of):
        part = make_part(quantity=10, price="100.00")
        sale = make_sale([(part, 3)], "300.00")
        service = CreditNoteService(scope)
        note = service.create_credit_note(return_data(sale, [(part, 1)]))

        with pytest.raises(StateConflictError):
            POSSaleService(scope).void_sale(sale.id, "Anulación")
        assert stock_of(part.id) == 8

        service.cancel_credit_note(note.id, "Se anulará la venta completa")
        POSSaleService(scope).void_sale(sale.id, "Anulación")
        assert stock_of(part.id) == 10


# ===== ENDPOINTS =====

class TestCreditNoteEndpoints:

    def test_return_and_refund_flow(self, client, auth_headers, no_tax, make_sale, make_part, stock_of):
        part = make_part(quantity=5, price="100.00")
        sale = make_sale([(part, 2)], "200.00")

        response = client.post("/api/v1/credit-notes", json={
            "pos_sale_id": str(sale.id),
            "items": [{"part_id": str(part.id), "quantity": 1}],
            "reason": "Pantalla rayada",
        }, headers=auth_headers("cashier"))
        assert response.status_code == 201
        note_id = response.json()["id"]
        assert response.json()["status"] == "PENDING"
        assert stock_of(part.id) == 4

        response = client.post(f"/api/v1/credit-notes/{note_id}/refund", json={
            "refund_method": "CASH"
        }, headers=auth_headers("cashier"))
        assert response.status_code == 200
        assert response.json()["status"] == "PROCESSED"

        response = client.get("/api/v1/credit-notes", params={"sale_id": str(sale.id)}, headers=auth_headers())
        assert response.status_code == 200
        assert len(response.json()) == 1

    def test_over_return_response(self, client, auth_headers, no_tax, make_sale, make_part):
        part = make_part(quantity=5)
        sale = make_sale([(part, 1)], "100.00")

        response = client.post("/api/v1/credit-notes", json={
            "pos_sale_id": str(sale.id),
            "items": [{"part_id": str(part.id), "quantity": 2}],
            "reason": "Devolución",
        }, headers=auth_headers())

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "state_conflict"

    def test_technician_cannot_cancel(self, client, auth_headers, no_tax, make_sale, make_part):
        part = make_part(quantity=5)
        sale = make_sale([(part, 1)], "100.00")
        response = client.post("/api/v1/credit-notes", json={
            "pos_sale_id": str(sale.id),
            "items": [{"part_id": str(part.id), "quantity": 1}],
            "reason": "Devolución",
        }, headers=auth_headers())
        note_id = response.json()["id"]

        response = client.post(f"/api/v1/credit-notes/{note_id}/cancel", json={
            "reason": "No"
        }, headers=auth_headers("technician"))

        assert response.status_code == 403
