"""
Tests para el módulo de Facturación

- Emisión desde tickets resueltos (mano de obra + repuestos)
- Pagos parciales sin sobrepago y paso a PAID
- Reflejo de pagos en efectivo en la caja abierta
- Cancelación y vencimiento
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from app.common.exceptions import OverpaymentError, StateConflictError
from app.modules.invoices.models import InvoiceStatus
from app.modules.invoices.schemas import InvoiceFromTicket
from app.modules.invoices.service import InvoiceService, NO_REGISTER_WARNING, scan_overdue_invoices
from app.modules.pos.models import PaymentMethod
from app.modules.pos.services import CashRegisterService
from app.modules.tickets.models import TicketStatus
from app.modules.tickets.schemas import TicketCreate
from app.modules.tickets.service import TicketService, PartUsageService


@pytest.fixture
def make_ticket(scope, make_customer, make_part):
    """Ticket con un repuesto usado, en el estado indicado"""
    def make(price="100.00", quantity=1, final_status=TicketStatus.RESOLVED, target_scope=None):
        target = target_scope or scope
        customer = make_customer(target_scope=target)
        tickets = TicketService(target)
        ticket = tickets.create_ticket(TicketCreate(customer_id=customer.id, title="Reparación de bisagra"))
        part = make_part(quantity=10, price=price, target_scope=target)
        PartUsageService(target).add_usage(ticket.id, part.id, quantity)
        path = {
            TicketStatus.OPEN: (),
            TicketStatus.RESOLVED: (TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED),
            TicketStatus.CLOSED: (TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED, TicketStatus.CLOSED),
        }[final_status]
        for status in path:
            tickets.update_status(ticket.id, status)
        return ticket
    return make


@pytest.fixture
def make_invoice(scope, make_ticket):
    def make(price="100.00", target_scope=None, **kwargs):
        target = target_scope or scope
        ticket = make_ticket(price=price, target_scope=target)
        kwargs.setdefault("tax_rate", Decimal("0"))
        return InvoiceService(target).create_invoice_from_ticket(InvoiceFromTicket(ticket_id=ticket.id, **kwargs))
    return make


# ===== EMISIÓN =====

class TestInvoiceCreation:

    def test_totals_from_ticket(self, scope, make_ticket):
        ticket = make_ticket(price="50.00", quantity=2)

        invoice = InvoiceService(scope).create_invoice_from_ticket(
            InvoiceFromTicket(ticket_id=ticket.id, discount_amount=Decimal("2.00"))
        )

        assert invoice.invoice_number == "INV-0001"
        assert invoice.status == InvoiceStatus.PENDING
        assert invoice.parts_cost == Decimal("100.00")
        assert invoice.labor_cost == Decimal("0.00")
        assert invoice.tax_amount == Decimal("12.00")
        assert invoice.total == Decimal("110.00")
        assert invoice.customer_name == "Cliente de Prueba"

    def test_open_ticket_cannot_be_invoiced(self, scope, make_ticket):
        ticket = make_ticket(final_status=TicketStatus.OPEN)

        with pytest.raises(StateConflictError):
            InvoiceService(scope).create_invoice_from_ticket(InvoiceFromTicket(ticket_id=ticket.id))

    def test_one_invoice_per_ticket(self, scope, make_ticket):
        ticket = make_ticket(final_status=TicketStatus.CLOSED)
        service = InvoiceService(scope)
        service.create_invoice_from_ticket(InvoiceFromTicket(ticket_id=ticket.id))

        with pytest.raises(StateConflictError):
            service.create_invoice_from_ticket(InvoiceFromTicket(ticket_id=ticket.id))


# ===== PAGOS =====

class TestPayments:

    def test_full_payment_then_any_payment_is_overpayment(self, scope, make_invoice):
        invoice = make_invoice(price="100.00")
        service = InvoiceService(scope)

        result = service.register_payment(invoice.id, Decimal("100.00"), PaymentMethod.CARD)

        assert result.invoice.status == InvoiceStatus.PAID
        assert result.invoice.paid_at is not None
        assert result.remaining == Decimal("0.00")
        assert result.payment.payment_number == "PAY-0001"

        with pytest.raises(OverpaymentError) as exc_info:
            service.register_payment(invoice.id, Decimal("0.01"), PaymentMethod.CARD)
        assert exc_info.value.detail["remaining"] == "0.00"
        assert len(service.list_payments(invoice.id)) == 1

    def test_partial_payments_accumulate(self, scope, make_invoice):
        invoice = make_invoice(price="100.00")
        service = InvoiceService(scope)

        first = service.register_payment(invoice.id, Decimal("30.00"), PaymentMethod.TRANSFER)
        assert first.invoice.status == InvoiceStatus.PENDING
        assert first.remaining == Decimal("70.00")

        with pytest.raises(OverpaymentError):
            service.register_payment(invoice.id, Decimal("70.01"), PaymentMethod.TRANSFER)

        service.register_payment(invoice.id, Decimal("70.00"), PaymentMethod.TRANSFER)
        detail = service.get_invoice(invoice.id)
        assert detail.status == InvoiceStatus.PAID
        assert detail.amount_paid == Decimal("100.00")
        assert detail.balance_due == Decimal("0.00")
        assert sorted(p.amount for p in detail.payments) == [Decimal("30.00"), Decimal("70.00")]

    def test_cash_payment_mirrored_in_open_register(self, scope, make_invoice):
        invoice = make_invoice(price="100.00")
        register = CashRegisterService(scope).open_register(Decimal("20.00"))

        result = InvoiceService(scope).register_payment(invoice.id, Decimal("40.00"), PaymentMethod.CASH)

        assert result.cash_mirrored is True
        assert result.warning is None
        cash = CashRegisterService(scope)
        assert cash.expected_balance(register.id) == Decimal("60.00")
        assert cash.list_transactions(register.id)[0].reference == invoice.invoice_number

    def test_cash_payment_without_register_still_succeeds(self, scope, make_invoice):
        invoice = make_invoice(price="100.00")

        result = InvoiceService(scope).register_payment(invoice.id, Decimal("40.00"), PaymentMethod.CASH)

        assert result.cash_mirrored is False
        assert result.warning == NO_REGISTER_WARNING
        assert InvoiceService(scope).get_invoice(invoice.id).amount_paid == Decimal("40.00")

    def test_card_payment_not_mirrored(self, scope, make_invoice):
        invoice = make_invoice(price="100.00")
        register = CashRegisterService(scope).open_register(Decimal("0"))

        result = InvoiceService(scope).register_payment(invoice.id, Decimal("40.00"), PaymentMethod.CARD)

        assert result.cash_mirrored is False
        assert result.warning is None
        assert CashRegisterService(scope).list_transactions(register.id) == []

    def test_payment_on_cancelled_invoice_rejected(self, scope, make_invoice):
        invoice = make_invoice()
        service = InvoiceService(scope)
        service.cancel_invoice(invoice.id, "Error de captura")

        with pytest.raises(StateConflictError):
            service.register_payment(invoice.id, Decimal("10.00"), PaymentMethod.CARD)


# ===== CANCELACIÓN Y VENCIMIENTO =====

class TestCancellation:

    def test_cancel_appends_reason_to_notes(self, scope, make_invoice):
        invoice = make_invoice(notes="Entrega en sucursal")

        cancelled = InvoiceService(scope).cancel_invoice(invoice.id, "Cliente desistió")

        assert cancelled.status == InvoiceStatus.CANCELLED
        assert cancelled.notes == "Entrega en sucursal\n\nCANCELADA: Cliente desistió"

    def test_cannot_cancel_with_payments(self, scope, make_invoice):
        invoice = make_invoice()
        service = InvoiceService(scope)
        service.register_payment(invoice.id, Decimal("10.00"), PaymentMethod.CARD)

        with pytest.raises(StateConflictError):
            service.cancel_invoice(invoice.id, "Tarde")

    def test_cannot_cancel_twice(self, scope, make_invoice):
        invoice = make_invoice()
        service = InvoiceService(scope)
        service.cancel_invoice(invoice.id, "Duplicada")

        with pytest.raises(StateConflictError):
            service.cancel_invoice(invoice.id, "Otra vez")


class TestOverdueScan:

    def test_marks_only_pending_past_due(self, scope, make_invoice):
        yesterday = date.today() - timedelta(days=1)
        overdue = make_invoice(due_date=yesterday)
        paid = make_invoice(due_date=yesterday)
        current = make_invoice(due_date=date.today())
        service = InvoiceService(scope)
        service.register_payment(paid.id, paid.total, PaymentMethod.CARD)

        assert service.mark_overdue_invoices() == 1
        assert service.get_invoice(overdue.id).status == InvoiceStatus.OVERDUE
        assert service.get_invoice(paid.id).status == InvoiceStatus.PAID
        assert service.get_invoice(current.id).status == InvoiceStatus.PENDING

        assert service.mark_overdue_invoices() == 0

    def test_overdue_invoice_can_still_be_paid(self, scope, make_invoice):
        invoice = make_invoice(due_date=date.today() - timedelta(days=5))
        service = InvoiceService(scope)
        service.mark_overdue_invoices()

        result = service.register_payment(invoice.id, invoice.total, PaymentMethod.TRANSFER)

        assert result.invoice.status == InvoiceStatus.PAID

    def test_scan_without_tenant_covers_all(self, db_session, make_invoice, other_scope):
        past = date.today() - timedelta(days=3)
        make_invoice(due_date=past)
        make_invoice(due_date=past, target_scope=other_scope)

        assert scan_overdue_invoices(db_session, date.today()) == 2


# ===== ENDPOINTS =====

class TestInvoiceEndpoints:

    def test_invoice_and_payment_flow(self, client, auth_headers, make_ticket):
        ticket = make_ticket(price="100.00")

        response = client.post("/api/v1/invoices/from-ticket", json={
            "ticket_id": str(ticket.id), "tax_rate": "0"
        }, headers=auth_headers("seller"))
        assert response.status_code == 201
        invoice_id = response.json()["id"]
        assert response.json()["total"] == "100.00"

        response = client.post(f"/api/v1/invoices/{invoice_id}/payments", json={
            "amount": "100.00", "payment_method": "CARD"
        }, headers=auth_headers("accountant"))
        assert response.status_code == 201
        assert response.json()["invoice"]["status"] == "PAID"

        response = client.post(f"/api/v1/invoices/{invoice_id}/payments", json={
            "amount": "1.00", "payment_method": "CARD"
        }, headers=auth_headers())
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "overpayment"

        response = client.get("/api/v1/invoices", params={"status": "PAID"}, headers=auth_headers())
        assert response.status_code == 200
        assert response.json()["total"] == 1

    def test_technician_cannot_register_payment(self, client, auth_headers, make_invoice):
        invoice = make_invoice()

        response = client.post(f"/api/v1/invoices/{invoice.id}/payments", json={
            "amount": "1.00", "payment_method": "CASH"
        }, headers=auth_headers("technician"))

        assert response.status_code == 403
