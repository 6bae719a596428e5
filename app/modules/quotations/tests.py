"""
Tests para cotizaciones

- Precios congelados y totales con impuesto y descuento
- Transiciones de estado
- Conversión en venta POS: precio cotizado, stock todo-o-nada, una sola vez
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.common.exceptions import (
    InsufficientPaymentError, InsufficientStockError, NoOpenRegisterError, StateConflictError,
    TenantIsolationError
)
from app.modules.pos.models import PaymentMethod, POSSale
from app.modules.pos.schemas import POSSalePaymentCreate
from app.modules.pos.services import CashRegisterService
from app.modules.quotations.models import QuotationStatus
from app.modules.quotations.schemas import QuotationCreate, QuotationItemCreate, QuotationConvert
from app.modules.quotations.service import QuotationService


def quote_data(items, discount="0", **kwargs):
    return QuotationCreate(
        items=[
            QuotationItemCreate(part_id=part.id, quantity=quantity, unit_price=Decimal(price) if price else None)
            for part, quantity, price in items
        ],
        discount_amount=Decimal(discount),
        **kwargs
    )


def payment(amount, method=PaymentMethod.CASH):
    return QuotationConvert(payments=[POSSalePaymentCreate(amount=Decimal(amount), payment_method=method)])


@pytest.fixture
def register(scope):
    return CashRegisterService(scope).open_register(Decimal("0"))


@pytest.fixture
def accepted_quotation(scope):
    def make(items, **kwargs):
        service = QuotationService(scope)
        quotation = service.create_quotation(quote_data(items, **kwargs))
        service.update_status(quotation.id, QuotationStatus.SENT)
        return service.update_status(quotation.id, QuotationStatus.ACCEPTED)
    return make


class TestQuotationCreation:

    def test_totals_use_quoted_prices(self, scope, make_part, stock_of):
        part = make_part(quantity=5, price="100.00")
        cable = make_part(quantity=5, price="10.00")

        quotation = QuotationService(scope).create_quotation(
            quote_data([(part, 2, "90.00"), (cable, 1, None)], discount="10.00")
        )

        assert quotation.quotation_number == "COT-000001"
        assert quotation.status == QuotationStatus.DRAFT
        assert quotation.subtotal == Decimal("190.00")
        assert quotation.tax_amount == Decimal("22.80")
        assert quotation.total == Decimal("202.80")
        assert {i.unit_price for i in quotation.items} == {Decimal("90.00"), Decimal("10.00")}
        assert stock_of(part.id) == 5

    def test_repeated_lines_merge(self, scope, make_part):
        part = make_part(price="50.00")

        quotation = QuotationService(scope).create_quotation(
            quote_data([(part, 1, None), (part, 2, None)], tax_rate=Decimal("0"))
        )

        assert [(i.quantity, i.total) for i in quotation.items] == [(3, Decimal("150.00"))]

    def test_foreign_part_rejected(self, scope, other_scope, make_part):
        foreign = make_part(target_scope=other_scope)

        with pytest.raises(TenantIsolationError):
            QuotationService(scope).create_quotation(quote_data([(foreign, 1, None)]))


class TestQuotationStatus:

    def test_draft_cannot_be_accepted_directly(self, scope, make_part):
        service = QuotationService(scope)
        quotation = service.create_quotation(quote_data([(make_part(), 1, None)]))

        with pytest.raises(StateConflictError) as exc_info:
            service.update_status(quotation.id, QuotationStatus.ACCEPTED)

        assert exc_info.value.detail["status"] == "DRAFT"

    def test_converted_only_through_sale(self, scope, make_part, accepted_quotation):
        quotation = accepted_quotation([(make_part(), 1, None)])

        with pytest.raises(StateConflictError):
            QuotationService(scope).update_status(quotation.id, QuotationStatus.CONVERTED)

    def test_rejected_is_final(self, scope, make_part):
        service = QuotationService(scope)
        quotation = service.create_quotation(quote_data([(make_part(), 1, None)]))
        service.update_status(quotation.id, QuotationStatus.SENT)
        service.update_status(quotation.id, QuotationStatus.REJECTED)

        with pytest.raises(StateConflictError):
            service.update_status(quotation.id, QuotationStatus.SENT)

    def test_mark_expired_only_open_quotations(self, scope, make_part, accepted_quotation):
        service = QuotationService(scope)
        draft = service.create_quotation(quote_data([(make_part(), 1, None)], valid_days=1))
        accepted = accepted_quotation([(make_part(), 1, None)], valid_days=1)

        assert service.mark_expired(datetime.now(timezone.utc) + timedelta(days=2)) == 1
        assert service.get_quotation(draft.id).status == QuotationStatus.EXPIRED
        assert service.get_quotation(accepted.id).status == QuotationStatus.ACCEPTED

    def test_only_drafts_are_deleted(self, scope, make_part):
        service = QuotationService(scope)
        quotation = service.create_quotation(quote_data([(make_part(), 1, None)]))
        service.update_status(quotation.id, QuotationStatus.SENT)

        with pytest.raises(StateConflictError):
            service.delete_quotation(quotation.id)


class TestQuotationConversion:

    def test_sale_uses_quoted_price_and_consumes_stock(
        self, scope, register, make_part, accepted_quotation, stock_of
    ):
        part = make_part(quantity=5, price="100.00")
        quotation = accepted_quotation([(part, 2, "90.00")], tax_rate=Decimal("0"))
        part.price = Decimal("150.00")
        scope.db.commit()

        sale = QuotationService(scope).convert_to_sale(quotation.id, payment("200.00"))

        assert sale.total == Decimal("180.00")
        assert sale.change_given == Decimal("20.00")
        assert sale.items[0].unit_price == Decimal("90.00")
        assert stock_of(part.id) == 3
        converted = QuotationService(scope).get_quotation(quotation.id)
        assert converted.status == QuotationStatus.CONVERTED
        assert converted.converted_sale_id == sale.id
        assert CashRegisterService(scope).expected_balance(register.id) == Decimal("180.00")

    def test_conversion_is_all_or_nothing(self, scope, register, make_part, accepted_quotation, stock_of):
        plenty = make_part(quantity=10)
        scarce = make_part(quantity=1)
        quotation = accepted_quotation([(plenty, 2, None), (scarce, 3, None)])

        with pytest.raises(InsufficientStockError):
            QuotationService(scope).convert_to_sale(quotation.id, payment("1000.00"))

        assert stock_of(plenty.id) == 10
        assert stock_of(scarce.id) == 1
        assert scope.query(POSSale).count() == 0
        assert QuotationService(scope).get_quotation(quotation.id).status == QuotationStatus.ACCEPTED

    def test_only_accepted_quotations_convert(self, scope, register, make_part, stock_of):
        part = make_part(quantity=5)
        service = QuotationService(scope)
        quotation = service.create_quotation(quote_data([(part, 1, None)]))
        service.update_status(quotation.id, QuotationStatus.SENT)

        with pytest.raises(StateConflictError):
            service.convert_to_sale(quotation.id, payment("112.00"))

        assert stock_of(part.id) == 5

    def test_converts_once(self, scope, register, make_part, accepted_quotation, stock_of):
        part = make_part(quantity=5, price="100.00")
        quotation = accepted_quotation([(part, 1, None)])
        service = QuotationService(scope)
        service.convert_to_sale(quotation.id, payment("112.00"))

        with pytest.raises(StateConflictError):
            service.convert_to_sale(quotation.id, payment("112.00"))

        assert stock_of(part.id) == 4

    def test_needs_open_register_and_full_payment(self, scope, make_part, accepted_quotation, stock_of):
        part = make_part(quantity=5, price="100.00")
        quotation = accepted_quotation([(part, 1, None)])
        service = QuotationService(scope)

        with pytest.raises(NoOpenRegisterError):
            service.convert_to_sale(quotation.id, payment("112.00"))

        CashRegisterService(scope).open_register(Decimal("0"))
        with pytest.raises(InsufficientPaymentError):
            service.convert_to_sale(quotation.id, payment("111.99"))

        assert stock_of(part.id) == 5


class TestQuotationEndpoints:

    def test_quote_accept_and_convert(self, client, auth_headers, register, make_part, stock_of):
        part = make_part(quantity=4, price="100.00")
        headers = auth_headers("seller")

        response = client.post("/api/v1/quotations", json={
            "items": [{"part_id": str(part.id), "quantity": 2}],
            "tax_rate": "0",
        }, headers=headers)
        assert response.status_code == 201
        quotation_id = response.json()["id"]
        assert response.json()["total"] == "200.00"

        for new_status in ("SENT", "ACCEPTED"):
            response = client.patch(f"/api/v1/quotations/{quotation_id}/status", json={
                "status": new_status
            }, headers=headers)
            assert response.status_code == 200

        response = client.post(f"/api/v1/quotations/{quotation_id}/convert", json={
            "payments": [{"amount": "200.00", "payment_method": "CARD"}]
        }, headers=auth_headers("cashier"))
        assert response.status_code == 201
        assert response.json()["sale_number"] == "V-000001"
        assert stock_of(part.id) == 2

        response = client.get(f"/api/v1/quotations/{quotation_id}", headers=headers)
        assert response.json()["status"] == "CONVERTED"

    def test_invalid_transition_response(self, client, auth_headers, make_part):
        part = make_part()
        response = client.post("/api/v1/quotations", json={
            "items": [{"part_id": str(part.id), "quantity": 1}],
        }, headers=auth_headers())
        quotation_id = response.json()["id"]

        response = client.patch(f"/api/v1/quotations/{quotation_id}/status", json={
            "status": "CONVERTED"
        }, headers=auth_headers())

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "state_conflict"
