"""
Tests para notificaciones posteriores al commit
"""

from decimal import Decimal

import pytest

from app.core.config import settings
from app.modules.notifications import service as notifications
from app.modules.notifications import tasks
from app.modules.notifications.models import Notification
from app.modules.pos.models import PaymentMethod
from app.modules.pos.schemas import POSSaleCreate, POSSaleItemCreate, POSSalePaymentCreate
from app.modules.pos.services import CashRegisterService, POSSaleService


class BrokenBroker:
    def delay(self, *args, **kwargs):
        raise ConnectionError("redis no disponible")


class RecordingBroker:
    def __init__(self):
        self.calls = []

    def delay(self, *args, **kwargs):
        self.calls.append(args)


@pytest.fixture
def enabled(monkeypatch):
    monkeypatch.setattr(settings, "NOTIFICATIONS_ENABLED", True)


class TestNotify:

    def test_disabled_returns_false(self, tenant_id):
        assert notifications.notify(notifications.TICKET_CREATED, tenant_id, {}) is False

    def test_dispatch_failure_is_logged_not_raised(self, enabled, monkeypatch, tenant_id, caplog):
        monkeypatch.setattr(notifications, "deliver_notification", BrokenBroker())

        assert notifications.notify(notifications.INVOICE_PAID, tenant_id, {"x": 1}) is False
        assert "invoice.paid" in caplog.text

    def test_dispatch_enqueues_task(self, enabled, monkeypatch, tenant_id):
        broker = RecordingBroker()
        monkeypatch.setattr(notifications, "deliver_notification", broker)

        assert notifications.notify(notifications.TICKET_CREATED, tenant_id, {"ticket_number": "T-000001"}) is True
        assert broker.calls == [(str(tenant_id), "ticket.created", {"ticket_number": "T-000001"})]

    def test_failed_notification_does_not_undo_sale(self, enabled, monkeypatch, scope, make_part, stock_of):
        monkeypatch.setattr(notifications, "deliver_notification", BrokenBroker())
        part = make_part(quantity=3, price="10.00", min_stock=5)
        CashRegisterService(scope).open_register(Decimal("0"))

        sale = POSSaleService(scope).create_sale(POSSaleCreate(
            items=[POSSaleItemCreate(part_id=part.id, quantity=1)],
            payments=[POSSalePaymentCreate(amount=Decimal("20.00"), payment_method=PaymentMethod.CASH)],
        ))

        assert sale.sale_number == "V-000001"
        assert stock_of(part.id) == 2

    def test_low_stock_alerts_sent_one_by_one(self, enabled, monkeypatch, scope, make_part):
        broker = RecordingBroker()
        monkeypatch.setattr(notifications, "deliver_notification", broker)
        first = make_part(quantity=2, price="10.00", min_stock=2)
        second = make_part(quantity=1, price="10.00", min_stock=1)
        CashRegisterService(scope).open_register(Decimal("0"))

        POSSaleService(scope).create_sale(POSSaleCreate(
            items=[
                POSSaleItemCreate(part_id=first.id, quantity=1),
                POSSaleItemCreate(part_id=second.id, quantity=1),
            ],
            payments=[POSSalePaymentCreate(amount=Decimal("50.00"), payment_method=PaymentMethod.CASH)],
        ))

        events = [call[1] for call in broker.calls]
        assert events == ["part.low_stock", "part.low_stock"]


class TestDeliverTask:

    def test_persists_notification(self, monkeypatch, session_factory, db_session, tenant_id):
        monkeypatch.setattr(tasks, "SessionLocal", session_factory)

        result = tasks.deliver_notification.apply(
            args=(str(tenant_id), "ticket.created", {"ticket_number": "T-000001"})
        ).get()

        assert result == {"status": "success", "event": "ticket.created"}
        stored = db_session.query(Notification).filter(Notification.tenant_id == tenant_id).one()
        assert stored.payload == {"ticket_number": "T-000001"}
        assert stored.is_read is False
