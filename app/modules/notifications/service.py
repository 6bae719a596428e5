"""
Despacho de notificaciones posteriores al commit.

notify() es fire-and-forget: se llama solo después de confirmar la
transacción y sus errores se registran, nunca se propagan.
"""
import logging
from typing import Any, Dict
from uuid import UUID

from app.core.config import settings
from app.modules.notifications.tasks import deliver_notification

logger = logging.getLogger(__name__)

TICKET_CREATED = "ticket.created"
PART_LOW_STOCK = "part.low_stock"
POS_SALE_VOIDED = "pos.sale_voided"
INVOICE_PAID = "invoice.paid"


def notify(event: str, tenant_id: UUID, payload: Dict[str, Any]) -> bool:
    """Encolar una notificación; retorna False si no se despachó"""
    if not settings.NOTIFICATIONS_ENABLED:
        logger.debug(f"Notificaciones deshabilitadas, se omite {event}")
        return False

    try:
        deliver_notification.delay(str(tenant_id), event, payload)
        return True
    except Exception as e:
        logger.error(f"No se pudo despachar la notificación {event}: {str(e)}")
        return False


def notify_low_stock(tenant_id: UUID, alerts) -> None:
    for alert in alerts:
        notify(PART_LOW_STOCK, tenant_id, alert.as_payload())
