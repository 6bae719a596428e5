"""
Tareas de Celery para la entrega de notificaciones.
"""
import logging
from typing import Any, Dict
from uuid import UUID

from app.core.celery import celery_app
from app.database.database import SessionLocal
from app.modules.notifications.models import Notification

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def deliver_notification(self, tenant_id: str, event: str, payload: Dict[str, Any]):
    """
    Persistir una notificación para la empresa.

    Se ejecuta fuera de la transacción que la originó; un fallo aquí nunca
    revierte la operación de negocio.
    """
    db = SessionLocal()
    try:
        db.add(Notification(tenant_id=UUID(tenant_id), event=event, payload=payload))
        db.commit()
        logger.info(f"Notificación {event} entregada a tenant {tenant_id}")
        return {"status": "success", "event": event}

    except Exception as exc:
        db.rollback()
        logger.error(f"Entrega de notificación {event} falló: {str(exc)}")

        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=30 * (2 ** self.request.retries))

        return {"status": "failed", "error": str(exc), "event": event}
    finally:
        db.close()
