"""
Tareas periódicas de facturación.
"""
from datetime import date
import logging

from app.core.celery import celery_app
from app.database.database import SessionLocal
from app.modules.invoices.service import scan_overdue_invoices

logger = logging.getLogger(__name__)


@celery_app.task
def mark_overdue_invoices_task(today: str = None):
    """Marcar como vencidas las facturas PENDING de todas las empresas"""
    scan_date = date.fromisoformat(today) if today else date.today()
    db = SessionLocal()
    try:
        marked = scan_overdue_invoices(db, scan_date)
        return {"status": "success", "marked": marked, "date": scan_date.isoformat()}
    except Exception as e:
        logger.error(f"Error marcando facturas vencidas: {str(e)}")
        return {"status": "failed", "error": str(e)}
    finally:
        db.close()
