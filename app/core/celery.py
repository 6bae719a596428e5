"""
Celery: entrega de notificaciones y tareas periódicas de facturación.

Las tareas nunca participan de la transacción que las origina; se encolan
después del commit.
"""
from celery import Celery

from app.core.config import settings

celery_app = Celery(
    "taller360",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "app.modules.notifications.tasks",
        "app.modules.invoices.tasks"
    ]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Notificaciones y barridos son cortos; un worker caído reencola la tarea
    task_time_limit=2 * 60,
    task_soft_time_limit=90,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,

    result_expires=24 * 3600,

    task_default_queue="default",
    task_routes={
        "app.modules.notifications.tasks.*": {"queue": "notifications"},
        "app.modules.invoices.tasks.*": {"queue": "invoices"},
    },

    beat_schedule={
        "mark-overdue-invoices": {
            "task": "app.modules.invoices.tasks.mark_overdue_invoices_task",
            "schedule": settings.OVERDUE_SCAN_INTERVAL,
        }
    }
)
