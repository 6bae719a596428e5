from fastapi import APIRouter, Depends, status, Query
from typing import List, Optional
from uuid import UUID
from sqlalchemy.orm import Session

from app.core.config import settings
from app.database.database import get_db, run_with_retry
from app.modules.auth.dependencies import AuthDependencies, build_scope
from app.modules.auth.schemas import AuthContext
from app.modules.tickets.models import TicketStatus
from app.modules.tickets.service import TicketService, PartUsageService
from app.modules.tickets.schemas import (
    TicketCreate, TicketOut, TicketDetail, TicketStatusUpdate,
    PartUsageCreate, PartUsageUpdate, PartUsageOut
)

router = APIRouter(prefix="/tickets", tags=["Tickets"])

WORKSHOP_ROLES = ["owner", "admin", "technician"]


@router.post("", response_model=TicketOut, status_code=status.HTTP_201_CREATED)
def create_ticket(
    data: TicketCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(WORKSHOP_ROLES + ["seller"]))
):
    service = TicketService(build_scope(auth_context, db))
    return run_with_retry(lambda: service.create_ticket(data, auth_context.user_role))


@router.get("", response_model=List[TicketOut])
def list_tickets(
    status_filter: Optional[TicketStatus] = Query(None, alias="status"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return TicketService(build_scope(auth_context, db)).list_tickets(status_filter, limit, offset)


@router.get("/{ticket_id}", response_model=TicketDetail)
def get_ticket(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Ticket con sus repuestos consumidos"""
    return TicketService(build_scope(auth_context, db)).get_ticket(ticket_id)


@router.patch("/{ticket_id}/status", response_model=TicketOut)
def update_ticket_status(
    ticket_id: UUID,
    data: TicketStatusUpdate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(WORKSHOP_ROLES))
):
    service = TicketService(build_scope(auth_context, db))
    return run_with_retry(lambda: service.update_status(ticket_id, data.status))


@router.post("/{ticket_id}/parts", response_model=PartUsageOut, status_code=status.HTTP_201_CREATED)
def add_part_usage(
    ticket_id: UUID,
    data: PartUsageCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(WORKSHOP_ROLES))
):
    """
    Consumir repuestos en un ticket.

    Falla con 409 (insufficient_stock) si no hay existencia suficiente;
    en ese caso no se registra el uso.
    """
    service = PartUsageService(build_scope(auth_context, db))
    return run_with_retry(lambda: service.add_usage(ticket_id, data.part_id, data.quantity))


@router.patch("/parts/{usage_id}", response_model=PartUsageOut)
def update_part_usage(
    usage_id: UUID,
    data: PartUsageUpdate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(WORKSHOP_ROLES))
):
    service = PartUsageService(build_scope(auth_context, db))
    return run_with_retry(lambda: service.update_usage(usage_id, data.quantity))


@router.delete("/parts/{usage_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_part_usage(
    usage_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(WORKSHOP_ROLES))
):
    """Quitar un repuesto del ticket devolviendo su stock"""
    service = PartUsageService(build_scope(auth_context, db))
    run_with_retry(lambda: service.remove_usage(usage_id))
