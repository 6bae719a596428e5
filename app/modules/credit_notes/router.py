from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from app.core.config import settings
from app.database.database import get_db, run_with_retry
from app.modules.auth.dependencies import AuthDependencies, build_scope
from app.modules.auth.schemas import AuthContext
from app.modules.credit_notes.models import CreditNoteStatus
from app.modules.credit_notes.schemas import CreditNoteCreate, CreditNoteRefund, CreditNoteCancel, CreditNoteOut
from app.modules.credit_notes.service import CreditNoteService
from app.modules.pos.routers import CASH_ROLES

router = APIRouter(prefix="/credit-notes", tags=["Credit Notes"])


@router.post("", response_model=CreditNoteOut, status_code=status.HTTP_201_CREATED)
def create_credit_note(
    data: CreditNoteCreate,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(CASH_ROLES)),
    db: Session = Depends(get_db)
):
    """
    Registrar una devolución de una venta POS.

    - Repone el stock de cada línea devuelta
    - 409 state_conflict si se devuelve más de lo vendido
    - Con refund_method CASH se exige caja abierta (409 no_open_register)
    """
    service = CreditNoteService(build_scope(auth_context, db))
    return run_with_retry(lambda: service.create_credit_note(data))


@router.get("", response_model=List[CreditNoteOut])
def list_credit_notes(
    sale_id: Optional[UUID] = Query(None, description="Filtrar por venta"),
    status_filter: Optional[CreditNoteStatus] = Query(None, alias="status"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(CASH_ROLES + ["accountant"])),
    db: Session = Depends(get_db)
):
    return CreditNoteService(build_scope(auth_context, db)).list_credit_notes(sale_id, status_filter, limit, offset)


@router.get("/{credit_note_id}", response_model=CreditNoteOut)
def get_credit_note(
    credit_note_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(CASH_ROLES + ["accountant"])),
    db: Session = Depends(get_db)
):
    return CreditNoteService(build_scope(auth_context, db)).get_credit_note(credit_note_id)


@router.post("/{credit_note_id}/refund", response_model=CreditNoteOut)
def refund_credit_note(
    credit_note_id: UUID,
    data: CreditNoteRefund,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(CASH_ROLES)),
    db: Session = Depends(get_db)
):
    """Entregar el reembolso; en efectivo se registra el egreso en la caja abierta"""
    service = CreditNoteService(build_scope(auth_context, db))
    return run_with_retry(lambda: service.process_refund(credit_note_id, data.refund_method, data.refund_reference))


@router.post("/{credit_note_id}/cancel", response_model=CreditNoteOut)
def cancel_credit_note(
    credit_note_id: UUID,
    data: CreditNoteCancel,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner", "admin"])),
    db: Session = Depends(get_db)
):
    service = CreditNoteService(build_scope(auth_context, db))
    return run_with_retry(lambda: service.cancel_credit_note(credit_note_id, data.reason))
