from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from app.core.config import settings
from app.database.database import get_db, run_with_retry
from app.modules.auth.dependencies import AuthDependencies, build_scope
from app.modules.auth.schemas import AuthContext
from app.modules.pos.routers import CASH_ROLES
from app.modules.pos.schemas import POSSaleOut
from app.modules.quotations.models import QuotationStatus
from app.modules.quotations.schemas import QuotationCreate, QuotationStatusUpdate, QuotationConvert, QuotationOut
from app.modules.quotations.service import QuotationService

router = APIRouter(prefix="/quotations", tags=["Quotations"])

QUOTE_ROLES = ["owner", "admin", "seller"]


@router.post("", response_model=QuotationOut, status_code=status.HTTP_201_CREATED)
def create_quotation(
    data: QuotationCreate,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(QUOTE_ROLES)),
    db: Session = Depends(get_db)
):
    """Crear cotización en borrador; no reserva stock"""
    service = QuotationService(build_scope(auth_context, db))
    return run_with_retry(lambda: service.create_quotation(data))


@router.get("", response_model=List[QuotationOut])
def list_quotations(
    status_filter: Optional[QuotationStatus] = Query(None, alias="status"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    return QuotationService(build_scope(auth_context, db)).list_quotations(status_filter, limit, offset)


@router.post("/expire")
def expire_quotations(
    auth_context: AuthContext = Depends(AuthDependencies.require_role(QUOTE_ROLES)),
    db: Session = Depends(get_db)
):
    """Vencer las cotizaciones en borrador o enviadas fuera de vigencia"""
    service = QuotationService(build_scope(auth_context, db))
    return {"expired": run_with_retry(service.mark_expired)}


@router.get("/{quotation_id}", response_model=QuotationOut)
def get_quotation(
    quotation_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    return QuotationService(build_scope(auth_context, db)).get_quotation(quotation_id)


@router.patch("/{quotation_id}/status", response_model=QuotationOut)
def update_quotation_status(
    quotation_id: UUID,
    data: QuotationStatusUpdate,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(QUOTE_ROLES)),
    db: Session = Depends(get_db)
):
    """
    Cambiar estado.

    DRAFT → SENT | CANCELLED; SENT → ACCEPTED | REJECTED | EXPIRED | CANCELLED;
    ACCEPTED → CANCELLED. Cualquier otro cambio responde 409.
    """
    service = QuotationService(build_scope(auth_context, db))
    return run_with_retry(lambda: service.update_status(quotation_id, data.status))


@router.post("/{quotation_id}/convert", response_model=POSSaleOut, status_code=status.HTTP_201_CREATED)
def convert_quotation(
    quotation_id: UUID,
    data: QuotationConvert,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(CASH_ROLES)),
    db: Session = Depends(get_db)
):
    """
    Convertir una cotización aceptada en venta POS.

    Mismos errores que una venta de mostrador: no_open_register,
    insufficient_payment e insufficient_stock.
    """
    service = QuotationService(build_scope(auth_context, db))
    return run_with_retry(lambda: service.convert_to_sale(quotation_id, data))


@router.delete("/{quotation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_quotation(
    quotation_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(QUOTE_ROLES)),
    db: Session = Depends(get_db)
):
    service = QuotationService(build_scope(auth_context, db))
    run_with_retry(lambda: service.delete_quotation(quotation_id))
