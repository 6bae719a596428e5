from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from app.core.config import settings
from app.database.database import get_db, run_with_retry
from app.modules.auth.dependencies import AuthDependencies, build_scope
from app.modules.auth.schemas import AuthContext
from app.modules.invoices.models import InvoiceStatus
from app.modules.invoices.service import InvoiceService
from app.modules.invoices.schemas import (
    InvoiceFromTicket, InvoiceOut, InvoiceDetail, InvoiceList,
    InvoiceCancelRequest, PaymentCreate, PaymentOut, PaymentResult
)

router = APIRouter(prefix="/invoices", tags=["Invoices"])

BILLING_ROLES = ["owner", "admin", "seller", "accountant"]


@router.post("/from-ticket", response_model=InvoiceOut, status_code=status.HTTP_201_CREATED)
def create_invoice_from_ticket(
    data: InvoiceFromTicket,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner", "admin", "seller"]))
):
    """
    Generar la factura de un ticket resuelto o cerrado.

    El subtotal es la mano de obra de la plantilla más los repuestos
    usados al precio registrado en el ticket.
    """
    service = InvoiceService(build_scope(auth_context, db))
    return run_with_retry(lambda: service.create_invoice_from_ticket(data))


@router.get("", response_model=InvoiceList)
def list_invoices(
    status_filter: Optional[InvoiceStatus] = Query(None, alias="status"),
    customer_id: Optional[UUID] = Query(None, description="Filtrar por cliente"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return InvoiceService(build_scope(auth_context, db)).list_invoices(status_filter, customer_id, limit, offset)


@router.get("/{invoice_id}", response_model=InvoiceDetail)
def get_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Factura con sus pagos y saldo pendiente"""
    return InvoiceService(build_scope(auth_context, db)).get_invoice(invoice_id)


@router.post("/{invoice_id}/payments", response_model=PaymentResult, status_code=status.HTTP_201_CREATED)
def register_payment(
    invoice_id: UUID,
    data: PaymentCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """
    Registrar un pago parcial o total.

    - 400 overpayment si el monto supera el saldo pendiente
    - Pagos en efectivo sin caja abierta: cash_mirrored = false y warning
    """
    service = InvoiceService(build_scope(auth_context, db))
    return run_with_retry(lambda: service.register_payment(
        invoice_id, data.amount, data.payment_method, data.transaction_ref, data.notes
    ))


@router.get("/{invoice_id}/payments", response_model=List[PaymentOut])
def list_payments(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return InvoiceService(build_scope(auth_context, db)).list_payments(invoice_id)


@router.post("/{invoice_id}/cancel", response_model=InvoiceOut)
def cancel_invoice(
    invoice_id: UUID,
    data: InvoiceCancelRequest,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner", "admin"]))
):
    """Cancelar una factura sin pagos registrados"""
    service = InvoiceService(build_scope(auth_context, db))
    return run_with_retry(lambda: service.cancel_invoice(invoice_id, data.reason))
