"""
Servicio de facturación de tickets y libro de pagos.

- create_invoice_from_ticket: mano de obra de la plantilla + repuestos usados
- register_payment: pagos parciales sin sobrepago; PAID al saldar
- cancel_invoice: solo facturas sin pagos
- scan_overdue_invoices: PENDING vencidas -> OVERDUE, una factura por transacción

Los pagos en efectivo se reflejan como INGRESO en la caja abierta dentro de
la misma transacción. Sin caja abierta el pago se registra igual y el
resultado lo indica con cash_mirrored = False.
"""
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
import logging

from fastapi import HTTPException, status
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.common.exceptions import OverpaymentError, StateConflictError
from app.common.sequences import next_document_number
from app.common.tenancy import TenantScope
from app.database.database import transactional
from app.modules.customers.models import Customer
from app.modules.invoices.models import Invoice, InvoiceStatus, Payment, PAYABLE_STATUSES
from app.modules.invoices.schemas import (
    InvoiceFromTicket, InvoiceOut, InvoiceDetail, InvoiceList, PaymentOut, PaymentResult
)
from app.modules.notifications import service as notifications
from app.modules.pos.models import CashTransactionType, PaymentMethod
from app.modules.pos.services import CashRegisterService
from app.modules.taxes.calculator import calculate_totals, round_money
from app.modules.taxes.service import TenantSettingsService
from app.modules.tickets.models import Ticket, TicketStatus

logger = logging.getLogger(__name__)

INVOICEABLE_STATUSES = (TicketStatus.RESOLVED, TicketStatus.CLOSED)
NO_REGISTER_WARNING = "No hay caja abierta: el pago en efectivo no se registró en caja"


def scan_overdue_invoices(db: Session, today: date, scope: Optional[TenantScope] = None) -> int:
    """
    Marcar como OVERDUE las facturas PENDING con due_date < today.

    Cada factura se actualiza en su propia transacción con un UPDATE
    condicionado al estado PENDING, así un pago concurrente que la salda
    no queda sobrescrito. Sin scope recorre todas las empresas (tarea periódica).
    """
    query = scope.select(Invoice, Invoice.id) if scope else select(Invoice.id)
    query = query.where(
        Invoice.status == InvoiceStatus.PENDING,
        Invoice.due_date.is_not(None),
        Invoice.due_date < today
    )
    candidate_ids = db.execute(query).scalars().all()
    db.rollback()

    marked = 0
    for invoice_id in candidate_ids:
        with transactional(db):
            result = db.execute(
                (scope.update(Invoice) if scope else update(Invoice))
                .where(Invoice.id == invoice_id, Invoice.status == InvoiceStatus.PENDING)
                .values(status=InvoiceStatus.OVERDUE)
                .execution_options(synchronize_session=False)
            )
        marked += result.rowcount or 0

    if marked:
        logger.info(f"{marked} facturas marcadas como vencidas al {today.isoformat()}")
    return marked


class InvoiceService:
    def __init__(self, scope: TenantScope):
        self.scope = scope
        self.db = scope.db
        self.cash = CashRegisterService(scope)

    # ===== CONSULTAS =====

    def _amount_paid(self, invoice_id: UUID) -> Decimal:
        self.db.flush()
        total = self.db.execute(
            self.scope.select(Payment, func.coalesce(func.sum(Payment.amount), 0)).where(
                Payment.invoice_id == invoice_id
            )
        ).scalar()
        return round_money(Decimal(str(total)))

    def get_invoice(self, invoice_id: UUID) -> InvoiceDetail:
        invoice = self.scope.require(Invoice, invoice_id)
        paid = self._amount_paid(invoice.id)
        detail = InvoiceDetail.model_validate(invoice)
        detail.amount_paid = paid
        detail.balance_due = round_money(invoice.total - paid)
        return detail

    def list_invoices(
        self,
        status_filter: Optional[InvoiceStatus] = None,
        customer_id: Optional[UUID] = None,
        limit: int = 20,
        offset: int = 0
    ) -> InvoiceList:
        query = self.scope.query(Invoice)
        if status_filter:
            query = query.filter(Invoice.status == status_filter)
        if customer_id:
            query = query.filter(Invoice.customer_id == customer_id)

        total = query.count()
        invoices = query.order_by(Invoice.created_at.desc()).offset(offset).limit(limit).all()
        return InvoiceList(
            invoices=[InvoiceOut.model_validate(i) for i in invoices],
            total=total,
            limit=limit,
            offset=offset
        )

    # ===== EMISIÓN =====

    def create_invoice_from_ticket(self, data: InvoiceFromTicket) -> Invoice:
        """Facturar un ticket RESOLVED o CLOSED; un ticket admite una sola factura"""
        tax_rate = data.tax_rate
        if tax_rate is None:
            tax_rate = TenantSettingsService(self.scope).get_tax_rate()

        with transactional(self.db):
            ticket = self.scope.require(Ticket, data.ticket_id, lock=True)
            if ticket.status not in INVOICEABLE_STATUSES:
                raise StateConflictError(
                    "El ticket debe estar cerrado o resuelto para generar factura",
                    status=ticket.status.value
                )
            existing = self.scope.query(Invoice).filter(Invoice.ticket_id == ticket.id).first()
            if existing:
                raise StateConflictError(
                    "Este ticket ya tiene una factura generada",
                    invoice_id=str(existing.id)
                )

            customer = self.scope.require(Customer, ticket.customer_id)
            labor_cost = round_money(
                ticket.service_template.labor_cost if ticket.service_template else Decimal("0")
            )
            parts_cost = round_money(sum(
                (Decimal(str(u.unit_price)) * u.quantity for u in ticket.part_usages),
                Decimal("0")
            ))
            totals = calculate_totals(labor_cost + parts_cost, tax_rate, data.discount_amount)
            if totals["total"] < 0:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="El descuento no puede exceder el total de la factura"
                )

            invoice = self.scope.add(Invoice(
                invoice_number=next_document_number(self.scope, "invoice"),
                status=InvoiceStatus.PENDING,
                ticket_id=ticket.id,
                customer_id=customer.id,
                labor_cost=labor_cost,
                parts_cost=parts_cost,
                subtotal=totals["subtotal"],
                tax_rate=tax_rate,
                tax_amount=totals["tax_amount"],
                discount_amount=round_money(data.discount_amount),
                total=totals["total"],
                customer_name=customer.name,
                customer_nit=customer.nit,
                due_date=data.due_date,
                notes=data.notes,
                created_by=self.scope.user_id
            ))

        self.db.refresh(invoice)
        logger.info(
            f"Factura {invoice.invoice_number} por Q{invoice.total} generada para ticket {ticket.ticket_number}"
        )
        return invoice

    # ===== PAGOS =====

    def register_payment(
        self,
        invoice_id: UUID,
        amount: Decimal,
        payment_method: PaymentMethod,
        transaction_ref: Optional[str] = None,
        notes: Optional[str] = None
    ) -> PaymentResult:
        """
        Registrar un pago sobre el saldo pendiente.

        remaining = total − Σ pagos; un monto mayor falla con Overpayment.
        Al llegar a cero la factura pasa a PAID; un pago parcial sobre un
        borrador la deja PENDING y en otro caso el estado no cambia.
        """
        amount = round_money(amount)
        cash_mirrored = False
        warning = None

        with transactional(self.db):
            invoice = self.scope.require(Invoice, invoice_id, lock=True)
            if invoice.status == InvoiceStatus.CANCELLED:
                raise StateConflictError(
                    "No se puede registrar pago en una factura cancelada",
                    invoice_id=str(invoice.id),
                    status=invoice.status.value
                )

            remaining = round_money(invoice.total - self._amount_paid(invoice.id))
            if amount > remaining:
                raise OverpaymentError(remaining=remaining, attempted=amount)

            payment = self.scope.add(Payment(
                payment_number=next_document_number(self.scope, "payment"),
                invoice_id=invoice.id,
                amount=amount,
                payment_method=payment_method,
                transaction_ref=transaction_ref,
                notes=notes,
                received_by=self.scope.user_id
            ))

            remaining = remaining - amount
            if remaining == 0:
                invoice.status = InvoiceStatus.PAID
                invoice.paid_at = datetime.now(timezone.utc)
            elif invoice.status == InvoiceStatus.DRAFT:
                invoice.status = InvoiceStatus.PENDING

            if payment_method == PaymentMethod.CASH:
                register = self.cash.get_open_register(lock=True)
                if register is not None:
                    self.cash.append_transaction(
                        register,
                        CashTransactionType.INCOME,
                        amount,
                        description=f"Pago factura {invoice.invoice_number}",
                        reference=invoice.invoice_number
                    )
                    cash_mirrored = True
                else:
                    warning = NO_REGISTER_WARNING

        self.db.refresh(payment)
        self.db.refresh(invoice)
        if warning:
            logger.warning(f"Pago {payment.payment_number} de factura {invoice.invoice_number}: {warning}")
        logger.info(
            f"Pago {payment.payment_number} de Q{amount} en factura {invoice.invoice_number}, "
            f"saldo Q{remaining}"
        )

        if invoice.status == InvoiceStatus.PAID:
            notifications.notify(notifications.INVOICE_PAID, self.scope.tenant_id, {
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "total": str(invoice.total),
            })

        return PaymentResult(
            payment=PaymentOut.model_validate(payment),
            invoice=InvoiceOut.model_validate(invoice),
            remaining=remaining,
            cash_mirrored=cash_mirrored,
            warning=warning
        )

    def list_payments(self, invoice_id: UUID) -> List[Payment]:
        invoice = self.scope.require(Invoice, invoice_id)
        return self.scope.query(Payment).filter(
            Payment.invoice_id == invoice.id
        ).order_by(Payment.created_at).all()

    # ===== CANCELACIÓN Y VENCIMIENTO =====

    def cancel_invoice(self, invoice_id: UUID, reason: str) -> Invoice:
        """Cancelar una factura sin pagos; el motivo se agrega a las notas"""
        with transactional(self.db):
            invoice = self.scope.require(Invoice, invoice_id, lock=True)
            if invoice.status == InvoiceStatus.CANCELLED:
                raise StateConflictError("La factura ya está cancelada", invoice_id=str(invoice.id))
            if invoice.status not in PAYABLE_STATUSES or self._amount_paid(invoice.id) > 0:
                raise StateConflictError(
                    "No se puede cancelar una factura que ya tiene pagos registrados",
                    invoice_id=str(invoice.id)
                )
            invoice.status = InvoiceStatus.CANCELLED
            invoice.notes = f"{invoice.notes}\n\nCANCELADA: {reason}" if invoice.notes else f"CANCELADA: {reason}"

        self.db.refresh(invoice)
        logger.info(f"Factura {invoice.invoice_number} cancelada: {reason}")
        return invoice

    def mark_overdue_invoices(self, today: Optional[date] = None) -> int:
        return scan_overdue_invoices(self.db, today or date.today(), scope=self.scope)
