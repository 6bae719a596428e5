"""
Servicio de notas de crédito

Flujo de una devolución:
1. create_credit_note: valida contra la venta, repone stock (RESTORE) y
   deja la nota PENDING; opcionalmente procesa el reembolso en el mismo paso
2. process_refund: entrega el dinero; en efectivo se registra un EGRESO
   en la caja abierta
3. cancel_credit_note: solo PENDING; vuelve a descontar lo repuesto

La cantidad devuelta por repuesto (sumando todas las notas no canceladas)
nunca supera la cantidad vendida, y el total acreditado nunca supera el
total de la venta.
"""
from collections import OrderedDict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID
import logging

from fastapi import HTTPException, status
from sqlalchemy import func

from app.common.exceptions import StateConflictError
from app.common.sequences import next_document_number
from app.common.tenancy import TenantScope
from app.database.database import transactional
from app.modules.credit_notes.models import CreditNote, CreditNoteItem, CreditNoteStatus
from app.modules.credit_notes.schemas import CreditNoteCreate
from app.modules.inventory.ledger import StockLedger
from app.modules.notifications import service as notifications
from app.modules.pos.models import CashTransactionType, PaymentMethod, POSSale, POSSaleStatus
from app.modules.pos.services import CashRegisterService
from app.modules.taxes.calculator import calculate_tax_amount, round_money

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
REFUNDABLE_SALE_STATUSES = (POSSaleStatus.COMPLETED, POSSaleStatus.PARTIALLY_REFUNDED)


class CreditNoteService:
    def __init__(self, scope: TenantScope):
        self.scope = scope
        self.db = scope.db
        self.cash = CashRegisterService(scope)

    # ===== CONSULTAS =====

    def get_credit_note(self, credit_note_id: UUID) -> CreditNote:
        return self.scope.require(CreditNote, credit_note_id)

    def list_credit_notes(
        self,
        sale_id: Optional[UUID] = None,
        status_filter: Optional[CreditNoteStatus] = None,
        limit: int = 20,
        offset: int = 0
    ) -> List[CreditNote]:
        query = self.scope.query(CreditNote)
        if sale_id:
            query = query.filter(CreditNote.pos_sale_id == sale_id)
        if status_filter:
            query = query.filter(CreditNote.status == status_filter)
        return query.order_by(CreditNote.created_at.desc()).offset(offset).limit(limit).all()

    def _returned_quantities(self, sale_id: UUID) -> Dict[UUID, int]:
        """Cantidad ya devuelta por repuesto en notas no canceladas"""
        self.db.flush()
        rows = self.db.execute(
            self.scope.select(CreditNoteItem, CreditNoteItem.part_id, func.sum(CreditNoteItem.quantity))
            .join(CreditNote, CreditNote.id == CreditNoteItem.credit_note_id)
            .where(
                CreditNote.pos_sale_id == sale_id,
                CreditNote.status != CreditNoteStatus.CANCELLED
            )
            .group_by(CreditNoteItem.part_id)
        ).all()
        return {part_id: int(quantity or 0) for part_id, quantity in rows}

    def _credited_total(self, sale_id: UUID) -> Decimal:
        self.db.flush()
        total = self.db.execute(
            self.scope.select(CreditNote, func.coalesce(func.sum(CreditNote.total), 0)).where(
                CreditNote.pos_sale_id == sale_id,
                CreditNote.status != CreditNoteStatus.CANCELLED
            )
        ).scalar()
        return round_money(total or 0)

    def _refresh_sale_status(self, sale: POSSale):
        returned = self._returned_quantities(sale.id)
        if not any(returned.values()):
            sale.status = POSSaleStatus.COMPLETED
        elif all(returned.get(item.part_id, 0) >= item.quantity for item in sale.items):
            sale.status = POSSaleStatus.FULLY_REFUNDED
        else:
            sale.status = POSSaleStatus.PARTIALLY_REFUNDED

    # ===== OPERACIONES =====

    def create_credit_note(self, data: CreditNoteCreate) -> CreditNote:
        """
        Registrar una devolución parcial o total de una venta POS.

        Cada línea repone stock con un movimiento RESTORE. Se rechaza con
        409 si la venta no admite devoluciones o si alguna cantidad supera
        lo vendido menos lo ya devuelto.
        """
        ledger = StockLedger(self.scope)
        with transactional(self.db):
            sale = self.scope.require(POSSale, data.pos_sale_id, lock=True)
            if sale.status not in REFUNDABLE_SALE_STATUSES:
                raise StateConflictError(
                    f"La venta {sale.sale_number} no admite devoluciones",
                    sale_id=str(sale.id),
                    status=sale.status.value
                )

            # Las ventas fusionan líneas repetidas: una línea por repuesto
            sold = {item.part_id: item for item in sale.items}
            requested: "OrderedDict[UUID, int]" = OrderedDict()
            reasons = {}
            for line in data.items:
                if line.part_id not in sold:
                    raise HTTPException(
                        status_code=status.HTTP_400_BAD_REQUEST,
                        detail=f"El repuesto {line.part_id} no pertenece a la venta {sale.sale_number}"
                    )
                requested[line.part_id] = requested.get(line.part_id, 0) + line.quantity
                reasons.setdefault(line.part_id, line.reason)

            returned = self._returned_quantities(sale.id)
            for part_id, quantity in requested.items():
                available = sold[part_id].quantity - returned.get(part_id, 0)
                if quantity > available:
                    raise StateConflictError(
                        f"No se pueden devolver {quantity} unidades de {sold[part_id].part_name}: "
                        f"quedan {available} por devolver",
                        part_id=str(part_id),
                        requested=quantity,
                        available=available
                    )

            number = next_document_number(self.scope, "credit_note")
            for part_id, quantity in requested.items():
                ledger.restore(part_id, quantity, reference=f"DEVOLUCION {number}")

            subtotal = sum(
                (round_money(sold[part_id].unit_price) * quantity for part_id, quantity in requested.items()),
                ZERO
            )
            tax_amount = calculate_tax_amount(subtotal, sale.tax_rate)
            remaining = round_money(sale.total) - self._credited_total(sale.id)
            total = min(subtotal + tax_amount, max(remaining, ZERO))

            credit_note = self.scope.add(CreditNote(
                credit_note_number=number,
                status=CreditNoteStatus.PENDING,
                pos_sale_id=sale.id,
                reason=data.reason,
                subtotal=round_money(subtotal),
                tax_rate=sale.tax_rate,
                tax_amount=tax_amount,
                total=total,
                notes=data.notes,
                created_by=self.scope.user_id
            ))
            for part_id, quantity in requested.items():
                unit_price = round_money(sold[part_id].unit_price)
                credit_note.items.append(self.scope.stamp(CreditNoteItem(
                    part_id=part_id,
                    part_name=sold[part_id].part_name,
                    quantity=quantity,
                    unit_price=unit_price,
                    total=unit_price * quantity,
                    reason=reasons[part_id]
                )))

            self._refresh_sale_status(sale)
            if data.refund_method is not None:
                self._apply_refund(credit_note, data.refund_method, data.refund_reference)

        self.db.refresh(credit_note)
        logger.info(
            f"Nota de crédito {credit_note.credit_note_number} por Q{credit_note.total} "
            f"sobre la venta {sale.sale_number}"
        )
        return credit_note

    def _apply_refund(self, credit_note: CreditNote, method: PaymentMethod, reference: Optional[str]):
        if method == PaymentMethod.CASH and credit_note.total > 0:
            register = self.cash.require_open_register(lock=True)
            self.cash.append_transaction(
                register,
                CashTransactionType.EXPENSE,
                credit_note.total,
                description=f"Reembolso nota de crédito {credit_note.credit_note_number}",
                reference=credit_note.credit_note_number
            )
            credit_note.cash_register_id = register.id

        credit_note.status = CreditNoteStatus.PROCESSED
        credit_note.refund_method = method
        credit_note.refund_reference = reference
        credit_note.processed_at = datetime.now(timezone.utc)
        credit_note.processed_by = self.scope.user_id

    def process_refund(
        self, credit_note_id: UUID, method: PaymentMethod, reference: Optional[str] = None
    ) -> CreditNote:
        """Entregar el reembolso de una nota pendiente; en efectivo exige caja abierta"""
        with transactional(self.db):
            credit_note = self.scope.require(CreditNote, credit_note_id, lock=True)
            if credit_note.status != CreditNoteStatus.PENDING:
                raise StateConflictError(
                    "Solo se pueden reembolsar notas de crédito pendientes",
                    credit_note_id=str(credit_note.id),
                    status=credit_note.status.value
                )
            self._apply_refund(credit_note, method, reference)

        self.db.refresh(credit_note)
        logger.info(f"Nota de crédito {credit_note.credit_note_number} reembolsada ({method.value})")
        return credit_note

    def cancel_credit_note(self, credit_note_id: UUID, reason: str) -> CreditNote:
        """
        Cancelar una nota pendiente. Vuelve a descontar el stock repuesto;
        si ya no hay existencia suficiente la cancelación no procede.
        """
        ledger = StockLedger(self.scope)
        with transactional(self.db):
            credit_note = self.scope.require(CreditNote, credit_note_id, lock=True)
            if credit_note.status != CreditNoteStatus.PENDING:
                raise StateConflictError(
                    "Solo se pueden cancelar notas de crédito pendientes",
                    credit_note_id=str(credit_note.id),
                    status=credit_note.status.value
                )
            sale = self.scope.require(POSSale, credit_note.pos_sale_id, lock=True)

            ledger.consume_many(
                ((item.part_id, item.quantity) for item in credit_note.items),
                reference=f"CANCELACION {credit_note.credit_note_number}"
            )
            credit_note.status = CreditNoteStatus.CANCELLED
            credit_note.notes = (
                f"{credit_note.notes}\n\nCANCELADA: {reason}" if credit_note.notes else f"CANCELADA: {reason}"
            )
            self._refresh_sale_status(sale)

        self.db.refresh(credit_note)
        logger.info(f"Nota de crédito {credit_note.credit_note_number} cancelada: {reason}")
        notifications.notify_low_stock(self.scope.tenant_id, ledger.low_stock)
        return credit_note
