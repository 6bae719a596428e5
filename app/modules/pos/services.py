"""
Servicios de negocio para el módulo POS (Point of Sale)

Implementa la lógica de negocio para:
- CashRegisterService: apertura/cierre de caja, movimientos y arqueo
- POSSaleService: ventas de mostrador y anulaciones

Reglas principales:
- Una sola caja abierta por tenant (índice único parcial en la base de datos)
- El saldo esperado siempre se calcula desde el libro de transacciones
- Una venta consume todo su stock o nada; una anulación lo repone completo
- Las reversiones se registran como transacciones nuevas, nunca editando las previas
"""

from collections import OrderedDict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID
import logging

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from app.common.exceptions import (
    InsufficientPaymentError, NoOpenRegisterError, RegisterAlreadyOpenError, StateConflictError
)
from app.common.sequences import next_document_number
from app.common.tenancy import TenantScope
from app.database.database import transactional
from app.modules.customers.models import Customer
from app.modules.inventory.ledger import StockLedger
from app.modules.inventory.models import Part
from app.modules.notifications import service as notifications
from app.modules.pos.models import (
    CashRegister, CashTransaction, CashTransactionType,
    POSSale, POSSaleItem, POSSalePayment, POSSaleStatus
)
from app.modules.pos.schemas import POSSaleCreate, CashRegisterSummary, POSSalesSummary
from app.modules.taxes.calculator import calculate_totals, round_money
from app.modules.taxes.service import TenantSettingsService

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
OUTFLOW_TYPES = (CashTransactionType.EXPENSE, CashTransactionType.WITHDRAWAL)


class CashRegisterService:
    """Servicio para gestión de cajas registradoras"""

    def __init__(self, scope: TenantScope):
        self.scope = scope
        self.db = scope.db

    # ===== CONSULTAS =====

    def get_open_register(self, lock: bool = False) -> Optional[CashRegister]:
        """Caja abierta del tenant, o None"""
        query = self.scope.query(CashRegister).filter(CashRegister.is_open.is_(True))
        if lock:
            query = query.with_for_update()
        return query.first()

    def require_open_register(self, lock: bool = False) -> CashRegister:
        register = self.get_open_register(lock=lock)
        if register is None:
            raise NoOpenRegisterError()
        return register

    def get_register(self, register_id: UUID) -> CashRegister:
        return self.scope.require(CashRegister, register_id)

    def list_registers(self, limit: int = 20, offset: int = 0) -> List[CashRegister]:
        return self.scope.query(CashRegister).order_by(
            CashRegister.opened_at.desc()
        ).offset(offset).limit(limit).all()

    def list_transactions(self, register_id: UUID) -> List[CashTransaction]:
        self.scope.require(CashRegister, register_id)
        return self.scope.query(CashTransaction).filter(
            CashTransaction.cash_register_id == register_id
        ).order_by(CashTransaction.created_at).all()

    def _totals_by_type(self, register: CashRegister) -> Tuple[Dict[CashTransactionType, Decimal], int]:
        # Incluye movimientos pendientes de la transacción en curso
        self.db.flush()
        rows = self.db.query(
            CashTransaction.type, func.sum(CashTransaction.amount), func.count(CashTransaction.id)
        ).filter(
            self.scope.filter(CashTransaction),
            CashTransaction.cash_register_id == register.id
        ).group_by(CashTransaction.type).all()

        totals = {tx_type: ZERO for tx_type in CashTransactionType}
        count = 0
        for tx_type, amount, rows_count in rows:
            totals[tx_type] = round_money(amount or 0)
            count += rows_count
        return totals, count

    def _expected_from_totals(self, register: CashRegister, totals: Dict[CashTransactionType, Decimal]) -> Decimal:
        outflow = sum((totals[t] for t in OUTFLOW_TYPES), ZERO)
        return round_money(register.opening_balance) + totals[CashTransactionType.INCOME] - outflow

    def expected_balance(self, register_id: UUID) -> Decimal:
        """opening_balance + Σ ingresos − Σ (egresos + retiros), siempre desde el libro"""
        register = self.scope.require(CashRegister, register_id)
        totals, _ = self._totals_by_type(register)
        return self._expected_from_totals(register, totals)

    def register_summary(self, register_id: UUID) -> CashRegisterSummary:
        register = self.scope.require(CashRegister, register_id)
        totals, count = self._totals_by_type(register)
        return CashRegisterSummary(
            cash_register_id=register.id,
            is_open=register.is_open,
            opening_balance=round_money(register.opening_balance),
            total_income=totals[CashTransactionType.INCOME],
            total_expense=totals[CashTransactionType.EXPENSE],
            total_withdrawal=totals[CashTransactionType.WITHDRAWAL],
            expected_balance=self._expected_from_totals(register, totals),
            closing_balance=register.closing_balance,
            discrepancy=register.discrepancy,
            transaction_count=count
        )

    # ===== OPERACIONES =====

    def open_register(self, opening_balance: Decimal, opening_notes: Optional[str] = None) -> CashRegister:
        """
        Abrir caja. Dos aperturas concurrentes no pueden pasar ambas:
        la segunda choca con el índice único parcial y se reporta como
        RegisterAlreadyOpenError.
        """
        with transactional(self.db):
            if self.get_open_register() is not None:
                raise RegisterAlreadyOpenError()
            register = self.scope.add(CashRegister(
                is_open=True,
                opening_balance=opening_balance,
                opened_by=self.scope.user_id,
                opening_notes=opening_notes
            ))
            try:
                self.db.flush()
            except IntegrityError:
                logger.info(f"Apertura concurrente rechazada en tenant {self.scope.tenant_id}")
                raise RegisterAlreadyOpenError()

        self.db.refresh(register)
        logger.info(f"Caja {register.id} abierta con Q{opening_balance} en tenant {self.scope.tenant_id}")
        return register

    def append_transaction(
        self,
        register: CashRegister,
        tx_type: CashTransactionType,
        amount: Decimal,
        description: str,
        reference: Optional[str] = None
    ) -> CashTransaction:
        """Agregar un movimiento dentro de la transacción del llamador (sin commit)"""
        if not register.is_open:
            raise StateConflictError("La caja está cerrada", cash_register_id=str(register.id))
        if amount <= 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="El monto debe ser mayor a cero"
            )
        return self.scope.add(CashTransaction(
            cash_register_id=register.id,
            type=tx_type,
            amount=round_money(amount),
            description=description,
            reference=reference,
            created_by=self.scope.user_id
        ))

    def record_transaction(
        self,
        register_id: UUID,
        tx_type: CashTransactionType,
        amount: Decimal,
        description: str,
        reference: Optional[str] = None
    ) -> CashTransaction:
        """Registrar un movimiento manual en la caja"""
        with transactional(self.db):
            register = self.scope.require(CashRegister, register_id, lock=True)
            transaction = self.append_transaction(register, tx_type, amount, description, reference)

        self.db.refresh(transaction)
        logger.info(f"Movimiento {tx_type.value} de Q{amount} en caja {register_id}")
        return transaction

    def close_register(
        self,
        register_id: UUID,
        counted_balance: Decimal,
        closing_notes: Optional[str] = None
    ) -> CashRegister:
        """Cerrar caja con arqueo: discrepancy = contado − esperado"""
        with transactional(self.db):
            register = self.scope.require(CashRegister, register_id, lock=True)
            if not register.is_open:
                raise StateConflictError("Esta caja ya está cerrada", cash_register_id=str(register.id))

            totals, _ = self._totals_by_type(register)
            expected = self._expected_from_totals(register, totals)
            register.is_open = False
            register.closing_balance = counted_balance
            register.expected_balance = expected
            register.discrepancy = round_money(counted_balance) - expected
            register.closed_by = self.scope.user_id
            register.closed_at = datetime.now(timezone.utc)
            register.closing_notes = closing_notes

        self.db.refresh(register)
        logger.info(
            f"Caja {register_id} cerrada: esperado Q{register.expected_balance}, "
            f"contado Q{register.closing_balance}, diferencia Q{register.discrepancy}"
        )
        return register


class POSSaleService:
    """Ventas POS integradas con inventario y caja"""

    def __init__(self, scope: TenantScope):
        self.scope = scope
        self.db = scope.db
        self.cash = CashRegisterService(scope)

    @staticmethod
    def _merge_items(data: POSSaleCreate) -> "OrderedDict[UUID, int]":
        merged: "OrderedDict[UUID, int]" = OrderedDict()
        for item in data.items:
            merged[item.part_id] = merged.get(item.part_id, 0) + item.quantity
        return merged

    def create_sale(self, data: POSSaleCreate) -> POSSale:
        """
        Crear venta POS en una sola transacción.

        1. Valida repuestos del tenant (fusiona líneas repetidas)
        2. Exige caja abierta
        3. Precios leídos dentro de la transacción
        4. Impuesto con redondeo half-up; total = subtotal + impuesto − descuento
        5. Pagos deben cubrir el total; el excedente es el cambio
        6. Consume stock de todos los ítems (todo o nada)
        7. Registra venta, ítems, pagos e INGRESO del total en la caja
        """
        ledger = StockLedger(self.scope)
        with transactional(self.db):
            sale = self.record_sale(data, ledger)

        self.db.refresh(sale)
        logger.info(f"Venta {sale.sale_number} por Q{sale.total} registrada en tenant {self.scope.tenant_id}")
        notifications.notify_low_stock(self.scope.tenant_id, ledger.low_stock)
        return sale

    def record_sale(
        self,
        data: POSSaleCreate,
        ledger: StockLedger,
        unit_prices: Optional[Dict[UUID, Decimal]] = None,
        tax_rate: Optional[Decimal] = None
    ) -> POSSale:
        """
        Registrar la venta dentro de la transacción del llamador (sin commit).

        unit_prices y tax_rate reemplazan el precio de catálogo y la tasa
        vigente; las cotizaciones convertidas respetan lo cotizado.
        """
        merged = self._merge_items(data)
        parts = {part_id: self.scope.require(Part, part_id) for part_id in merged}
        prices = {
            part_id: round_money((unit_prices or {}).get(part_id, parts[part_id].price))
            for part_id in merged
        }

        register = self.cash.require_open_register(lock=True)

        customer = None
        if data.customer_id:
            customer = self.scope.require(Customer, data.customer_id)

        if tax_rate is None:
            tax_rate = TenantSettingsService(self.scope).get_tax_rate()
        subtotal = sum((prices[part_id] * quantity for part_id, quantity in merged.items()), ZERO)
        totals = calculate_totals(subtotal, tax_rate, data.discount_amount)
        if totals["total"] < 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="El descuento no puede exceder el total de la venta"
            )

        paid = sum((round_money(p.amount) for p in data.payments), ZERO)
        if paid < totals["total"]:
            raise InsufficientPaymentError(totals["total"], paid)

        sale_number = next_document_number(self.scope, "pos_sale")
        for part_id, quantity in merged.items():
            ledger.consume(part_id, quantity, reference=f"POS {sale_number}")

        sale = self.scope.add(POSSale(
            sale_number=sale_number,
            status=POSSaleStatus.COMPLETED,
            customer_id=customer.id if customer else None,
            customer_name=data.customer_name or (customer.name if customer else "Consumidor Final"),
            customer_nit=data.customer_nit or (customer.nit if customer else "C/F"),
            subtotal=totals["subtotal"],
            tax_rate=tax_rate,
            tax_amount=totals["tax_amount"],
            discount_amount=round_money(data.discount_amount),
            total=totals["total"],
            amount_paid=paid,
            change_given=paid - totals["total"],
            notes=data.notes,
            cash_register_id=register.id,
            created_by=self.scope.user_id
        ))
        for part_id, quantity in merged.items():
            sale.items.append(self.scope.stamp(POSSaleItem(
                part_id=part_id,
                part_name=parts[part_id].name,
                quantity=quantity,
                unit_price=prices[part_id],
                total=prices[part_id] * quantity
            )))
        for payment in data.payments:
            sale.payments.append(self.scope.stamp(POSSalePayment(
                amount=round_money(payment.amount),
                payment_method=payment.payment_method,
                transaction_ref=payment.transaction_ref
            )))

        if totals["total"] > 0:
            self.cash.append_transaction(
                register,
                CashTransactionType.INCOME,
                totals["total"],
                description=f"Venta POS {sale_number}",
                reference=sale_number
            )
        return sale

    def void_sale(self, sale_id: UUID, reason: str) -> POSSale:
        """
        Anular una venta completada.

        Repone exactamente las cantidades vendidas y agrega un EGRESO por el
        total en la caja abierta; el INGRESO original no se toca. Una venta
        con devoluciones activas no se anula: primero se cancelan sus notas
        de crédito.
        """
        ledger = StockLedger(self.scope)
        with transactional(self.db):
            sale = self.scope.require(POSSale, sale_id, lock=True)
            if sale.status != POSSaleStatus.COMPLETED:
                raise StateConflictError(
                    "Solo se pueden anular ventas completadas",
                    sale_id=str(sale.id),
                    status=sale.status.value
                )

            register = self.cash.require_open_register(lock=True)

            for item in sale.items:
                ledger.restore(item.part_id, item.quantity, reference=f"ANULACION {sale.sale_number}")

            sale.status = POSSaleStatus.VOIDED
            sale.void_reason = reason
            sale.voided_at = datetime.now(timezone.utc)
            sale.voided_by = self.scope.user_id

            if sale.total > 0:
                self.cash.append_transaction(
                    register,
                    CashTransactionType.EXPENSE,
                    sale.total,
                    description=f"Anulación venta {sale.sale_number}: {reason}"[:255],
                    reference=sale.sale_number
                )

        self.db.refresh(sale)
        logger.info(f"Venta {sale.sale_number} anulada: {reason}")
        notifications.notify(notifications.POS_SALE_VOIDED, self.scope.tenant_id, {
            "sale_id": str(sale.id),
            "sale_number": sale.sale_number,
            "total": str(sale.total),
            "reason": reason,
        })
        return sale

    def get_sale(self, sale_id: UUID) -> POSSale:
        return self.scope.require(POSSale, sale_id)

    def list_sales(self, status_filter: Optional[POSSaleStatus] = None, limit: int = 20, offset: int = 0) -> List[POSSale]:
        query = self.scope.query(POSSale)
        if status_filter:
            query = query.filter(POSSale.status == status_filter)
        return query.order_by(POSSale.created_at.desc()).offset(offset).limit(limit).all()

    def sales_summary(self, date_from: Optional[datetime] = None, date_to: Optional[datetime] = None) -> POSSalesSummary:
        """Totales brutos de ventas no anuladas, con desglose por método de pago"""
        filters = [self.scope.filter(POSSale), POSSale.status != POSSaleStatus.VOIDED]
        if date_from:
            filters.append(POSSale.created_at >= date_from)
        if date_to:
            filters.append(POSSale.created_at <= date_to)

        count, total, tax, discount = self.db.query(
            func.count(POSSale.id),
            func.sum(POSSale.total),
            func.sum(POSSale.tax_amount),
            func.sum(POSSale.discount_amount)
        ).filter(*filters).one()

        by_method = self.db.query(
            POSSalePayment.payment_method, func.sum(POSSalePayment.amount)
        ).join(POSSale, POSSale.id == POSSalePayment.sale_id).filter(*filters).group_by(
            POSSalePayment.payment_method
        ).all()

        return POSSalesSummary(
            sales_count=count or 0,
            total_sales=round_money(total or 0),
            total_tax=round_money(tax or 0),
            total_discount=round_money(discount or 0),
            by_payment_method={method.value: round_money(amount or 0) for method, amount in by_method}
        )
