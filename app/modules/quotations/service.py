"""
Servicio de cotizaciones

Una cotización no toca el stock. Al convertirse, la venta se registra con
POSSaleService.record_sale dentro de la misma transacción que marca la
cotización como CONVERTED: o quedan ambas o ninguna.
"""
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
import logging

from fastapi import HTTPException, status

from app.common.exceptions import StateConflictError
from app.common.sequences import next_document_number
from app.common.tenancy import TenantScope
from app.database.database import transactional
from app.modules.customers.models import Customer
from app.modules.inventory.ledger import StockLedger
from app.modules.inventory.models import Part
from app.modules.notifications import service as notifications
from app.modules.pos.models import POSSale
from app.modules.pos.schemas import POSSaleCreate, POSSaleItemCreate
from app.modules.pos.services import POSSaleService
from app.modules.quotations.models import (
    Quotation, QuotationItem, QuotationStatus, VALID_TRANSITIONS, EXPIRABLE_STATUSES
)
from app.modules.quotations.schemas import QuotationCreate, QuotationConvert
from app.modules.taxes.calculator import calculate_totals, round_money
from app.modules.taxes.service import TenantSettingsService

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class QuotationService:
    def __init__(self, scope: TenantScope):
        self.scope = scope
        self.db = scope.db

    def get_quotation(self, quotation_id: UUID) -> Quotation:
        return self.scope.require(Quotation, quotation_id)

    def list_quotations(
        self, status_filter: Optional[QuotationStatus] = None, limit: int = 20, offset: int = 0
    ) -> List[Quotation]:
        query = self.scope.query(Quotation)
        if status_filter:
            query = query.filter(Quotation.status == status_filter)
        return query.order_by(Quotation.created_at.desc()).offset(offset).limit(limit).all()

    def create_quotation(self, data: QuotationCreate) -> Quotation:
        """Cotizar repuestos; líneas repetidas se fusionan con el primer precio indicado"""
        with transactional(self.db):
            merged: "OrderedDict[UUID, list]" = OrderedDict()
            for line in data.items:
                part = self.scope.require(Part, line.part_id)
                if part.id in merged:
                    merged[part.id][1] += line.quantity
                else:
                    price = line.unit_price if line.unit_price is not None else part.price
                    merged[part.id] = [part, line.quantity, round_money(price)]

            customer = None
            if data.customer_id:
                customer = self.scope.require(Customer, data.customer_id)

            tax_rate = data.tax_rate
            if tax_rate is None:
                tax_rate = TenantSettingsService(self.scope).get_tax_rate()
            subtotal = sum((price * quantity for _, quantity, price in merged.values()), ZERO)
            totals = calculate_totals(subtotal, tax_rate, data.discount_amount)
            if totals["total"] < 0:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="El descuento no puede exceder el total de la cotización"
                )

            quotation = self.scope.add(Quotation(
                quotation_number=next_document_number(self.scope, "quotation"),
                status=QuotationStatus.DRAFT,
                customer_id=customer.id if customer else None,
                customer_name=data.customer_name or (customer.name if customer else "Consumidor Final"),
                customer_phone=data.customer_phone,
                customer_email=data.customer_email,
                subtotal=totals["subtotal"],
                tax_rate=tax_rate,
                tax_amount=totals["tax_amount"],
                discount_amount=round_money(data.discount_amount),
                total=totals["total"],
                valid_until=datetime.now(timezone.utc) + timedelta(days=data.valid_days),
                notes=data.notes,
                created_by=self.scope.user_id
            ))
            for part, quantity, price in merged.values():
                quotation.items.append(self.scope.stamp(QuotationItem(
                    part_id=part.id,
                    part_name=part.name,
                    quantity=quantity,
                    unit_price=price,
                    total=price * quantity
                )))

        self.db.refresh(quotation)
        logger.info(f"Cotización {quotation.quotation_number} por Q{quotation.total} creada")
        return quotation

    def update_status(self, quotation_id: UUID, new_status: QuotationStatus) -> Quotation:
        """Cambios manuales de estado; CONVERTED solo se alcanza con convert_to_sale"""
        with transactional(self.db):
            quotation = self.scope.require(Quotation, quotation_id, lock=True)
            previous = quotation.status
            if new_status == QuotationStatus.CONVERTED or new_status not in VALID_TRANSITIONS.get(previous, ()):
                raise StateConflictError(
                    f"No se puede cambiar el estado de {previous.value} a {new_status.value}",
                    status=previous.value,
                    requested=new_status.value
                )
            quotation.status = new_status

        self.db.refresh(quotation)
        logger.info(f"Cotización {quotation.quotation_number}: {previous.value} -> {new_status.value}")
        return quotation

    def mark_expired(self, now: Optional[datetime] = None) -> int:
        """Vencer borradores y enviadas cuya vigencia ya pasó"""
        now = now or datetime.now(timezone.utc)
        with transactional(self.db):
            result = self.db.execute(
                self.scope.update(Quotation)
                .where(Quotation.status.in_(EXPIRABLE_STATUSES), Quotation.valid_until < now)
                .values(status=QuotationStatus.EXPIRED)
                .execution_options(synchronize_session=False)
            )
        if result.rowcount:
            logger.info(f"{result.rowcount} cotizaciones vencidas en tenant {self.scope.tenant_id}")
        return result.rowcount

    def delete_quotation(self, quotation_id: UUID) -> None:
        with transactional(self.db):
            quotation = self.scope.require(Quotation, quotation_id, lock=True)
            if quotation.status != QuotationStatus.DRAFT:
                raise StateConflictError(
                    "Solo se pueden eliminar cotizaciones en borrador",
                    status=quotation.status.value
                )
            self.db.delete(quotation)

    def convert_to_sale(self, quotation_id: UUID, data: QuotationConvert) -> POSSale:
        """
        Convertir una cotización aceptada en venta POS.

        La venta usa los precios, la tasa y el descuento cotizados, exige
        caja abierta y descuenta el stock de todas las líneas o de ninguna.
        """
        ledger = StockLedger(self.scope)
        sales = POSSaleService(self.scope)
        with transactional(self.db):
            quotation = self.scope.require(Quotation, quotation_id, lock=True)
            if quotation.status != QuotationStatus.ACCEPTED:
                raise StateConflictError(
                    "Solo se pueden convertir cotizaciones aceptadas",
                    quotation_id=str(quotation.id),
                    status=quotation.status.value
                )

            sale = sales.record_sale(
                POSSaleCreate(
                    items=[POSSaleItemCreate(part_id=i.part_id, quantity=i.quantity) for i in quotation.items],
                    payments=data.payments,
                    discount_amount=quotation.discount_amount,
                    customer_id=quotation.customer_id,
                    customer_name=quotation.customer_name,
                    customer_nit=data.customer_nit,
                    notes=f"Cotización {quotation.quotation_number}"
                ),
                ledger,
                unit_prices={i.part_id: i.unit_price for i in quotation.items},
                tax_rate=quotation.tax_rate
            )
            self.db.flush()
            quotation.status = QuotationStatus.CONVERTED
            quotation.converted_sale_id = sale.id

        self.db.refresh(sale)
        logger.info(f"Cotización {quotation.quotation_number} convertida en venta {sale.sale_number}")
        notifications.notify_low_stock(self.scope.tenant_id, ledger.low_stock)
        return sale
