"""
Servicio de órdenes de compra

La recepción es una única transacción: todas las líneas ingresan stock con
StockLedger.receive y la orden pasa a RECEIVED, o no cambia nada.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
import logging

from app.common.exceptions import StateConflictError
from app.common.sequences import next_document_number
from app.common.tenancy import TenantScope
from app.database.database import transactional
from app.modules.inventory.ledger import StockLedger
from app.modules.inventory.models import Part
from app.modules.purchases.models import PurchaseOrder, PurchaseItem, PurchaseOrderStatus
from app.modules.purchases.schemas import PurchaseOrderCreate, PurchaseItemCreate
from app.modules.taxes.calculator import round_money

logger = logging.getLogger(__name__)


class PurchaseOrderService:
    def __init__(self, scope: TenantScope):
        self.scope = scope
        self.db = scope.db

    def get_order(self, order_id: UUID) -> PurchaseOrder:
        return self.scope.require(PurchaseOrder, order_id)

    def list_orders(
        self, status_filter: Optional[PurchaseOrderStatus] = None, limit: int = 20, offset: int = 0
    ) -> List[PurchaseOrder]:
        query = self.scope.query(PurchaseOrder)
        if status_filter:
            query = query.filter(PurchaseOrder.status == status_filter)
        return query.order_by(PurchaseOrder.created_at.desc()).offset(offset).limit(limit).all()

    def _pending_order(self, order_id: UUID) -> PurchaseOrder:
        order = self.scope.require(PurchaseOrder, order_id, lock=True)
        if order.status != PurchaseOrderStatus.PENDING:
            raise StateConflictError(
                f"La orden {order.order_number} no está pendiente",
                order_id=str(order.id),
                status=order.status.value
            )
        return order

    def _append_item(self, order: PurchaseOrder, data: PurchaseItemCreate) -> PurchaseItem:
        part = self.scope.require(Part, data.part_id)
        item = self.scope.stamp(PurchaseItem(
            part_id=part.id,
            part_name=part.name,
            quantity=data.quantity,
            unit_cost=round_money(data.unit_cost)
        ))
        order.items.append(item)
        order.total_cost = round_money(order.total_cost or 0) + item.unit_cost * item.quantity
        return item

    def create_order(self, data: PurchaseOrderCreate) -> PurchaseOrder:
        with transactional(self.db):
            order = self.scope.add(PurchaseOrder(
                order_number=next_document_number(self.scope, "purchase_order"),
                status=PurchaseOrderStatus.PENDING,
                supplier=data.supplier,
                notes=data.notes,
                total_cost=Decimal("0.00"),
                created_by=self.scope.user_id
            ))
            for line in data.items:
                self._append_item(order, line)

        self.db.refresh(order)
        logger.info(f"Orden de compra {order.order_number} creada para {order.supplier}")
        return order

    def add_item(self, order_id: UUID, data: PurchaseItemCreate) -> PurchaseOrder:
        """Agregar una línea; solo en órdenes pendientes"""
        with transactional(self.db):
            order = self._pending_order(order_id)
            self._append_item(order, data)

        self.db.refresh(order)
        return order

    def receive_order(self, order_id: UUID) -> PurchaseOrder:
        """
        Recibir la mercadería de una orden pendiente.

        Cada línea ingresa stock con un movimiento IN referenciado a la orden
        y deja el costo del repuesto en el último precio de compra.
        """
        ledger = StockLedger(self.scope)
        with transactional(self.db):
            order = self._pending_order(order_id)
            if not order.items:
                raise StateConflictError(
                    f"La orden {order.order_number} no tiene productos",
                    order_id=str(order.id)
                )
            reference = f"OC {order.order_number}"
            for item in order.items:
                ledger.receive(item.part_id, item.quantity, reference=reference)
                self.db.execute(
                    self.scope.update(Part)
                    .where(Part.id == item.part_id)
                    .values(cost=item.unit_cost)
                    .execution_options(synchronize_session=False)
                )
            order.status = PurchaseOrderStatus.RECEIVED
            order.received_at = datetime.now(timezone.utc)
            order.received_by = self.scope.user_id

        self.db.refresh(order)
        logger.info(f"Orden de compra {order.order_number} recibida: {len(order.items)} líneas")
        return order

    def cancel_order(self, order_id: UUID) -> PurchaseOrder:
        with transactional(self.db):
            order = self._pending_order(order_id)
            order.status = PurchaseOrderStatus.CANCELLED

        self.db.refresh(order)
        logger.info(f"Orden de compra {order.order_number} cancelada")
        return order
