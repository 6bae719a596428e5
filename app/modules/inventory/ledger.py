"""
Libro de existencias (Stock Ledger)

Primitivas de consumo y reposición de repuestos. Cada una es un único
UPDATE condicional, sin leer-y-luego-escribir:

- consume: UPDATE ... SET quantity = quantity - n WHERE quantity >= n
  Si no se afecta ninguna fila, el stock no alcanza (InsufficientStockError).
  Dos consumos simultáneos de la última unidad no pueden cumplir ambos el WHERE.
- restore: UPDATE ... SET quantity = quantity + n, sin condición.
  Debe corresponder 1:1 con un consumo previo de la misma cantidad.
- receive: ingreso de mercadería (compras, ajustes).

Las primitivas no confirman: se ejecutan dentro de la transacción del llamador.
"""
from typing import Iterable, List, Optional, Tuple
from uuid import UUID
import logging

from fastapi import HTTPException, status

from app.common.exceptions import InsufficientStockError, StockShortage
from app.common.tenancy import TenantScope
from app.modules.inventory.models import Part, StockMovement, StockMovementType

logger = logging.getLogger(__name__)


class LowStockAlert:
    def __init__(self, part_id: UUID, name: str, quantity: int, min_stock: int):
        self.part_id = part_id
        self.name = name
        self.quantity = quantity
        self.min_stock = min_stock

    def as_payload(self) -> dict:
        return {
            "part_id": str(self.part_id),
            "part_name": self.name,
            "quantity": self.quantity,
            "min_stock": self.min_stock,
        }


class StockLedger:
    """Primitivas de existencia acotadas al tenant de la sesión"""

    def __init__(self, scope: TenantScope):
        self.scope = scope
        self.db = scope.db
        self.low_stock: List[LowStockAlert] = []

    @staticmethod
    def _validate_quantity(quantity: int):
        if quantity <= 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="La cantidad debe ser mayor a cero"
            )

    def _record(self, part_id: UUID, movement_type: StockMovementType, quantity: int, reference: Optional[str]):
        self.scope.add(StockMovement(
            part_id=part_id,
            movement_type=movement_type,
            quantity=quantity,
            reference=reference,
            created_by=self.scope.user_id
        ))

    def _shortage(self, part_id: UUID, requested: int) -> StockShortage:
        # Valida pertenencia al tenant antes de leer la existencia actual
        self.scope.require(Part, part_id)
        name, available = self.db.execute(
            self.scope.select(Part, Part.name, Part.quantity).where(Part.id == part_id)
        ).one()
        return StockShortage(part_id, requested, available, name)

    def _try_consume(self, part_id: UUID, quantity: int, reference: Optional[str]) -> Optional[int]:
        self._validate_quantity(quantity)
        stmt = (
            self.scope.update(Part)
            .where(Part.id == part_id, Part.quantity >= quantity)
            .values(quantity=Part.quantity - quantity)
            .returning(Part.quantity, Part.min_stock, Part.name)
            .execution_options(synchronize_session=False)
        )
        row = self.db.execute(stmt).first()
        if row is None:
            return None

        new_quantity, min_stock, name = row
        self._record(part_id, StockMovementType.OUT, quantity, reference)
        if new_quantity <= min_stock:
            self.low_stock.append(LowStockAlert(part_id, name, new_quantity, min_stock))
        return new_quantity

    def consume(self, part_id: UUID, quantity: int, reference: Optional[str] = None) -> int:
        """Descontar stock; retorna la nueva existencia"""
        new_quantity = self._try_consume(part_id, quantity, reference)
        if new_quantity is None:
            shortage = self._shortage(part_id, quantity)
            logger.info(f"Stock insuficiente para {shortage!r} en tenant {self.scope.tenant_id}")
            raise InsufficientStockError([shortage])
        return new_quantity

    def consume_many(self, items: Iterable[Tuple[UUID, int]], reference: Optional[str] = None):
        """
        Descontar varios repuestos en la misma transacción.

        Intenta todos y reporta todos los faltantes juntos; el llamador debe
        abortar la transacción si se lanza InsufficientStockError.
        """
        shortages = []
        for part_id, quantity in items:
            if self._try_consume(part_id, quantity, reference) is None:
                shortages.append(self._shortage(part_id, quantity))
        if shortages:
            logger.info(f"Stock insuficiente para {shortages!r} en tenant {self.scope.tenant_id}")
            raise InsufficientStockError(shortages)

    def _increment(self, part_id: UUID, quantity: int, movement_type: StockMovementType, reference: Optional[str]) -> int:
        self._validate_quantity(quantity)
        stmt = (
            self.scope.update(Part)
            .where(Part.id == part_id)
            .values(quantity=Part.quantity + quantity)
            .returning(Part.quantity)
            .execution_options(synchronize_session=False)
        )
        new_quantity = self.db.execute(stmt).scalar_one_or_none()
        if new_quantity is None:
            self.scope.require(Part, part_id)
        self._record(part_id, movement_type, quantity, reference)
        return new_quantity

    def restore(self, part_id: UUID, quantity: int, reference: Optional[str] = None) -> int:
        """Reponer stock de un consumo previo"""
        return self._increment(part_id, quantity, StockMovementType.RESTORE, reference)

    def receive(self, part_id: UUID, quantity: int, reference: Optional[str] = None) -> int:
        """Ingreso de mercadería"""
        return self._increment(part_id, quantity, StockMovementType.IN, reference)
