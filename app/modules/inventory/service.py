from typing import List, Optional
from uuid import UUID
import logging

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from app.common.tenancy import TenantScope
from app.database.database import transactional
from app.modules.inventory.ledger import StockLedger
from app.modules.inventory.models import Part, StockMovement, StockMovementType
from app.modules.inventory.schemas import PartCreate, PartList, PartOut

logger = logging.getLogger(__name__)


class PartService:
    """Catálogo de repuestos e ingreso de mercadería"""

    def __init__(self, scope: TenantScope):
        self.scope = scope
        self.db = scope.db

    def create_part(self, data: PartCreate) -> Part:
        """Crear un repuesto; la existencia inicial se registra como movimiento IN"""
        with transactional(self.db):
            part = self.scope.add(Part(**data.model_dump(exclude={"quantity"}), quantity=0))
            try:
                self.db.flush()
            except IntegrityError:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=f"Ya existe un repuesto con SKU '{data.sku}'"
                )
            if data.quantity > 0:
                StockLedger(self.scope).receive(part.id, data.quantity, reference="STOCK INICIAL")

        self.db.refresh(part)
        logger.info(f"Repuesto {part.sku} creado en tenant {self.scope.tenant_id}")
        return part

    def get_part(self, part_id: UUID) -> Part:
        return self.scope.require(Part, part_id)

    def list_parts(self, search: Optional[str] = None, limit: int = 20, offset: int = 0) -> PartList:
        query = self.scope.query(Part)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Part.name.ilike(pattern), Part.sku.ilike(pattern)))
        total = query.count()
        items = query.order_by(Part.name).offset(offset).limit(limit).all()
        return PartList(items=[PartOut.model_validate(p) for p in items], total=total, limit=limit, offset=offset)

    def list_low_stock(self) -> List[Part]:
        """Repuestos en o por debajo de su stock mínimo"""
        return self.scope.query(Part).filter(
            Part.quantity <= Part.min_stock
        ).order_by(Part.quantity).all()

    def receive_stock(self, part_id: UUID, quantity: int, reference: Optional[str] = None) -> Part:
        with transactional(self.db):
            StockLedger(self.scope).receive(part_id, quantity, reference)
        part = self.scope.require(Part, part_id)
        logger.info(f"Ingreso de {quantity} unidades al repuesto {part.sku}")
        return part

    def list_movements(self, part_id: UUID, movement_type: Optional[StockMovementType] = None) -> List[StockMovement]:
        self.scope.require(Part, part_id)
        query = self.scope.query(StockMovement).filter(StockMovement.part_id == part_id)
        if movement_type:
            query = query.filter(StockMovement.movement_type == movement_type)
        return query.order_by(StockMovement.created_at.desc()).all()
