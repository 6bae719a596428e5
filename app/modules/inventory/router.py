from fastapi import APIRouter, Depends, status, Query
from typing import List, Optional
from uuid import UUID
from sqlalchemy.orm import Session

from app.core.config import settings
from app.database.database import get_db, run_with_retry
from app.modules.auth.dependencies import AuthDependencies, build_scope
from app.modules.auth.schemas import AuthContext
from app.modules.inventory.service import PartService
from app.modules.inventory.models import StockMovementType
from app.modules.inventory.schemas import (
    PartCreate, PartOut, PartList, StockReceive, StockMovementOut
)

parts_router = APIRouter(prefix="/parts", tags=["Inventory"])


@parts_router.post("", response_model=PartOut, status_code=status.HTTP_201_CREATED)
def create_part(
    data: PartCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner", "admin"]))
):
    """Crear un repuesto en el catálogo de la empresa"""
    service = PartService(build_scope(auth_context, db))
    return run_with_retry(lambda: service.create_part(data))


@parts_router.get("", response_model=PartList)
def list_parts(
    search: Optional[str] = Query(None, description="Filtrar por nombre o SKU"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    service = PartService(build_scope(auth_context, db))
    return service.list_parts(search, limit, offset)


@parts_router.get("/low-stock", response_model=List[PartOut])
def list_low_stock(
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Repuestos en o por debajo de su stock mínimo"""
    service = PartService(build_scope(auth_context, db))
    return service.list_low_stock()


@parts_router.get("/{part_id}", response_model=PartOut)
def get_part(
    part_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    service = PartService(build_scope(auth_context, db))
    return service.get_part(part_id)


@parts_router.post("/{part_id}/receive", response_model=PartOut)
def receive_stock(
    part_id: UUID,
    data: StockReceive,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner", "admin"]))
):
    """Registrar ingreso de mercadería (compra o ajuste positivo)"""
    service = PartService(build_scope(auth_context, db))
    return run_with_retry(lambda: service.receive_stock(part_id, data.quantity, data.reference))


@parts_router.get("/{part_id}/movements", response_model=List[StockMovementOut])
def list_movements(
    part_id: UUID,
    movement_type: Optional[StockMovementType] = Query(None),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    service = PartService(build_scope(auth_context, db))
    return service.list_movements(part_id, movement_type)
