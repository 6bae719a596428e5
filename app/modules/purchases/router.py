from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from app.core.config import settings
from app.database.database import get_db, run_with_retry
from app.modules.auth.dependencies import AuthDependencies, build_scope
from app.modules.auth.schemas import AuthContext
from app.modules.purchases.models import PurchaseOrderStatus
from app.modules.purchases.schemas import PurchaseOrderCreate, PurchaseItemCreate, PurchaseOrderOut
from app.modules.purchases.service import PurchaseOrderService

router = APIRouter(prefix="/purchase-orders", tags=["Purchases"])


@router.post("", response_model=PurchaseOrderOut, status_code=status.HTTP_201_CREATED)
def create_purchase_order(
    data: PurchaseOrderCreate,
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin()),
    db: Session = Depends(get_db)
):
    service = PurchaseOrderService(build_scope(auth_context, db))
    return run_with_retry(lambda: service.create_order(data))


@router.get("", response_model=List[PurchaseOrderOut])
def list_purchase_orders(
    status_filter: Optional[PurchaseOrderStatus] = Query(None, alias="status"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner", "admin", "accountant"])),
    db: Session = Depends(get_db)
):
    return PurchaseOrderService(build_scope(auth_context, db)).list_orders(status_filter, limit, offset)


@router.get("/{order_id}", response_model=PurchaseOrderOut)
def get_purchase_order(
    order_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner", "admin", "accountant"])),
    db: Session = Depends(get_db)
):
    return PurchaseOrderService(build_scope(auth_context, db)).get_order(order_id)


@router.post("/{order_id}/items", response_model=PurchaseOrderOut, status_code=status.HTTP_201_CREATED)
def add_purchase_item(
    order_id: UUID,
    data: PurchaseItemCreate,
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin()),
    db: Session = Depends(get_db)
):
    service = PurchaseOrderService(build_scope(auth_context, db))
    return run_with_retry(lambda: service.add_item(order_id, data))


@router.post("/{order_id}/receive", response_model=PurchaseOrderOut)
def receive_purchase_order(
    order_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin()),
    db: Session = Depends(get_db)
):
    """
    Recibir mercadería: ingresa el stock de todas las líneas.

    - 409 state_conflict si la orden ya fue recibida, está cancelada o vacía
    """
    service = PurchaseOrderService(build_scope(auth_context, db))
    return run_with_retry(lambda: service.receive_order(order_id))


@router.post("/{order_id}/cancel", response_model=PurchaseOrderOut)
def cancel_purchase_order(
    order_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin()),
    db: Session = Depends(get_db)
):
    service = PurchaseOrderService(build_scope(auth_context, db))
    return run_with_retry(lambda: service.cancel_order(order_id))
