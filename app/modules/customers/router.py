from fastapi import APIRouter, Depends, status, Query
from typing import Optional
from uuid import UUID
from sqlalchemy.orm import Session

from app.core.config import settings
from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, build_scope
from app.modules.auth.schemas import AuthContext
from app.modules.customers.service import CustomerService
from app.modules.customers.schemas import CustomerCreate, CustomerOut, CustomerList

router = APIRouter(prefix="/customers", tags=["Customers"])


@router.post("", response_model=CustomerOut, status_code=status.HTTP_201_CREATED)
def create_customer(
    data: CustomerCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner", "admin", "seller", "technician"]))
):
    return CustomerService(build_scope(auth_context, db)).create_customer(data)


@router.get("", response_model=CustomerList)
def list_customers(
    search: Optional[str] = Query(None),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return CustomerService(build_scope(auth_context, db)).list_customers(search, limit, offset)


@router.get("/{customer_id}", response_model=CustomerOut)
def get_customer(
    customer_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return CustomerService(build_scope(auth_context, db)).get_customer(customer_id)
