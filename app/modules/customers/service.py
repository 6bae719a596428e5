from typing import Optional
from uuid import UUID
import logging

from app.common.tenancy import TenantScope
from app.database.database import transactional
from app.modules.customers.models import Customer
from app.modules.customers.schemas import CustomerCreate, CustomerList, CustomerOut

logger = logging.getLogger(__name__)


class CustomerService:
    def __init__(self, scope: TenantScope):
        self.scope = scope
        self.db = scope.db

    def create_customer(self, data: CustomerCreate) -> Customer:
        with transactional(self.db):
            customer = self.scope.add(Customer(**data.model_dump()))
        self.db.refresh(customer)
        logger.info(f"Cliente {customer.id} creado en tenant {self.scope.tenant_id}")
        return customer

    def get_customer(self, customer_id: UUID) -> Customer:
        return self.scope.require(Customer, customer_id)

    def list_customers(self, search: Optional[str] = None, limit: int = 20, offset: int = 0) -> CustomerList:
        query = self.scope.query(Customer)
        if search:
            query = query.filter(Customer.name.ilike(f"%{search}%"))
        total = query.count()
        items = query.order_by(Customer.name).offset(offset).limit(limit).all()
        return CustomerList(items=[CustomerOut.model_validate(c) for c in items], total=total)
