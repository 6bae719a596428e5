"""
Fixtures compartidas para los tests de Taller360.

Cada test usa una base SQLite en memoria nueva (StaticPool: una sola
conexión compartida entre el test y el TestClient). Las variables de
entorno se fijan antes de importar la aplicación.
"""
import os

os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["NOTIFICATIONS_ENABLED"] = "false"
os.environ["DEBUG"] = "false"

from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.common.tenancy import TenantScope
from app.database.database import Base, get_db
from app.modules.auth.utils import create_access_token
from app.modules.customers.schemas import CustomerCreate
from app.modules.customers.service import CustomerService
from app.modules.inventory.models import Part
from app.modules.inventory.schemas import PartCreate
from app.modules.inventory.service import PartService


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def tenant_id():
    return uuid4()


@pytest.fixture
def other_tenant_id():
    return uuid4()


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def scope(db_session, tenant_id, user_id):
    return TenantScope(db_session, tenant_id, user_id)


@pytest.fixture
def other_scope(db_session, other_tenant_id, user_id):
    return TenantScope(db_session, other_tenant_id, user_id)


# ===== HTTP =====

@pytest.fixture
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(tenant_id, user_id):
    """Fábrica de headers Authorization para un rol y tenant"""
    def make(role: str = "owner", tenant=None):
        token = create_access_token(user_id, tenant or tenant_id, role)
        return {"Authorization": f"Bearer {token}"}
    return make


# ===== DATOS =====

@pytest.fixture
def make_part(scope):
    counter = {"n": 0}

    def make(quantity: int = 10, price: str = "100.00", min_stock: int = 0, target_scope=None, **kwargs):
        counter["n"] += 1
        data = PartCreate(
            name=kwargs.pop("name", f"Repuesto {counter['n']}"),
            sku=kwargs.pop("sku", f"SKU-{counter['n']:04d}"),
            quantity=quantity,
            min_stock=min_stock,
            price=Decimal(price),
            cost=Decimal(kwargs.pop("cost", "0")),
        )
        return PartService(target_scope or scope).create_part(data)
    return make


@pytest.fixture
def make_customer(scope):
    def make(name: str = "Cliente de Prueba", nit: str = "1234567-8", target_scope=None):
        return CustomerService(target_scope or scope).create_customer(CustomerCreate(name=name, nit=nit))
    return make


@pytest.fixture
def stock_of(db_session):
    """Existencia leída directamente de la base, sin pasar por el identity map"""
    def read(part_id) -> int:
        return db_session.execute(select(Part.quantity).where(Part.id == part_id)).scalar_one()
    return read
