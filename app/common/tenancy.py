"""
Capa de aislamiento multi-tenant.

Único punto donde se aplica el filtro por tenant_id. Los servicios nunca
filtran por tenant por su cuenta: leen y escriben a través de TenantScope,
incluidas las sentencias Core (select/update) y las consultas de agregados.
"""
from typing import Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy import Select, Update, select, update
from sqlalchemy.orm import Query, Session

from app.common.exceptions import EntityNotFoundError, TenantIsolationError

M = TypeVar("M")


def _label(model) -> str:
    return getattr(model, "display_name", model.__name__)


class TenantScope:
    """Sesión de base de datos acotada al tenant del contexto de autenticación"""

    def __init__(self, db: Session, tenant_id: UUID, user_id: Optional[UUID] = None):
        self.db = db
        self.tenant_id = tenant_id
        self.user_id = user_id

    def filter(self, model):
        """Condición de tenant para combinar en consultas de agregados o joins"""
        return model.tenant_id == self.tenant_id

    def query(self, model: Type[M]) -> Query:
        return self.db.query(model).filter(self.filter(model))

    def select(self, model, *columns) -> Select:
        """SELECT Core de columnas de `model` (o de la entidad) acotado al tenant"""
        return select(*(columns or (model,))).where(self.filter(model))

    def update(self, model) -> Update:
        """UPDATE Core acotado al tenant; el llamador agrega condiciones y valores"""
        return update(model).where(self.filter(model))

    def get(self, model: Type[M], entity_id) -> Optional[M]:
        return self.query(model).filter(model.id == entity_id).first()

    def require(self, model: Type[M], entity_id, lock: bool = False) -> M:
        """
        Obtener una entidad del tenant o fallar.

        - Si existe en otro tenant: TenantIsolationError
        - Si no existe: EntityNotFoundError
        - lock=True bloquea la fila (SELECT ... FOR UPDATE) hasta el fin de la transacción
        """
        query = self.query(model).filter(model.id == entity_id)
        if lock:
            query = query.with_for_update()
        entity = query.first()
        if entity is not None:
            return entity

        foreign = self.db.query(model.id).filter(model.id == entity_id).first()
        if foreign is not None:
            raise TenantIsolationError(_label(model))
        raise EntityNotFoundError(_label(model))

    def stamp(self, entity: M) -> M:
        """Asignar el tenant a una fila hija que entra a la sesión por relación"""
        entity.tenant_id = self.tenant_id
        return entity

    def add(self, entity: M) -> M:
        self.db.add(self.stamp(entity))
        return entity
