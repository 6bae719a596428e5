from pydantic import BaseModel
from typing import Optional
from uuid import UUID


class AuthContext(BaseModel):
    """Contexto de sesión: usuario, empresa (tenant) y rol"""
    user_id: UUID
    tenant_id: Optional[UUID] = None
    user_role: Optional[str] = None
