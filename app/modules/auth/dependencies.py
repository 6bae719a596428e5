"""
Dependencias de autenticación para FastAPI.

La emisión de tokens y la gestión de usuarios son externas a este servicio:
aquí solo se decodifica el JWT y se arma el AuthContext.
"""
from uuid import UUID
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.common.tenancy import TenantScope
from app.modules.auth.schemas import AuthContext
from app.modules.auth.utils import verify_token
from sqlalchemy.orm import Session

# Security scheme
security = HTTPBearer()

ALL_ROLES = ["owner", "admin", "seller", "cashier", "technician", "accountant", "viewer"]


class AuthDependencies:
    """Dependencias de autenticación reutilizables."""

    @staticmethod
    def get_auth_context(
        credentials: HTTPAuthorizationCredentials = Depends(security)
    ) -> AuthContext:
        """
        Obtener contexto de autenticación desde el token JWT.
        El token debe incluir sub (usuario), tenant_id y role.
        """
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No se pudieron validar las credenciales",
            headers={"WWW-Authenticate": "Bearer"},
        )

        payload = verify_token(credentials.credentials)
        user_id = payload.get("sub")
        if user_id is None or payload.get("type", "access") != "access":
            raise credentials_exception

        tenant_id = payload.get("tenant_id")
        try:
            return AuthContext(
                user_id=UUID(user_id),
                tenant_id=UUID(tenant_id) if tenant_id else None,
                user_role=payload.get("role"),
            )
        except ValueError:
            raise credentials_exception

    @staticmethod
    def require_role(allowed_roles: list[str]):
        """
        Dependencia para requerir roles específicos.
        """
        def role_checker(auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)):
            if not auth_context.tenant_id:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Se requiere seleccionar una empresa"
                )

            if auth_context.user_role not in allowed_roles:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Se requiere uno de estos roles: {', '.join(allowed_roles)}"
                )

            return auth_context
        return role_checker

    @staticmethod
    def require_owner_or_admin():
        """Dependencia para requerir rol de owner o admin."""
        return AuthDependencies.require_role(["owner", "admin"])

    @staticmethod
    def require_any_role():
        """Dependencia que requiere cualquier rol activo en una empresa."""
        return AuthDependencies.require_role(ALL_ROLES)


def build_scope(auth_context: AuthContext, db: Session) -> TenantScope:
    """TenantScope para el usuario y la empresa del contexto"""
    return TenantScope(db, auth_context.tenant_id, auth_context.user_id)

