"""
Errores tipados del motor de inventario y finanzas.

Todos heredan de HTTPException para que FastAPI los serialice directamente y
para que el patrón de los servicios (`except HTTPException: raise`) los
propague sin transformarlos. El `detail` es siempre un objeto JSON con:
- code: identificador estable del tipo de error
- message: mensaje para el usuario, derivado solo del tipo y su contexto
- contexto adicional (montos serializados como texto)

Todo error de este módulo es fatal para la transacción que lo contiene.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status


def _money(value: Decimal) -> str:
    return str(Decimal(value).quantize(Decimal("0.01")))


class DomainError(HTTPException):
    """Base de los errores de negocio"""

    code = "domain_error"
    status_code_default = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context = context
        super().__init__(
            status_code=self.status_code_default,
            detail={"code": self.code, "message": message, **context},
        )


class StockShortage:
    """Faltante de un repuesto al intentar consumir stock"""

    def __init__(self, part_id, requested: int, available: int, part_name: Optional[str] = None):
        self.part_id = part_id
        self.part_name = part_name
        self.requested = requested
        self.available = available

    def as_dict(self) -> Dict[str, Any]:
        return {
            "part_id": str(self.part_id),
            "part_name": self.part_name,
            "requested": self.requested,
            "available": self.available,
        }

    def __repr__(self):
        return f"StockShortage({self.part_name or self.part_id}: {self.requested}/{self.available})"


class InsufficientStockError(DomainError):
    code = "insufficient_stock"
    status_code_default = status.HTTP_409_CONFLICT

    def __init__(self, shortages: List[StockShortage]):
        self.shortages = shortages
        names = ", ".join(
            f"{s.part_name or s.part_id} (solicitado: {s.requested}, disponible: {s.available})"
            for s in shortages
        )
        super().__init__(
            f"Stock insuficiente: {names}",
            shortages=[s.as_dict() for s in shortages],
        )


class InsufficientPaymentError(DomainError):
    code = "insufficient_payment"

    def __init__(self, total: Decimal, paid: Decimal):
        self.total = total
        self.paid = paid
        super().__init__(
            f"El pago (Q{_money(paid)}) no cubre el total de la venta (Q{_money(total)})",
            total=_money(total),
            paid=_money(paid),
        )


class OverpaymentError(DomainError):
    code = "overpayment"

    def __init__(self, remaining: Decimal, attempted: Decimal):
        self.remaining = remaining
        self.attempted = attempted
        super().__init__(
            f"El pago (Q{_money(attempted)}) excede el saldo pendiente (Q{_money(remaining)})",
            remaining=_money(remaining),
            attempted=_money(attempted),
        )


class TenantIsolationError(DomainError):
    code = "tenant_isolation"
    status_code_default = status.HTTP_403_FORBIDDEN

    def __init__(self, entity: str):
        super().__init__(f"{entity} no pertenece a esta empresa", entity=entity)


class RegisterAlreadyOpenError(DomainError):
    code = "register_already_open"
    status_code_default = status.HTTP_409_CONFLICT

    def __init__(self):
        super().__init__("Ya existe una caja abierta")


class NoOpenRegisterError(DomainError):
    code = "no_open_register"
    status_code_default = status.HTTP_409_CONFLICT

    def __init__(self):
        super().__init__("No hay una caja abierta")


class StateConflictError(DomainError):
    code = "state_conflict"
    status_code_default = status.HTTP_409_CONFLICT


class EntityNotFoundError(DomainError):
    code = "not_found"
    status_code_default = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str):
        super().__init__(f"{entity} no encontrado", entity=entity)


class TransientTransactionError(DomainError):
    """Conflicto de serialización; el llamador puede reintentar"""

    code = "transient_conflict"
    status_code_default = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self):
        super().__init__("Conflicto temporal, intente de nuevo")


class InternalServiceError(DomainError):
    code = "internal_error"
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self):
        super().__init__("Error interno del servidor")
