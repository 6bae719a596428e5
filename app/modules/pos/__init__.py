"""
Módulo POS (Point of Sale) - Taller360

ENTIDADES PRINCIPALES:
- CashRegister: caja con apertura/cierre y arqueo
- CashTransaction: libro de movimientos de caja (INCOME, EXPENSE, WITHDRAWAL)
- POSSale: ventas de mostrador con ítems y pagos

FUNCIONALIDADES:
- Apertura/cierre de caja con saldo esperado derivado del libro
- Movimientos manuales de efectivo
- Ventas POS integradas con inventario y caja
- Anulación de ventas con reposición de stock y egreso compensatorio

REGLAS DE NEGOCIO:
- Solo una caja abierta por empresa (índice único parcial)
- Ventas y anulaciones requieren caja abierta
- Los pagos deben cubrir el total de la venta
- Una caja cerrada y sus movimientos son inmutables

SEGURIDAD:
- owner/admin: todas las operaciones, incluida la anulación
- seller/cashier: caja y ventas
- accountant: consultas y resumen
"""

from .models import (
    CashRegister, CashTransaction, CashTransactionType, PaymentMethod,
    POSSale, POSSaleItem, POSSalePayment, POSSaleStatus
)

from .services import CashRegisterService, POSSaleService

from .routers import cash_registers_router, pos_sales_router

__all__ = [
    # Models
    "CashRegister", "CashTransaction", "CashTransactionType", "PaymentMethod",
    "POSSale", "POSSaleItem", "POSSalePayment", "POSSaleStatus",

    # Services
    "CashRegisterService", "POSSaleService",

    # Routers
    "cash_registers_router", "pos_sales_router",
]
