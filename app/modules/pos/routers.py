"""
Routers FastAPI para el módulo POS (Point of Sale)

Define los endpoints REST para:
- CashRegisters: apertura/cierre de caja, movimientos y arqueo
- POSSales: ventas de mostrador, anulaciones y resumen

Los endpoints que modifican saldos o existencias se ejecutan con
run_with_retry: solo los conflictos transitorios de la base de datos se
reintentan, nunca los errores de negocio.
"""

from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional, List
from uuid import UUID
from datetime import datetime

from app.core.config import settings
from app.database.database import get_db, run_with_retry
from app.modules.auth.dependencies import AuthDependencies, build_scope
from app.modules.auth.schemas import AuthContext
from app.modules.pos.models import POSSaleStatus
from app.modules.pos.services import CashRegisterService, POSSaleService
from app.modules.pos.schemas import (
    CashRegisterOpen, CashRegisterClose, CashRegisterOut, CashRegisterSummary,
    CashTransactionCreate, CashTransactionOut,
    POSSaleCreate, POSSaleVoid, POSSaleOut, POSSalesSummary
)

CASH_ROLES = ["owner", "admin", "seller", "cashier"]


# ===== CASH REGISTERS ROUTER =====

cash_registers_router = APIRouter(prefix="/cash-registers", tags=["POS"])


@cash_registers_router.post("/open", response_model=CashRegisterOut, status_code=status.HTTP_201_CREATED)
def open_cash_register(
    data: CashRegisterOpen,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(CASH_ROLES)),
    db: Session = Depends(get_db)
):
    """
    Abrir caja registradora.

    - **opening_balance**: saldo inicial de apertura
    - Solo una caja abierta por empresa (409 register_already_open)
    """
    service = CashRegisterService(build_scope(auth_context, db))
    return run_with_retry(lambda: service.open_register(data.opening_balance, data.opening_notes))


@cash_registers_router.get("/current", response_model=Optional[CashRegisterOut])
def get_current_cash_register(
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    """Caja abierta actual, o null si no hay ninguna"""
    return CashRegisterService(build_scope(auth_context, db)).get_open_register()


@cash_registers_router.get("", response_model=List[CashRegisterOut])
def list_cash_registers(
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(CASH_ROLES + ["accountant"])),
    db: Session = Depends(get_db)
):
    return CashRegisterService(build_scope(auth_context, db)).list_registers(limit, offset)


@cash_registers_router.get("/{register_id}", response_model=CashRegisterOut)
def get_cash_register(
    register_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(CASH_ROLES + ["accountant"])),
    db: Session = Depends(get_db)
):
    return CashRegisterService(build_scope(auth_context, db)).get_register(register_id)


@cash_registers_router.post(
    "/{register_id}/transactions",
    response_model=CashTransactionOut,
    status_code=status.HTTP_201_CREATED
)
def record_cash_transaction(
    register_id: UUID,
    data: CashTransactionCreate,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(CASH_ROLES)),
    db: Session = Depends(get_db)
):
    """
    Registrar un movimiento manual de caja.

    - INCOME suma al saldo; EXPENSE y WITHDRAWAL restan
    - 409 state_conflict si la caja está cerrada
    """
    service = CashRegisterService(build_scope(auth_context, db))
    return run_with_retry(lambda: service.record_transaction(
        register_id, data.type, data.amount, data.description, data.reference
    ))


@cash_registers_router.get("/{register_id}/transactions", response_model=List[CashTransactionOut])
def list_cash_transactions(
    register_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(CASH_ROLES + ["accountant"])),
    db: Session = Depends(get_db)
):
    return CashRegisterService(build_scope(auth_context, db)).list_transactions(register_id)


@cash_registers_router.post("/{register_id}/close", response_model=CashRegisterOut)
def close_cash_register(
    register_id: UUID,
    data: CashRegisterClose,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(CASH_ROLES)),
    db: Session = Depends(get_db)
):
    """
    Cerrar caja con arqueo.

    Guarda el saldo esperado (derivado del libro) y la diferencia contra el
    efectivo contado. Una caja cerrada ya no acepta movimientos.
    """
    service = CashRegisterService(build_scope(auth_context, db))
    return run_with_retry(lambda: service.close_register(register_id, data.counted_balance, data.closing_notes))


@cash_registers_router.get("/{register_id}/summary", response_model=CashRegisterSummary)
def get_cash_register_summary(
    register_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(CASH_ROLES + ["accountant"])),
    db: Session = Depends(get_db)
):
    return CashRegisterService(build_scope(auth_context, db)).register_summary(register_id)


# ===== POS SALES ROUTER =====

pos_sales_router = APIRouter(prefix="/pos", tags=["POS"])


@pos_sales_router.post("/sales", response_model=POSSaleOut, status_code=status.HTTP_201_CREATED)
def create_pos_sale(
    data: POSSaleCreate,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(CASH_ROLES)),
    db: Session = Depends(get_db)
):
    """
    Crear venta POS.

    Errores:
    - 409 no_open_register: no hay caja abierta
    - 400 insufficient_payment: los pagos no cubren el total
    - 409 insufficient_stock: algún ítem no tiene existencia (no se descuenta nada)
    """
    service = POSSaleService(build_scope(auth_context, db))
    return run_with_retry(lambda: service.create_sale(data))


@pos_sales_router.get("/sales", response_model=List[POSSaleOut])
def list_pos_sales(
    status_filter: Optional[POSSaleStatus] = Query(None, alias="status"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(CASH_ROLES + ["accountant"])),
    db: Session = Depends(get_db)
):
    return POSSaleService(build_scope(auth_context, db)).list_sales(status_filter, limit, offset)


@pos_sales_router.get("/sales/{sale_id}", response_model=POSSaleOut)
def get_pos_sale(
    sale_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(CASH_ROLES + ["accountant"])),
    db: Session = Depends(get_db)
):
    return POSSaleService(build_scope(auth_context, db)).get_sale(sale_id)


@pos_sales_router.post("/sales/{sale_id}/void", response_model=POSSaleOut)
def void_pos_sale(
    sale_id: UUID,
    data: POSSaleVoid,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner", "admin"])),
    db: Session = Depends(get_db)
):
    """Anular venta: repone stock y registra el egreso en la caja abierta"""
    service = POSSaleService(build_scope(auth_context, db))
    return run_with_retry(lambda: service.void_sale(sale_id, data.reason))


@pos_sales_router.get("/summary", response_model=POSSalesSummary)
def get_pos_summary(
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner", "admin", "accountant"])),
    db: Session = Depends(get_db)
):
    return POSSaleService(build_scope(auth_context, db)).sales_summary(date_from, date_to)
