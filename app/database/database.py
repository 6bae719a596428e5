from contextlib import contextmanager
from typing import Callable, TypeVar
import logging
import time

from fastapi import HTTPException
from sqlalchemy import create_engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from app.core.config import settings
from app.common.exceptions import (
    InternalServiceError, TransientTransactionError
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Códigos SQLSTATE de conflictos transitorios (serialización / deadlock)
TRANSIENT_PGCODES = {"40001", "40P01"}


def _engine_options(url: str) -> dict:
    options = {"pool_pre_ping": True, "echo": settings.DEBUG}
    if url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
    else:
        options["pool_size"] = 10
        options["max_overflow"] = 20
    return options


sync_engine = create_engine(settings.database_url, **_engine_options(settings.database_url))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=sync_engine)

Base = declarative_base()


def get_db():
    """Genera una sesión de base de datos por request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def is_transient_error(error: DBAPIError) -> bool:
    """True si el error del driver es un conflicto que puede reintentarse."""
    pgcode = getattr(error.orig, "pgcode", None)
    if pgcode in TRANSIENT_PGCODES:
        return True
    # SQLite reporta la contención de escritura como "database is locked"
    return "database is locked" in str(error.orig)


@contextmanager
def transactional(db: Session):
    """
    Ejecuta un bloque como una única transacción.

    - Confirma al salir sin errores.
    - Revierte ante cualquier error, sin dejar estado parcial.
    - Errores de negocio (DomainError / HTTPException) se propagan tal cual.
    - Conflictos de serialización se convierten en TransientTransactionError.
    - Cualquier otro error se registra y se convierte en InternalServiceError.
    """
    try:
        yield db
        db.commit()
    except HTTPException:
        db.rollback()
        raise
    except DBAPIError as e:
        db.rollback()
        if is_transient_error(e):
            logger.warning(f"Conflicto transitorio de transacción: {e.orig}")
            raise TransientTransactionError()
        logger.exception("Error de base de datos durante la transacción")
        raise InternalServiceError()
    except Exception:
        db.rollback()
        logger.exception("Error inesperado durante la transacción")
        raise InternalServiceError()


def run_with_retry(operation: Callable[[], T], max_retries: int = None) -> T:
    """
    Ejecuta una operación transaccional reintentando solo conflictos transitorios.

    Los errores de negocio nunca se reintentan.
    """
    retries = settings.TRANSACTION_MAX_RETRIES if max_retries is None else max_retries
    attempt = 0
    while True:
        attempt += 1
        try:
            return operation()
        except TransientTransactionError:
            if attempt > retries:
                logger.error(f"Conflicto transitorio persistente tras {attempt} intentos")
                raise
            logger.info(f"Reintentando operación (intento {attempt + 1})")
            time.sleep(settings.TRANSACTION_RETRY_BACKOFF * attempt)