"""
Numeración secuencial de documentos por empresa.

Cada tipo de documento (ticket, venta POS, factura, pago, nota de crédito,
cotización, orden de compra) tiene su propio contador por tenant. La fila
del contador se bloquea durante la transacción que emite el número, de modo
que dos operaciones concurrentes nunca obtienen el mismo número.
"""
from sqlalchemy import Column, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4

from app.database.database import Base
from app.common.mixins import TenantMixin, TimestampMixin
from app.common.tenancy import TenantScope

# tipo de documento -> (prefijo, dígitos)
DOCUMENT_FORMATS = {
    "ticket": ("T-", 6),
    "pos_sale": ("V-", 6),
    "invoice": ("INV-", 4),
    "payment": ("PAY-", 4),
    "credit_note": ("NC-", 6),
    "quotation": ("COT-", 6),
    "purchase_order": ("OC-", 6),
}


class DocumentSequence(Base, TenantMixin, TimestampMixin):
    """Contador de numeración por tenant y tipo de documento"""
    __tablename__ = "document_sequences"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    document_type = Column(String(20), nullable=False)
    prefix = Column(String(10), nullable=False)
    current_number = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("tenant_id", "document_type", name="uq_sequence_tenant_type"),
    )


def next_document_number(scope: TenantScope, document_type: str) -> str:
    """Emitir el siguiente número del documento; debe llamarse dentro de la transacción que lo usa"""
    prefix, width = DOCUMENT_FORMATS[document_type]

    sequence = scope.query(DocumentSequence).filter(
        DocumentSequence.document_type == document_type
    ).with_for_update().first()

    if not sequence:
        sequence = scope.add(DocumentSequence(
            document_type=document_type,
            prefix=prefix,
            current_number=0
        ))
        scope.db.flush()

    sequence.current_number += 1
    return f"{sequence.prefix}{sequence.current_number:0{width}d}"
