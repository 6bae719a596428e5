from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, build_scope
from app.modules.auth.schemas import AuthContext
from app.modules.taxes.service import TenantSettingsService
from app.modules.taxes.schemas import TaxRateUpdate, TaxRateOut

taxes_router = APIRouter(prefix="/settings", tags=["Settings"])


@taxes_router.get("/tax-rate", response_model=TaxRateOut)
def get_tax_rate(
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Tasa de impuesto usada en ventas POS y facturas"""
    service = TenantSettingsService(build_scope(auth_context, db))
    return TaxRateOut(
        tenant_id=auth_context.tenant_id,
        tax_rate=service.get_tax_rate(),
        currency=service.get_currency()
    )


@taxes_router.put("/tax-rate", response_model=TaxRateOut)
def update_tax_rate(
    data: TaxRateUpdate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin())
):
    """Actualizar la tasa de impuesto de la empresa (solo owner/admin)"""
    service = TenantSettingsService(build_scope(auth_context, db))
    row = service.update_tax_rate(data.tax_rate)
    return TaxRateOut(tenant_id=row.tenant_id, tax_rate=row.tax_rate, currency=row.currency)
