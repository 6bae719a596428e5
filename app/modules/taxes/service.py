from decimal import Decimal
from typing import Optional
import logging

from app.common.tenancy import TenantScope
from app.core.config import settings
from app.database.database import transactional
from app.modules.taxes.models import TenantSettings

logger = logging.getLogger(__name__)


class TenantSettingsService:
    def __init__(self, scope: TenantScope):
        self.scope = scope
        self.db = scope.db

    def _settings_row(self) -> Optional[TenantSettings]:
        return self.scope.query(TenantSettings).first()

    def get_tax_rate(self) -> Decimal:
        """Tasa de impuesto vigente; usa DEFAULT_TAX_RATE si la empresa no configuró una"""
        row = self._settings_row()
        if row is None:
            return Decimal(settings.DEFAULT_TAX_RATE)
        return Decimal(str(row.tax_rate))

    def get_currency(self) -> str:
        row = self._settings_row()
        return row.currency if row else settings.CURRENCY

    def update_tax_rate(self, tax_rate: Decimal) -> TenantSettings:
        with transactional(self.db):
            row = self._settings_row()
            if row is None:
                row = self.scope.add(TenantSettings(
                    tax_rate=tax_rate,
                    currency=settings.CURRENCY,
                ))
            else:
                row.tax_rate = tax_rate
        self.db.refresh(row)
        logger.info(f"Tasa de impuesto actualizada a {tax_rate}% para tenant {self.scope.tenant_id}")
        return row
