"""
Tests para impuestos y configuración por empresa
"""

from decimal import Decimal

import pytest

from app.modules.taxes.calculator import calculate_tax_amount, calculate_totals, round_money
from app.modules.taxes.service import TenantSettingsService


class TestCalculator:

    @pytest.mark.parametrize("raw, expected", [
        ("1.005", "1.01"),
        ("2.675", "2.68"),
        ("0.004", "0.00"),
        ("10", "10.00"),
    ])
    def test_round_money_half_up(self, raw, expected):
        assert round_money(Decimal(raw)) == Decimal(expected)

    def test_tax_amount_rounds_half_up(self):
        # 10.05 * 12% = 1.206
        assert calculate_tax_amount(Decimal("10.05"), Decimal("12")) == Decimal("1.21")
        # 0.125 * 100% = 0.125
        assert calculate_tax_amount(Decimal("0.125"), Decimal("100")) == Decimal("0.13")

    def test_discount_applies_after_tax(self):
        totals = calculate_totals(Decimal("200.00"), Decimal("12"), Decimal("20.00"))

        assert totals == {
            "subtotal": Decimal("200.00"),
            "tax_amount": Decimal("24.00"),
            "total": Decimal("204.00"),
        }


class TestTenantSettings:

    def test_default_rate_without_settings(self, scope):
        assert TenantSettingsService(scope).get_tax_rate() == Decimal("12.00")

    def test_rate_is_per_tenant(self, scope, other_scope):
        TenantSettingsService(scope).update_tax_rate(Decimal("5.00"))

        assert TenantSettingsService(scope).get_tax_rate() == Decimal("5.00")
        assert TenantSettingsService(other_scope).get_tax_rate() == Decimal("12.00")

    def test_update_existing_row(self, scope):
        service = TenantSettingsService(scope)
        service.update_tax_rate(Decimal("5.00"))
        row = service.update_tax_rate(Decimal("0"))

        assert Decimal(str(row.tax_rate)) == Decimal("0")


class TestTaxRateEndpoints:

    def test_get_and_update(self, client, auth_headers):
        response = client.get("/api/v1/settings/tax-rate", headers=auth_headers("viewer"))
        assert response.status_code == 200
        assert Decimal(response.json()["tax_rate"]) == Decimal("12")

        response = client.put("/api/v1/settings/tax-rate", json={"tax_rate": "5.50"}, headers=auth_headers())
        assert response.status_code == 200

        response = client.get("/api/v1/settings/tax-rate", headers=auth_headers())
        assert Decimal(response.json()["tax_rate"]) == Decimal("5.5")

    def test_update_requires_owner_or_admin(self, client, auth_headers):
        response = client.put("/api/v1/settings/tax-rate", json={"tax_rate": "5"}, headers=auth_headers("seller"))

        assert response.status_code == 403

    def test_rate_out_of_range_rejected(self, client, auth_headers):
        response = client.put("/api/v1/settings/tax-rate", json={"tax_rate": "120"}, headers=auth_headers())

        assert response.status_code == 422
