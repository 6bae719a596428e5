"""
Tests para el módulo de Clientes
"""

import pytest

from app.modules.customers.schemas import CustomerCreate


@pytest.mark.parametrize("raw, expected", [
    (" 1234567-k ", "1234567-K"),
    ("   ", "C/F"),
])
def test_nit_is_normalized(raw, expected):
    assert CustomerCreate(name="Cliente", nit=raw).nit == expected


class TestCustomerEndpoints:

    def test_create_search_and_get(self, client, auth_headers):
        headers = auth_headers("seller")

        response = client.post("/api/v1/customers", json={"name": "Ana López", "phone": "5555-0000"}, headers=headers)
        assert response.status_code == 201
        customer = response.json()
        assert customer["nit"] == "C/F"

        client.post("/api/v1/customers", json={"name": "Bruno Pérez"}, headers=headers)

        response = client.get("/api/v1/customers", params={"search": "ana"}, headers=headers)
        assert response.json()["total"] == 1

        response = client.get(f"/api/v1/customers/{customer['id']}", headers=auth_headers("viewer"))
        assert response.status_code == 200
        assert response.json()["name"] == "Ana López"

    def test_customers_are_isolated(self, client, auth_headers, make_customer, other_scope, other_tenant_id):
        make_customer(name="Propio")
        make_customer(name="Ajeno", target_scope=other_scope)

        response = client.get("/api/v1/customers", headers=auth_headers())
        assert [c["name"] for c in response.json()["items"]] == ["Propio"]

        response = client.get("/api/v1/customers", headers=auth_headers(tenant=other_tenant_id))
        assert [c["name"] for c in response.json()["items"]] == ["Ajeno"]
