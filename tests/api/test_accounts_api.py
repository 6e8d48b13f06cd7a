"""
Tests for chart of accounts API endpoints.
"""

from decimal import Decimal

import pytest

from rental_ledger.config import get_settings
from rental_ledger.services.balance_cache import get_balance_cache


@pytest.fixture
def shared_cache(monkeypatch):
    """Turn on the process-wide balance cache for one test."""
    monkeypatch.setattr(get_settings(), "BALANCE_CACHE_ENABLED", True)
    cache = get_balance_cache()
    yield cache
    cache.clear()


def opening_cash(client, amount=100):
    return client.post("/ledger/entries", json={
        "source": "manual",
        "date": "2025-01-01",
        "description": "Opening cash",
        "lines": [
            {"account_code": "1001", "debit": amount},
            {"account_code": "3000", "credit": amount},
        ],
    })


class TestCreateAccount:

    def test_create_account_returns_201(self, client):
        response = client.post("/accounts", json={
            "code": "1001",
            "name": "Bank Account",
            "account_type": "ASSET",
            "category": "Current Assets",
            "is_cash": True,
        })

        assert response.status_code == 201
        data = response.json()
        assert data["code"] == "1001"
        assert data["is_active"] is True
        assert data["is_cash"] is True
        assert data["parent_code"] is None

    def test_duplicate_code_returns_400(self, client, chart):
        response = client.post("/accounts", json={
            "code": "1001",
            "name": "Bank Again",
            "account_type": "ASSET",
        })

        assert response.status_code == 400
        assert response.json()["error_code"] == "CHART_OF_ACCOUNTS"

    def test_child_of_other_type_returns_400(self, client, chart):
        response = client.post("/accounts", json={
            "code": "2001",
            "name": "Misfiled",
            "account_type": "LIABILITY",
            "parent_code": "1000",
        })

        assert response.status_code == 400

    def test_invalid_type_returns_422(self, client):
        response = client.post("/accounts", json={
            "code": "9000",
            "name": "Mystery",
            "account_type": "REVENUE",
        })

        assert response.status_code == 422


class TestReadAccounts:

    def test_seed_then_list(self, client):
        seeded = client.post("/accounts/seed")
        listed = client.get("/accounts", params={"account_type": "INCOME"})

        assert seeded.status_code == 201
        assert [a["code"] for a in listed.json()] == ["4000", "4001", "4002", "4100"]

    def test_grouped(self, client, chart):
        data = client.get("/accounts/grouped").json()

        assert [a["code"] for a in data["equity"]] == ["3000", "3100"]
        assert data["total"] == sum(
            len(data[key]) for key in ("assets", "liabilities", "equity", "income", "expenses")
        )

    def test_get_missing_account_returns_404(self, client, chart):
        response = client.get("/accounts/9999")

        assert response.status_code == 404
        assert response.json()["error_code"] == "ACCOUNT_NOT_FOUND"

    def test_prefix_audit(self, client, chart):
        client.post("/accounts", json={
            "code": "1100-deb1",
            "name": "Accounts Receivable - Jane Doe",
            "account_type": "ASSET",
        })

        response = client.get("/accounts/audit/prefix-children")

        assert response.json() == [{
            "code": "1100-deb1",
            "name": "Accounts Receivable - Jane Doe",
            "inferred_parent_code": "1100",
        }]


class TestChangeAccounts:

    def test_patch_name(self, client, chart):
        response = client.patch("/accounts/5007", json={"name": "Repairs"})

        assert response.status_code == 200
        assert response.json()["name"] == "Repairs"

    def test_patch_type_of_referenced_account_returns_400(self, client, chart):
        opening_cash(client)

        response = client.patch("/accounts/3000", json={"account_type": "LIABILITY"})

        assert response.status_code == 400

    def test_deactivated_account_rejects_postings(self, client, chart):
        client.post("/accounts/1001/deactivate")

        response = opening_cash(client)

        assert response.status_code == 400
        assert response.json()["details"]["inactive"] == ["1001"]

    def test_delete_unused_account(self, client, chart):
        assert client.delete("/accounts/5099").status_code == 204
        assert client.get("/accounts/5099").status_code == 404

    def test_delete_referenced_account_returns_400(self, client, chart):
        opening_cash(client)

        response = client.delete("/accounts/1001")

        assert response.status_code == 400
        assert "deactivate" in response.json()["message"]

    def test_deactivating_child_refreshes_cached_parent_balance(self, client, chart, shared_cache):
        client.post("/accounts", json={
            "code": "1100-9",
            "name": "Accounts Receivable - Jane Doe",
            "account_type": "ASSET",
            "parent_code": "1100",
        })
        client.post("/ledger/entries", json={
            "source": "manual",
            "date": "2025-01-01",
            "description": "Opening balance",
            "lines": [
                {"account_code": "1100-9", "debit": 300},
                {"account_code": "3000", "credit": 300},
            ],
        })
        before = client.get("/reports/balance/1100", params={"as_of": "2025-01-31"})

        client.post("/accounts/1100-9/deactivate")
        after = client.get("/reports/balance/1100", params={"as_of": "2025-01-31"})

        assert Decimal(before.json()["net_balance"]) == Decimal("300")
        assert Decimal(after.json()["net_balance"]) == Decimal("0")
