# tests/routers/test_transactions_api.py
"""
Integration tests for Transaction API endpoints.

- POST /transactions (Place order)
- GET /transactions/{user_id} (Ledger, newest first)

Tests validate:
- Symbol canonicalization and cash adjustment
- Business rejections come back as 400 ErrorDetail
- Shape errors come back as 422
"""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from tests.conftest import create_transaction, minutes_ago


def order(user_id: int, symbol="BARC", kind="BUY", quantity=10, price="2.00") -> dict:
    return {"user_id": user_id, "symbol": symbol, "kind": kind, "quantity": quantity, "price": price}


class TestPlaceOrder:
    """Tests for POST /transactions."""

    def test_buy(self, client: TestClient, sample_user):
        response = client.post("/transactions", json=order(sample_user.id, symbol="barc", kind="buy", price="2.1575"))

        assert response.status_code == 201
        data = response.json()
        txn = data["transaction"]
        assert txn["symbol"] == "BARC.L"
        assert txn["kind"] == "BUY"
        assert txn["quantity"] == 10
        assert Decimal(txn["price"]) == Decimal("2.1575")
        assert txn["user_id"] == sample_user.id
        assert Decimal(data["trade_value"]) == Decimal("21.58")
        assert Decimal(data["cash_balance"]) == Decimal("9978.42")

    def test_buy_then_sell(self, client: TestClient, sample_user):
        client.post("/transactions", json=order(sample_user.id, quantity=10))

        response = client.post("/transactions", json=order(sample_user.id, kind="SELL", quantity=10, price="3.00"))

        assert response.status_code == 201
        assert Decimal(response.json()["cash_balance"]) == Decimal("10010.00")

    def test_insufficient_funds(self, client: TestClient, sample_user):
        response = client.post("/transactions", json=order(sample_user.id, quantity=100000, price="1.00"))

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "InsufficientFundsError"
        assert data["details"]["symbol"] == "BARC.L"
        assert Decimal(data["details"]["required"]) == Decimal("100000.00")
        assert Decimal(data["details"]["available"]) == Decimal("10000.00")

    def test_insufficient_shares(self, client: TestClient, sample_user):
        client.post("/transactions", json=order(sample_user.id, quantity=5))

        response = client.post("/transactions", json=order(sample_user.id, kind="SELL", quantity=6))

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "InsufficientSharesError"
        assert data["details"] == {"symbol": "BARC.L", "requested": 6, "held": 5}

    @pytest.mark.parametrize("overrides,field", [
        ({"quantity": 0}, "quantity"),
        ({"quantity": -3}, "quantity"),
        ({"price": "0"}, "price"),
        ({"price": "-2.50"}, "price"),
        ({"kind": "SHORT"}, "kind"),
        ({"symbol": "   "}, "symbol"),
    ])
    def test_invalid_order_rejected(self, client: TestClient, sample_user, overrides, field):
        payload = {**order(sample_user.id), **overrides}

        response = client.post("/transactions", json=payload)

        assert response.status_code == 400
        assert response.json()["details"] == {"field": field}

    @pytest.mark.parametrize("overrides", [
        {"quantity": 1.5},
        {"quantity": "ten"},
        {"quantity": True},
        {"price": "abc"},
    ])
    def test_malformed_payload(self, client: TestClient, sample_user, overrides):
        payload = {**order(sample_user.id), **overrides}

        assert client.post("/transactions", json=payload).status_code == 422

    def test_unknown_user(self, client: TestClient):
        response = client.post("/transactions", json=order(9999))

        assert response.status_code == 404


class TestListTransactions:
    """Tests for GET /transactions/{user_id}."""

    def test_newest_first(self, client: TestClient, db, sample_user):
        create_transaction(db, sample_user, symbol="BARC.L", timestamp=minutes_ago(20))
        create_transaction(db, sample_user, symbol="VOD.L", timestamp=minutes_ago(2))

        response = client.get(f"/transactions/{sample_user.id}")

        assert response.status_code == 200
        data = response.json()
        assert data["user_id"] == sample_user.id
        assert data["count"] == 2
        assert [item["symbol"] for item in data["items"]] == ["VOD.L", "BARC.L"]

    def test_empty_ledger(self, client: TestClient, sample_user):
        data = client.get(f"/transactions/{sample_user.id}").json()

        assert data["items"] == []
        assert data["count"] == 0

    def test_unknown_user(self, client: TestClient):
        assert client.get("/transactions/9999").status_code == 404
