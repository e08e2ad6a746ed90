"""HTTP-level tests for the expense API (FastAPI TestClient, SQLite)."""

from __future__ import annotations

import pytest

from expense_tracker.backend import crud

DINNER = {
    "amount": 199.5,
    "category": "Food",
    "description": "Dinner",
    "date": "2026-02-18",
    "idempotency_key": "abc",
}


def _headers(user: dict) -> dict[str, str]:
    return {"Authorization": f"Bearer {user['token']}"}


def _list(client, user, **params) -> dict:
    resp = client.get("/expenses", params=params, headers=_headers(user))
    assert resp.status_code == 200, resp.text
    return resp.json()


class TestHealth:
    def test_root_and_health(self, client):
        assert client.get("/").json()["status"] == "ok"
        assert client.get("/health").json() == {"status": "healthy"}


class TestAuth:
    def test_register_returns_token(self, register):
        user = register()
        assert user["email"] == "asha@example.com"
        assert user["name"] == "Asha"
        assert user["id"] and user["token"]

    def test_duplicate_register_conflicts(self, client, register):
        register()
        resp = client.post(
            "/auth/register",
            json={"name": "Other", "email": "ASHA@example.com", "password": "secret123"},
        )
        assert resp.status_code == 409

    def test_login(self, client, register):
        user = register()
        resp = client.post("/auth/login", json={"email": "asha@example.com", "password": "secret123"})
        assert resp.status_code == 200
        assert resp.json()["id"] == user["id"]

    def test_login_with_wrong_password(self, client, register):
        register()
        resp = client.post("/auth/login", json={"email": "asha@example.com", "password": "nope-nope"})
        assert resp.status_code == 401

    def test_short_password_rejected(self, client):
        resp = client.post(
            "/auth/register", json={"name": "Asha", "email": "a@example.com", "password": "123"}
        )
        assert resp.status_code == 422

    @pytest.mark.parametrize(
        "headers",
        [{}, {"Authorization": "Bearer not-a-jwt"}, {"Authorization": "Basic abc"}],
    )
    def test_expense_routes_require_token(self, client, headers):
        assert client.get("/expenses", headers=headers).status_code == 401
        assert client.post("/expenses", json=DINNER, headers=headers).status_code == 401


class TestCreateExpense:
    def test_retry_after_dropped_response_returns_existing(self, client, register):
        user = register()

        first = client.post("/expenses", json=DINNER, headers=_headers(user))
        # The client never saw `first`; it resubmits with the same key
        second = client.post("/expenses", json=DINNER, headers=_headers(user))

        assert first.status_code == 201
        assert first.json()["outcome"] == "created"
        assert second.status_code == 200
        assert second.json()["outcome"] == "existing"
        assert second.json()["record"]["id"] == first.json()["record"]["id"]
        assert _list(client, user)["count"] == 1

    def test_amount_is_returned_with_two_places(self, client, register):
        user = register()
        record = client.post("/expenses", json=DINNER, headers=_headers(user)).json()["record"]
        assert record["amount"] == "199.50"
        assert record["idempotency_key"] == "abc"
        assert record["date"] == "2026-02-18"

    def test_same_key_different_accounts_are_independent(self, client, register):
        asha = register()
        ravi = register(email="ravi@example.com", name="Ravi")

        a = client.post("/expenses", json=DINNER, headers=_headers(asha))
        r = client.post("/expenses", json=DINNER, headers=_headers(ravi))

        assert a.status_code == r.status_code == 201
        assert a.json()["record"]["id"] != r.json()["record"]["id"]
        assert _list(client, asha)["count"] == 1
        assert _list(client, ravi)["count"] == 1

    @pytest.mark.parametrize(
        "overrides",
        [
            {"amount": -5},
            {"amount": 0},
            {"amount": "0.004"},
            {"amount": 100000000},
            {"amount": "NaN"},
            {"category": "   "},
            {"description": ""},
            {"date": "2026-13-01"},
            {"idempotency_key": ""},
        ],
    )
    def test_invalid_payload_is_rejected_without_writing(self, client, register, overrides):
        user = register()
        resp = client.post("/expenses", json={**DINNER, **overrides}, headers=_headers(user))

        assert resp.status_code == 422
        assert _list(client, user)["count"] == 0

    def test_missing_key_is_rejected(self, client, register):
        user = register()
        body = {k: v for k, v in DINNER.items() if k != "idempotency_key"}
        assert client.post("/expenses", json=body, headers=_headers(user)).status_code == 422

    def test_transient_outcome_maps_to_503(self, client, register, monkeypatch):
        user = register()
        monkeypatch.setattr(
            crud, "write_expense", lambda db, owner_id, expense_in: crud.WriteResult(crud.WriteOutcome.TRANSIENT)
        )

        resp = client.post("/expenses", json=DINNER, headers=_headers(user))
        assert resp.status_code == 503


class TestListExpenses:
    def _seed(self, client, user):
        rows = [
            ("k1", "Food", "2026-02-10", "100"),
            ("k2", "Travel", "2026-02-12", "50.25"),
            ("k3", "Food", "2026-02-14", "99.5"),
        ]
        for key, category, day, amount in rows:
            body = {**DINNER, "idempotency_key": key, "category": category, "date": day, "amount": amount}
            assert client.post("/expenses", json=body, headers=_headers(user)).status_code == 201

    def test_default_sort_is_newest_first_with_total(self, client, register):
        user = register()
        self._seed(client, user)

        data = _list(client, user)
        assert [e["idempotency_key"] for e in data["expenses"]] == ["k3", "k2", "k1"]
        assert data["count"] == 3
        assert data["total"] == "249.75"

    def test_category_filter_and_ascending_sort(self, client, register):
        user = register()
        self._seed(client, user)

        data = _list(client, user, category="Food", sort="date_asc")
        assert [e["idempotency_key"] for e in data["expenses"]] == ["k1", "k3"]
        assert data["total"] == "199.50"

    def test_unknown_sort_is_rejected(self, client, register):
        user = register()
        resp = client.get("/expenses", params={"sort": "amount"}, headers=_headers(user))
        assert resp.status_code == 422

    def test_other_accounts_expenses_are_hidden(self, client, register):
        asha = register()
        ravi = register(email="ravi@example.com", name="Ravi")
        self._seed(client, asha)

        assert _list(client, ravi)["count"] == 0
        assert client.get("/expenses/categories", headers=_headers(ravi)).json() == []
        assert client.get("/expenses/categories", headers=_headers(asha)).json() == ["Food", "Travel"]


class TestDeleteExpense:
    def test_delete_then_delete_again(self, client, register):
        user = register()
        record = client.post("/expenses", json=DINNER, headers=_headers(user)).json()["record"]

        first = client.delete(f"/expenses/{record['id']}", headers=_headers(user))
        second = client.delete(f"/expenses/{record['id']}", headers=_headers(user))

        assert first.status_code == 200
        assert first.json()["outcome"] == "deleted"
        assert first.json()["record"]["id"] == record["id"]
        assert second.status_code == 404
        assert second.json() == {"outcome": "not_found", "record": None}

    def test_cannot_delete_another_accounts_expense(self, client, register):
        asha = register()
        ravi = register(email="ravi@example.com", name="Ravi")
        record = client.post("/expenses", json=DINNER, headers=_headers(asha)).json()["record"]

        resp = client.delete(f"/expenses/{record['id']}", headers=_headers(ravi))

        assert resp.status_code == 404
        assert _list(client, asha)["count"] == 1
