"""
API tests for expense CRUD, filters and ownership.
"""

import pytest


@pytest.fixture
def create_expense(client, auth_headers):
    def _create(amount=25.5, category="Food", description="Lunch", date="2026-03-10", headers=None):
        response = client.post("/api/expenses", json={
            "amount": amount,
            "category": category,
            "description": description,
            "date": date,
        }, headers=headers or auth_headers)
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _create


class TestExpenseCrud:

    def test_create_and_get(self, client, auth_headers, create_expense):
        created = create_expense(amount=12.34)

        response = client.get(f"/api/expenses/{created['id']}", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["amount"] == 12.34
        assert data["category"] == "Food"
        assert data["date"] == "2026-03-10"

    def test_update(self, client, auth_headers, create_expense):
        created = create_expense()

        response = client.put(f"/api/expenses/{created['id']}", json={"category": "Dining"},
                              headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["data"]["category"] == "Dining"
        assert response.json()["data"]["description"] == "Lunch"

    def test_delete(self, client, auth_headers, create_expense):
        created = create_expense()

        assert client.delete(f"/api/expenses/{created['id']}", headers=auth_headers).status_code == 200
        response = client.get(f"/api/expenses/{created['id']}", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["error"] == "Expense not found"

    def test_non_positive_amount_rejected(self, client, auth_headers):
        response = client.post("/api/expenses", json={
            "amount": 0, "category": "Food", "description": "Free", "date": "2026-03-10",
        }, headers=auth_headers)

        assert response.status_code == 400

    def test_other_users_expense_is_404(self, client, register, create_expense):
        created = create_expense()
        other_headers, _ = register()

        for method in ("get", "put", "delete"):
            kwargs = {"json": {"category": "X"}} if method == "put" else {}
            response = getattr(client, method)(
                f"/api/expenses/{created['id']}", headers=other_headers, **kwargs
            )
            assert response.status_code == 404


class TestExpenseListing:

    def test_filters_and_pagination(self, client, auth_headers, create_expense):
        create_expense(category="Food", date="2026-01-05")
        create_expense(category="Food", date="2026-02-05")
        create_expense(category="Transport", date="2026-02-06")

        response = client.get("/api/expenses?category=Food", headers=auth_headers)
        body = response.json()
        assert body["pagination"]["total"] == 2
        assert [e["date"] for e in body["data"]] == ["2026-02-05", "2026-01-05"]

        response = client.get("/api/expenses?startDate=2026-02-01&endDate=2026-02-28",
                              headers=auth_headers)
        assert response.json()["pagination"]["total"] == 2

    def test_sort_by_amount_ascending(self, client, auth_headers, create_expense):
        for amount in (30, 10, 20):
            create_expense(amount=amount)

        response = client.get("/api/expenses?sortBy=amount&sortOrder=asc", headers=auth_headers)

        assert [e["amount"] for e in response.json()["data"]] == [10, 20, 30]

    def test_unknown_sort_field_rejected(self, client, auth_headers):
        response = client.get("/api/expenses?sortBy=notes", headers=auth_headers)

        assert response.status_code == 400

    def test_lists_only_own_expenses(self, client, register, create_expense):
        create_expense()
        other_headers, _ = register()

        response = client.get("/api/expenses", headers=other_headers)

        assert response.json()["data"] == []
