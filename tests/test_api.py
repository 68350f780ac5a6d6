"""Tests for the HTTP endpoints."""
from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

import main
from database import create_tables, make_engine, make_sessionmaker
from services import seed_default_categories


@pytest.fixture
def client():
    engine = make_engine("sqlite://")
    create_tables(engine)
    TestingSession = make_sessionmaker(engine)
    with TestingSession() as session:
        seed_default_categories(session)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    main.app.dependency_overrides[main.get_db] = override_get_db
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def signup(client, email="ana@example.com"):
    response = client.post(
        "/auth/signup", json={"email": email, "password": "long-enough-pw"}
    )
    assert response.status_code == 201
    return response.json()["csrf_token"]


def test_dashboard_requires_session(client):
    response = client.get("/api/dashboard")
    assert response.status_code == 401
    assert response.json()["detail"] == "Authentication required"


def test_signup_starts_session_and_provisions_categories(client):
    signup(client)

    session = client.get("/auth/session")
    assert session.status_code == 200
    assert session.json()["user"]["email"] == "ana@example.com"

    categories = client.get("/api/categories").json()
    assert sum(1 for c in categories if not c["is_default"]) == 10


def test_duplicate_signup_is_rejected(client):
    signup(client)
    response = client.post(
        "/auth/signup", json={"email": "ANA@example.com", "password": "long-enough-pw"}
    )
    assert response.status_code == 400


def test_login_with_wrong_password_is_unauthorized(client):
    signup(client)
    client.post("/auth/logout")

    response = client.post(
        "/auth/login", json={"email": "ana@example.com", "password": "nope"}
    )
    assert response.status_code == 401
    assert client.get("/api/dashboard").status_code == 401


def test_mutations_require_csrf_token(client):
    signup(client)

    response = client.post(
        "/api/accounts", json={"name": "Checking", "type": "checking"}
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid CSRF token"


def test_dashboard_reflects_new_transactions(client):
    csrf = signup(client)
    headers = {"X-CSRF-Token": csrf}

    account = client.post(
        "/api/accounts",
        json={"name": "Checking", "type": "checking", "balance_cents": 100_000},
        headers=headers,
    ).json()
    client.post(
        "/api/accounts",
        json={"name": "Visa", "type": "credit_card", "balance_cents": -20_000},
        headers=headers,
    )
    food = next(c for c in client.get("/api/categories").json() if not c["is_default"])
    created = client.post(
        "/api/transactions",
        json={
            "account_id": account["id"],
            "category_id": food["id"],
            "amount_cents": 2_500,
            "type": "expense",
            "description": "Lunch",
            "date": date.today().isoformat(),
            "is_necessary": True,
        },
        headers=headers,
    )
    assert created.status_code == 201
    budget = client.post(
        "/api/budgets",
        json={"category_id": food["id"], "monthly_limit_cents": 10_000},
        headers=headers,
    )
    assert budget.status_code == 201

    dashboard = client.get("/api/dashboard").json()

    assert dashboard["total_balance"] == 100_000 - 2_500 - 20_000
    assert dashboard["account_count"] == 2
    assert dashboard["current_month"]["expenses"] == 2_500
    assert dashboard["necessary_expenses"] == 2_500
    assert dashboard["income_change"] == 0
    assert dashboard["recent_transactions"][0]["description"] == "Lunch"
    assert dashboard["spending_by_category"] == [
        {"name": food["name"], "value": 2_500}
    ]
    assert dashboard["budgets"][0]["percentage"] == 25.0


def test_missing_transaction_is_not_found(client):
    signup(client)
    assert client.get("/api/transactions/999").status_code == 404


def test_transaction_list_paginates(client):
    csrf = signup(client)
    headers = {"X-CSRF-Token": csrf}
    account = client.post(
        "/api/accounts", json={"name": "Cash", "type": "other"}, headers=headers
    ).json()
    category = client.get("/api/categories").json()[0]
    for day in range(1, 4):
        client.post(
            "/api/transactions",
            json={
                "account_id": account["id"],
                "category_id": category["id"],
                "amount_cents": 100,
                "type": "expense",
                "description": f"Day {day}",
                "date": date(2024, 1, day).isoformat(),
            },
            headers=headers,
        )

    first = client.get("/api/transactions", params={"limit": 2}).json()
    assert [t["description"] for t in first["items"]] == ["Day 3", "Day 2"]
    assert first["has_more"] is True

    second = client.get("/api/transactions", params={"limit": 2, "page": 2}).json()
    assert [t["description"] for t in second["items"]] == ["Day 1"]
    assert second["has_more"] is False

    assert client.get("/api/transactions", params={"type": "bogus"}).status_code == 400


def test_analytics_rejects_bad_ranges(client):
    signup(client)

    assert client.get("/api/analytics", params={"range": "forever"}).status_code == 400
    backwards = client.get(
        "/api/analytics",
        params={"range": "custom", "start": "2024-02-01", "end": "2024-01-01"},
    )
    assert backwards.status_code == 400

    report = client.get("/api/analytics", params={"range": "3months"})
    assert report.status_code == 200
    assert report.json()["range"]["slug"] == "3months"
    assert report.json()["monthly_trend"] == []


def test_dashboard_storage_failure_is_retryable(client, monkeypatch):
    signup(client)

    def broken(self, today=None):
        raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))

    monkeypatch.setattr(main.DashboardService, "summary", broken)

    response = client.get("/api/dashboard")
    assert response.status_code == 503
    assert response.json()["detail"] == main.RETRYABLE_ERROR
