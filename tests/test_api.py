from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from config import Settings
from database import Base
from main import app, get_analytics, get_db, get_now
from services import AsyncAnalyticsService
from store import AsyncLedgerStore

NOW = datetime(2025, 3, 15, 10, 0)

SETTINGS = Settings(
    database_url="sqlite+pysqlite:///:memory:",
    timezone="UTC",
    top_categories=3,
    recent_transactions=5,
)


@pytest.fixture
def client(tmp_path):
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_db():
        db = factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_analytics] = lambda: AsyncAnalyticsService(
        AsyncLedgerStore(factory), SETTINGS
    )
    app.dependency_overrides[get_now] = lambda: NOW
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        engine.dispose()


def create_category(client, name, **extra):
    resp = client.post("/api/categories", json={"name": name, **extra})
    assert resp.status_code == 201
    return resp.json()


def create_transaction(client, amount, when, **extra):
    payload = {"amount": amount, "description": "entry", "date": when, **extra}
    resp = client.post("/api/transactions", json=payload)
    assert resp.status_code == 201
    return resp.json()


def test_category_crud_errors(client) -> None:
    create_category(client, "Food")

    duplicate = client.post("/api/categories", json={"name": "FOOD"})
    assert duplicate.status_code == 400

    missing = client.put("/api/categories/999", json={"color": "#123456"})
    assert missing.status_code == 404

    seeded = client.post("/api/categories/seed-defaults")
    assert seeded.json()["created"] > 0
    salary = next(c for c in client.get("/api/categories").json() if c["name"] == "Salary")
    protected = client.delete(f"/api/categories/{salary['id']}")
    assert protected.status_code == 403


def test_transaction_listing_pages(client) -> None:
    for day in range(1, 6):
        create_transaction(client, -10 * day, f"2025-03-0{day}T12:00:00")

    resp = client.get("/api/transactions", params={"limit": 2, "page": 1})
    body = resp.json()

    assert resp.status_code == 200
    assert body["total_transactions"] == 5
    assert body["total_pages"] == 3
    assert [t["amount"] for t in body["transactions"]] == [-50, -40]

    by_amount = client.get(
        "/api/transactions", params={"sort_by": "amount", "sort_order": "asc"}
    ).json()
    assert by_amount["transactions"][0]["amount"] == -50

    assert client.get("/api/transactions/999").status_code == 404


def test_analytics_routes(client) -> None:
    food = create_category(client, "Food")
    client.post(
        "/api/budgets",
        json={"category_id": food["id"], "amount": 200, "month": 3, "year": 2025},
    )
    create_transaction(client, -50, "2025-03-04T09:00:00", category_id=food["id"])
    create_transaction(client, -30, "2025-03-06T09:00:00")
    create_transaction(client, 1500, "2025-03-01T09:00:00", type="income")

    monthly = client.get("/api/analytics/monthly-summary").json()
    assert len(monthly) == 12
    assert monthly[2] == {"month": 3, "expense": 80.0, "income": 1500.0}

    expenses = client.get("/api/analytics/monthly-expenses", params={"year": 2025})
    assert expenses.json()[2]["name"] == "Mar"

    slices = client.get(
        "/api/analytics/category-summary", params={"period": "this_month"}
    ).json()
    assert [s["name"] for s in slices] == ["Food", "Uncategorized"]

    comparison = client.get("/api/analytics/budget-comparison").json()
    assert comparison[0]["id"] == "unbudgeted-uncategorized"
    assert comparison[0]["status"] == "unbudgeted"
    assert comparison[1]["category"]["name"] == "Food"

    dashboard = client.get("/api/analytics/dashboard-summary").json()
    assert dashboard["current_month"]["balance"] == 1420
    assert len(dashboard["recent_transactions"]) == 3

    insights = client.get("/api/analytics/insights").json()
    assert insights["current"]["total"] == 80
    assert insights["peak_day"]["day"] == "2025-03-04"


def test_analytics_rejects_bad_parameters(client) -> None:
    month = client.get("/api/analytics/budget-comparison", params={"month": 13})
    assert month.status_code == 400

    period = client.get("/api/analytics/category-summary", params={"period": "decade"})
    assert period.status_code == 400

    custom = client.get(
        "/api/analytics/category-summary",
        params={"period": "custom", "start": "2025-03-10", "end": "2025-03-01"},
    )
    assert custom.status_code == 400
