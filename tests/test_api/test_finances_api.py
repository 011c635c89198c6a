"""
Tests for the personal finances API endpoints
"""
import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_db, get_fx_provider
from app.infrastructure.fx.dolar_api import FxRate
from app.main import app

BASE = "/api/v1/finances"


class FakeFxProvider:
    def __init__(self, rate: FxRate | None):
        self.rate = rate

    def get_rate(self, kind=None):
        return self.rate


@pytest.fixture
def fx():
    return FakeFxProvider(FxRate(buy=990.0, sell=1000.0))


@pytest.fixture
def client(db_session, fx):
    """Test client bound to the in-memory database (lifespan not started)"""
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_fx_provider] = lambda: fx
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def card_id(client):
    resp = client.post(f"{BASE}/cards", json={"name": "Visa", "closing_day": 25, "due_day": 10})
    assert resp.status_code == 201
    return resp.json()["id"]


def test_health(client):
    assert client.get("/health").text == "ok"


# === Cards, consumptions, statements ===

def test_create_card(client, card_id):
    cards = client.get(f"{BASE}/cards").json()
    assert [c["id"] for c in cards] == [card_id]
    assert cards[0]["last4"] == "0000"


def test_create_card_validation(client):
    assert client.post(f"{BASE}/cards", json={"name": "X", "closing_day": 0, "due_day": 10}).status_code == 422
    assert client.post(f"{BASE}/cards", json={"name": " ", "closing_day": 5, "due_day": 10}).status_code == 400


def test_consumption_flow(client, card_id):
    resp = client.post(f"{BASE}/cards/{card_id}/consumptions", json={
        "description": "Heladera", "amount": 300, "purchase_date": "2024-03-10",
        "installment_total": 3, "create_all_installments": True,
    })
    assert resp.status_code == 201
    assert len(resp.json()["ids"]) == 3

    consumptions = client.get(f"{BASE}/cards/{card_id}/consumptions").json()
    assert sorted(c["closing_year_month"] for c in consumptions) == ["2024-03", "2024-04", "2024-05"]

    [stmt] = client.get(f"{BASE}/statements", params={"due_year_month": "2024-04"}).json()
    assert stmt["id"] == f"{card_id}:2024-03"
    assert stmt["total_amount"] == pytest.approx(100.0)
    assert stmt["close_date"] == "2024-03-25"


def test_consumption_on_missing_card(client):
    resp = client.post(f"{BASE}/cards/nope/consumptions", json={
        "description": "X", "amount": 10, "purchase_date": "2024-03-10",
    })
    assert resp.status_code == 404


def test_consumption_edit_and_delete(client, card_id):
    [cons_id] = client.post(f"{BASE}/cards/{card_id}/consumptions", json={
        "description": "Cena", "amount": 500, "purchase_date": "2024-01-20",
    }).json()["ids"]

    assert client.patch(f"{BASE}/consumptions/{cons_id}", json={"purchase_date": "2024-01-28"}).status_code == 204
    statements = {s["closing_year_month"]: s for s in client.get(f"{BASE}/statements").json()}
    assert statements["2024-01"]["total_amount"] == 0
    assert statements["2024-02"]["total_amount"] == 500

    assert client.delete(f"{BASE}/consumptions/{cons_id}").status_code == 204
    assert client.delete(f"{BASE}/consumptions/{cons_id}").status_code == 404


def test_pay_and_unpay_statement(client, card_id):
    client.post(f"{BASE}/cards/{card_id}/consumptions", json={
        "description": "Cena", "amount": 500, "purchase_date": "2024-01-20",
    })
    stmt_id = f"{card_id}:2024-01"

    paid = client.post(f"{BASE}/statements/{stmt_id}/pay", json={"paid_at": "2024-02-09"}).json()
    assert paid["status"] == "PAID"
    assert paid["paid_at"] == "2024-02-09"

    recalculated = client.post(f"{BASE}/cards/{card_id}/statements/2024-01/recalculate").json()
    assert recalculated["status"] == "PAID"

    unpaid = client.post(f"{BASE}/statements/{stmt_id}/unpay").json()
    assert unpaid["status"] == "UNPAID"


def test_pay_missing_statement(client):
    assert client.post(f"{BASE}/statements/nope/pay", json={"paid_at": "2024-02-09"}).status_code == 404


def test_delete_card(client, card_id):
    assert client.delete(f"{BASE}/cards/{card_id}").status_code == 204
    assert client.get(f"{BASE}/cards").json() == []
    assert client.delete(f"{BASE}/cards/{card_id}").status_code == 404


# === Month overview ===

def test_month_kpis_uses_fx_provider(client, card_id):
    client.post(f"{BASE}/cards/{card_id}/consumptions", json={
        "description": "App", "amount": 10, "currency": "USD", "purchase_date": "2024-02-02",
    })
    client.post(f"{BASE}/cards/{card_id}/consumptions", json={
        "description": "Super", "amount": 2000, "purchase_date": "2024-02-03",
    })

    kpis = client.get(f"{BASE}/months/2024-02/kpis").json()
    assert kpis["year_month"] == "2024-02"
    assert kpis["cards_accrued_usd"] == 10
    assert kpis["cards_accrued"] == 12000

    explicit = client.get(f"{BASE}/months/2024-02/kpis", params={"fx_rate": 500}).json()
    assert explicit["cards_accrued"] == 7000


def test_month_kpis_without_fx(client, card_id, fx):
    fx.rate = None
    client.post(f"{BASE}/cards/{card_id}/consumptions", json={
        "description": "App", "amount": 10, "currency": "USD", "purchase_date": "2024-02-02",
    })
    assert client.get(f"{BASE}/months/2024-02/kpis").json()["cards_accrued"] == 0


def test_month_kpis_bad_year_month(client):
    assert client.get(f"{BASE}/months/2024-13/kpis").status_code == 422


def test_fx(client):
    assert client.get(f"{BASE}/fx").json() == {"buy": 990.0, "sell": 1000.0, "usable": 1000.0}


# === Add item ===

def test_add_items(client):
    debt = client.post(f"{BASE}/months/2024-03/items", json={
        "kind": "debt", "title": "Auto", "total_amount": 60000, "installments_count": 6,
    })
    assert debt.status_code == 201
    assert debt.json()["kind"] == "debt"

    income = client.post(f"{BASE}/months/2024-03/items", json={"kind": "income", "title": "Sueldo", "amount": 1000})
    assert income.status_code == 201
    [row] = client.get(f"{BASE}/incomes", params={"year_month": "2024-03"}).json()
    assert row["id"] == income.json()["id"]

    ad_hoc = client.post(f"{BASE}/months/2024-03/items", json={
        "kind": "ad_hoc_expense", "title": "Plomero", "amount": 450, "spent_on": "2024-03-17",
    })
    assert ad_hoc.status_code == 201
    [expense] = client.get(f"{BASE}/fixed-expenses", params={"year_month": "2024-03"}).json()
    assert expense["recurrence"] == "ONCE"
    assert expense["executions"][0]["amount"] == 450


def test_add_item_unknown_kind(client):
    resp = client.post(f"{BASE}/months/2024-03/items", json={"kind": "wish", "title": "Viaje"})
    assert resp.status_code == 422


def test_add_ad_hoc_to_missing_budget(client):
    resp = client.post(f"{BASE}/months/2024-03/items", json={
        "kind": "ad_hoc_expense", "title": "Super", "amount": 10, "spent_on": "2024-03-02", "budget_id": "nope",
    })
    assert resp.status_code == 404


# === Debts ===

def test_debt_flow(client):
    resp = client.post(f"{BASE}/debts", json={
        "title": "Préstamo", "total_amount": 1200, "installments_count": 12,
        "start_year_month": "2024-01", "category": "banco",
    })
    assert resp.status_code == 201
    debt_id = resp.json()["id"]

    schedule = client.get(f"{BASE}/debts/{debt_id}/schedule").json()
    assert len(schedule) == 12
    assert schedule[-1]["year_month"] == "2024-12"

    paid = client.post(f"{BASE}/debts/{debt_id}/payments", json={"amount": 100, "paid_on": "2024-01-10"}).json()
    assert paid["remaining_amount"] == 1100
    assert paid["current_installment"] == 2

    prepaid = client.post(f"{BASE}/debts/{debt_id}/prepayments", json={
        "amount": 300, "strategy": "reduce_count", "on_date": "2024-02-01",
    }).json()
    assert prepaid["installments_count"] == 9

    assert client.get(f"{BASE}/debts", params={"year_month": "2024-09"}).json()[0]["id"] == debt_id
    assert client.get(f"{BASE}/debts", params={"year_month": "2024-10"}).json() == []


def test_debt_errors(client):
    assert client.get(f"{BASE}/debts/nope/schedule").status_code == 404
    assert client.delete(f"{BASE}/debts/nope").status_code == 404
    bad_category = client.post(f"{BASE}/debts", json={
        "title": "X", "total_amount": 10, "installments_count": 1, "start_year_month": "2024-01",
        "category": "casino",
    })
    assert bad_category.status_code == 400


# === Fixed expenses, incomes, budgets ===

def test_fixed_expense_execution(client):
    expense_id = client.post(f"{BASE}/fixed-expenses", json={
        "title": "Alquiler", "amount": 3000, "start_year_month": "2024-01", "due_day": 5,
    }).json()["id"]

    executed = client.post(f"{BASE}/fixed-expenses/{expense_id}/executions", json={
        "year_month": "2024-02", "effective_date": "2024-02-05",
    }).json()
    assert executed["executions"][0]["amount"] == 3000

    assert client.delete(f"{BASE}/fixed-expenses/{expense_id}/executions/2024-02").status_code == 204
    assert client.patch(f"{BASE}/fixed-expenses/{expense_id}", json={"amount": 3200}).json()["amount"] == 3200


def test_income_receive(client):
    income_id = client.post(f"{BASE}/incomes", json={
        "title": "Sueldo", "amount": 1000, "year_month": "2024-03", "date_expected": 5,
    }).json()["id"]
    received = client.post(f"{BASE}/incomes/{income_id}/receive", json={"effective_date": "2024-03-06"}).json()
    assert received["status"] == "received"
    assert received["effective_date"] == "2024-03-06"


def test_income_unreceive(client):
    income_id = client.post(f"{BASE}/incomes", json={
        "title": "Sueldo", "amount": 1000, "year_month": "2024-03", "date_expected": 5,
    }).json()["id"]
    client.post(f"{BASE}/incomes/{income_id}/receive", json={"effective_date": "2024-03-06"})
    pending = client.post(f"{BASE}/incomes/{income_id}/unreceive").json()
    assert pending["status"] == "pending"
    assert pending["effective_date"] is None
    assert client.post(f"{BASE}/incomes/nope/unreceive").status_code == 404


def test_incomes_require_year_month(client):
    assert client.get(f"{BASE}/incomes").status_code == 422


def test_budget_spending(client):
    budget_id = client.post(f"{BASE}/budgets", json={
        "name": "Super", "estimated_amount": 1000, "year_month": "2024-03",
    }).json()["id"]
    assert client.post(f"{BASE}/budgets/{budget_id}/spending", json={"amount": 250}).json()["spent_amount"] == 250
    assert client.post(f"{BASE}/budgets/{budget_id}/spending", json={"amount": 0}).status_code == 422
    assert client.delete(f"{BASE}/budgets/{budget_id}").status_code == 204


# === Maturities ===

def test_upcoming_maturities(client):
    debt_id = client.post(f"{BASE}/debts", json={
        "title": "Préstamo", "total_amount": 1200, "installments_count": 12,
        "start_year_month": "2024-01", "category": "banco", "due_day": 20,
    }).json()["id"]
    client.post(f"{BASE}/fixed-expenses", json={
        "title": "Luz", "amount": 500, "start_year_month": "2024-01", "due_day": 18,
    })

    items = client.get(f"{BASE}/maturities", params={"today": "2024-03-15"}).json()
    assert [item["type"] for item in items] == ["expense", "debt"]
    assert items[1]["id"] == debt_id
    assert items[1]["installment_info"] == "3/12"

    limited = client.get(f"{BASE}/maturities", params={"today": "2024-03-15", "limit": 1}).json()
    assert len(limited) == 1
    assert client.get(f"{BASE}/maturities", params={"limit": 0}).status_code == 422
