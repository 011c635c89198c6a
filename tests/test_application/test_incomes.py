"""Tests for income use cases."""
from datetime import date

import pytest

from app.application.incomes import (
    CreateIncomeUseCase, DeleteIncomeUseCase, IncomeValidationError, MarkIncomePendingUseCase,
    MarkIncomeReceivedUseCase, UpdateIncomeUseCase, incomes_for_month,
)
from app.domain.errors import NotFoundError
from app.infrastructure.db.models import IncomeModel


@pytest.fixture
def salary_id(db_session):
    return CreateIncomeUseCase(db_session).execute(
        title="Sueldo", amount=900000.0, year_month="2024-03", date_expected=5,
        default_account_id="acc-main",
    )


def test_create_income_is_pending(db_session, salary_id):
    income = db_session.get(IncomeModel, salary_id)
    assert income.status == "pending"
    assert income.effective_date is None
    assert income.is_guaranteed is True


@pytest.mark.parametrize("overrides", [{"title": ""}, {"amount": -5}, {"date_expected": 32}])
def test_create_income_invalid(db_session, overrides):
    fields = dict(title="Freelance", amount=100.0, year_month="2024-03")
    fields.update(overrides)
    with pytest.raises(IncomeValidationError):
        CreateIncomeUseCase(db_session).execute(**fields)


def test_mark_received_uses_default_account(db_session, salary_id):
    income = MarkIncomeReceivedUseCase(db_session).execute(salary_id, date(2024, 3, 6), movement_id="mv-7")
    assert income.status == "received"
    assert income.effective_date == date(2024, 3, 6)
    assert income.account_id == "acc-main"
    assert income.movement_id == "mv-7"


def test_mark_pending_clears_receipt(db_session, salary_id):
    MarkIncomeReceivedUseCase(db_session).execute(salary_id, "2024-03-06")
    MarkIncomePendingUseCase(db_session).execute(salary_id)
    income = db_session.get(IncomeModel, salary_id)
    assert income.status == "pending"
    assert income.effective_date is None
    assert income.account_id is None


def test_update_and_query(db_session, salary_id):
    UpdateIncomeUseCase(db_session).execute(salary_id, amount=950000.0, year_month="2024-04")
    assert incomes_for_month(db_session, "2024-03") == []
    [income] = incomes_for_month(db_session, "2024-04")
    assert income.amount == 950000.0


def test_update_unknown_field(db_session, salary_id):
    with pytest.raises(IncomeValidationError):
        UpdateIncomeUseCase(db_session).execute(salary_id, currency="USD")


def test_delete(db_session, salary_id):
    DeleteIncomeUseCase(db_session).execute(salary_id)
    with pytest.raises(NotFoundError):
        MarkIncomeReceivedUseCase(db_session).execute(salary_id, date(2024, 3, 6))
