"""Tests for budget category use cases."""
import pytest

from app.application.budgets import (
    AddBudgetSpendingUseCase, BudgetValidationError, CreateBudgetUseCase, DeleteBudgetUseCase,
    UpdateBudgetUseCase, budgets_for_month,
)
from app.domain.errors import NotFoundError


@pytest.fixture
def groceries_id(db_session):
    return CreateBudgetUseCase(db_session).execute(name="Supermercado", estimated_amount=200000.0, year_month="2024-03")


def test_create_starts_unspent(db_session, groceries_id):
    [budget] = budgets_for_month(db_session, "2024-03")
    assert budget.id == groceries_id
    assert budget.spent_amount == 0


def test_spending_accumulates(db_session, groceries_id):
    use_case = AddBudgetSpendingUseCase(db_session)
    use_case.execute(groceries_id, 15000.0)
    budget = use_case.execute(groceries_id, 5000.0)
    assert budget.spent_amount == 20000.0


@pytest.mark.parametrize("amount", [0, -10.0])
def test_spending_must_be_positive(db_session, groceries_id, amount):
    with pytest.raises(BudgetValidationError):
        AddBudgetSpendingUseCase(db_session).execute(groceries_id, amount)


def test_spending_on_missing_budget(db_session):
    with pytest.raises(NotFoundError):
        AddBudgetSpendingUseCase(db_session).execute("nope", 10.0)


def test_update_and_delete(db_session, groceries_id):
    UpdateBudgetUseCase(db_session).execute(groceries_id, estimated_amount=250000.0, note="con asado")
    [budget] = budgets_for_month(db_session, "2024-03")
    assert budget.estimated_amount == 250000.0
    assert budget.note == "con asado"

    DeleteBudgetUseCase(db_session).execute(groceries_id)
    assert budgets_for_month(db_session, "2024-03") == []


def test_invalid_budget(db_session):
    with pytest.raises(BudgetValidationError):
        CreateBudgetUseCase(db_session).execute(name="", estimated_amount=10.0, year_month="2024-03")
    with pytest.raises(BudgetValidationError):
        CreateBudgetUseCase(db_session).execute(name="Ocio", estimated_amount=-1, year_month="2024-03")
