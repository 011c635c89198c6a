"""Tests for the "add item" dispatcher."""
from datetime import date

import pytest

from app.application.budgets import CreateBudgetUseCase
from app.application.items import create_new_item
from app.domain.errors import FinanceValidationError
from app.domain.new_item import NewAdHocExpense, NewBudget, NewDebt, NewFixedExpense, NewIncome
from app.infrastructure.db.models import BudgetCategoryModel, DebtModel, FixedExpenseModel, IncomeModel

YM = "2024-03"


class TestCreateNewItem:
    def test_debt_starts_in_viewed_month(self, db_session):
        debt_id = create_new_item(db_session, NewDebt(title="Auto", total_amount=60000.0, installments_count=6), YM)
        debt = db_session.get(DebtModel, debt_id)
        assert debt.start_year_month == YM
        assert debt.installment_amount == 10000

    def test_debt_explicit_start(self, db_session):
        item = NewDebt(title="Auto", total_amount=60000.0, installments_count=6, start_year_month="2024-01")
        debt = db_session.get(DebtModel, create_new_item(db_session, item, YM))
        assert debt.start_year_month == "2024-01"

    def test_fixed_expense(self, db_session):
        expense_id = create_new_item(db_session, NewFixedExpense(title="Internet", amount=25000.0, due_day=12), YM)
        expense = db_session.get(FixedExpenseModel, expense_id)
        assert expense.start_year_month == YM
        assert expense.due_day == 12

    def test_income_belongs_to_viewed_month(self, db_session):
        income_id = create_new_item(db_session, NewIncome(title="Sueldo", amount=900000.0, date_expected=5), YM)
        assert db_session.get(IncomeModel, income_id).year_month == YM

    def test_budget(self, db_session):
        budget_id = create_new_item(db_session, NewBudget(name="Ocio", estimated_amount=50000.0), YM)
        budget = db_session.get(BudgetCategoryModel, budget_id)
        assert budget.year_month == YM
        assert budget.spent_amount == 0

    def test_unsupported_item(self, db_session):
        with pytest.raises(FinanceValidationError):
            create_new_item(db_session, object(), YM)


class TestAdHocExpense:
    def test_without_budget_becomes_executed_one_off(self, db_session):
        item = NewAdHocExpense(title="Plomero", amount=45000.0, spent_on=date(2024, 2, 17))
        expense = db_session.get(FixedExpenseModel, create_new_item(db_session, item, YM))
        assert expense.recurrence == "ONCE"
        assert expense.start_year_month == "2024-02"
        assert expense.due_day == 17
        assert expense.status == "paid"
        assert expense.category == "service"
        assert expense.executions[0]["year_month"] == "2024-02"
        assert expense.executions[0]["amount"] == 45000.0

    def test_with_budget_adds_spending(self, db_session):
        budget_id = CreateBudgetUseCase(db_session).execute(name="Super", estimated_amount=1000.0, year_month=YM)
        item = NewAdHocExpense(title="Verdulería", amount=120.0, spent_on=date(2024, 3, 3), budget_id=budget_id)
        assert create_new_item(db_session, item, YM) == budget_id
        assert db_session.get(BudgetCategoryModel, budget_id).spent_amount == 120.0
        assert db_session.query(FixedExpenseModel).count() == 0

    def test_failed_execution_leaves_no_expense(self, db_session, monkeypatch):
        def broken_merge(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr("app.application.fixed_expenses.merge_execution", broken_merge)
        item = NewAdHocExpense(title="Plomero", amount=45000.0, spent_on=date(2024, 2, 17))
        with pytest.raises(RuntimeError):
            create_new_item(db_session, item, YM)
        db_session.rollback()
        assert db_session.query(FixedExpenseModel).count() == 0

    def test_one_off_commits_once(self, db_session, monkeypatch):
        commits = []
        real_commit = db_session.commit

        def counting_commit():
            commits.append(1)
            real_commit()

        monkeypatch.setattr(db_session, "commit", counting_commit)
        create_new_item(db_session, NewAdHocExpense(title="Cerrajero", amount=9000.0, spent_on=date(2024, 3, 1)), YM)
        assert len(commits) == 1

    def test_negative_amount_rejected(self, db_session):
        item = NewAdHocExpense(title="Plomero", amount=-1.0, spent_on=date(2024, 2, 17))
        with pytest.raises(FinanceValidationError):
            create_new_item(db_session, item, YM)
