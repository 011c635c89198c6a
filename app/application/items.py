"""
"Add item" dispatcher: one entry point for the five kinds of new items.
"""
import logging

from sqlalchemy.orm import Session

from app.application.budgets import AddBudgetSpendingUseCase, CreateBudgetUseCase
from app.application.debts import CreateDebtUseCase
from app.application.fixed_expenses import CreateFixedExpenseUseCase, RecordOneOffExpenseUseCase
from app.application.incomes import CreateIncomeUseCase
from app.domain.errors import FinanceValidationError
from app.domain.new_item import NewAdHocExpense, NewBudget, NewDebt, NewFixedExpense, NewIncome, NewItem

logger = logging.getLogger(__name__)


def _create_debt(db: Session, item: NewDebt, year_month: str) -> str:
    return CreateDebtUseCase(db).execute(
        title=item.title,
        total_amount=item.total_amount,
        installments_count=item.installments_count,
        start_year_month=item.start_year_month or year_month,
        counterparty=item.counterparty,
        category=item.category,
        monthly_value=item.monthly_value,
        installment_amount=item.installment_amount,
        due_day=item.due_day,
        interest_mode=item.interest_mode,
        default_account_id=item.default_account_id,
    )


def _create_fixed_expense(db: Session, item: NewFixedExpense, year_month: str) -> str:
    return CreateFixedExpenseUseCase(db).execute(
        title=item.title,
        amount=item.amount,
        start_year_month=item.start_year_month or year_month,
        due_day=item.due_day,
        category=item.category,
        recurrence=item.recurrence,
        end_year_month=item.end_year_month,
        auto_debit=item.auto_debit,
        default_account_id=item.default_account_id,
    )


def _create_income(db: Session, item: NewIncome, year_month: str) -> str:
    return CreateIncomeUseCase(db).execute(
        title=item.title,
        amount=item.amount,
        year_month=year_month,
        date_expected=item.date_expected,
        is_guaranteed=item.is_guaranteed,
        default_account_id=item.default_account_id,
    )


def _create_budget(db: Session, item: NewBudget, year_month: str) -> str:
    return CreateBudgetUseCase(db).execute(
        name=item.name, estimated_amount=item.estimated_amount, year_month=year_month,
    )


def _create_ad_hoc_expense(db: Session, item: NewAdHocExpense, year_month: str) -> str:
    """
    Spending on an existing budget when budget_id is given; otherwise a
    one-off fixed expense, already executed on the day it was spent.
    """
    if item.budget_id:
        AddBudgetSpendingUseCase(db).execute(item.budget_id, item.amount)
        return item.budget_id

    return RecordOneOffExpenseUseCase(db).execute(
        title=item.title,
        amount=item.amount,
        spent_on=item.spent_on,
        category=item.category or "service",
    )


_HANDLERS = {
    NewDebt: _create_debt,
    NewFixedExpense: _create_fixed_expense,
    NewIncome: _create_income,
    NewBudget: _create_budget,
    NewAdHocExpense: _create_ad_hoc_expense,
}


def create_new_item(db: Session, item: NewItem, year_month: str) -> str:
    """Persist a new item in the context of the month being viewed; returns the affected record id."""
    handler = _HANDLERS.get(type(item))
    if handler is None:
        raise FinanceValidationError(f"Unsupported item type: {type(item).__name__}")
    record_id = handler(db, item, year_month)
    logger.info("Created %s %s for %s", type(item).__name__, record_id, year_month)
    return record_id
