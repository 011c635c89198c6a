"""
Fixed expense use cases: CRUD and per-month execution records.
"""
import uuid
from datetime import date

from sqlalchemy.orm import Session

from app.domain.errors import FinanceValidationError
from app.domain.period import parse_iso_date, parse_year_month, year_month_key
from app.domain.recurrence import (
    RECURRENCE_ONCE, VALID_RECURRENCE, is_fixed_expense_active_in_month,
    merge_execution, remove_execution,
)
from app.infrastructure.db.models import FixedExpenseModel
from app.infrastructure.store.repository import RecordRepository

_EXPENSE_FIELDS = {
    "title", "amount", "due_day", "category", "recurrence", "start_year_month",
    "end_year_month", "status", "auto_debit", "default_account_id",
}


class ExpenseValidationError(FinanceValidationError):
    pass


def _validate(changes: dict) -> None:
    if "amount" in changes and (changes["amount"] is None or changes["amount"] < 0):
        raise ExpenseValidationError("Amount cannot be negative")
    if "due_day" in changes and not 1 <= (changes["due_day"] or 0) <= 31:
        raise ExpenseValidationError("due_day must be between 1 and 31")
    if "recurrence" in changes and changes["recurrence"] not in VALID_RECURRENCE:
        raise ExpenseValidationError(f"Unknown recurrence: {changes['recurrence']}")
    for key in ("start_year_month", "end_year_month"):
        if changes.get(key):
            parse_year_month(changes[key])


class CreateFixedExpenseUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.expenses = RecordRepository(db, FixedExpenseModel, "FixedExpense")

    def execute(
        self,
        title: str,
        amount: float,
        start_year_month: str,
        due_day: int = 1,
        category: str = "service",
        recurrence: str = "MONTHLY",
        end_year_month: str | None = None,
        auto_debit: bool = False,
        default_account_id: str | None = None,
    ) -> str:
        title = (title or "").strip()
        if not title:
            raise ExpenseValidationError("Title is required")
        _validate({
            "amount": amount, "due_day": due_day, "recurrence": recurrence,
            "start_year_month": start_year_month, "end_year_month": end_year_month,
        })
        expense = FixedExpenseModel(
            id=str(uuid.uuid4()),
            title=title,
            amount=amount,
            due_day=due_day,
            category=category,
            recurrence=recurrence,
            start_year_month=start_year_month,
            end_year_month=end_year_month,
            status="pending",
            auto_debit=auto_debit,
            default_account_id=default_account_id,
            executions=[],
        )
        self.expenses.put(expense)
        self.db.commit()
        return expense.id


class UpdateFixedExpenseUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.expenses = RecordRepository(db, FixedExpenseModel, "FixedExpense")

    def execute(self, expense_id: str, **changes) -> None:
        unknown = set(changes) - _EXPENSE_FIELDS
        if unknown:
            raise ExpenseValidationError(f"Unknown fixed expense fields: {sorted(unknown)}")
        _validate(changes)
        self.expenses.update(expense_id, **changes)
        self.db.commit()


class DeleteFixedExpenseUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.expenses = RecordRepository(db, FixedExpenseModel, "FixedExpense")

    def execute(self, expense_id: str) -> None:
        self.expenses.delete(expense_id)
        self.db.commit()


class ExecuteFixedExpenseUseCase:
    """
    Mark a fixed expense as paid for one month.

    Executing the same month again replaces the previous record; amount
    defaults to the expense's planned amount.
    """

    def __init__(self, db: Session):
        self.db = db
        self.expenses = RecordRepository(db, FixedExpenseModel, "FixedExpense")

    def execute(
        self,
        expense_id: str,
        year_month: str,
        effective_date: date,
        amount: float | None = None,
        account_id: str | None = None,
        movement_id: str | None = None,
    ) -> FixedExpenseModel:
        parse_year_month(year_month)
        expense = self.expenses.require(expense_id)
        if amount is None:
            amount = expense.amount
        if amount < 0:
            raise ExpenseValidationError("Amount cannot be negative")
        expense.executions = merge_execution(
            expense.executions,
            year_month,
            parse_iso_date(effective_date),
            amount,
            account_id=account_id or expense.default_account_id,
            movement_id=movement_id,
        )
        if expense.recurrence == RECURRENCE_ONCE:
            expense.status = "paid"
        self.db.commit()
        return expense


class RecordOneOffExpenseUseCase:
    """A ONCE expense created already executed on the day it was spent, in one transaction."""

    def __init__(self, db: Session):
        self.db = db
        self.expenses = RecordRepository(db, FixedExpenseModel, "FixedExpense")

    def execute(
        self,
        title: str,
        amount: float,
        spent_on: date,
        category: str = "service",
        account_id: str | None = None,
        movement_id: str | None = None,
    ) -> str:
        title = (title or "").strip()
        if not title:
            raise ExpenseValidationError("Title is required")
        _validate({"amount": amount})
        spent_on = parse_iso_date(spent_on)
        year_month = year_month_key(spent_on)
        expense = FixedExpenseModel(
            id=str(uuid.uuid4()),
            title=title,
            amount=amount,
            due_day=spent_on.day,
            category=category,
            recurrence=RECURRENCE_ONCE,
            start_year_month=year_month,
            status="paid",
            auto_debit=False,
            default_account_id=account_id,
            executions=merge_execution(
                [], year_month, spent_on, amount, account_id=account_id, movement_id=movement_id,
            ),
        )
        self.expenses.put(expense)
        self.db.commit()
        return expense.id


class UndoFixedExpenseExecutionUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.expenses = RecordRepository(db, FixedExpenseModel, "FixedExpense")

    def execute(self, expense_id: str, year_month: str) -> None:
        expense = self.expenses.require(expense_id)
        expense.executions = remove_execution(expense.executions, year_month)
        if expense.recurrence == RECURRENCE_ONCE:
            expense.status = "pending"
        self.db.commit()


def fixed_expenses_for_month(db: Session, year_month: str) -> list[FixedExpenseModel]:
    return [
        e for e in RecordRepository(db, FixedExpenseModel).get_all()
        if is_fixed_expense_active_in_month(e, year_month)
    ]
