"""
Payloads of the "add item" flow.

Each kind of item the user can add carries only its own fields. NewItem is
the union of the five variants; the dispatcher in app.application.items picks
the handler by type.
"""
from dataclasses import dataclass
from datetime import date
from typing import Union


@dataclass(frozen=True)
class NewDebt:
    title: str
    total_amount: float
    installments_count: int
    counterparty: str = ""
    category: str = "otro"
    monthly_value: float = 0
    installment_amount: float | None = None
    due_day: int = 10
    start_year_month: str | None = None
    interest_mode: str = "none"
    default_account_id: str | None = None


@dataclass(frozen=True)
class NewFixedExpense:
    title: str
    amount: float
    due_day: int = 1
    category: str = "service"
    recurrence: str = "MONTHLY"
    start_year_month: str | None = None
    end_year_month: str | None = None
    auto_debit: bool = False
    default_account_id: str | None = None


@dataclass(frozen=True)
class NewIncome:
    title: str
    amount: float
    date_expected: int = 1
    is_guaranteed: bool = True
    default_account_id: str | None = None


@dataclass(frozen=True)
class NewBudget:
    name: str
    estimated_amount: float


@dataclass(frozen=True)
class NewAdHocExpense:
    """A one-off expense that already happened."""
    title: str
    amount: float
    spent_on: date
    category: str = ""
    budget_id: str | None = None


NewItem = Union[NewDebt, NewFixedExpense, NewIncome, NewBudget, NewAdHocExpense]
