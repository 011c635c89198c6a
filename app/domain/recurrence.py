"""
Recurrence and execution state of fixed expenses and incomes.

Plan vs Actual:
- a fixed expense is *executed* in a month iff it carries an execution record
  for that year-month;
- an income is *collected* in the month of its effective date: the explicit
  effective_date, or the scheduled date when it is marked received without one.

Fixed expense recurrence:
- MONTHLY: every month in [start_year_month, end_year_month] (end optional)
- ONCE:    only in start_year_month
"""
from datetime import date

from app.domain.period import date_from_year_month_day, is_year_month_in_range, parse_iso_date, parse_year_month

RECURRENCE_MONTHLY = "MONTHLY"
RECURRENCE_ONCE = "ONCE"
VALID_RECURRENCE = frozenset({RECURRENCE_MONTHLY, RECURRENCE_ONCE})

INCOME_PENDING = "pending"
INCOME_RECEIVED = "received"


def scheduled_date(day: int | None, year_month: str) -> date:
    """Project a day-of-month onto year_month (clamped; missing day -> 1st)."""
    year, month = parse_year_month(year_month)
    return date_from_year_month_day(year, month, day or 1)


def fixed_expense_scheduled_date(expense, year_month: str) -> date:
    return scheduled_date(expense.due_day, year_month)


def income_scheduled_date(income) -> date:
    return scheduled_date(income.date_expected, income.year_month)


def income_effective_date(income) -> date | None:
    effective = parse_iso_date(income.effective_date)
    if effective is not None:
        return effective
    if income.status == INCOME_RECEIVED:
        return income_scheduled_date(income)
    return None


def execution_for_month(expense, year_month: str) -> dict | None:
    for execution in expense.executions or []:
        if execution.get("year_month") == year_month:
            return execution
    return None


def is_fixed_expense_active_in_month(expense, year_month: str) -> bool:
    if (expense.recurrence or RECURRENCE_MONTHLY) == RECURRENCE_MONTHLY:
        return is_year_month_in_range(year_month, expense.start_year_month, expense.end_year_month)
    return expense.start_year_month == year_month


def merge_execution(
    executions: list | None,
    year_month: str,
    effective_date: date,
    amount: float,
    account_id: str | None = None,
    movement_id: str | None = None,
) -> list[dict]:
    """New executions list with the entry for year_month replaced (at most one per month)."""
    merged = [e for e in (executions or []) if e.get("year_month") != year_month]
    merged.append({
        "year_month": year_month,
        "effective_date": effective_date.isoformat(),
        "amount": amount,
        "account_id": account_id,
        "movement_id": movement_id,
    })
    return merged


def remove_execution(executions: list | None, year_month: str) -> list[dict]:
    return [e for e in (executions or []) if e.get("year_month") != year_month]


def income_receipt_update(
    effective_date: date,
    account_id: str | None = None,
    movement_id: str | None = None,
) -> dict:
    """Field changes that mark an income as received."""
    return {
        "status": INCOME_RECEIVED,
        "effective_date": effective_date,
        "account_id": account_id,
        "movement_id": movement_id,
    }
