"""
Debt amortization.

The installment schedule of a debt is a pure function of
(start_year_month, installments_count): month k after the start (0-based)
carries installment k+1 while k < installments_count. The stored
current_installment is a cache for display and never drives the schedule.

Prepayments lower the remaining balance using one of two strategies:
- reduce_count:  keep the monthly value, shorten the schedule
- reduce_amount: keep the schedule, lower the monthly value
"""
import math
from dataclasses import dataclass
from datetime import date

from app.domain.errors import FinanceValidationError
from app.domain.period import (
    add_months, date_from_year_month_day, is_date_in_year_month,
    parse_iso_date, parse_year_month, to_ordinal, year_month_key,
)

STRATEGY_REDUCE_COUNT = "reduce_count"
STRATEGY_REDUCE_AMOUNT = "reduce_amount"
PREPAYMENT_STRATEGIES = frozenset({STRATEGY_REDUCE_COUNT, STRATEGY_REDUCE_AMOUNT})

CATEGORY_CREDIT_CARD = "credit_card"
DEBT_CATEGORIES = frozenset({"credit_card", "banco", "profesional", "familiar", "comercio", "otro"})

DEBT_ACTIVE = "active"
DEBT_OVERDUE = "overdue"
DEBT_PAID = "paid"
CLOSED_STATUSES = frozenset({"paid", "completed"})


class DebtValidationError(FinanceValidationError):
    pass


@dataclass(frozen=True)
class ScheduledInstallment:
    index: int  # 1-based
    year_month: str
    due_date: date
    amount: float
    status: str  # paid / pending


@dataclass(frozen=True)
class PrepaymentResult:
    remaining_amount: float
    installments_count: int
    monthly_value: float
    prepayments: list


# ---------------------------------------------------------------------------
# Schedule
# ---------------------------------------------------------------------------


def debt_start_year_month(debt, fallback: str) -> str:
    """start_year_month, else the month of a legacy start_date, else fallback."""
    if debt.start_year_month:
        return debt.start_year_month
    start_date = parse_iso_date(getattr(debt, "start_date", None))
    if start_date is not None:
        return year_month_key(start_date)
    return fallback


def debt_end_year_month(debt, fallback: str) -> str:
    count = max(1, debt.installments_count or 1)
    return add_months(debt_start_year_month(debt, fallback), count - 1)


def is_before_start(debt, year_month: str) -> bool:
    return to_ordinal(year_month) < to_ordinal(debt_start_year_month(debt, year_month))


def is_after_end(debt, year_month: str) -> bool:
    return to_ordinal(year_month) > to_ordinal(debt_end_year_month(debt, year_month))


def is_in_range(debt, year_month: str) -> bool:
    return not is_before_start(debt, year_month) and not is_after_end(debt, year_month)


def installment_number_for_month(debt, year_month: str) -> int | None:
    """1-based installment falling in year_month, None outside the schedule."""
    if not is_in_range(debt, year_month):
        return None
    return to_ordinal(year_month) - to_ordinal(debt_start_year_month(debt, year_month)) + 1


def resolve_installment_amount(debt) -> float:
    """installment_amount, else monthly_value, else ceil(total / count)."""
    if debt.installment_amount and debt.installment_amount > 0:
        return debt.installment_amount
    if debt.monthly_value and debt.monthly_value > 0:
        return debt.monthly_value
    count = debt.installments_count or 0
    if count <= 0:
        return 0
    return math.ceil((debt.total_amount or 0) / count)


def installment_for_month(debt, year_month: str) -> float:
    """Scheduled installment due in year_month (Plan view)."""
    if not is_in_range(debt, year_month):
        return 0
    if debt.category == CATEGORY_CREDIT_CARD:
        # Card debts are represented by statements, counting them here doubles them
        return 0
    if debt.status in CLOSED_STATUSES:
        return 0
    return resolve_installment_amount(debt)


def payments_in_month(debt, year_month: str) -> float:
    """Sum of discrete payments dated in year_month (Actual view)."""
    payments = debt.payments or []
    return sum(p.get("amount") or 0 for p in payments if is_date_in_year_month(p.get("date"), year_month))


def build_schedule(debt, fallback_start: str) -> list[ScheduledInstallment]:
    start = debt_start_year_month(debt, fallback_start)
    amount = resolve_installment_amount(debt)
    paid_upto = (debt.current_installment or 1) - 1
    out: list[ScheduledInstallment] = []
    for i in range(max(0, debt.installments_count or 0)):
        ym = add_months(start, i)
        year, month = parse_year_month(ym)
        out.append(ScheduledInstallment(
            index=i + 1,
            year_month=ym,
            due_date=date_from_year_month_day(year, month, debt.due_day or 1),
            amount=amount,
            status="paid" if i < paid_upto else "pending",
        ))
    return out


# ---------------------------------------------------------------------------
# Prepayments
# ---------------------------------------------------------------------------


def apply_prepayment(debt, amount: float, strategy: str, on_date: date) -> PrepaymentResult:
    """
    Compute the debt state after a prepayment.

    The new prepayment is appended to a copy of the history; existing records
    are never modified.
    """
    if strategy not in PREPAYMENT_STRATEGIES:
        raise DebtValidationError(f"Unknown prepayment strategy: {strategy}")
    if amount is None or amount <= 0:
        raise DebtValidationError("Prepayment amount must be positive")

    prepayments = list(debt.prepayments or [])
    prepayments.append({
        "date": on_date.isoformat(),
        "amount": amount,
        "strategy": strategy,
    })

    remaining = max(0, (debt.remaining_amount or 0) - amount)
    count = debt.installments_count or 0
    monthly_value = debt.monthly_value or 0

    if strategy == STRATEGY_REDUCE_COUNT:
        paid_equivalent = math.floor(amount / monthly_value) if monthly_value > 0 else 0
        return PrepaymentResult(
            remaining_amount=remaining,
            installments_count=max(1, count - paid_equivalent),
            monthly_value=monthly_value,
            prepayments=prepayments,
        )

    remaining_installments = count - (debt.current_installment or 1) + 1
    return PrepaymentResult(
        remaining_amount=remaining,
        installments_count=count,
        monthly_value=remaining / remaining_installments if remaining_installments > 0 else 0,
        prepayments=prepayments,
    )


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


def debt_status_on(debt, today: date) -> str:
    """
    Status of an open debt on a given day.

    An active or overdue debt is overdue when today's month is inside its
    schedule, the due day has passed and nothing was paid this month.
    Closed statuses are returned unchanged.
    """
    if debt.status not in (DEBT_ACTIVE, DEBT_OVERDUE):
        return debt.status
    ym = year_month_key(today)
    if debt.category == CATEGORY_CREDIT_CARD or not is_in_range(debt, ym):
        return DEBT_ACTIVE
    if (debt.due_day or 1) < today.day and payments_in_month(debt, ym) == 0:
        return DEBT_OVERDUE
    return DEBT_ACTIVE
