"""
Credit-card statement periods.

A card is configured by two day-of-month patterns: closing_day (the statement
cuts) and due_day (the statement must be paid). A statement *closes* in one
month and is *due* in the following one; that holds for every card, even when
due_day is numerically before closing_day.

Rule for a purchase on day D of month M:
    D <= closing day of M  -> statement closing in M
    D >  closing day of M  -> statement closing in M+1
"""
from dataclasses import dataclass
from datetime import date, timedelta

from app.domain.period import (
    add_months, date_from_year_month_day, parse_iso_date, parse_year_month,
    clamp_day, year_month_key,
)


@dataclass(frozen=True)
class StatementPeriod:
    close_date: date
    due_date: date
    period_start: date
    period_end: date  # == close_date
    closing_year_month: str
    due_year_month: str


def close_date_for_month(closing_day: int, year: int, month: int) -> date:
    return date_from_year_month_day(year, month, closing_day)


def due_date_from_close(close_date: date, due_day: int) -> date:
    """Due is always in the month after the close, on due_day (clamped)."""
    due_year, due_month = parse_year_month(add_months(year_month_key(close_date), 1))
    return date_from_year_month_day(due_year, due_month, due_day)


def period_start_for_close(close_date: date, closing_day: int) -> date:
    """Day after the previous month's (clamped) close."""
    prev_year, prev_month = parse_year_month(add_months(year_month_key(close_date), -1))
    prev_close = date_from_year_month_day(prev_year, prev_month, closing_day)
    return prev_close + timedelta(days=1)


def statement_for_closing_month(closing_day: int, due_day: int, year: int, month: int) -> StatementPeriod:
    close_date = close_date_for_month(closing_day, year, month)
    due_date = due_date_from_close(close_date, due_day)
    return StatementPeriod(
        close_date=close_date,
        due_date=due_date,
        period_start=period_start_for_close(close_date, closing_day),
        period_end=close_date,
        closing_year_month=f"{year:04d}-{month:02d}",
        due_year_month=year_month_key(due_date),
    )


def resolve_statement_for_purchase(closing_day: int, due_day: int, purchase_date) -> StatementPeriod:
    """Statement a purchase accrues into (closing month) and becomes payable in (due month)."""
    d = parse_iso_date(purchase_date)
    if d is None:
        raise ValueError("purchase_date is required")

    close_of_this_month = clamp_day(closing_day, d.year, d.month)
    if d.day <= close_of_this_month:
        return statement_for_closing_month(closing_day, due_day, d.year, d.month)

    next_year, next_month = parse_year_month(add_months(year_month_key(d), 1))
    return statement_for_closing_month(closing_day, due_day, next_year, next_month)


def statement_closing_in_month(closing_day: int, due_day: int, year_month: str) -> StatementPeriod:
    year, month = parse_year_month(year_month)
    return statement_for_closing_month(closing_day, due_day, year, month)


def statement_due_in_month(closing_day: int, due_day: int, year_month: str) -> StatementPeriod:
    """The statement payable in year_month is the one that closed the month before."""
    year, month = parse_year_month(add_months(year_month, -1))
    return statement_for_closing_month(closing_day, due_day, year, month)


def posted_year_month_for_purchase(purchase_date, closing_day: int, due_day: int) -> str:
    """Legacy shortcut used by older records: only the due month of a purchase."""
    return resolve_statement_for_purchase(closing_day, due_day, purchase_date).due_year_month
