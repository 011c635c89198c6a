"""
Calendar / period helpers.

Year-month keys are "YYYY-MM" strings, calendar positions are plain dates
(no timezone). Every function is total: any integer day is clamped into the
target month instead of raising or rolling over into the next one.
"""
import calendar
from datetime import date, datetime


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def clamp_day(day: int, year: int, month: int) -> int:
    """min(day, days_in_month); days below 1 clamp to the 1st."""
    return max(1, min(day, days_in_month(year, month)))


def date_from_year_month_day(year: int, month: int, day: int) -> date:
    return date(year, month, clamp_day(day, year, month))


def year_month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def parse_year_month(year_month: str) -> tuple[int, int]:
    """'2026-02' -> (2026, 2). Accepts full ISO dates too ('2026-02-15')."""
    year_s, month_s = year_month[:7].split("-")
    return int(year_s), int(month_s)


def to_ordinal(year_month: str) -> int:
    """Months since year 0: year*12 + (month-1). Used for comparison and distance."""
    year, month = parse_year_month(year_month)
    return year * 12 + (month - 1)


def from_ordinal(ordinal: int) -> str:
    year, month0 = divmod(ordinal, 12)
    return f"{year:04d}-{month0 + 1:02d}"


def add_months(year_month: str, delta: int) -> str:
    return from_ordinal(to_ordinal(year_month) + delta)


def months_between(start: str, end: str) -> int:
    """Signed distance in months from start to end."""
    return to_ordinal(end) - to_ordinal(start)


def current_year_month(today: date | None = None) -> str:
    return year_month_key(today or date.today())


def parse_iso_date(value) -> date | None:
    """
    Normalize a stored date value.

    Accepts date, datetime, "YYYY-MM-DD" or a longer ISO timestamp string.
    Empty / None -> None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def is_date_in_year_month(value, year_month: str) -> bool:
    d = parse_iso_date(value)
    if d is None:
        return False
    return year_month_key(d) == year_month[:7]


def is_year_month_in_range(target: str, start: str, end: str | None = None) -> bool:
    """start <= target <= end (end optional, open-ended when None)."""
    if to_ordinal(target) < to_ordinal(start):
        return False
    if end and to_ordinal(target) > to_ordinal(end):
        return False
    return True
