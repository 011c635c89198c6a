"""Tests for calendar/period helpers."""
from datetime import date, datetime

import pytest

from app.domain.period import (
    add_months, clamp_day, current_year_month, date_from_year_month_day, days_in_month,
    from_ordinal, is_date_in_year_month, is_year_month_in_range, months_between,
    parse_iso_date, parse_year_month, to_ordinal, year_month_key,
)


class TestDaysAndClamping:
    def test_days_in_month_leap_year(self):
        assert days_in_month(2024, 2) == 29
        assert days_in_month(2023, 2) == 28
        assert days_in_month(2024, 12) == 31

    def test_clamp_day_to_month_end(self):
        assert clamp_day(31, 2024, 2) == 29
        assert clamp_day(31, 2023, 2) == 28
        assert clamp_day(31, 2024, 4) == 30

    def test_clamp_day_below_one(self):
        assert clamp_day(0, 2024, 5) == 1
        assert clamp_day(-3, 2024, 5) == 1

    def test_date_never_rolls_into_next_month(self):
        assert date_from_year_month_day(2024, 2, 30) == date(2024, 2, 29)
        assert date_from_year_month_day(2025, 6, 31) == date(2025, 6, 30)


class TestYearMonthArithmetic:
    def test_key_and_parse(self):
        assert year_month_key(date(2026, 2, 15)) == "2026-02"
        assert parse_year_month("2026-02") == (2026, 2)
        assert parse_year_month("2026-02-15") == (2026, 2)

    def test_ordinal_round_trip(self):
        assert from_ordinal(to_ordinal("2024-12")) == "2024-12"
        assert to_ordinal("2024-01") - to_ordinal("2023-12") == 1

    @pytest.mark.parametrize("start,delta,expected", [
        ("2024-11", 3, "2025-02"),
        ("2024-01", -1, "2023-12"),
        ("2024-05", 0, "2024-05"),
        ("2024-01", 24, "2026-01"),
    ])
    def test_add_months(self, start, delta, expected):
        assert add_months(start, delta) == expected

    def test_months_between_is_signed(self):
        assert months_between("2024-01", "2024-12") == 11
        assert months_between("2024-12", "2024-01") == -11

    def test_current_year_month(self):
        assert current_year_month(date(2025, 7, 31)) == "2025-07"


class TestParseIsoDate:
    def test_accepts_date_datetime_and_strings(self):
        assert parse_iso_date(date(2024, 1, 2)) == date(2024, 1, 2)
        assert parse_iso_date(datetime(2024, 1, 2, 15, 30)) == date(2024, 1, 2)
        assert parse_iso_date("2024-01-02") == date(2024, 1, 2)
        assert parse_iso_date("2024-01-02T10:11:12.000Z") == date(2024, 1, 2)

    def test_empty_is_none(self):
        assert parse_iso_date(None) is None
        assert parse_iso_date("") is None


class TestRanges:
    def test_is_date_in_year_month(self):
        assert is_date_in_year_month("2024-03-31", "2024-03") is True
        assert is_date_in_year_month(date(2024, 4, 1), "2024-03") is False
        assert is_date_in_year_month(None, "2024-03") is False

    def test_closed_range(self):
        assert is_year_month_in_range("2024-03", "2024-01", "2024-06") is True
        assert is_year_month_in_range("2024-06", "2024-01", "2024-06") is True
        assert is_year_month_in_range("2024-07", "2024-01", "2024-06") is False
        assert is_year_month_in_range("2023-12", "2024-01", "2024-06") is False

    def test_open_ended_range(self):
        assert is_year_month_in_range("2030-01", "2024-01") is True
