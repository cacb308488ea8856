from __future__ import annotations

import calendar
import datetime
from typing import List, Tuple

from config import DATE_WINDOW_YEARS, MAX_YEAR, MIN_YEAR
from errors import InvalidDateError, InvalidPeriodError


WEEKDAY_TOKENS = ["MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN"]
GRID_DAYS = 42


def today() -> datetime.date:
    """Default clock; every caller that needs "today" accepts an override."""
    return datetime.date.today()


def validate_period(year: int, month: int) -> None:
    if year is None or year < MIN_YEAR or year > MAX_YEAR:
        raise InvalidPeriodError(f"Year must be between {MIN_YEAR} and {MAX_YEAR}")
    if month is None or month < 1 or month > 12:
        raise InvalidPeriodError("Month must be between 1 and 12")


def validate_date(value: datetime.date, *, today_value: datetime.date | None = None) -> datetime.date:
    """Reject missing dates and dates more than ten years away from today."""
    if value is None:
        raise InvalidDateError("Date cannot be null")
    if isinstance(value, datetime.datetime):
        value = value.date()
    if not isinstance(value, datetime.date):
        raise InvalidDateError(f"Not a calendar date: {value!r}")
    now = today_value or today()
    if value < _shift_years(now, -DATE_WINDOW_YEARS):
        raise InvalidDateError(f"Date cannot be more than {DATE_WINDOW_YEARS} years in the past")
    if value > _shift_years(now, DATE_WINDOW_YEARS):
        raise InvalidDateError(f"Date cannot be more than {DATE_WINDOW_YEARS} years in the future")
    return value


def _shift_years(value: datetime.date, years: int) -> datetime.date:
    target_year = value.year + years
    day = min(value.day, calendar.monthrange(target_year, value.month)[1])
    return value.replace(year=target_year, day=day)


def parse_iso_date(value: str) -> datetime.date:
    try:
        return datetime.date.fromisoformat(str(value).strip())
    except ValueError:
        raise InvalidDateError(f"Date must be YYYY-MM-DD, got '{value}'")


def first_day_of_month(year: int, month: int) -> datetime.date:
    return datetime.date(year, month, 1)


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def last_day_of_month(year: int, month: int) -> datetime.date:
    return datetime.date(year, month, days_in_month(year, month))


def dates_in_month(year: int, month: int) -> List[datetime.date]:
    first = first_day_of_month(year, month)
    return [first + datetime.timedelta(days=offset) for offset in range(days_in_month(year, month))]


def iso_weekday(value: datetime.date) -> int:
    """Return 1 for Monday through 7 for Sunday."""
    return value.isoweekday()


def is_weekend(value: datetime.date) -> bool:
    return value.weekday() >= 5


def weekday_short(value: datetime.date) -> str:
    return WEEKDAY_TOKENS[value.weekday()]


def month_name(month: int) -> str:
    return calendar.month_name[month]


def format_month_year(year: int, month: int) -> str:
    return f"{month_name(month)} {year}"


def calendar_grid_dates(year: int, month: int) -> List[datetime.date]:
    """Six Monday-starting weeks covering the month."""
    first = first_day_of_month(year, month)
    start = first - datetime.timedelta(days=iso_weekday(first) - 1)
    return [start + datetime.timedelta(days=offset) for offset in range(GRID_DAYS)]


def clamp_to_month(day_of_month: int, year: int, month: int) -> datetime.date:
    return datetime.date(year, month, min(day_of_month, days_in_month(year, month)))


def previous_period(year: int, month: int) -> Tuple[int, int]:
    if month == 1:
        return year - 1, 12
    return year, month - 1


def next_period(year: int, month: int) -> Tuple[int, int]:
    if month == 12:
        return year + 1, 1
    return year, month + 1
