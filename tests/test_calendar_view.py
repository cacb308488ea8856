from __future__ import annotations

import datetime
import sys
from pathlib import Path

import pytest
from sqlalchemy.pool import StaticPool

APP_DIR = Path(__file__).resolve().parents[1] / "concierge_app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from calendar_view import (  # noqa: E402
    calendar_days_payload,
    count_assigned_days,
    get_calendar_days,
    get_month_schedule,
    get_shift_count_by_concierge,
    get_unassigned_dates,
    is_month_fully_assigned,
    month_schedule_payload,
)
from database import create_database_engine, init_database, make_session_factory  # noqa: E402
import dates  # noqa: E402
from dates import calendar_grid_dates, clamp_to_month, dates_in_month, format_month_year, validate_period  # noqa: E402
from directory import create_concierge, deactivate_concierge  # noqa: E402
from errors import InvalidPeriodError, ShiftConflictError  # noqa: E402
from shifts import assign_shift, bulk_assign_shifts  # noqa: E402


TODAY = datetime.date(2026, 6, 1)


@pytest.fixture(autouse=True)
def fixed_clock(monkeypatch):
    monkeypatch.setattr(dates, "today", lambda: TODAY)


@pytest.fixture()
def session():
    engine = create_database_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_database(engine)
    db = make_session_factory(engine)()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


def test_grid_has_42_days_starting_on_monday() -> None:
    # November 2025 starts on a Saturday.
    grid = calendar_grid_dates(2025, 11)

    assert len(grid) == 42
    assert grid[0] == datetime.date(2025, 10, 27)
    assert grid[0].isoweekday() == 1
    assert grid[-1] == datetime.date(2025, 12, 7)


def test_grid_for_month_starting_monday_begins_on_day_one() -> None:
    # September 2025 starts on a Monday.
    assert calendar_grid_dates(2025, 9)[0] == datetime.date(2025, 9, 1)


def test_period_bounds_and_helpers() -> None:
    validate_period(2020, 1)
    validate_period(2100, 12)
    for year, month in ((2019, 5), (2101, 1), (2025, 0), (2025, 13)):
        with pytest.raises(InvalidPeriodError):
            validate_period(year, month)
    assert len(dates_in_month(2028, 2)) == 29
    assert clamp_to_month(31, 2026, 2) == datetime.date(2026, 2, 28)
    assert clamp_to_month(31, 2026, 4) == datetime.date(2026, 4, 30)
    assert format_month_year(2025, 11) == "November 2025"


def test_concierge_scenario(session) -> None:
    alice = create_concierge(session, "Alice", "BLUE")
    bob = create_concierge(session, "Bob", "GREEN")
    day = datetime.date(2025, 11, 15)

    assign_shift(session, day, alice.id)
    with pytest.raises(ShiftConflictError):
        assign_shift(session, day, bob.id)

    unassigned = get_unassigned_dates(session, 2025, 11)
    assert day not in unassigned
    assert len(unassigned) == 29
    assert unassigned == sorted(unassigned)
    assert get_shift_count_by_concierge(session, 2025, 11) == {"Alice": 1}


def test_month_schedule_summary(session) -> None:
    alice = create_concierge(session, "Alice", "BLUE")
    retired = create_concierge(session, "Zed", "RED")
    deactivate_concierge(session, retired.id)
    assign_shift(session, datetime.date(2026, 2, 1), alice.id)
    assign_shift(session, datetime.date(2026, 2, 28), alice.id)
    # Outside the month; must not leak in.
    assign_shift(session, datetime.date(2026, 3, 1), alice.id)

    schedule = get_month_schedule(session, 2026, 2)

    assert schedule["month_name"] == "February"
    assert schedule["total_days"] == 28
    assert schedule["assigned_days"] == 2
    assert schedule["unassigned_days"] == 26
    assert schedule["first_day"] == datetime.date(2026, 2, 1)
    assert schedule["last_day"] == datetime.date(2026, 2, 28)
    assert schedule["starting_day_of_week"] == 7
    assert set(schedule["daily_assignments"]) == {datetime.date(2026, 2, 1), datetime.date(2026, 2, 28)}
    assert [c.name for c in schedule["concierges"]] == ["Alice"]

    payload = month_schedule_payload(schedule)
    assert payload["daily_assignments"]["2026-02-01"]["concierge_name"] == "Alice"
    assert payload["concierges"][0]["color_hex"] == "#3498db"


def test_month_schedule_rejects_out_of_range_period(session) -> None:
    with pytest.raises(InvalidPeriodError):
        get_month_schedule(session, 2019, 12)
    with pytest.raises(InvalidPeriodError):
        get_calendar_days(session, 2025, 13)


def test_calendar_days_flags(session) -> None:
    alice = create_concierge(session, "Alice", "BLUE")
    assign_shift(session, datetime.date(2025, 11, 15), alice.id)
    # Spill-over day in the grid still shows its assignment.
    assign_shift(session, datetime.date(2025, 10, 27), alice.id)

    days = get_calendar_days(session, 2025, 11, today_value=datetime.date(2025, 11, 3))
    by_date = {day["date"]: day for day in days}

    assert len(days) == 42
    assert days[0]["day_of_week_short"] == "MON"
    assert sum(1 for day in days if day["is_current_month"]) == 30
    assert sum(1 for day in days if day["is_today"]) == 1
    assert by_date[datetime.date(2025, 11, 3)]["is_today"]
    assert by_date[datetime.date(2025, 11, 15)]["is_weekend"]
    assert by_date[datetime.date(2025, 11, 15)]["assignment"].concierge_id == alice.id
    assert by_date[datetime.date(2025, 10, 27)]["is_assigned"]
    assert not by_date[datetime.date(2025, 10, 27)]["is_current_month"]
    assert not by_date[datetime.date(2025, 11, 16)]["is_assigned"]

    payload = calendar_days_payload(days)
    assert payload[0]["assignment"]["concierge_name"] == "Alice"


def test_fully_assigned_month(session) -> None:
    alice = create_concierge(session, "Alice", "BLUE")
    month_days = dates_in_month(2026, 2)
    bulk_assign_shifts(session, [{"shift_date": day, "concierge_id": alice.id} for day in month_days[:-1]])
    assert not is_month_fully_assigned(session, 2026, 2)

    assign_shift(session, month_days[-1], alice.id)

    assert count_assigned_days(session, 2026, 2) == 28
    assert is_month_fully_assigned(session, 2026, 2)
