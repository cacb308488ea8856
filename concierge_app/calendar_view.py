from __future__ import annotations

import datetime
import logging
from collections import Counter
from typing import Any, Dict, List

from directory import concierge_to_dict, list_active_concierges
from database import ShiftAssignment
from dates import (
    calendar_grid_dates,
    dates_in_month,
    days_in_month,
    first_day_of_month,
    is_weekend,
    iso_weekday,
    last_day_of_month,
    month_name,
    today,
    validate_period,
    weekday_short,
)
from shifts import assignment_to_dict, shifts_in_range

logger = logging.getLogger(__name__)


def get_shifts_for_month(session, year: int, month: int) -> List[ShiftAssignment]:
    validate_period(year, month)
    return shifts_in_range(session, first_day_of_month(year, month), last_day_of_month(year, month))


def get_month_schedule(session, year: int, month: int) -> Dict[str, Any]:
    logger.debug("Getting month schedule for %s-%s", year, month)
    shifts = get_shifts_for_month(session, year, month)
    first_day = first_day_of_month(year, month)
    total_days = days_in_month(year, month)
    return {
        "year": year,
        "month": month,
        "month_name": month_name(month),
        "shifts": shifts,
        "daily_assignments": {shift.shift_date: shift for shift in shifts},
        "concierges": list_active_concierges(session),
        "total_days": total_days,
        "assigned_days": len(shifts),
        "unassigned_days": total_days - len(shifts),
        "first_day": first_day,
        "last_day": last_day_of_month(year, month),
        "starting_day_of_week": iso_weekday(first_day),
    }


def get_calendar_days(session, year: int, month: int, *, today_value: datetime.date | None = None) -> List[Dict[str, Any]]:
    """Return the 42 cells of a Monday-first month grid."""
    validate_period(year, month)
    grid = calendar_grid_dates(year, month)
    shift_map = {shift.shift_date: shift for shift in shifts_in_range(session, grid[0], grid[-1])}
    current_day = today_value or today()
    first_day = first_day_of_month(year, month)
    last_day = last_day_of_month(year, month)
    days = []
    for day in grid:
        shift = shift_map.get(day)
        days.append(
            {
                "date": day,
                "day_of_month": day.day,
                "day_of_week": iso_weekday(day),
                "day_of_week_short": weekday_short(day),
                "is_today": day == current_day,
                "is_weekend": is_weekend(day),
                "is_current_month": first_day <= day <= last_day,
                "is_assigned": shift is not None,
                "assignment": shift,
            }
        )
    return days


def get_unassigned_dates(session, year: int, month: int) -> List[datetime.date]:
    assigned = {shift.shift_date for shift in get_shifts_for_month(session, year, month)}
    return [day for day in dates_in_month(year, month) if day not in assigned]


def get_shift_count_by_concierge(session, year: int, month: int) -> Dict[str, int]:
    counts = Counter(shift.concierge.name for shift in get_shifts_for_month(session, year, month))
    return dict(counts)


def count_assigned_days(session, year: int, month: int) -> int:
    return len(get_shifts_for_month(session, year, month))


def count_unassigned_days(session, year: int, month: int) -> int:
    return days_in_month(year, month) - count_assigned_days(session, year, month)


def is_month_fully_assigned(session, year: int, month: int) -> bool:
    return count_unassigned_days(session, year, month) == 0


def month_schedule_payload(schedule: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a month schedule into JSON-friendly primitives."""
    payload = {key: value for key, value in schedule.items() if key not in {"shifts", "daily_assignments", "concierges"}}
    payload["assignments"] = [assignment_to_dict(shift) for shift in schedule["shifts"]]
    payload["daily_assignments"] = {
        day.isoformat(): assignment_to_dict(shift) for day, shift in schedule["daily_assignments"].items()
    }
    payload["concierges"] = [concierge_to_dict(item) for item in schedule["concierges"]]
    return payload


def calendar_days_payload(days: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    payload = []
    for day in days:
        entry = dict(day)
        entry["assignment"] = assignment_to_dict(day["assignment"]) if day["assignment"] is not None else None
        payload.append(entry)
    return payload
