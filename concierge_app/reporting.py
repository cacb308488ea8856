from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from calendar_view import get_shift_count_by_concierge
from dates import month_name, next_period, previous_period
from directory import list_active_concierges


def most_active(counts: Dict[str, int]) -> Tuple[Optional[str], int]:
    """Highest count wins; equal counts go to the alphabetically first name."""
    if not counts:
        return None, 0
    name, count = min(counts.items(), key=lambda item: (-item[1], item[0]))
    return name, count


def least_active(counts: Dict[str, int]) -> Tuple[Optional[str], int]:
    """Lowest count among concierges with shifts; ties go to the first name."""
    if not counts:
        return None, 0
    name, count = min(counts.items(), key=lambda item: (item[1], item[0]))
    return name, count


def month_statistics(session, year: int, month: int) -> Dict[str, Any]:
    counts = get_shift_count_by_concierge(session, year, month)
    active_count = len(list_active_concierges(session))
    total = sum(counts.values())
    top_name, top_count = most_active(counts)
    low_name, low_count = least_active(counts)
    labels = sorted(counts)
    prev_year, prev_month = previous_period(year, month)
    next_year, next_month = next_period(year, month)
    return {
        "year": year,
        "month": month,
        "month_name": month_name(month),
        "shift_count_by_concierge": counts,
        "total_shifts": total,
        "average_shifts_per_concierge": round(total / active_count, 1) if active_count else 0.0,
        "most_active_concierge": top_name,
        "max_shift_count": top_count,
        "least_active_concierge": low_name,
        "min_shift_count": low_count,
        "chart_data": {"labels": labels, "data": [counts[name] for name in labels]},
        "previous": {"year": prev_year, "month": prev_month},
        "next": {"year": next_year, "month": next_month},
    }
