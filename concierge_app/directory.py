from __future__ import annotations

import datetime
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from config import MAX_NAME_LENGTH
from database import COLOR_CHOICES, Concierge, ShiftAssignment
from dates import first_day_of_month, last_day_of_month, today
from errors import (
    ConciergeDuplicateError,
    ConciergeInUseError,
    ConciergeNotFoundError,
    InvalidInputError,
)

logger = logging.getLogger(__name__)


def _normalize_name(name: Optional[str]) -> str:
    value = (name or "").strip()
    if not value:
        raise InvalidInputError("Concierge name cannot be empty")
    if len(value) > MAX_NAME_LENGTH:
        raise InvalidInputError(f"Concierge name cannot exceed {MAX_NAME_LENGTH} characters")
    return value


def _normalize_color(color: Optional[str]) -> str:
    value = (color or "").strip().upper()
    if value not in COLOR_CHOICES:
        raise InvalidInputError(f"Unknown color '{color}'. Choose one of: {', '.join(COLOR_CHOICES)}")
    return value


def _normalize_active(active) -> bool:
    if not isinstance(active, bool):
        raise InvalidInputError(f"Active flag must be true or false, got {active!r}")
    return active


def find_concierge(session, concierge_id: int) -> Optional[Concierge]:
    if concierge_id is None:
        return None
    concierge = session.get(Concierge, concierge_id)
    if concierge is None or concierge.deleted:
        return None
    return concierge


def get_concierge(session, concierge_id: int) -> Concierge:
    concierge = find_concierge(session, concierge_id)
    if concierge is None:
        raise ConciergeNotFoundError(concierge_id)
    return concierge


def get_concierge_by_name(session, name: str) -> Concierge:
    stmt = select(Concierge).where(
        func.lower(Concierge.name) == (name or "").strip().lower(),
        Concierge.deleted.is_(False),
    )
    concierge = session.scalars(stmt).first()
    if concierge is None:
        raise ConciergeNotFoundError(name)
    return concierge


def name_exists(session, name: str) -> bool:
    """Case-insensitive check across every row, deleted ones included."""
    stmt = select(Concierge.id).where(func.lower(Concierge.name) == (name or "").strip().lower())
    return session.scalars(stmt).first() is not None


# ---------------------------------------------------------------------------
# Read surface used by the shift store and the calendar


def exists(session, concierge_id: int) -> bool:
    return find_concierge(session, concierge_id) is not None


def is_active(session, concierge_id: int) -> bool:
    concierge = find_concierge(session, concierge_id)
    return bool(concierge and concierge.active)


def display_name(session, concierge_id: int) -> str:
    return get_concierge(session, concierge_id).name


def color_tag(session, concierge_id: int) -> str:
    return get_concierge(session, concierge_id).color


def list_active_concierges(session) -> List[Concierge]:
    stmt = (
        select(Concierge)
        .where(Concierge.active.is_(True), Concierge.deleted.is_(False))
        .order_by(Concierge.name.asc())
    )
    return list(session.scalars(stmt))


def list_concierges(session) -> List[Concierge]:
    stmt = select(Concierge).where(Concierge.deleted.is_(False)).order_by(Concierge.name.asc())
    return list(session.scalars(stmt))


def list_concierges_by_color(session, color: str) -> List[Concierge]:
    stmt = (
        select(Concierge)
        .where(Concierge.color == _normalize_color(color), Concierge.deleted.is_(False))
        .order_by(Concierge.name.asc())
    )
    return list(session.scalars(stmt))


def concierge_to_dict(concierge: Concierge) -> Dict[str, Any]:
    return {
        "id": concierge.id,
        "name": concierge.name,
        "color": concierge.color,
        "color_hex": concierge.color_hex,
        "active": concierge.active,
    }


# ---------------------------------------------------------------------------
# Management


def create_concierge(session, name: str, color: str, *, active: bool = True) -> Concierge:
    clean_name = _normalize_name(name)
    clean_color = _normalize_color(color)
    clean_active = _normalize_active(active)
    if name_exists(session, clean_name):
        raise ConciergeDuplicateError(clean_name)
    concierge = Concierge(name=clean_name, color=clean_color, active=clean_active)
    session.add(concierge)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ConciergeDuplicateError(clean_name)
    session.refresh(concierge)
    logger.info("Concierge created with ID %s: %s", concierge.id, concierge.name)
    return concierge


def update_concierge(
    session,
    concierge_id: int,
    *,
    name: Optional[str] = None,
    color: Optional[str] = None,
    active: Optional[bool] = None,
) -> Concierge:
    concierge = get_concierge(session, concierge_id)
    clean_name = _normalize_name(name) if name is not None else None
    clean_color = _normalize_color(color) if color is not None else None
    clean_active = _normalize_active(active) if active is not None else None
    if clean_name is not None:
        if clean_name.lower() != concierge.name.lower() and name_exists(session, clean_name):
            raise ConciergeDuplicateError(clean_name)
        concierge.name = clean_name
    if clean_color is not None:
        concierge.color = clean_color
    if clean_active is not None:
        concierge.active = clean_active
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ConciergeDuplicateError(concierge.name)
    session.refresh(concierge)
    logger.info("Concierge updated: %s", concierge.name)
    return concierge


def activate_concierge(session, concierge_id: int) -> Concierge:
    concierge = get_concierge(session, concierge_id)
    concierge.active = True
    session.commit()
    logger.info("Concierge activated: %s", concierge.name)
    return concierge


def deactivate_concierge(session, concierge_id: int) -> Concierge:
    concierge = get_concierge(session, concierge_id)
    concierge.active = False
    session.commit()
    logger.info("Concierge deactivated: %s", concierge.name)
    return concierge


def has_active_assignments(session, concierge_id: int) -> bool:
    stmt = select(ShiftAssignment.id).where(
        ShiftAssignment.concierge_id == concierge_id,
        ShiftAssignment.deleted.is_(False),
    )
    return session.scalars(stmt).first() is not None


def delete_concierge(session, concierge_id: int) -> None:
    concierge = get_concierge(session, concierge_id)
    if has_active_assignments(session, concierge_id):
        raise ConciergeInUseError(concierge_id)
    concierge.deleted = True
    session.commit()
    logger.info("Concierge soft deleted: %s", concierge.name)


def retire_concierge(session, concierge_id: int) -> int:
    """Drop every active shift of the concierge, then soft-delete it."""
    from shifts import remove_all_for_concierge

    get_concierge(session, concierge_id)
    removed = remove_all_for_concierge(session, concierge_id)
    delete_concierge(session, concierge_id)
    return removed


def total_shift_count(session, concierge_id: int) -> int:
    stmt = select(func.count(ShiftAssignment.id)).where(
        ShiftAssignment.concierge_id == concierge_id,
        ShiftAssignment.deleted.is_(False),
    )
    return int(session.scalar(stmt) or 0)


def current_month_shift_count(session, concierge_id: int, *, today_value: datetime.date | None = None) -> int:
    now = today_value or today()
    stmt = select(func.count(ShiftAssignment.id)).where(
        ShiftAssignment.concierge_id == concierge_id,
        ShiftAssignment.deleted.is_(False),
        ShiftAssignment.shift_date.between(
            first_day_of_month(now.year, now.month), last_day_of_month(now.year, now.month)
        ),
    )
    return int(session.scalar(stmt) or 0)
