"""Shift assignment store.

Owns the rule that at most one active assignment exists per calendar day.
The ``_active_assignment_exists`` pre-check gives a fast, friendly failure;
the partial unique index on ``shift_assignments`` is what actually holds the
line when two writers race, and its violation surfaces as the same
``ShiftConflictError``.

Every insert runs inside a savepoint so a rejected row never spoils the
caller's transaction. That is what lets ``bulk_assign_shifts`` skip failed
items and keep going.
"""

from __future__ import annotations

import datetime
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

import directory
from config import MAX_NOTES_LENGTH
from database import DEFAULT_SHIFT_TYPE, SHIFT_TYPES, Concierge, ShiftAssignment
from dates import validate_date
from errors import (
    AssignmentNotFoundError,
    ConciergeNotFoundError,
    InvalidInputError,
    SchedulerError,
    ShiftConflictError,
)

logger = logging.getLogger(__name__)


def _clean_notes(notes: Optional[str]) -> Optional[str]:
    if notes is None:
        return None
    value = str(notes).strip()
    if len(value) > MAX_NOTES_LENGTH:
        raise InvalidInputError(f"Notes cannot exceed {MAX_NOTES_LENGTH} characters")
    return value or None


def _clean_shift_type(shift_type: Optional[str]) -> str:
    value = (shift_type or DEFAULT_SHIFT_TYPE).strip().upper()
    if value not in SHIFT_TYPES:
        raise InvalidInputError(f"Unsupported shift type '{shift_type}'")
    return value


def _validate_request(shift_date, concierge_id, *, today_value=None) -> datetime.date:
    if shift_date is None:
        raise InvalidInputError("Shift date is required")
    if concierge_id is None:
        raise InvalidInputError("Concierge ID is required")
    return validate_date(shift_date, today_value=today_value)


def _active_assignment_exists(session, shift_date: datetime.date) -> bool:
    stmt = select(ShiftAssignment.id).where(
        ShiftAssignment.shift_date == shift_date,
        ShiftAssignment.deleted.is_(False),
    )
    return session.scalars(stmt).first() is not None


def _check_conflict(session, shift_date: datetime.date) -> None:
    if _active_assignment_exists(session, shift_date):
        raise ShiftConflictError(shift_date)


def _require_concierge(session, concierge_id: int) -> Concierge:
    concierge = directory.find_concierge(session, concierge_id)
    if concierge is None:
        raise ConciergeNotFoundError(concierge_id)
    return concierge


def _insert_assignment(
    session,
    shift_date: datetime.date,
    concierge_id: int,
    notes: Optional[str] = None,
    *,
    shift_type: Optional[str] = None,
    today_value: datetime.date | None = None,
) -> ShiftAssignment:
    shift_date = _validate_request(shift_date, concierge_id, today_value=today_value)
    clean_type = _clean_shift_type(shift_type)
    clean_notes = _clean_notes(notes)
    _check_conflict(session, shift_date)
    concierge = _require_concierge(session, concierge_id)

    # Only the foreign key is set before the savepoint; a rejected row must
    # not linger in the concierge's assignment collection.
    assignment = ShiftAssignment(
        shift_date=shift_date,
        concierge_id=concierge.id,
        shift_type=clean_type,
        notes=clean_notes,
    )
    try:
        with session.begin_nested():
            session.add(assignment)
    except IntegrityError:
        raise ShiftConflictError(shift_date)
    session.refresh(assignment)
    return assignment


def assign_shift(
    session,
    shift_date: datetime.date,
    concierge_id: int,
    notes: Optional[str] = None,
    *,
    shift_type: Optional[str] = None,
    today_value: datetime.date | None = None,
) -> ShiftAssignment:
    logger.info("Assigning shift for date %s to concierge ID %s", shift_date, concierge_id)
    assignment = _insert_assignment(
        session,
        shift_date,
        concierge_id,
        notes,
        shift_type=shift_type,
        today_value=today_value,
    )
    session.commit()
    logger.info("Shift assigned with ID %s", assignment.id)
    return assignment


def get_shift(session, assignment_id: int) -> ShiftAssignment:
    assignment = session.get(ShiftAssignment, assignment_id) if assignment_id is not None else None
    if assignment is None or assignment.deleted:
        raise AssignmentNotFoundError(assignment_id)
    return assignment


def update_shift(
    session,
    assignment_id: int,
    shift_date: datetime.date,
    concierge_id: int,
    notes: Optional[str] = None,
    *,
    shift_type: Optional[str] = None,
    today_value: datetime.date | None = None,
) -> ShiftAssignment:
    logger.info("Updating shift ID %s", assignment_id)
    existing = get_shift(session, assignment_id)
    shift_date = _validate_request(shift_date, concierge_id, today_value=today_value)
    clean_type = _clean_shift_type(shift_type or existing.shift_type)
    clean_notes = _clean_notes(notes)
    if shift_date != existing.shift_date:
        _check_conflict(session, shift_date)
    if concierge_id != existing.concierge_id:
        _require_concierge(session, concierge_id)

    try:
        with session.begin_nested():
            existing.shift_date = shift_date
            existing.concierge_id = concierge_id
            existing.shift_type = clean_type
            existing.notes = clean_notes
    except IntegrityError:
        raise ShiftConflictError(shift_date)
    session.commit()
    session.refresh(existing)
    logger.info("Shift updated: %s", existing.id)
    return existing


def remove_shift(session, assignment_id: int, *, commit: bool = True) -> None:
    assignment = get_shift(session, assignment_id)
    assignment.deleted = True
    if commit:
        session.commit()
    logger.info("Shift soft deleted: %s", assignment_id)


def remove_shift_by_date(session, shift_date: datetime.date) -> None:
    assignment = find_shift_by_date(session, shift_date)
    if assignment is None:
        raise AssignmentNotFoundError(shift_date.isoformat() if shift_date else shift_date)
    assignment.deleted = True
    session.commit()
    logger.info("Shift removed for date %s", shift_date)


def find_shift_by_date(session, shift_date: datetime.date) -> Optional[ShiftAssignment]:
    stmt = select(ShiftAssignment).where(
        ShiftAssignment.shift_date == shift_date,
        ShiftAssignment.deleted.is_(False),
    )
    return session.scalars(stmt).first()


def is_assigned(session, shift_date: datetime.date) -> bool:
    return _active_assignment_exists(session, shift_date)


def shifts_for_concierge(session, concierge_id: int) -> List[ShiftAssignment]:
    stmt = (
        select(ShiftAssignment)
        .where(ShiftAssignment.concierge_id == concierge_id, ShiftAssignment.deleted.is_(False))
        .order_by(ShiftAssignment.shift_date.asc())
    )
    return list(session.scalars(stmt).unique())


def shifts_in_range(session, start: datetime.date, end: datetime.date) -> List[ShiftAssignment]:
    """Active assignments with start <= date <= end, earliest first."""
    stmt = (
        select(ShiftAssignment)
        .where(
            ShiftAssignment.shift_date >= start,
            ShiftAssignment.shift_date <= end,
            ShiftAssignment.deleted.is_(False),
        )
        .order_by(ShiftAssignment.shift_date.asc())
    )
    return list(session.scalars(stmt).unique())


def bulk_assign_shifts(
    session,
    requests: Iterable[Dict[str, Any]],
    *,
    commit: bool = True,
    today_value: datetime.date | None = None,
) -> List[ShiftAssignment]:
    """Assign each request on its own; failures are logged and skipped.

    Requests are mappings with ``shift_date``, ``concierge_id`` and optional
    ``shift_type`` and ``notes`` keys. Returns the created assignments in
    input order.
    """
    items = list(requests)
    logger.info("Bulk assigning %s shifts", len(items))
    created: List[ShiftAssignment] = []
    for item in items:
        try:
            assignment = _insert_assignment(
                session,
                item.get("shift_date"),
                item.get("concierge_id"),
                item.get("notes"),
                shift_type=item.get("shift_type"),
                today_value=today_value,
            )
        except SchedulerError as exc:
            logger.warning("Failed to assign shift for date %s: %s", item.get("shift_date"), exc)
            continue
        created.append(assignment)
    if commit:
        session.commit()
    logger.info("Successfully assigned %s out of %s shifts", len(created), len(items))
    return created


def remove_all_for_concierge(session, concierge_id: int, *, commit: bool = True) -> int:
    assignments = shifts_for_concierge(session, concierge_id)
    for assignment in assignments:
        assignment.deleted = True
    if commit:
        session.commit()
    logger.info("Deleted %s shifts for concierge ID %s", len(assignments), concierge_id)
    return len(assignments)


def assignment_to_dict(assignment: ShiftAssignment) -> Dict[str, Any]:
    concierge = assignment.concierge
    return {
        "id": assignment.id,
        "shift_date": assignment.shift_date,
        "concierge_id": assignment.concierge_id,
        "concierge_name": concierge.name if concierge else None,
        "concierge_color": concierge.color if concierge else None,
        "color_hex": concierge.color_hex if concierge else None,
        "shift_type": assignment.shift_type,
        "notes": assignment.notes,
    }
