"""Month snapshots: capture, restore and duplicate a month's assignments.

A snapshot stores the month's active assignments as a versioned JSON
document::

    {"version": 1, "year": 2025, "month": 11,
     "shifts": [{"date": "2025-11-15", "concierge_id": 3,
                 "shift_type": "FULL_DAY", "notes": null}]}

Restoring replaces the live month: every active assignment in the month is
soft-deleted, then the stored entries are re-applied through
``shifts.bulk_assign_shifts``. Both phases share one transaction, so a
failure part way leaves the month untouched. Entries that no longer fit (a
concierge was deleted, the date is now out of range) are skipped; compare the
returned list with ``total_shifts`` to spot a partial restore.
"""

from __future__ import annotations

import datetime
import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from calendar_view import get_shifts_for_month
from config import MAX_DESCRIPTION_LENGTH, SNAPSHOT_VERSION
from database import MonthSnapshot, ShiftAssignment
from dates import clamp_to_month, first_day_of_month, last_day_of_month, validate_period
from errors import (
    InvalidInputError,
    SnapshotAlreadyExistsError,
    SnapshotCorruptError,
    SnapshotNotFoundError,
)
from shifts import bulk_assign_shifts, remove_shift, shifts_in_range

logger = logging.getLogger(__name__)

_HISTORY_ORDER = (MonthSnapshot.year.desc(), MonthSnapshot.month.desc())


def _timestamp() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _clean_description(description: Optional[str]) -> Optional[str]:
    if description is None:
        return None
    value = str(description).strip()
    if len(value) > MAX_DESCRIPTION_LENGTH:
        raise InvalidInputError(f"Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters")
    return value or None


def serialize_shifts(year: int, month: int, shifts: List[ShiftAssignment]) -> str:
    entries = [
        {
            "date": shift.shift_date.isoformat(),
            "concierge_id": shift.concierge_id,
            "shift_type": shift.shift_type,
            "notes": shift.notes,
        }
        for shift in shifts
    ]
    return json.dumps({"version": SNAPSHOT_VERSION, "year": year, "month": month, "shifts": entries})


def deserialize_shifts(snapshot: MonthSnapshot) -> List[Dict[str, Any]]:
    """Decode a snapshot payload into assignment requests."""
    try:
        data = json.loads(snapshot.snapshot_json or "")
    except json.JSONDecodeError as exc:
        raise SnapshotCorruptError(snapshot.id, f"invalid JSON ({exc.msg})") from exc
    if not isinstance(data, dict) or not isinstance(data.get("shifts"), list):
        raise SnapshotCorruptError(snapshot.id, "missing shift list")
    if data.get("version") != SNAPSHOT_VERSION:
        raise SnapshotCorruptError(snapshot.id, f"unsupported version {data.get('version')!r}")
    requests = []
    for entry in data["shifts"]:
        if not isinstance(entry, dict):
            raise SnapshotCorruptError(snapshot.id, f"bad shift entry {entry!r}")
        for field in ("shift_type", "notes"):
            if not isinstance(entry.get(field), (str, type(None))):
                raise SnapshotCorruptError(snapshot.id, f"bad {field} in shift entry {entry!r}")
        try:
            requests.append(
                {
                    "shift_date": datetime.date.fromisoformat(entry["date"]),
                    "concierge_id": int(entry["concierge_id"]),
                    "shift_type": entry.get("shift_type"),
                    "notes": entry.get("notes"),
                }
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise SnapshotCorruptError(snapshot.id, f"bad shift entry {entry!r}") from exc
    return requests


def _find_any_for_period(session, year: int, month: int) -> Optional[MonthSnapshot]:
    stmt = select(MonthSnapshot).where(MonthSnapshot.year == year, MonthSnapshot.month == month)
    return session.scalars(stmt).first()


def create_snapshot(session, year: int, month: int, description: Optional[str] = None) -> MonthSnapshot:
    logger.info("Creating new snapshot for %s/%s", month, year)
    validate_period(year, month)
    clean_description = _clean_description(description)

    existing = _find_any_for_period(session, year, month)
    if existing is not None and not existing.deleted:
        logger.warning("Snapshot already exists for %s/%s (ID=%s)", month, year, existing.id)
        raise SnapshotAlreadyExistsError(year, month, existing.id)

    shifts = get_shifts_for_month(session, year, month)
    payload = serialize_shifts(year, month, shifts)
    if existing is not None:
        logger.info("Reusing previously deleted snapshot for %s/%s (ID=%s)", month, year, existing.id)
        snapshot = existing
        snapshot.deleted = False
    else:
        snapshot = MonthSnapshot(year=year, month=month)
        session.add(snapshot)
    snapshot.description = clean_description
    snapshot.snapshot_json = payload
    snapshot.total_shifts = len(shifts)
    snapshot.snapshot_date = _timestamp()
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise SnapshotAlreadyExistsError(year, month)
    logger.info("Snapshot saved for %s/%s with ID=%s (%s shifts)", month, year, snapshot.id, snapshot.total_shifts)
    return snapshot


def get_snapshot(session, snapshot_id: int) -> MonthSnapshot:
    snapshot = session.get(MonthSnapshot, snapshot_id) if snapshot_id is not None else None
    if snapshot is None or snapshot.deleted:
        raise SnapshotNotFoundError(snapshot_id)
    return snapshot


def snapshot_shifts(session, snapshot_id: int) -> List[Dict[str, Any]]:
    return deserialize_shifts(get_snapshot(session, snapshot_id))


def restore_from_snapshot(
    session,
    snapshot_id: int,
    *,
    today_value: datetime.date | None = None,
) -> List[ShiftAssignment]:
    logger.info("Restoring from snapshot ID %s", snapshot_id)
    snapshot = get_snapshot(session, snapshot_id)
    requests = deserialize_shifts(snapshot)

    first_day = first_day_of_month(snapshot.year, snapshot.month)
    last_day = last_day_of_month(snapshot.year, snapshot.month)
    try:
        for shift in shifts_in_range(session, first_day, last_day):
            remove_shift(session, shift.id, commit=False)
        restored = bulk_assign_shifts(session, requests, commit=False, today_value=today_value)
        session.commit()
    except Exception:
        session.rollback()
        raise
    if len(restored) < snapshot.total_shifts:
        logger.warning(
            "Partial restore of snapshot %s: %s of %s shifts applied",
            snapshot_id,
            len(restored),
            snapshot.total_shifts,
        )
    logger.info("Restored %s shifts from snapshot", len(restored))
    return restored


def duplicate_schedule(
    session,
    source_year: int,
    source_month: int,
    target_year: int,
    target_month: int,
    *,
    today_value: datetime.date | None = None,
) -> List[ShiftAssignment]:
    """Copy a month's pattern onto another month without clearing the target.

    Days past the end of a shorter target month land on its last day; dates
    that are already taken in the target are skipped.
    """
    logger.info(
        "Duplicating schedule from %s-%s to %s-%s", source_year, source_month, target_year, target_month
    )
    validate_period(source_year, source_month)
    validate_period(target_year, target_month)
    note = f"Duplicated from {source_year}-{source_month}"
    requests = [
        {
            "shift_date": clamp_to_month(shift.shift_date.day, target_year, target_month),
            "concierge_id": shift.concierge_id,
            "shift_type": shift.shift_type,
            "notes": note,
        }
        for shift in get_shifts_for_month(session, source_year, source_month)
    ]
    created = bulk_assign_shifts(session, requests, today_value=today_value)
    logger.info("Duplicated %s of %s shifts to target month", len(created), len(requests))
    return created


def delete_history(session, snapshot_id: int) -> None:
    snapshot = get_snapshot(session, snapshot_id)
    snapshot.deleted = True
    session.commit()
    logger.info("History soft deleted: %s", snapshot_id)


def get_history_by_year_month(session, year: int, month: int) -> Optional[MonthSnapshot]:
    validate_period(year, month)
    stmt = select(MonthSnapshot).where(
        MonthSnapshot.year == year,
        MonthSnapshot.month == month,
        MonthSnapshot.deleted.is_(False),
    )
    return session.scalars(stmt).first()


def get_history_by_year(session, year: int) -> List[MonthSnapshot]:
    stmt = (
        select(MonthSnapshot)
        .where(MonthSnapshot.year == year, MonthSnapshot.deleted.is_(False))
        .order_by(MonthSnapshot.month.desc())
    )
    return list(session.scalars(stmt))


def get_history_by_year_range(session, start_year: int, end_year: int) -> List[MonthSnapshot]:
    stmt = (
        select(MonthSnapshot)
        .where(
            MonthSnapshot.year >= start_year,
            MonthSnapshot.year <= end_year,
            MonthSnapshot.deleted.is_(False),
        )
        .order_by(*_HISTORY_ORDER)
    )
    return list(session.scalars(stmt))


def get_all_history(session) -> List[MonthSnapshot]:
    stmt = select(MonthSnapshot).where(MonthSnapshot.deleted.is_(False)).order_by(*_HISTORY_ORDER)
    return list(session.scalars(stmt))


def get_history_page(session, offset: int = 0, limit: int = 10) -> Dict[str, Any]:
    if offset < 0:
        raise InvalidInputError("Offset cannot be negative")
    if limit < 1:
        raise InvalidInputError("Limit must be at least 1")
    stmt = (
        select(MonthSnapshot)
        .where(MonthSnapshot.deleted.is_(False))
        .order_by(*_HISTORY_ORDER)
        .offset(offset)
        .limit(limit)
    )
    return {
        "items": list(session.scalars(stmt)),
        "total": count_snapshots(session),
        "offset": offset,
        "limit": limit,
    }


def get_latest_history(session, limit: int = 5) -> List[MonthSnapshot]:
    return get_history_page(session, 0, limit)["items"]


def snapshot_exists(session, year: int, month: int) -> bool:
    stmt = select(MonthSnapshot.id).where(
        MonthSnapshot.year == year,
        MonthSnapshot.month == month,
        MonthSnapshot.deleted.is_(False),
    )
    return session.scalars(stmt).first() is not None


def count_snapshots(session) -> int:
    stmt = select(func.count(MonthSnapshot.id)).where(MonthSnapshot.deleted.is_(False))
    return int(session.scalar(stmt) or 0)


def snapshot_to_dict(snapshot: MonthSnapshot) -> Dict[str, Any]:
    return {
        "id": snapshot.id,
        "year": snapshot.year,
        "month": snapshot.month,
        "label": snapshot.label,
        "description": snapshot.description,
        "total_shifts": snapshot.total_shifts,
        "snapshot_date": snapshot.snapshot_date.isoformat() if snapshot.snapshot_date else None,
    }
