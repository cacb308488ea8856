"""FastAPI wrapper around the concierge scheduler.

Routes stay thin: parse the request, call the module functions, serialize
the result. Domain errors are mapped to HTTP status codes in one handler and
their messages are returned verbatim.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import datetime
import logging
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

import config
import database
from calendar_view import (
    calendar_days_payload,
    get_calendar_days,
    get_month_schedule,
    get_unassigned_dates,
    month_schedule_payload,
)
from database import init_database, record_audit_log
from directory import (
    activate_concierge,
    concierge_to_dict,
    create_concierge,
    deactivate_concierge,
    delete_concierge,
    list_active_concierges,
    list_concierges,
    retire_concierge,
    update_concierge,
)
from errors import (
    ConciergeInUseError,
    ConflictError,
    InvalidInputError,
    NotFoundError,
    SchedulerError,
    SnapshotCorruptError,
)
from history import (
    create_snapshot,
    delete_history,
    duplicate_schedule,
    get_history_page,
    get_snapshot,
    restore_from_snapshot,
    snapshot_exists,
    snapshot_shifts,
    snapshot_to_dict,
)
from reporting import month_statistics
from shifts import (
    assign_shift,
    assignment_to_dict,
    find_shift_by_date,
    remove_shift,
    remove_shift_by_date,
    update_shift,
)

logger = logging.getLogger(__name__)

ERROR_STATUS = (
    (NotFoundError, 404),
    (ConflictError, 409),
    (ConciergeInUseError, 409),
    (InvalidInputError, 400),
    (SnapshotCorruptError, 422),
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    config.configure_logging()
    init_database()
    yield


app = FastAPI(title="Concierge Scheduler API", version="0.1", lifespan=lifespan)


@app.exception_handler(SchedulerError)
async def scheduler_error_handler(_: Request, exc: SchedulerError) -> JSONResponse:
    status_code = next((code for kind, code in ERROR_STATUS if isinstance(exc, kind)), 400)
    logger.info("Request rejected (%s): %s", status_code, exc)
    return JSONResponse(status_code=status_code, content={"error": type(exc).__name__, "detail": str(exc)})


def get_db():
    db = database.SessionLocal()
    try:
        yield db
    finally:
        db.close()


def require_editor(
    api_key: Optional[str] = Header(default=None, alias="X-Api-Key"),
    actor: Optional[str] = Header(default=None, alias="X-Actor"),
) -> str:
    """Authorization gate for mutating routes; returns the acting user label."""
    if config.API_KEY and api_key != config.API_KEY:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to modify the schedule")
    return (actor or "api").strip() or "api"


def _parse_date(value: str, field: str = "date") -> datetime.date:
    try:
        return datetime.date.fromisoformat(str(value))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{field} must be YYYY-MM-DD")


def _required_int(payload: Dict[str, Any], field: str) -> int:
    value = payload.get(field)
    if value is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{field} is required")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{field} must be an integer")


def _audit(db: Session, actor: str, action: str, target_type: str, target_id: Optional[int], payload: Optional[Dict[str, Any]] = None) -> None:
    record_audit_log(db, user_id=actor, action=action, target_type=target_type, target_id=target_id, payload=payload)


def _respond(content: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Concierges


@app.get("/api/v1/concierges")
def concierges(include_inactive: bool = Query(False), db=Depends(get_db)) -> JSONResponse:
    rows = list_concierges(db) if include_inactive else list_active_concierges(db)
    return _respond({"concierges": [concierge_to_dict(item) for item in rows]})


@app.post("/api/v1/concierges")
def add_concierge(payload: Dict[str, Any], db=Depends(get_db), actor: str = Depends(require_editor)) -> JSONResponse:
    concierge = create_concierge(db, payload.get("name"), payload.get("color"), active=payload.get("active", True))
    _audit(db, actor, "CONCIERGE_CREATE", "Concierge", concierge.id, {"name": concierge.name})
    return _respond(concierge_to_dict(concierge), status_code=201)


@app.put("/api/v1/concierges/{concierge_id}")
def edit_concierge(
    concierge_id: int,
    payload: Dict[str, Any],
    db=Depends(get_db),
    actor: str = Depends(require_editor),
) -> JSONResponse:
    concierge = update_concierge(
        db,
        concierge_id,
        name=payload.get("name"),
        color=payload.get("color"),
        active=payload.get("active"),
    )
    _audit(db, actor, "CONCIERGE_UPDATE", "Concierge", concierge.id, payload)
    return _respond(concierge_to_dict(concierge))


@app.post("/api/v1/concierges/{concierge_id}/activate")
def activate(concierge_id: int, db=Depends(get_db), actor: str = Depends(require_editor)) -> JSONResponse:
    concierge = activate_concierge(db, concierge_id)
    _audit(db, actor, "CONCIERGE_ACTIVATE", "Concierge", concierge.id)
    return _respond(concierge_to_dict(concierge))


@app.post("/api/v1/concierges/{concierge_id}/deactivate")
def deactivate(concierge_id: int, db=Depends(get_db), actor: str = Depends(require_editor)) -> JSONResponse:
    concierge = deactivate_concierge(db, concierge_id)
    _audit(db, actor, "CONCIERGE_DEACTIVATE", "Concierge", concierge.id)
    return _respond(concierge_to_dict(concierge))


@app.delete("/api/v1/concierges/{concierge_id}")
def remove_concierge(
    concierge_id: int,
    retire: bool = Query(False),
    db=Depends(get_db),
    actor: str = Depends(require_editor),
) -> JSONResponse:
    removed_shifts = 0
    if retire:
        removed_shifts = retire_concierge(db, concierge_id)
    else:
        delete_concierge(db, concierge_id)
    _audit(db, actor, "CONCIERGE_DELETE", "Concierge", concierge_id, {"removed_shifts": removed_shifts})
    return _respond({"id": concierge_id, "deleted": True, "removed_shifts": removed_shifts})


# ---------------------------------------------------------------------------
# Schedule


@app.get("/api/v1/schedule/{year}/{month}")
def month_schedule(year: int, month: int, db=Depends(get_db)) -> JSONResponse:
    return _respond(month_schedule_payload(get_month_schedule(db, year, month)))


@app.get("/api/v1/schedule/{year}/{month}/calendar")
def month_calendar(year: int, month: int, db=Depends(get_db)) -> JSONResponse:
    days = get_calendar_days(db, year, month)
    return _respond({"year": year, "month": month, "days": calendar_days_payload(days)})


@app.get("/api/v1/schedule/{year}/{month}/unassigned")
def unassigned(year: int, month: int, db=Depends(get_db)) -> JSONResponse:
    return _respond({"year": year, "month": month, "dates": get_unassigned_dates(db, year, month)})


@app.get("/api/v1/statistics/{year}/{month}")
def statistics(year: int, month: int, db=Depends(get_db)) -> JSONResponse:
    return _respond(month_statistics(db, year, month))


@app.get("/api/v1/shifts/{shift_date}")
def shift_for_date(shift_date: str, db=Depends(get_db)) -> JSONResponse:
    assignment = find_shift_by_date(db, _parse_date(shift_date))
    return _respond({"assignment": assignment_to_dict(assignment) if assignment else None})


@app.post("/api/v1/shifts")
def create_shift(payload: Dict[str, Any], db=Depends(get_db), actor: str = Depends(require_editor)) -> JSONResponse:
    shift_date = _parse_date(payload.get("shift_date"), "shift_date")
    assignment = assign_shift(
        db,
        shift_date,
        _required_int(payload, "concierge_id"),
        payload.get("notes"),
        shift_type=payload.get("shift_type"),
    )
    _audit(db, actor, "SHIFT_ASSIGN", "ShiftAssignment", assignment.id, {"shift_date": shift_date.isoformat()})
    return _respond(assignment_to_dict(assignment), status_code=201)


@app.put("/api/v1/shifts/{assignment_id}")
def edit_shift(
    assignment_id: int,
    payload: Dict[str, Any],
    db=Depends(get_db),
    actor: str = Depends(require_editor),
) -> JSONResponse:
    assignment = update_shift(
        db,
        assignment_id,
        _parse_date(payload.get("shift_date"), "shift_date"),
        _required_int(payload, "concierge_id"),
        payload.get("notes"),
        shift_type=payload.get("shift_type"),
    )
    _audit(db, actor, "SHIFT_UPDATE", "ShiftAssignment", assignment.id, payload)
    return _respond(assignment_to_dict(assignment))


@app.delete("/api/v1/shifts/{assignment_id}")
def delete_shift(assignment_id: int, db=Depends(get_db), actor: str = Depends(require_editor)) -> JSONResponse:
    remove_shift(db, assignment_id)
    _audit(db, actor, "SHIFT_REMOVE", "ShiftAssignment", assignment_id)
    return _respond({"id": assignment_id, "deleted": True})


@app.delete("/api/v1/shifts/by-date/{shift_date}")
def delete_shift_for_date(shift_date: str, db=Depends(get_db), actor: str = Depends(require_editor)) -> JSONResponse:
    day = _parse_date(shift_date)
    remove_shift_by_date(db, day)
    _audit(db, actor, "SHIFT_REMOVE", "ShiftAssignment", None, {"shift_date": day.isoformat()})
    return _respond({"shift_date": day, "deleted": True})


# ---------------------------------------------------------------------------
# History


@app.get("/api/v1/history")
def history_page(offset: int = Query(0), limit: int = Query(10), db=Depends(get_db)) -> JSONResponse:
    page = get_history_page(db, offset, limit)
    page["items"] = [snapshot_to_dict(item) for item in page["items"]]
    return _respond(page)


@app.get("/api/v1/history/exists/{year}/{month}")
def history_exists(year: int, month: int, db=Depends(get_db)) -> JSONResponse:
    return _respond({"year": year, "month": month, "exists": snapshot_exists(db, year, month)})


@app.get("/api/v1/history/{snapshot_id}")
def history_detail(snapshot_id: int, db=Depends(get_db)) -> JSONResponse:
    payload = snapshot_to_dict(get_snapshot(db, snapshot_id))
    payload["shifts"] = snapshot_shifts(db, snapshot_id)
    return _respond(payload)


@app.post("/api/v1/history")
def history_create(payload: Dict[str, Any], db=Depends(get_db), actor: str = Depends(require_editor)) -> JSONResponse:
    snapshot = create_snapshot(
        db,
        _required_int(payload, "year"),
        _required_int(payload, "month"),
        payload.get("description"),
    )
    _audit(db, actor, "SNAPSHOT_CREATE", "MonthSnapshot", snapshot.id, {"period": snapshot.label})
    return _respond(snapshot_to_dict(snapshot), status_code=201)


@app.post("/api/v1/history/{snapshot_id}/restore")
def history_restore(snapshot_id: int, db=Depends(get_db), actor: str = Depends(require_editor)) -> JSONResponse:
    snapshot = get_snapshot(db, snapshot_id)
    restored = restore_from_snapshot(db, snapshot_id)
    _audit(db, actor, "SNAPSHOT_RESTORE", "MonthSnapshot", snapshot_id, {"restored": len(restored)})
    return _respond(
        {
            "snapshot": snapshot_to_dict(snapshot),
            "restored": len(restored),
            "expected": snapshot.total_shifts,
            "assignments": [assignment_to_dict(item) for item in restored],
        }
    )


@app.post("/api/v1/history/duplicate")
def history_duplicate(payload: Dict[str, Any], db=Depends(get_db), actor: str = Depends(require_editor)) -> JSONResponse:
    created = duplicate_schedule(
        db,
        _required_int(payload, "source_year"),
        _required_int(payload, "source_month"),
        _required_int(payload, "target_year"),
        _required_int(payload, "target_month"),
    )
    _audit(db, actor, "SCHEDULE_DUPLICATE", "MonthSnapshot", None, dict(payload, created=len(created)))
    return _respond({"created": len(created), "assignments": [assignment_to_dict(item) for item in created]})


@app.delete("/api/v1/history/{snapshot_id}")
def history_delete(snapshot_id: int, db=Depends(get_db), actor: str = Depends(require_editor)) -> JSONResponse:
    delete_history(db, snapshot_id)
    _audit(db, actor, "SNAPSHOT_DELETE", "MonthSnapshot", snapshot_id)
    return _respond({"id": snapshot_id, "deleted": True})
