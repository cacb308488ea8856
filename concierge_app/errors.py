"""Domain errors raised by the scheduling core.

Every error carries a human readable message meant to be shown verbatim by
the presentation layer. The hierarchy groups errors by kind so callers can
catch ``NotFoundError`` or ``ConflictError`` without knowing the subject.
"""

from __future__ import annotations

import datetime


class SchedulerError(Exception):
    """Base class for every error raised by the scheduler."""


class NotFoundError(SchedulerError, LookupError):
    subject = "Resource"

    def __init__(self, key) -> None:
        self.key = key
        super().__init__(f"{self.subject} not found: {key}")


class ConciergeNotFoundError(NotFoundError):
    subject = "Concierge"


class AssignmentNotFoundError(NotFoundError):
    subject = "Shift assignment"


class SnapshotNotFoundError(NotFoundError):
    subject = "Month history"


class ConflictError(SchedulerError):
    pass


class ShiftConflictError(ConflictError):
    def __init__(self, shift_date: datetime.date) -> None:
        self.shift_date = shift_date
        super().__init__(f"Shift already assigned for date: {shift_date.isoformat()}")


class SnapshotAlreadyExistsError(ConflictError):
    def __init__(self, year: int, month: int, snapshot_id: int | None = None) -> None:
        self.year = year
        self.month = month
        self.snapshot_id = snapshot_id
        message = f"Snapshot for {month}/{year} already exists"
        if snapshot_id is not None:
            message += f" (ID={snapshot_id})"
        super().__init__(message)


class ConciergeDuplicateError(ConflictError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Concierge with name '{name}' already exists")


class InvalidInputError(SchedulerError, ValueError):
    pass


class InvalidPeriodError(InvalidInputError):
    pass


class InvalidDateError(InvalidInputError):
    pass


class ConciergeInUseError(SchedulerError):
    def __init__(self, concierge_id: int) -> None:
        self.concierge_id = concierge_id
        super().__init__(f"Concierge ID {concierge_id} has active shift assignments")


class SnapshotCorruptError(SchedulerError):
    def __init__(self, snapshot_id: int, reason: str) -> None:
        self.snapshot_id = snapshot_id
        super().__init__(f"Failed to read shifts from snapshot {snapshot_id}: {reason}")
