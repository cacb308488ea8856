from __future__ import annotations

import datetime
import sys
import unittest
from pathlib import Path
from unittest import mock

from sqlalchemy import func, select
from sqlalchemy.pool import StaticPool

APP_DIR = Path(__file__).resolve().parents[1] / "concierge_app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import dates  # noqa: E402
import shifts  # noqa: E402
from database import ShiftAssignment, create_database_engine, init_database, make_session_factory  # noqa: E402
from directory import create_concierge, delete_concierge, deactivate_concierge  # noqa: E402
from errors import (  # noqa: E402
    AssignmentNotFoundError,
    ConciergeNotFoundError,
    InvalidDateError,
    InvalidInputError,
    ShiftConflictError,
)
from shifts import (  # noqa: E402
    assign_shift,
    bulk_assign_shifts,
    find_shift_by_date,
    get_shift,
    is_assigned,
    remove_all_for_concierge,
    remove_shift,
    remove_shift_by_date,
    shifts_for_concierge,
    shifts_in_range,
    update_shift,
)


class ShiftStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        clock = mock.patch.object(dates, "today", return_value=datetime.date(2026, 6, 1))
        clock.start()
        self.addCleanup(clock.stop)
        self.engine = create_database_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        init_database(self.engine)
        self.session = make_session_factory(self.engine)()
        self.alice = create_concierge(self.session, "Alice", "BLUE")
        self.bob = create_concierge(self.session, "Bob", "GREEN")
        self.day = datetime.date(2026, 11, 15)

    def tearDown(self) -> None:
        self.session.close()
        self.engine.dispose()

    def _row_count(self) -> int:
        return self.session.scalar(select(func.count(ShiftAssignment.id)))

    def test_assign_then_lookup_by_date(self) -> None:
        assignment = assign_shift(self.session, self.day, self.alice.id, "Front desk")

        found = find_shift_by_date(self.session, self.day)
        self.assertEqual(found.id, assignment.id)
        self.assertEqual(found.concierge.name, "Alice")
        self.assertEqual(found.shift_type, "FULL_DAY")
        self.assertEqual(found.notes, "Front desk")
        self.assertTrue(is_assigned(self.session, self.day))

    def test_second_assignment_for_same_day_is_rejected(self) -> None:
        assign_shift(self.session, self.day, self.alice.id)

        with self.assertRaises(ShiftConflictError) as ctx:
            assign_shift(self.session, self.day, self.bob.id)

        self.assertEqual(str(ctx.exception), "Shift already assigned for date: 2026-11-15")
        self.assertEqual(find_shift_by_date(self.session, self.day).concierge_id, self.alice.id)
        self.assertEqual(self._row_count(), 1)

    def test_storage_constraint_catches_race_past_precheck(self) -> None:
        assign_shift(self.session, self.day, self.alice.id)

        with mock.patch.object(shifts, "_active_assignment_exists", return_value=False):
            with self.assertRaises(ShiftConflictError):
                assign_shift(self.session, self.day, self.bob.id)

        # The failed insert must not poison the session.
        other = assign_shift(self.session, self.day + datetime.timedelta(days=1), self.bob.id)
        self.assertIsNotNone(other.id)
        self.assertEqual(len(shifts_in_range(self.session, self.day, self.day + datetime.timedelta(days=1))), 2)

    def test_removed_day_can_be_assigned_again(self) -> None:
        first = assign_shift(self.session, self.day, self.alice.id)
        remove_shift(self.session, first.id)

        second = assign_shift(self.session, self.day, self.bob.id)

        self.assertNotEqual(first.id, second.id)
        self.assertEqual(find_shift_by_date(self.session, self.day).concierge_id, self.bob.id)
        self.assertEqual(self._row_count(), 2)
        with self.assertRaises(AssignmentNotFoundError):
            get_shift(self.session, first.id)

    def test_unknown_or_deleted_concierge_is_rejected(self) -> None:
        with self.assertRaises(ConciergeNotFoundError):
            assign_shift(self.session, self.day, 999)

        carol = create_concierge(self.session, "Carol", "RED")
        delete_concierge(self.session, carol.id)
        with self.assertRaises(ConciergeNotFoundError):
            assign_shift(self.session, self.day, carol.id)

    def test_inactive_concierge_can_still_be_assigned(self) -> None:
        deactivate_concierge(self.session, self.bob.id)

        assignment = assign_shift(self.session, self.day, self.bob.id)

        self.assertEqual(assignment.concierge_id, self.bob.id)

    def test_input_validation_happens_before_writes(self) -> None:
        with self.assertRaises(InvalidInputError):
            assign_shift(self.session, self.day, self.alice.id, "x" * 501)
        with self.assertRaises(InvalidInputError):
            assign_shift(self.session, None, self.alice.id)
        with self.assertRaises(InvalidInputError):
            assign_shift(self.session, self.day, None)
        with self.assertRaises(InvalidDateError):
            assign_shift(
                self.session,
                datetime.date(2040, 1, 1),
                self.alice.id,
                today_value=datetime.date(2026, 10, 1),
            )
        self.assertEqual(self._row_count(), 0)

    def test_update_moves_shift_and_checks_conflicts(self) -> None:
        moved = assign_shift(self.session, self.day, self.alice.id)
        taken = self.day + datetime.timedelta(days=2)
        assign_shift(self.session, taken, self.bob.id)

        with self.assertRaises(ShiftConflictError):
            update_shift(self.session, moved.id, taken, self.alice.id)

        new_day = self.day + datetime.timedelta(days=1)
        updated = update_shift(self.session, moved.id, new_day, self.bob.id, "Swap")

        self.assertEqual(updated.shift_date, new_day)
        self.assertEqual(updated.concierge.name, "Bob")
        self.assertEqual(updated.notes, "Swap")
        self.assertFalse(is_assigned(self.session, self.day))

    def test_update_keeping_the_date_does_not_conflict_with_itself(self) -> None:
        assignment = assign_shift(self.session, self.day, self.alice.id)

        updated = update_shift(self.session, assignment.id, self.day, self.alice.id, "Late check-in")

        self.assertEqual(updated.notes, "Late check-in")

    def test_update_and_remove_unknown_assignment(self) -> None:
        with self.assertRaises(AssignmentNotFoundError):
            update_shift(self.session, 42, self.day, self.alice.id)
        with self.assertRaises(AssignmentNotFoundError):
            remove_shift(self.session, 42)
        with self.assertRaises(AssignmentNotFoundError):
            remove_shift_by_date(self.session, self.day)

    def test_range_reads_are_inclusive_and_ordered(self) -> None:
        for offset in (3, 0, 1):
            assign_shift(self.session, self.day + datetime.timedelta(days=offset), self.alice.id)

        in_range = shifts_in_range(self.session, self.day, self.day + datetime.timedelta(days=3))

        self.assertEqual([a.shift_date.day for a in in_range], [15, 16, 18])
        self.assertEqual(len(shifts_for_concierge(self.session, self.alice.id)), 3)
        self.assertEqual(shifts_for_concierge(self.session, self.bob.id), [])

    def test_bulk_assign_skips_failures_and_keeps_order(self) -> None:
        second_day = self.day + datetime.timedelta(days=1)
        created = bulk_assign_shifts(
            self.session,
            [
                {"shift_date": second_day, "concierge_id": self.bob.id},
                {"shift_date": self.day, "concierge_id": self.alice.id},
                {"shift_date": self.day, "concierge_id": self.bob.id},
                {"shift_date": self.day + datetime.timedelta(days=2), "concierge_id": 999},
            ],
        )

        self.assertEqual([a.shift_date for a in created], [second_day, self.day])
        self.assertEqual(self._row_count(), 2)

    def test_remove_all_for_concierge(self) -> None:
        assign_shift(self.session, self.day, self.alice.id)
        assign_shift(self.session, self.day + datetime.timedelta(days=1), self.alice.id)
        assign_shift(self.session, self.day + datetime.timedelta(days=2), self.bob.id)

        removed = remove_all_for_concierge(self.session, self.alice.id)

        self.assertEqual(removed, 2)
        self.assertEqual(shifts_for_concierge(self.session, self.alice.id), [])
        self.assertEqual(len(shifts_for_concierge(self.session, self.bob.id)), 1)


if __name__ == "__main__":
    unittest.main()
