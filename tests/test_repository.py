"""
test_repository.py: SQLModel persistence
-------------------------------------------
Runs against a throwaway SQLite file per test.
"""

import tempfile
import unittest
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

from sqlmodel import Session, select

from domain import Timesheet
from repository import TimeEntryDB, TimesheetRepository, TimesheetRowDB, WorkItemCatalog

TODAY = date(2026, 3, 10)


class RepositoryTestCase(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.repo = TimesheetRepository(f"sqlite:///{Path(self._tmp.name) / 'test.db'}")
        self.catalog = WorkItemCatalog(self.repo.engine)
        self.owner = self.repo.add_account("Ada Lovelace")
        self.item_a = self.catalog.add(title="Build", project="Core")
        self.item_b = self.catalog.add(title="Review", project="Core")

    def tearDown(self):
        self.repo.engine.dispose()
        self._tmp.cleanup()

    def _saved_sheet(self, week: int = 11) -> Timesheet:
        ts = Timesheet(owner_id=self.owner.id, year=2026, week_number=week, description="busy")
        ts.add_row(self.item_a).set_hours(1, Decimal("7.5"))
        ts.add_row(self.item_b).set_hours(0, Decimal("2"))
        with self.repo.transaction() as session:
            self.repo.save(session, ts)
        return ts


class TestTimesheetRepository(RepositoryTestCase):

    def test_save_and_load(self):
        ts = self._saved_sheet()
        self.assertIsNotNone(ts.id)
        self.assertTrue(all(r.id is not None for r in ts.rows))

        with self.repo.transaction() as session:
            loaded = self.repo.load(session, ts.id)
        self.assertEqual(loaded.description, "busy")
        self.assertEqual(loaded.work_item_ids(), [self.item_a.id, self.item_b.id])
        self.assertEqual([r.position for r in loaded.rows], [1, 2])
        self.assertEqual(loaded.sum_for_day(1), Decimal("7.5"))
        self.assertEqual(loaded.total(), Decimal("9.5"))
        self.assertIsNotNone(loaded.updated_at)

    def test_save_drops_removed_rows_and_reorders(self):
        ts = self._saved_sheet()
        removed = ts.rows[0].id
        ts.remove_row(removed)
        with self.repo.transaction() as session:
            self.repo.save(session, ts)
            loaded = self.repo.load(session, ts.id)
            self.assertEqual(loaded.work_item_ids(), [self.item_b.id])
            self.assertEqual(loaded.rows[0].position, 1)
            orphans = session.exec(select(TimeEntryDB).where(TimeEntryDB.timesheet_row_id == removed)).all()
            self.assertEqual(orphans, [])

    def test_delete_cascades(self):
        ts = self._saved_sheet()
        with self.repo.transaction() as session:
            self.assertTrue(self.repo.delete(session, ts.id))
        with Session(self.repo.engine) as session:
            self.assertEqual(session.exec(select(TimesheetRowDB)).all(), [])
            self.assertEqual(session.exec(select(TimeEntryDB)).all(), [])
        with self.repo.transaction() as session:
            self.assertIsNone(self.repo.load(session, ts.id))
            self.assertFalse(self.repo.delete(session, ts.id))

    def test_transaction_rolls_back_on_error(self):
        ts = self._saved_sheet()
        with self.assertRaises(RuntimeError):
            with self.repo.transaction() as session:
                ts.description = "changed"
                self.repo.save(session, ts)
                raise RuntimeError("boom")
        with self.repo.transaction() as session:
            self.assertEqual(self.repo.load(session, ts.id).description, "busy")

    def test_find_and_used_weeks(self):
        self._saved_sheet(week=11)
        self._saved_sheet(week=13)
        with self.repo.transaction() as session:
            self.assertIsNotNone(self.repo.find(session, self.owner.id, 2026, 13))
            self.assertIsNone(self.repo.find(session, self.owner.id, 2026, 12))
            self.assertEqual(sorted(self.repo.used_weeks(session, self.owner.id, 2026)), [11, 13])

    def test_mark_committed(self):
        when = datetime(2026, 3, 10, 9, 0)
        with self.repo.transaction() as session:
            self.repo.mark_committed(session, self.owner.id, when)
        self.assertEqual(self.repo.get_account(self.owner.id).last_committed, when)

    def test_timestamps_survive_save_and_reload(self):
        when = datetime(2026, 3, 14, 17, 45, 30)
        ts = Timesheet(owner_id=self.owner.id, year=2026, week_number=11, committed=True, committed_at=when)
        with self.repo.transaction() as session:
            self.repo.save(session, ts)
            self.repo.mark_committed(session, self.owner.id, when)
        saved_at = ts.updated_at
        self.assertIsNotNone(saved_at)

        with self.repo.transaction() as session:
            loaded = self.repo.load(session, ts.id)
        self.assertEqual(loaded.committed_at, when)
        self.assertEqual(loaded.updated_at, saved_at)
        self.assertEqual(self.repo.get_account(self.owner.id).last_committed, when)

    def test_list_by_owner_and_search(self):
        other = self.repo.add_account("Grace Hopper")
        self._saved_sheet(week=11)
        self._saved_sheet(week=12)
        ts = Timesheet(owner_id=other.id, year=2026, week_number=11)
        with self.repo.transaction() as session:
            self.repo.save(session, ts)

        mine = self.repo.list_by_owner(self.owner.id)
        self.assertEqual([t.week_number for t, _ in mine], [12, 11])
        self.assertEqual({name for _, name in mine}, {"Ada Lovelace"})

        others = self.repo.list_by_owner(self.owner.id, mine=False)
        self.assertEqual([name for _, name in others], ["Grace Hopper"])

        self.assertEqual(len(self.repo.list_by_owner(self.owner.id, search="12")), 1)
        self.assertEqual(len(self.repo.list_by_owner(self.owner.id, mine=False, search="grace")), 1)
        self.assertEqual(len(self.repo.list_by_owner(self.owner.id, mine=False, search="ada")), 0)
        self.assertEqual(len(self.repo.list_by_owner(self.owner.id, committed=True)), 0)


class TestWorkItemCatalog(RepositoryTestCase):

    def test_default_items(self):
        started = self.catalog.add(title="Started", start_date=date(2026, 3, 1))
        future = self.catalog.add(title="Future", start_date=date(2026, 4, 1))
        due_recently = self.catalog.add(title="Recently due", due_date=date(2026, 3, 3))
        long_overdue = self.catalog.add(title="Long overdue", due_date=date(2026, 3, 2))
        closed = self.catalog.add(title="Closed", is_active=False)

        with self.repo.transaction() as session:
            ids = [w.id for w in self.catalog.default_items(session, TODAY)]

        self.assertIn(started.id, ids)
        self.assertIn(due_recently.id, ids)
        self.assertIn(self.item_a.id, ids)
        self.assertNotIn(future.id, ids)
        self.assertNotIn(long_overdue.id, ids)
        self.assertNotIn(closed.id, ids)

    def test_tracker_filter(self):
        task = self.catalog.add(title="Task", tracker="Activity")
        with self.repo.transaction() as session:
            ids = [w.id for w in self.catalog.default_items(session, TODAY, tracker="Activity")]
        self.assertEqual(ids, [task.id])

    def test_set_active(self):
        self.catalog.set_active(self.item_a.id, False)
        self.assertFalse(self.catalog.get(self.item_a.id).is_active)
        self.assertNotIn(self.item_a.id, [w.id for w in self.catalog.list_active()])
        self.assertIsNone(self.catalog.get(9999))
        self.assertEqual(set(self.catalog.get_many([self.item_a.id, self.item_b.id])), {self.item_a.id, self.item_b.id})


if __name__ == "__main__":
    unittest.main()
