"""
test_domain.py: Timesheet aggregate
--------------------------------------
Row bookkeeping (add / move / remove / sort) and hour sums, in memory only.
"""

import unittest
from decimal import Decimal

from domain import Timesheet, WorkItem
from errors import NotFound


def _sheet_with_rows(n: int) -> Timesheet:
    ts = Timesheet(owner_id=1, year=2026, week_number=11)
    for i in range(1, n + 1):
        row = ts.add_row(WorkItem(id=100 + i, title=f"Item {i}"))
        row.id = i
    return ts


def _order(ts: Timesheet) -> list[int]:
    return [r.id for r in ts.rows]


def _positions(ts: Timesheet) -> list[int]:
    return [r.position for r in ts.rows]


class TestAddRow(unittest.TestCase):

    def test_add_twice_keeps_one_row(self):
        ts = Timesheet(owner_id=1, year=2026, week_number=11)
        item = WorkItem(id=7, title="Docs")
        first = ts.add_row(item)
        second = ts.add_row(item)
        self.assertIs(first, second)
        self.assertEqual(len(ts.rows), 1)

    def test_appends_at_next_position(self):
        ts = _sheet_with_rows(3)
        row = ts.add_row(WorkItem(id=999, title="New"))
        self.assertEqual(row.position, 4)
        self.assertEqual(ts.work_item_ids(), [101, 102, 103, 999])


class TestReorder(unittest.TestCase):

    def test_up_then_down_round_trip(self):
        ts = _sheet_with_rows(4)
        ts.move_row(3, "up")
        self.assertEqual(_order(ts), [1, 3, 2, 4])
        ts.move_row(3, "down")
        self.assertEqual(_order(ts), [1, 2, 3, 4])
        self.assertEqual(_positions(ts), [1, 2, 3, 4])

    def test_boundaries_are_no_ops(self):
        ts = _sheet_with_rows(3)
        ts.move_row(1, "up")
        ts.move_row(3, "down")
        self.assertEqual(_order(ts), [1, 2, 3])

    def test_batch_up_moves_lowest_position_first(self):
        ts = _sheet_with_rows(4)
        ts.move_rows([3, 2], "up")
        self.assertEqual(_order(ts), [2, 3, 1, 4])
        self.assertEqual(_positions(ts), [1, 2, 3, 4])

    def test_batch_down_moves_highest_position_first(self):
        ts = _sheet_with_rows(4)
        ts.move_rows([2, 3], "down")
        self.assertEqual(_order(ts), [1, 4, 2, 3])
        self.assertEqual(_positions(ts), [1, 2, 3, 4])

    def test_unknown_direction(self):
        ts = _sheet_with_rows(2)
        with self.assertRaises(ValueError):
            ts.move_row(1, "sideways")

    def test_unknown_row(self):
        ts = _sheet_with_rows(2)
        with self.assertRaises(NotFound):
            ts.move_rows([1, 42], "up")
        self.assertEqual(_order(ts), [1, 2])

    def test_remove_closes_gap(self):
        ts = _sheet_with_rows(4)
        ts.remove_row(2)
        self.assertEqual(_order(ts), [1, 3, 4])
        self.assertEqual(_positions(ts), [1, 2, 3])
        with self.assertRaises(NotFound):
            ts.remove_row(2)

    def test_sort_renumbers(self):
        ts = _sheet_with_rows(3)
        ts.sort_rows(lambda r: -r.work_item_id)
        self.assertEqual(_order(ts), [3, 2, 1])
        self.assertEqual(_positions(ts), [1, 2, 3])


class TestSums(unittest.TestCase):

    def test_sum_for_day_and_total(self):
        ts = _sheet_with_rows(2)
        a, b = ts.rows
        a.set_hours(1, Decimal("8"))
        a.set_hours(2, Decimal("8"))
        a.set_hours(3, Decimal("9"))
        self.assertEqual(ts.sum_for_day(3), Decimal("9"))

        b.set_hours(3, Decimal("16"))
        # The aggregate reports the overflow; it does not refuse it
        self.assertEqual(ts.sum_for_day(3), Decimal("25"))
        self.assertEqual(ts.sum_for_day(0), Decimal("0"))
        self.assertEqual(ts.total(), Decimal("41"))
        self.assertEqual(b.total(), Decimal("16"))

    def test_set_hours_overwrites_same_day(self):
        ts = _sheet_with_rows(1)
        row = ts.rows[0]
        row.set_hours(5, Decimal("2"))
        row.set_hours(5, Decimal("3.5"))
        self.assertEqual(len(row.entries), 1)
        self.assertEqual(row.hours_for(5), Decimal("3.5"))

    def test_set_hours_rejects_bad_day(self):
        ts = _sheet_with_rows(1)
        with self.assertRaises(ValueError):
            ts.rows[0].set_hours(7, Decimal("1"))


class TestWorkItem(unittest.TestCase):

    def test_augmented_title(self):
        self.assertEqual(WorkItem(id=3, title="Fix", project="Core").augmented_title, "Core - #3 Fix")
        self.assertEqual(WorkItem(id=3, title="Fix").augmented_title, "#3 Fix")


if __name__ == "__main__":
    unittest.main()
