# domain.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Iterable

from calendar_week import DAY_ORDER, date_for
from errors import NotFound

ZERO = Decimal("0")


@dataclass
class Actor:
    """The person acting on a timesheet, as supplied by the identity provider."""
    id: int
    name: str = ""
    is_admin: bool = False


@dataclass
class WorkItem:
    """An issue from the work-item catalog that a timesheet row can point at."""
    id: int
    title: str
    project: str = ""
    is_active: bool = True
    start_date: date | None = None
    due_date: date | None = None
    tracker: str | None = None

    @property
    def augmented_title(self) -> str:
        prefix = f"{self.project} - " if self.project else ""
        return f"{prefix}#{self.id} {self.title}"


@dataclass
class TimeEntry:
    day_number: int
    hours: Decimal = ZERO
    id: int | None = None


@dataclass
class TimesheetRow:
    work_item_id: int
    position: int
    id: int | None = None
    entries: dict[int, TimeEntry] = field(default_factory=dict)

    def hours_for(self, day_number: int) -> Decimal:
        entry = self.entries.get(day_number)
        return entry.hours if entry else ZERO

    def set_hours(self, day_number: int, hours: Decimal) -> TimeEntry:
        if day_number not in DAY_ORDER:
            raise ValueError(f"Day number {day_number} is out of range (0-6).")
        entry = self.entries.get(day_number)
        if entry is None:
            entry = self.entries[day_number] = TimeEntry(day_number=day_number)
        entry.hours = hours
        return entry

    def total(self) -> Decimal:
        return sum((e.hours for e in self.entries.values()), ZERO)


@dataclass
class Timesheet:
    """
    A week of activity for one owner. Rows are kept sorted by position and
    numbered 1..N; each row carries at most one entry per day number.
    """
    owner_id: int | None
    year: int
    week_number: int
    committed: Any = False
    committed_at: datetime | None = None
    description: str = ""
    lock_version: int = 0
    id: int | None = None
    updated_at: datetime | None = None
    rows: list[TimesheetRow] = field(default_factory=list)

    # ----- lookups -----
    def row(self, row_id: int) -> TimesheetRow | None:
        for r in self.rows:
            if r.id == row_id:
                return r
        return None

    def row_for_work_item(self, work_item_id: int) -> TimesheetRow | None:
        for r in self.rows:
            if r.work_item_id == work_item_id:
                return r
        return None

    def work_item_ids(self) -> list[int]:
        return [r.work_item_id for r in self.rows]

    def start_day(self) -> date:
        return date_for(self.year, self.week_number, DAY_ORDER[0])

    # ----- sums -----
    def sum_for_day(self, day_number: int) -> Decimal:
        """Hours across all rows on one day. 0 is Sunday, 1-6 Monday to Saturday."""
        return sum((r.hours_for(day_number) for r in self.rows), ZERO)

    def total(self) -> Decimal:
        return sum((r.total() for r in self.rows), ZERO)

    # ----- row maintenance -----
    def add_row(self, work_item: WorkItem) -> TimesheetRow:
        """Adds a row for the work item unless one is already present. Not persisted."""
        existing = self.row_for_work_item(work_item.id)
        if existing is not None:
            return existing
        row = TimesheetRow(work_item_id=work_item.id, position=len(self.rows) + 1)
        self.rows.append(row)
        return row

    def remove_row(self, row_id: int) -> TimesheetRow:
        row = self._require_row(row_id)
        self.rows.remove(row)
        self._renumber()
        return row

    def move_row(self, row_id: int, direction: str) -> None:
        """Swaps a row with its neighbour. 'up' moves towards position 1."""
        self._move(self._require_row(row_id), direction)

    def _move(self, row: TimesheetRow, direction: str) -> None:
        idx = self.rows.index(row)
        if direction == "up":
            other = idx - 1
        elif direction == "down":
            other = idx + 1
        else:
            raise ValueError(f"Unknown direction '{direction}'")
        if 0 <= other < len(self.rows):
            self.rows[idx], self.rows[other] = self.rows[other], self.rows[idx]
            self._renumber()

    def move_rows(self, row_ids: Iterable[int], direction: str) -> None:
        """
        Moves several rows one step each. Going up, the lowest position moves
        first; going down, the highest does, so no row overtakes another.
        """
        rows = sorted((self._require_row(i) for i in row_ids), key=lambda r: r.position)
        if direction == "down":
            rows.reverse()
        for r in rows:
            self._move(r, direction)

    def sort_rows(self, key: Callable[[TimesheetRow], Any]) -> None:
        self.rows.sort(key=key)
        self._renumber()

    def _require_row(self, row_id: int) -> TimesheetRow:
        row = self.row(row_id)
        if row is None:
            raise NotFound(f"Row {row_id} is not part of this timesheet")
        return row

    def _renumber(self) -> None:
        for pos, r in enumerate(self.rows, start=1):
            r.position = pos
