# services.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List

from sqlmodel import Session

import config
from calendar_week import DAY_NAMES, last_week_number
from domain import Actor, Timesheet, TimesheetRow, WorkItem
from errors import ConcurrencyConflict, NotFound, NotPermitted, PerEntryError, ValidationError
from logger import get_logger
from repository import TimesheetRepository, WorkItemCatalog
from validation import can_modify, is_permitted_for, parse_hours, validate_timesheet

log = get_logger("services")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}
DAY_NAMES_RANGE = range(len(DAY_NAMES))


@dataclass
class UpdateRequest:
    """Everything one submission of the edit form can ask for."""
    lock_version: int
    week_number: Any = None
    description: str | None = None
    committed: Any = None
    hours: Dict[int, Dict[int, Any]] = field(default_factory=dict)   # row id -> day number -> raw value
    selected_row_ids: List[int] = field(default_factory=list)
    remove_rows: bool = False
    move: str | None = None                                          # 'up' or 'down'
    sort_by: str | None = None
    add_work_item_ids: List[int] | None = None                       # None: no add requested


@dataclass
class UpdateResult:
    timesheet: Timesheet
    notices: List[str] = field(default_factory=list)
    entry_errors: List[PerEntryError] = field(default_factory=list)
    form_hours: Dict[int, Dict[int, Any]] = field(default_factory=dict)


@dataclass
class AdjacentWeek:
    week_number: int
    timesheet: Timesheet | None


@dataclass
class TimesheetIndex:
    mine_committed: List[tuple[Timesheet, str]] = field(default_factory=list)
    mine_draft: List[tuple[Timesheet, str]] = field(default_factory=list)
    others_committed: List[tuple[Timesheet, str]] = field(default_factory=list)
    others_draft: List[tuple[Timesheet, str]] = field(default_factory=list)


def _coerce_int(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return value


def _coerce_bool(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        v = value.strip().lower()
        if v in _TRUE:
            return True
        if v in _FALSE:
            return False
    return value


SORT_KEYS: Dict[str, Callable[[TimesheetRow, WorkItem | None], Any]] = {
    "rows_added": lambda row, item: (row.id is None, row.id or 0),
    "work_items_added": lambda row, item: row.work_item_id,
    "title": lambda row, item: (item.title.lower() if item else ""),
    "augmented_title": lambda row, item: (item.augmented_title.lower() if item else ""),
}


class TimesheetService:
    """
    Application service around the timesheet aggregate. Each public method is
    one unit of work; side effects such as default rows and commit stamping
    are explicit calls made from here.
    """
    def __init__(
        self,
        repository: TimesheetRepository,
        catalog: WorkItemCatalog,
        clock: Callable[[], datetime] = config.now_local,
        tracker: str | None = config.DEFAULT_TRACKER,
    ):
        self.repo = repository
        self.catalog = catalog
        self.clock = clock
        self.tracker = tracker

    def _today(self) -> date:
        return self.clock().date()

    def _lookup(self, session: Session) -> Callable[[int], WorkItem | None]:
        return lambda work_item_id: self.catalog.get(work_item_id, session)

    def _load(self, session: Session, timesheet_id: int) -> Timesheet:
        ts = self.repo.load(session, timesheet_id)
        if ts is None:
            raise NotFound(f"Timesheet {timesheet_id} not found")
        return ts

    def _clash_message(self, session: Session, ts: Timesheet) -> str | None:
        if not isinstance(ts.year, int) or not isinstance(ts.week_number, int):
            return None
        other = self.repo.find(session, ts.owner_id, ts.year, ts.week_number)
        if other is not None and other.id != ts.id:
            return f"A timesheet for week {ts.week_number} has already been created."
        return None

    # =========================
    # Create / read / delete
    # =========================
    def create_timesheet(self, actor: Actor, year: Any, week_number: Any, description: str = "") -> Timesheet:
        """Creates an empty draft for the actor, then seeds it with the default rows."""
        today = self._today()
        ts = Timesheet(
            owner_id=actor.id,
            year=_coerce_int(year),
            week_number=_coerce_int(week_number),
            description=description,
        )
        with self.repo.transaction() as session:
            clash = self._clash_message(session, ts)
            if clash:
                raise ValidationError([clash])
            messages = validate_timesheet(ts, self._lookup(session), today)
            if messages:
                raise ValidationError(messages)
            self.repo.save(session, ts)
            self.add_default_rows(session, ts, today)
            self.repo.save(session, ts)
        log.info("Created timesheet %s for account %s (%s week %s, %d rows)",
                 ts.id, actor.id, ts.year, ts.week_number, len(ts.rows))
        return ts

    def add_default_rows(self, session: Session, ts: Timesheet, today: date | None = None) -> None:
        for item in self.catalog.default_items(session, today or self._today(), self.tracker):
            ts.add_row(item)

    def get_timesheet(self, timesheet_id: int, actor: Actor) -> Timesheet:
        with self.repo.transaction() as session:
            ts = self._load(session, timesheet_id)
        if not is_permitted_for(ts, actor):
            raise NotPermitted()
        return ts

    def delete_timesheet(self, timesheet_id: int, actor: Actor) -> None:
        with self.repo.transaction() as session:
            ts = self._load(session, timesheet_id)
            if not can_modify(ts, actor):
                raise NotPermitted()
            self.repo.delete(session, timesheet_id)
        log.info("Deleted timesheet %s", timesheet_id)

    # =========================
    # Update
    # =========================
    def update_timesheet(self, timesheet_id: int, actor: Actor, request: UpdateRequest) -> UpdateResult:
        """
        Applies one edit-form submission as a single transaction: row removal,
        moves, sorting, hour edits, row additions and the timesheet's own fields.

        A stale `request.lock_version` raises ConcurrencyConflict before anything
        changes. Failed validation raises ValidationError and rolls everything
        back. Malformed hour values do not: they are collected as PerEntryError
        in the result, that cell keeps its stored hours, and the rest commits.
        """
        now = self.clock()
        with self.repo.transaction() as session:
            ts = self._load(session, timesheet_id)
            if not can_modify(ts, actor):
                raise NotPermitted()
            if _coerce_int(request.lock_version) != ts.lock_version:
                log.warning("Stale update of timesheet %s: version %s submitted, %s stored",
                            ts.id, request.lock_version, ts.lock_version)
                raise ConcurrencyConflict(request.lock_version, ts.lock_version)

            was_committed = ts.committed is True
            result = UpdateResult(
                timesheet=ts,
                form_hours={row_id: dict(days) for row_id, days in request.hours.items()},
            )
            lookup = self._lookup(session)

            if request.remove_rows:
                for row_id in request.selected_row_ids:
                    ts.remove_row(row_id)

            if request.move in ("up", "down") and request.selected_row_ids:
                ts.move_rows(request.selected_row_ids, request.move)

            if request.sort_by:
                self._sort(session, ts, request.sort_by, result)

            self._apply_hours(ts, request.hours, lookup, result)

            if request.add_work_item_ids is not None:
                self._add_rows(session, ts, request.add_work_item_ids, result)

            if request.week_number is not None:
                ts.week_number = _coerce_int(request.week_number)
            if request.description is not None:
                ts.description = request.description
            if request.committed is not None:
                ts.committed = _coerce_bool(request.committed)

            messages = validate_timesheet(ts, lookup, now.date())
            clash = self._clash_message(session, ts)
            if clash:
                messages.append(clash)
            if messages:
                log.info("Timesheet %s rejected: %s", ts.id, "; ".join(messages))
                raise ValidationError(messages, form=request)

            self.apply_commit_state(session, ts, was_committed, now)
            ts.lock_version += 1
            self.repo.save(session, ts)

        result.notices.insert(0, f"Week {ts.week_number} changes saved.")
        log.info("Updated timesheet %s to version %d (%d entry errors)",
                 ts.id, ts.lock_version, len(result.entry_errors))
        return result

    def _apply_hours(self, ts: Timesheet, hours: Dict[int, Dict[int, Any]],
                     lookup: Callable[[int], WorkItem | None], result: UpdateResult) -> None:
        for row_id, days in hours.items():
            row = ts.row(_coerce_int(row_id))
            # Rows removed earlier in the same request
            if row is None:
                continue
            for day, raw in days.items():
                day = _coerce_int(day)
                try:
                    if day not in DAY_NAMES_RANGE:
                        raise PerEntryError(f"Day number {day} is out of range", raw_value=raw)
                    row.set_hours(day, parse_hours(raw))
                except PerEntryError as e:
                    item = lookup(row.work_item_id)
                    title = item.augmented_title if item else "Unknown"
                    day_name = DAY_NAMES[day] if day in DAY_NAMES_RANGE else str(day)
                    err = PerEntryError(
                        f"Work item '{title}', {day_name}: {e} - the field value has been reset",
                        row_id=row.id, day_number=day, raw_value=raw,
                    )
                    result.entry_errors.append(err)
                    result.form_hours.setdefault(row_id, {})[day] = ""
                    log.warning("Timesheet %s: %s", ts.id, err)

    def _add_rows(self, session: Session, ts: Timesheet, ids: List[int], result: UpdateResult) -> None:
        if not ids:
            result.notices.append(
                "No work items selected - first choose one or more work items from the list, "
                "then use the 'Add' button"
            )
            return
        for work_item_id in ids:
            item = self.catalog.get(_coerce_int(work_item_id), session)
            if item is None:
                raise NotFound(f"Work item {work_item_id} not found")
            ts.add_row(item)

    def _sort(self, session: Session, ts: Timesheet, sort_by: str, result: UpdateResult) -> None:
        key = SORT_KEYS.get(sort_by)
        if key is None:
            result.notices.append(f"Unknown sort order '{sort_by}' ignored.")
            return
        items = self.catalog.get_many(ts.work_item_ids(), session)
        ts.sort_rows(lambda row: key(row, items.get(row.work_item_id)))

    def apply_commit_state(self, session: Session, ts: Timesheet, was_committed: bool, now: datetime) -> None:
        """Stamps the draft->committed transition on the timesheet and its owner's account."""
        if ts.committed is True and not was_committed:
            ts.committed_at = now
            self.repo.mark_committed(session, ts.owner_id, now)
            log.info("Timesheet %s committed by account %s", ts.id, ts.owner_id)

    def reopen_timesheet(self, timesheet_id: int, actor: Actor) -> Timesheet:
        """Administrators may put a committed timesheet back to draft. Skips validation."""
        if not actor.is_admin:
            raise NotPermitted()
        with self.repo.transaction() as session:
            ts = self._load(session, timesheet_id)
            ts.committed = False
            ts.lock_version += 1
            self.repo.save(session, ts)
        log.info("Timesheet %s reopened by administrator %s", ts.id, actor.id)
        return ts

    # =========================
    # Week navigation
    # =========================
    def unused_weeks(self, owner_id: int, year: int, include: int | None = None) -> list[int]:
        """Week numbers of `year` with no timesheet for the owner yet, plus `include`."""
        with self.repo.transaction() as session:
            used = set(self.repo.used_weeks(session, owner_id, year))
        weeks = [w for w in range(1, last_week_number(year) + 1) if w not in used]
        if include is not None and include not in weeks:
            weeks.append(include)
        return sorted(weeks)

    def _discover_week(self, session: Session, ts: Timesheet, forward: bool,
                       accept: Callable[[Timesheet | None], bool]) -> AdjacentWeek | None:
        step = 1 if forward else -1
        last = last_week_number(ts.year)
        week = ts.week_number + step
        while 1 <= week <= last:
            other = self.repo.find(session, ts.owner_id, ts.year, week)
            if accept(other):
                return AdjacentWeek(week_number=week, timesheet=other)
            week += step
        return None

    def editable_week(self, ts: Timesheet, forward: bool) -> AdjacentWeek | None:
        """Nearest week in the same year that is free or holds a draft."""
        with self.repo.transaction() as session:
            return self._discover_week(session, ts, forward, lambda t: t is None or not t.committed)

    def showable_week(self, ts: Timesheet, forward: bool) -> AdjacentWeek | None:
        """Nearest week in the same year that already has a timesheet."""
        with self.repo.transaction() as session:
            return self._discover_week(session, ts, forward, lambda t: t is not None)

    def clone_timesheet(self, session: Session, original: Timesheet, week_number: int) -> Timesheet:
        """A new draft for `week_number` with the original's rows (still active items only) and no hours."""
        ts = Timesheet(owner_id=original.owner_id, year=original.year, week_number=week_number)
        for row in original.rows:
            item = self.catalog.get(row.work_item_id, session)
            if item is not None and item.is_active:
                ts.add_row(item)
        messages = validate_timesheet(ts, self._lookup(session), self._today())
        clash = self._clash_message(session, ts)
        if clash:
            messages.append(clash)
        if messages:
            raise ValidationError(messages)
        return self.repo.save(session, ts)

    def open_adjacent_week(self, timesheet_id: int, actor: Actor, forward: bool) -> Timesheet:
        """The next (or previous) editable week's timesheet, cloned from this one if it does not exist."""
        with self.repo.transaction() as session:
            ts = self._load(session, timesheet_id)
            if not can_modify(ts, actor):
                raise NotPermitted()
            found = self._discover_week(session, ts, forward, lambda t: t is None or not t.committed)
            if found is None:
                raise NotFound(f"Cannot find another week to edit in {ts.year}.")
            if found.timesheet is not None:
                return found.timesheet
            clone = self.clone_timesheet(session, ts, found.week_number)
        log.info("Cloned timesheet %s into week %s as %s", timesheet_id, clone.week_number, clone.id)
        return clone

    # =========================
    # Index
    # =========================
    def list_timesheets(self, actor: Actor, search: str | None = None) -> TimesheetIndex:
        """The actor's own timesheets, plus everybody else's for administrators."""
        index = TimesheetIndex(
            mine_committed=self.repo.list_by_owner(actor.id, mine=True, committed=True, search=search),
            mine_draft=self.repo.list_by_owner(actor.id, mine=True, committed=False, search=search),
        )
        if actor.is_admin:
            index.others_committed = self.repo.list_by_owner(actor.id, mine=False, committed=True, search=search)
            index.others_draft = self.repo.list_by_owner(actor.id, mine=False, committed=False, search=search)
        return index


__all__ = [
    "UpdateRequest",
    "UpdateResult",
    "AdjacentWeek",
    "TimesheetIndex",
    "TimesheetService",
    "SORT_KEYS",
]
