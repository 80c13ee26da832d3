# repository.py
from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterator, List

from sqlalchemy import Column, DateTime, func, or_, text
from sqlalchemy.pool import NullPool
from sqlmodel import Field, Session, SQLModel, UniqueConstraint, create_engine, select

import config
from domain import Actor, TimeEntry, Timesheet, TimesheetRow, WorkItem
from logger import get_logger

log = get_logger("repository")


class AccountDB(SQLModel, table=True):
    __tablename__ = "accounts"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    is_admin: bool = False
    last_committed: datetime | None = Field(default=None, sa_column=Column(DateTime, nullable=True))


class WorkItemDB(SQLModel, table=True):
    __tablename__ = "work_items"

    id: int | None = Field(default=None, primary_key=True)
    title: str
    project: str = ""
    is_active: bool = Field(default=True, index=True)
    start_date: date | None = None
    due_date: date | None = None
    tracker: str | None = Field(default=None, index=True)


class TimesheetDB(SQLModel, table=True):
    __tablename__ = "timesheets"
    __table_args__ = (UniqueConstraint("owner_id", "year", "week_number", name="uniq_timesheets_owner_week"),)

    id: int | None = Field(default=None, primary_key=True)
    owner_id: int = Field(foreign_key="accounts.id", index=True)
    year: int = Field(index=True)
    week_number: int
    committed: bool = False
    committed_at: datetime | None = Field(default=None, sa_column=Column(DateTime, nullable=True))
    description: str = ""
    lock_version: int = 0
    updated_at: datetime | None = Field(default=None, sa_column=Column(DateTime, nullable=True))


class TimesheetRowDB(SQLModel, table=True):
    __tablename__ = "timesheet_rows"
    __table_args__ = (UniqueConstraint("timesheet_id", "work_item_id", name="uniq_rows_timesheet_item"),)

    id: int | None = Field(default=None, primary_key=True)
    timesheet_id: int = Field(foreign_key="timesheets.id", index=True)
    work_item_id: int = Field(foreign_key="work_items.id")
    position: int


class TimeEntryDB(SQLModel, table=True):
    __tablename__ = "time_entries"
    __table_args__ = (UniqueConstraint("timesheet_row_id", "day_number", name="uniq_entries_row_day"),)

    id: int | None = Field(default=None, primary_key=True)
    timesheet_row_id: int = Field(foreign_key="timesheet_rows.id", index=True)
    day_number: int
    hours: Decimal = Field(default=Decimal("0"), max_digits=6, decimal_places=2)


def build_engine(db_url: str, echo: bool = False):
    is_sqlite = db_url.startswith("sqlite")
    kwargs = {
        "echo": echo,
        "pool_pre_ping": True,
        "connect_args": {},
    }
    if is_sqlite:
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        # Serverless PG (Neon/Supabase): no local pool, bounded connect time
        kwargs["poolclass"] = NullPool
        kwargs["connect_args"] = {"connect_timeout": 10}
        if "sslmode=" not in db_url:
            db_url += ("&" if "?" in db_url else "?") + "sslmode=require"
    return create_engine(db_url, **kwargs)


# =========================
# Row <-> domain mapping
# =========================
def _account_to_actor(a: AccountDB) -> Actor:
    return Actor(id=a.id, name=a.name, is_admin=a.is_admin)


def _item_to_domain(w: WorkItemDB) -> WorkItem:
    return WorkItem(
        id=w.id,
        title=w.title,
        project=w.project,
        is_active=w.is_active,
        start_date=w.start_date,
        due_date=w.due_date,
        tracker=w.tracker,
    )


def _timesheet_to_domain(session: Session, t: TimesheetDB) -> Timesheet:
    rows = session.exec(
        select(TimesheetRowDB)
        .where(TimesheetRowDB.timesheet_id == t.id)
        .order_by(TimesheetRowDB.position)
    ).all()
    entries_by_row: dict[int, dict[int, TimeEntry]] = {r.id: {} for r in rows}
    if rows:
        entries = session.exec(
            select(TimeEntryDB).where(TimeEntryDB.timesheet_row_id.in_(list(entries_by_row)))
        ).all()
        for e in entries:
            entries_by_row[e.timesheet_row_id][e.day_number] = TimeEntry(
                day_number=e.day_number, hours=Decimal(str(e.hours)), id=e.id
            )
    return Timesheet(
        id=t.id,
        owner_id=t.owner_id,
        year=t.year,
        week_number=t.week_number,
        committed=t.committed,
        committed_at=t.committed_at,
        description=t.description,
        lock_version=t.lock_version,
        updated_at=t.updated_at,
        rows=[
            TimesheetRow(id=r.id, work_item_id=r.work_item_id, position=r.position, entries=entries_by_row[r.id])
            for r in rows
        ],
    )


class TimesheetRepository:
    """Timesheets, their rows and entries, plus the owning accounts."""
    def __init__(self, url: str = config.DB_URL, echo: bool = False):
        self.primary_url = url
        self.engine = build_engine(url, echo=echo)

        # Postgres: fail fast when the database is unreachable
        if not url.startswith("sqlite"):
            try:
                with self.engine.connect() as conn:
                    conn.execute(text("select 1"))
            except Exception as e:
                raise RuntimeError(f"Could not connect to Postgres: {e}") from e

        SQLModel.metadata.create_all(self.engine)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """One unit of work: committed when the block exits, rolled back on any error."""
        with Session(self.engine) as session:
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise

    # ----- accounts -----
    def add_account(self, name: str, is_admin: bool = False) -> Actor:
        with Session(self.engine) as session:
            row = AccountDB(name=name, is_admin=is_admin)
            session.add(row)
            session.commit()
            session.refresh(row)
            return _account_to_actor(row)

    def get_account(self, account_id: int) -> AccountDB | None:
        with Session(self.engine) as session:
            return session.get(AccountDB, account_id)

    def list_accounts(self) -> List[Actor]:
        with Session(self.engine) as session:
            return [_account_to_actor(a) for a in session.exec(select(AccountDB).order_by(AccountDB.name)).all()]

    def mark_committed(self, session: Session, account_id: int, when: datetime) -> None:
        account = session.get(AccountDB, account_id)
        if account is not None:
            account.last_committed = when
            session.add(account)

    # ----- timesheets -----
    def load(self, session: Session, timesheet_id: int) -> Timesheet | None:
        t = session.get(TimesheetDB, timesheet_id)
        return _timesheet_to_domain(session, t) if t else None

    def find(self, session: Session, owner_id: int, year: int, week_number: int) -> Timesheet | None:
        t = session.exec(
            select(TimesheetDB).where(
                TimesheetDB.owner_id == owner_id,
                TimesheetDB.year == year,
                TimesheetDB.week_number == week_number,
            )
        ).first()
        return _timesheet_to_domain(session, t) if t else None

    def used_weeks(self, session: Session, owner_id: int, year: int) -> list[int]:
        return list(session.exec(
            select(TimesheetDB.week_number).where(TimesheetDB.owner_id == owner_id, TimesheetDB.year == year)
        ).all())

    def save(self, session: Session, ts: Timesheet) -> Timesheet:
        """
        Writes the aggregate back: timesheet fields, then rows (dropping the ones
        no longer present), then entries. Ids of new objects are filled in on `ts`.
        """
        t = session.get(TimesheetDB, ts.id) if ts.id is not None else None
        if t is None:
            t = TimesheetDB(owner_id=ts.owner_id, year=ts.year, week_number=ts.week_number)
        t.owner_id = ts.owner_id
        t.year = ts.year
        t.week_number = ts.week_number
        t.committed = ts.committed
        t.committed_at = ts.committed_at
        t.description = ts.description or ""
        t.lock_version = ts.lock_version
        t.updated_at = ts.updated_at = config.now_local()
        session.add(t)
        session.flush()
        ts.id = t.id

        existing = {
            r.id: r for r in session.exec(select(TimesheetRowDB).where(TimesheetRowDB.timesheet_id == t.id)).all()
        }
        keep = {row.id for row in ts.rows if row.id is not None}
        for row_id, r in existing.items():
            if row_id not in keep:
                self._delete_row(session, r)
        session.flush()

        for row in ts.rows:
            r = existing.get(row.id) if row.id is not None else None
            if r is None:
                r = TimesheetRowDB(timesheet_id=t.id, work_item_id=row.work_item_id, position=row.position)
            r.position = row.position
            session.add(r)
            session.flush()
            row.id = r.id
            self._save_entries(session, row)

        session.flush()
        log.debug("Saved timesheet %s (%d rows, version %d)", ts.id, len(ts.rows), ts.lock_version)
        return ts

    def _save_entries(self, session: Session, row: TimesheetRow) -> None:
        stored = {
            e.day_number: e
            for e in session.exec(select(TimeEntryDB).where(TimeEntryDB.timesheet_row_id == row.id)).all()
        }
        for day, entry in row.entries.items():
            e = stored.pop(day, None) or TimeEntryDB(timesheet_row_id=row.id, day_number=day)
            e.hours = entry.hours
            session.add(e)
            session.flush()
            entry.id = e.id
        for leftover in stored.values():
            session.delete(leftover)

    def _delete_row(self, session: Session, r: TimesheetRowDB) -> None:
        for e in session.exec(select(TimeEntryDB).where(TimeEntryDB.timesheet_row_id == r.id)).all():
            session.delete(e)
        session.delete(r)

    def delete(self, session: Session, timesheet_id: int) -> bool:
        """Deletes a timesheet together with its rows and their entries."""
        t = session.get(TimesheetDB, timesheet_id)
        if t is None:
            return False
        for r in session.exec(select(TimesheetRowDB).where(TimesheetRowDB.timesheet_id == t.id)).all():
            self._delete_row(session, r)
        session.flush()
        session.delete(t)
        return True

    def list_by_owner(
        self,
        owner_id: int,
        mine: bool = True,
        committed: bool | None = None,
        search: str | None = None,
    ) -> List[tuple[Timesheet, str]]:
        """
        Timesheets owned by (or, with mine=False, not owned by) `owner_id`,
        newest week first, each paired with the owner's name. `search` matches
        the year, the week number or part of the owner's name.
        """
        with Session(self.engine) as session:
            stmt = select(TimesheetDB, AccountDB).join(AccountDB, TimesheetDB.owner_id == AccountDB.id)
            if mine:
                stmt = stmt.where(TimesheetDB.owner_id == owner_id)
            else:
                stmt = stmt.where(TimesheetDB.owner_id != owner_id)
            if committed is not None:
                stmt = stmt.where(TimesheetDB.committed == committed)
            if search:
                term = search.strip()
                num = int(term) if term.isdigit() else -1
                stmt = stmt.where(or_(
                    TimesheetDB.year == num,
                    TimesheetDB.week_number == num,
                    func.lower(AccountDB.name).like(f"%{term.lower()}%"),
                ))
            stmt = stmt.order_by(TimesheetDB.year.desc(), TimesheetDB.week_number.desc())
            return [(_timesheet_to_domain(session, t), a.name) for t, a in session.exec(stmt).all()]


class WorkItemCatalog:
    """Read side of the issue tracker: lookups, status and default-eligible items."""
    def __init__(self, engine):
        self.engine = engine

    def add(self, item: WorkItem | None = None, **fields) -> WorkItem:
        data = dict(fields)
        if item is not None:
            data.update(
                title=item.title, project=item.project, is_active=item.is_active,
                start_date=item.start_date, due_date=item.due_date, tracker=item.tracker,
            )
        with Session(self.engine) as session:
            row = WorkItemDB(**data)
            session.add(row)
            session.commit()
            session.refresh(row)
            return _item_to_domain(row)

    def get(self, work_item_id: int, session: Session | None = None) -> WorkItem | None:
        if session is None:
            with Session(self.engine) as s:
                return self.get(work_item_id, s)
        w = session.get(WorkItemDB, work_item_id)
        return _item_to_domain(w) if w else None

    def get_many(self, ids, session: Session | None = None) -> dict[int, WorkItem]:
        ids = list(ids)
        if not ids:
            return {}
        if session is None:
            with Session(self.engine) as s:
                return self.get_many(ids, s)
        rows = session.exec(select(WorkItemDB).where(WorkItemDB.id.in_(ids))).all()
        return {w.id: _item_to_domain(w) for w in rows}

    def list_active(self) -> List[WorkItem]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(WorkItemDB).where(WorkItemDB.is_active == True).order_by(WorkItemDB.id)  # noqa: E712
            ).all()
            return [_item_to_domain(w) for w in rows]

    def set_active(self, work_item_id: int, active: bool) -> None:
        with Session(self.engine) as session:
            w = session.get(WorkItemDB, work_item_id)
            if w is None:
                return
            w.is_active = active
            session.add(w)
            session.commit()

    def default_items(self, session: Session, today: date, tracker: str | None = None) -> List[WorkItem]:
        """
        Items expected to be worked on around `today`: active, already started
        (or no start date) and not overdue by more than DUE_GRACE_DAYS.
        """
        cutoff = today - timedelta(days=config.DUE_GRACE_DAYS)
        stmt = select(WorkItemDB).where(
            WorkItemDB.is_active == True,  # noqa: E712
            or_(WorkItemDB.start_date == None, WorkItemDB.start_date <= today),  # noqa: E711
            or_(WorkItemDB.due_date == None, WorkItemDB.due_date >= cutoff),  # noqa: E711
        )
        if tracker:
            stmt = stmt.where(WorkItemDB.tracker == tracker)
        return [_item_to_domain(w) for w in session.exec(stmt.order_by(WorkItemDB.id)).all()]


__all__ = [
    "AccountDB",
    "WorkItemDB",
    "TimesheetDB",
    "TimesheetRowDB",
    "TimeEntryDB",
    "TimesheetRepository",
    "WorkItemCatalog",
    "build_engine",
]
