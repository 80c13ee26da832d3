# validation.py
from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

import config
from calendar_week import DAY_NAMES, DAY_ORDER
from domain import Actor, Timesheet, WorkItem
from errors import PerEntryError

HOURS_PLACES = 2               # matches the time_entries.hours column scale


def time_range(today: date | None = None) -> range:
    return config.year_range(today)


def is_permitted_for(timesheet: Timesheet, actor: Actor) -> bool:
    """May the actor see this timesheet at all?"""
    return actor.is_admin or actor.id == timesheet.owner_id


def can_modify(timesheet: Timesheet, actor: Actor) -> bool:
    if actor.is_admin:
        return True
    if not is_permitted_for(timesheet, actor):
        return False
    return not timesheet.committed


def parse_hours(raw: Any) -> Decimal:
    """Turns a submitted cell into hours. Blank means zero."""
    if raw is None:
        return Decimal("0")
    text = str(raw).strip()
    if not text:
        return Decimal("0")
    try:
        hours = Decimal(text)
    except InvalidOperation:
        raise PerEntryError("Hours is not a number", raw_value=raw) from None
    if not hours.is_finite():
        raise PerEntryError("Hours is not a number", raw_value=raw)
    if hours < 0:
        raise PerEntryError("Hours must not be negative", raw_value=raw)
    if hours.normalize().as_tuple().exponent < -HOURS_PLACES:
        raise PerEntryError(f"Hours can have at most {HOURS_PLACES} decimal places", raw_value=raw)
    return hours


def validate_timesheet(
    timesheet: Timesheet,
    lookup_work_item: Callable[[int], WorkItem | None],
    today: date | None = None,
) -> list[str]:
    """
    Runs every rule that must hold before a timesheet is saved and returns the
    failures as readable messages. An empty list means the timesheet is valid.

    Work items are looked up afresh on every call: an item closed after it was
    added to an uncommitted timesheet makes the timesheet invalid, hence the
    "no longer" wording.
    """
    errors: list[str] = []

    if timesheet.owner_id is None:
        errors.append("Owner can't be blank")

    if not _int_in(timesheet.week_number, range(1, 54)):
        errors.append("Week number must lie between 1 and 53")

    years = time_range(today)
    if not _int_in(timesheet.year, years):
        errors.append(f"Year must lie between {years[0]} and {years[-1]}")

    if not isinstance(timesheet.committed, bool):
        errors.append("Committed must be set to 'True' or 'False'")

    for day in DAY_ORDER:
        if timesheet.sum_for_day(day) > config.MAX_HOURS_PER_DAY:
            errors.append(f"{DAY_NAMES[day]}: Cannot exceed {config.MAX_HOURS_PER_DAY} hours per day")

    for work_item_id in timesheet.work_item_ids():
        item = lookup_work_item(work_item_id)
        if item is None:
            errors.append(f"Work item #{work_item_id} no longer exists")
        elif not item.is_active:
            errors.append(f"Work item '{item.augmented_title}' is no longer active and cannot be included")

    return errors


def _int_in(value: Any, allowed: range) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value in allowed
