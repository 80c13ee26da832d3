# calendar_week.py
"""
Commercial (ISO, Monday-start) week arithmetic.

Day numbers follow the timesheet grid rather than the ISO weekday: 1..6 are
Monday..Saturday and 0 is the Sunday that *ends* the week.
"""

from __future__ import annotations

from datetime import date, timedelta

DAY_ORDER = [1, 2, 3, 4, 5, 6, 0]
DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


def first_week_start(year: int) -> date:
    """Monday of week 1. Can fall between Dec 29 of the previous year and Jan 4."""
    return date.fromisocalendar(year, 1, 1)


def last_week_number(year: int) -> int:
    """52, or 53 for long years. Dec 28 always sits in the last week."""
    return date(year, 12, 28).isocalendar()[1]


def last_week_end(year: int) -> date:
    """Sunday of the last week. Can fall in early January of the next year."""
    return date.fromisocalendar(year, last_week_number(year), 7)


def date_for(year: int, week_number: int, day_number: int) -> date:
    """Calendar date of `day_number` in the given week of `year`."""
    if day_number not in DAY_ORDER:
        raise ValueError(f"Day number {day_number} is out of range (0-6).")
    start = first_week_start(year) + timedelta(weeks=week_number - 1)
    return start + timedelta(days=DAY_ORDER.index(day_number))


def week_dates(year: int, week_number: int) -> dict[int, date]:
    """{day_number: date} for the whole week, in grid order."""
    return {day: date_for(year, week_number, day) for day in DAY_ORDER}


def overdue(year: int, week_number: int, today: date | None = None) -> bool:
    """True once the Saturday of the week has passed."""
    return date_for(year, week_number, 6) < (today or date.today())


def format_day(d: date) -> str:
    return d.strftime("%d-%b-%Y")


def week_label(year: int, week_number: int) -> str:
    return f"{year}-W{week_number:02d}"


__all__ = [
    "DAY_ORDER",
    "DAY_NAMES",
    "first_week_start",
    "last_week_number",
    "last_week_end",
    "date_for",
    "week_dates",
    "overdue",
    "format_day",
    "week_label",
]
