# errors.py
from __future__ import annotations

from typing import Any


class TimesheetError(Exception):
    """Base class for every error the timesheet service reports."""


class ValidationError(TimesheetError):
    """The timesheet failed validation and was not saved.

    `messages` holds one human-readable line per failed rule; `form` carries the
    submitted input back so the caller can re-render it.
    """

    def __init__(self, messages: list[str], form: Any = None):
        self.messages = list(messages)
        self.form = form
        super().__init__("; ".join(self.messages))


class ConcurrencyConflict(TimesheetError):
    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            "This timesheet was modified by someone else while you were making changes. "
            "Please examine the updated information before editing again."
        )


class PerEntryError(TimesheetError):
    """A single hours value could not be applied. Collected, never aborts the update."""

    def __init__(self, message: str, row_id: int | None = None,
                 day_number: int | None = None, raw_value: Any = None):
        self.row_id = row_id
        self.day_number = day_number
        self.raw_value = raw_value
        super().__init__(message)


class NotPermitted(TimesheetError):
    def __init__(self, message: str = "Action not permitted"):
        super().__init__(message)


class NotFound(TimesheetError):
    pass


__all__ = [
    "TimesheetError",
    "ValidationError",
    "ConcurrencyConflict",
    "PerEntryError",
    "NotPermitted",
    "NotFound",
]
