# config.py
from __future__ import annotations

import os
from datetime import date, datetime
from pathlib import Path
from zoneinfo import ZoneInfo

# =========================
# Limits
# =========================
MAX_HOURS_PER_DAY = 24
YEARS_BACK = 10
YEARS_FORWARD = 2
DUE_GRACE_DAYS = 7              # overdue work items stay eligible for a week


# =========================
# Persistence (env first, local fallback for development)
# =========================
def _pick_data_dir() -> Path:
    candidates = []
    env = os.getenv("DATA_DIR")
    if env:
        candidates.append(Path(env))
    candidates += [Path("/data"), Path.cwd() / "data"]

    for p in candidates:
        try:
            p.mkdir(parents=True, exist_ok=True)
            t = p / ".rwtest"
            t.write_text("ok")
            t.unlink(missing_ok=True)
            return p
        except OSError:
            continue
    return Path.cwd()


DATA_DIR = _pick_data_dir()
DEFAULT_SQLITE = f"sqlite:///{(DATA_DIR / 'timesheets.db').as_posix()}"
DB_URL = os.getenv("DATABASE_URL", DEFAULT_SQLITE)

# Only work items of this tracker are offered as default rows (unset = all)
DEFAULT_TRACKER = os.getenv("TIMESHEET_TRACKER") or None

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# =========================
# Time zone
# =========================
TZ = ZoneInfo(os.getenv("TIMESHEET_TZ", "UTC"))


def today_local() -> date:
    return datetime.now(TZ).date()


def now_local() -> datetime:
    # Timestamp columns are naive DateTime; wall-clock time in TZ
    return datetime.now(TZ).replace(tzinfo=None)


def year_range(today: date | None = None) -> range:
    """Years a timesheet may be created for, inclusive of both ends."""
    year = (today or today_local()).year
    return range(year - YEARS_BACK, year + YEARS_FORWARD + 1)
