"""Day, week, and month boundary utilities.

Every boundary in the gamification engine is computed in UTC, regardless of
where the server or the user is. Streak days and leaderboard windows both
rely on these helpers.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and convert aware ones."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def start_of_day(dt: datetime) -> datetime:
    """Midnight UTC of the day containing dt."""
    dt = as_utc(dt)
    return datetime.combine(dt.date(), time.min, tzinfo=timezone.utc)


def start_of_yesterday(dt: datetime) -> datetime:
    """Midnight UTC of the day before the one containing dt."""
    return start_of_day(dt) - timedelta(days=1)


def get_monday(dt: datetime | date) -> date:
    """Get the Monday of the ISO week containing dt."""
    d = as_utc(dt).date() if isinstance(dt, datetime) else dt
    return d - timedelta(days=d.weekday())


def start_of_week(dt: datetime) -> datetime:
    """Monday 00:00 UTC of the ISO week containing dt."""
    return datetime.combine(get_monday(dt), time.min, tzinfo=timezone.utc)


def start_of_month(dt: datetime) -> datetime:
    """First day of the month containing dt, 00:00 UTC."""
    dt = as_utc(dt)
    return datetime(dt.year, dt.month, 1, tzinfo=timezone.utc)


def is_within(dt: datetime, start: datetime, end: datetime, *, inclusive_end: bool = True) -> bool:
    """Check start <= dt <= end (or < end when inclusive_end is False)."""
    dt = as_utc(dt)
    if dt < start:
        return False
    return dt <= end if inclusive_end else dt < end
