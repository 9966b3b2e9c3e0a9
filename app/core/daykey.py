"""
Day keys and week keys.

A day key is the calendar date ("YYYY-MM-DD") of a timestamp in the fixed
reference timezone (settings.DAY_KEY_TIMEZONE). Naive datetimes are read
as UTC, which is how SQLite hands back timezone-aware columns.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from app.core.config import settings


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def local_date(ts: Optional[datetime] = None) -> date:
    """Calendar date of `ts` (default: now) in the reference timezone."""
    moment = as_utc(ts) if ts is not None else utcnow()
    return moment.astimezone(ZoneInfo(settings.DAY_KEY_TIMEZONE)).date()


def day_key(ts: Optional[datetime] = None) -> str:
    return local_date(ts).isoformat()


def previous_day_keys(ts: Optional[datetime] = None, days: int = 7) -> list[str]:
    """Day keys for the `days`-day window ending on `ts`'s day, newest first."""
    today = local_date(ts)
    return [(today - timedelta(days=i)).isoformat() for i in range(days)]


def week_key(ts: Optional[datetime] = None) -> str:
    """ISO year-week of `ts`'s local day, e.g. "2026-W42"."""
    iso_year, iso_week, _ = local_date(ts).isocalendar()
    return f"{iso_year}-W{iso_week:02d}"
