from __future__ import annotations

import calendar
from datetime import date, datetime, timezone, tzinfo


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_day(now: datetime, tz: tzinfo) -> date:
    return as_utc(now).astimezone(tz).date()


def month_bounds(year: int, month: int) -> tuple[date, date]:
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)


def worked_minutes(clock_in: datetime, clock_out: datetime) -> int:
    # truncate, never round: 90s -> 1, 59s -> 0
    delta = as_utc(clock_out) - as_utc(clock_in)
    return int(delta.total_seconds() // 60)


def isoformat(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None
