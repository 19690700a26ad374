from __future__ import annotations

import calendar
import math
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    # sqlite hands back naive datetimes for timezone=True columns
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from start to end, halves rounded up."""
    seconds = (ensure_utc(end) - ensure_utc(start)).total_seconds()
    return math.floor(seconds / 60 + 0.5)


def add_months(dt: datetime, months: int) -> datetime:
    """Calendar months; the day is clamped to the target month's length."""
    month = dt.month - 1 + months
    year = dt.year + month // 12
    month = month % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)
