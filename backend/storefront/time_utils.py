from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime (or bare date) and normalize to UTC-naive.

    - None / "" -> None
    - "YYYY-MM-DD" -> midnight UTC of that day
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    if len(s) == 10:
        return datetime.combine(date.fromisoformat(s), time.min)

    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


RANGE_PRESETS = ("today", "week", "month", "year", "all")


def range_start(range_name: str, now: Optional[datetime] = None) -> datetime:
    """
    Start of a named reporting range ending at now.

    today = midnight, week = 7 days back, month = first of the month,
    year = January 1st, all = the epoch.
    """
    now = now or utcnow()
    if range_name == "today":
        return datetime.combine(now.date(), time.min)
    if range_name == "week":
        return now - timedelta(days=7)
    if range_name == "month":
        return datetime.combine(now.date().replace(day=1), time.min)
    if range_name == "year":
        return datetime.combine(date(now.year, 1, 1), time.min)
    if range_name == "all":
        return datetime(1970, 1, 1)
    raise ValueError(f"range must be one of: {', '.join(RANGE_PRESETS)}")


def period_bounds(
    start: Optional[str],
    end: Optional[str],
    *,
    range_name: Optional[str] = None,
    default_days: int = 30,
) -> tuple[datetime, datetime]:
    """
    Resolve an accounting reporting window.

    Bare end dates are inclusive (the whole day is covered). A missing start
    falls back to the named range when one is given, else to default_days
    before end. Explicit bounds always win over the range.
    """
    end_dt = parse_iso_datetime(end)
    if end_dt is None:
        end_dt = utcnow()
    elif end is not None and len(end.strip()) == 10:
        end_dt = end_dt + timedelta(days=1) - timedelta(microseconds=1)

    start_dt = parse_iso_datetime(start)
    if range_name:
        preset_start = range_start(range_name, end_dt)
        if start_dt is None:
            start_dt = preset_start
    if start_dt is None:
        start_dt = end_dt - timedelta(days=default_days)

    if start_dt > end_dt:
        raise ValueError("start must be before end")
    return start_dt, end_dt
