from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Server-side 'now' in UTC (timezone-aware, canonical)."""
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to timezone-aware UTC.

    SQLite hands back naive values for DateTime(timezone=True) columns;
    everything we write is UTC, so naive is interpreted as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to aware UTC.

    - None / "" -> None
    - "YYYY-MM-DD" is midnight UTC
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)
    return as_utc(dt)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    dt_utc = as_utc(dt).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def business_date(dt: datetime, tz_name: str = "UTC") -> date:
    """Calendar date of an instant in the pharmacy's local timezone."""
    return as_utc(dt).astimezone(ZoneInfo(tz_name)).date()


def day_bounds(day: date, tz_name: str = "UTC") -> tuple[datetime, datetime]:
    """[start, end) of a local calendar day, expressed in UTC."""
    tz = ZoneInfo(tz_name)
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = start + timedelta(days=1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)
