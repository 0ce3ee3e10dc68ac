from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def utcnow_iso() -> str:
    """Current UTC time as ISO-8601 string with Z."""
    return to_iso(utcnow())


def to_iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def iso_in(*, hours: float = 0, seconds: float = 0) -> str:
    """ISO timestamp `hours`/`seconds` from now (UTC)."""
    return to_iso(utcnow() + timedelta(hours=hours, seconds=seconds))


def hour_bucket(dt: Optional[datetime] = None) -> str:
    d = dt or utcnow()
    return d.strftime("%Y-%m-%dT%H")


def parse_day(value: str | None) -> Optional[date]:
    """Parse the date part of an ISO date/datetime string. Returns None if unparseable."""
    s = (value or "").strip()
    if len(s) < 10:
        return None
    try:
        return date.fromisoformat(s[:10])
    except ValueError:
        return None


def days_since(value: str | None, today: Optional[date] = None) -> Optional[int]:
    d = parse_day(value)
    if d is None:
        return None
    t = today or utcnow().date()
    return (t - d).days
