from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Optional


_CALENDAR_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_calendar_date(value: Optional[str]) -> Optional[date]:
    """
    Parse an ISO-8601 calendar date (YYYY-MM-DD).

    - None / "" -> None
    - Anything else that is not exactly YYYY-MM-DD raises ValueError
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None
    if not _CALENDAR_DATE.match(s):
        raise ValueError(f"invalid calendar date: {value!r}")
    return date.fromisoformat(s)


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
