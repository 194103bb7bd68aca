from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any, Optional

_BARE_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc_naive(dt: datetime) -> datetime:
    """Aware datetimes are converted to UTC; naive ones are already UTC."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 string into a UTC-naive datetime.

    - None / "" -> None
    - naive values are taken as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC

    Raises ValueError on malformed input.
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    return as_utc_naive(datetime.fromisoformat(s))


def parse_lenient_datetime(value: Any) -> Optional[datetime]:
    """
    Best-effort conversion of caller input to a UTC-naive datetime; never raises.

    "YYYY-MM-DD" means that day at UTC midnight. Unparseable values become None.
    """
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, (str, datetime)):
        return None

    try:
        if isinstance(value, datetime):
            return as_utc_naive(value)
        text = value.strip()
        if _BARE_DATE.match(text):
            return datetime.strptime(text, "%Y-%m-%d")
        return parse_iso_datetime(text)
    except (ValueError, OverflowError):
        # Offsets can push year 1 or 9999 values out of range
        return None


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 with trailing 'Z', second precision. Naive values are UTC."""
    if dt is None:
        return None
    return as_utc_naive(dt).replace(microsecond=0).isoformat() + "Z"
