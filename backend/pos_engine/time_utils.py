# Overview: Clock and calendar helpers; all stored datetimes are UTC-naive.

from __future__ import annotations

from datetime import datetime, time, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 string into a UTC-naive datetime.

    None or blank gives None. Naive input is taken as UTC; "Z" and
    offsets are converted. Raises ValueError on anything else.
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        return parsed
    return parsed.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Serialize as ISO-8601 with a trailing 'Z', seconds precision."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def parse_hhmm(value: str) -> time:
    """'22:00' -> time(22, 0). Raises ValueError for malformed input."""
    hours, minutes = value.split(":", 1)
    return time(int(hours), int(minutes))


def weekday_sunday_zero(dt: datetime) -> int:
    """Day of week with Sunday = 0 .. Saturday = 6 (promotion schedules)."""
    return (dt.weekday() + 1) % 7


def in_daily_window(window: tuple[time, time], dt: datetime) -> bool:
    """
    True when dt's time of day falls inside [start, end].

    A window whose end is before its start wraps past midnight.
    """
    start, end = window
    current = dt.time()
    if start <= end:
        return start <= current <= end
    return current >= start or current <= end


def day_stamp(dt: datetime) -> str:
    """YYYYMMDD, the per-day key of invoice sequences."""
    return f"{dt:%Y%m%d}"
