from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


PERIOD_DAILY = "daily"
PERIOD_WEEKLY = "weekly"
PERIOD_MONTHLY = "monthly"
PERIOD_ANNUALLY = "annually"
PERIOD_CUSTOM = "custom"

VALID_PERIODS = (PERIOD_DAILY, PERIOD_WEEKLY, PERIOD_MONTHLY, PERIOD_ANNUALLY, PERIOD_CUSTOM)


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DD" -> midnight of that day
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    - non-string values raise ValueError
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"Expected an ISO-8601 string, got {type(value).__name__}")
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    if dt.tzinfo is None:
        return dt

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_range_end(value: Optional[str]) -> Optional[datetime]:
    """Like parse_iso_datetime, but a bare date means the end of that day."""
    dt = parse_iso_datetime(value)
    if dt is None:
        return None
    if len(value.strip()) == 10:
        return end_of_day(dt)
    return dt


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


def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=23, minute=59, second=59, microsecond=999999)


def period_range(
    period: str,
    *,
    start: Optional[str] = None,
    end: Optional[str] = None,
    now: Optional[datetime] = None,
) -> tuple[datetime, datetime]:
    """
    Resolve a reporting period to an inclusive (start, end) window.

    Weeks start on Monday. "custom" requires both start and end.
    Raises ValueError for unknown periods or an inverted custom range.
    """
    now = now or utcnow()

    if period == PERIOD_DAILY:
        return start_of_day(now), end_of_day(now)

    if period == PERIOD_WEEKLY:
        monday = start_of_day(now) - timedelta(days=now.weekday())
        return monday, end_of_day(monday + timedelta(days=6))

    if period == PERIOD_MONTHLY:
        first = start_of_day(now).replace(day=1)
        if first.month == 12:
            next_first = first.replace(year=first.year + 1, month=1)
        else:
            next_first = first.replace(month=first.month + 1)
        return first, next_first - timedelta(microseconds=1)

    if period == PERIOD_ANNUALLY:
        first = start_of_day(now).replace(month=1, day=1)
        return first, first.replace(year=first.year + 1) - timedelta(microseconds=1)

    if period == PERIOD_CUSTOM:
        start_dt = parse_iso_datetime(start)
        end_dt = parse_range_end(end)
        if start_dt is None or end_dt is None:
            raise ValueError("start_date and end_date are required for a custom period")
        if start_dt > end_dt:
            raise ValueError("start_date must not be after end_date")
        return start_dt, end_dt

    raise ValueError(f"period must be one of: {', '.join(VALID_PERIODS)}")
