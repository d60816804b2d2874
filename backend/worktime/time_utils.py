from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import current_app, has_app_context


def utcnow() -> datetime:
    """
    Server-side 'now' in UTC (naive, canonical).

    The clock is injectable: when app.config["CLOCK"] holds a callable it is
    used instead of the system clock (deterministic auto-complete and
    cascade tests depend on this).
    """
    if has_app_context():
        clock = current_app.config.get("CLOCK")
        if clock is not None:
            return _to_utc_naive(clock())
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
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

    # Normalize to UTC-naive
    if dt.tzinfo is None:
        # interpret naive as UTC
        return dt.replace(tzinfo=None)

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


# -----------------------------------------------------------------------------
# Local calendar days
#
# Entries are stored as UTC-naive instants. The "day" an entry belongs to is
# the local calendar day of the employee's time zone, derived on every read.
# -----------------------------------------------------------------------------

def get_zone(tz_name: Optional[str]) -> ZoneInfo:
    name = tz_name
    if not name and has_app_context():
        name = current_app.config.get("DEFAULT_TIMEZONE")
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown time zone: {name}")


def to_local(dt_utc: datetime, tz_name: Optional[str]) -> datetime:
    """UTC-naive instant -> aware local datetime."""
    return dt_utc.replace(tzinfo=timezone.utc).astimezone(get_zone(tz_name))


def local_date_of(dt_utc: datetime, tz_name: Optional[str]) -> date:
    return to_local(dt_utc, tz_name).date()


def local_to_utc(day: date, at: time, tz_name: Optional[str]) -> datetime:
    """Local wall-clock time on a given day -> UTC-naive instant."""
    local_dt = datetime.combine(day, at, tzinfo=get_zone(tz_name))
    return local_dt.astimezone(timezone.utc).replace(tzinfo=None)


def day_bounds_utc(day: date, tz_name: Optional[str]) -> tuple[datetime, datetime]:
    """[start, end) of a local calendar day as UTC-naive instants (DST-safe)."""
    start = local_to_utc(day, time(0, 0), tz_name)
    end = local_to_utc(day + timedelta(days=1), time(0, 0), tz_name)
    return start, end


def format_local_time(dt_utc: datetime, tz_name: Optional[str]) -> str:
    return to_local(dt_utc, tz_name).strftime("%H:%M")


def week_bounds(day: date) -> tuple[date, date]:
    """Monday..Sunday of the ISO week containing `day`."""
    monday = day - timedelta(days=day.weekday())
    return monday, monday + timedelta(days=6)


def month_bounds(year: int, month: int) -> tuple[date, date]:
    first = date(year, month, 1)
    if month == 12:
        last = date(year + 1, 1, 1) - timedelta(days=1)
    else:
        last = date(year, month + 1, 1) - timedelta(days=1)
    return first, last


def next_month(year: int, month: int) -> tuple[int, int]:
    return (year + 1, 1) if month == 12 else (year, month + 1)


def previous_month(year: int, month: int) -> tuple[int, int]:
    return (year - 1, 12) if month == 1 else (year, month - 1)
