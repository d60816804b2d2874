# Overview: Storage contract of the entry log (reads and appends of TimeEntry rows).

"""
Entry log

The only place that queries time_entries. Everything above it works with
"the entries of employee E on local day D", where D is derived from the
employee's time zone at read time and never stored.

Ordering is (timestamp, id): two entries with the same instant keep their
insertion order.
"""

from __future__ import annotations

from datetime import date, datetime

from ..extensions import db
from ..models import Employee, TimeEntry
from ..validation import NotFound
from worktime.time_utils import day_bounds_utc, local_date_of


def employee_timezone(employee: Employee) -> str | None:
    return employee.timezone


def local_day_of(employee: Employee, timestamp: datetime) -> date:
    return local_date_of(timestamp, employee_timezone(employee))


def get_entry(entry_id: int, *, include_deleted: bool = False) -> TimeEntry:
    entry = db.session.get(TimeEntry, entry_id)
    if not entry or (entry.is_deleted and not include_deleted):
        raise NotFound(f"Time entry {entry_id} not found", field="entry_id")
    return entry


def entries_between(
    employee_id: int,
    start: datetime,
    end: datetime,
    *,
    include_deleted: bool = False,
) -> list[TimeEntry]:
    """Entries with start <= timestamp < end, chronologically."""
    query = db.session.query(TimeEntry).filter(
        TimeEntry.employee_id == employee_id,
        TimeEntry.timestamp >= start,
        TimeEntry.timestamp < end,
    )
    if not include_deleted:
        query = query.filter(TimeEntry.is_deleted.is_(False))
    return query.order_by(TimeEntry.timestamp.asc(), TimeEntry.id.asc()).all()


def entries_for_day(employee: Employee, day: date, *, include_deleted: bool = False) -> list[TimeEntry]:
    start, end = day_bounds_utc(day, employee_timezone(employee))
    return entries_between(employee.id, start, end, include_deleted=include_deleted)


def days_with_entries(employee: Employee, from_day: date, to_day: date) -> list[date]:
    """Distinct local days in [from_day, to_day] that hold at least one live entry."""
    start, _ = day_bounds_utc(from_day, employee_timezone(employee))
    _, end = day_bounds_utc(to_day, employee_timezone(employee))
    days = {local_day_of(employee, e.timestamp) for e in entries_between(employee.id, start, end)}
    return sorted(days)


def latest_entry_of_day(employee: Employee, day: date) -> TimeEntry | None:
    entries = entries_for_day(employee, day)
    return entries[-1] if entries else None


def append_entry(
    *,
    employee: Employee,
    entry_type: str,
    timestamp: datetime,
    source: str,
    terminal_id: str | None = None,
    is_correction: bool = False,
    correction_reason: str | None = None,
    corrected_by: int | None = None,
) -> TimeEntry:
    entry = TimeEntry(
        employee_id=employee.id,
        entry_type=entry_type,
        timestamp=timestamp,
        source=source,
        terminal_id=terminal_id,
        is_correction=is_correction,
        correction_reason=correction_reason,
        corrected_by=corrected_by,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_entries(
    employee: Employee,
    *,
    from_day: date | None = None,
    to_day: date | None = None,
    include_deleted: bool = False,
    limit: int = 500,
) -> list[TimeEntry]:
    query = db.session.query(TimeEntry).filter(TimeEntry.employee_id == employee.id)
    if from_day is not None:
        query = query.filter(TimeEntry.timestamp >= day_bounds_utc(from_day, employee_timezone(employee))[0])
    if to_day is not None:
        query = query.filter(TimeEntry.timestamp < day_bounds_utc(to_day, employee_timezone(employee))[1])
    if not include_deleted:
        query = query.filter(TimeEntry.is_deleted.is_(False))
    limit = max(1, min(limit, 2000))
    return query.order_by(TimeEntry.timestamp.desc(), TimeEntry.id.desc()).limit(limit).all()
