# Overview: Read projections over daily summaries (day, week, month, triage) and the live presence snapshot.

"""
Summary reads

Reads reconcile before they project: a day that was left open past the
cutoff is auto-completed on first read, and a no-show day gets its
summary row the first time anyone looks at it. Days after the employee's
local today are never stored; they appear without a summary.

The presence snapshot is a pure read. There is no stored "current status";
it is derived from the latest entry of the employee's current local day.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional

from ..extensions import db
from ..models import DailySummary
from ..validation import InvalidInput
from worktime.time_utils import local_date_of, month_bounds, to_utc_z, utcnow, week_bounds
from . import entry_log_service
from .balance_service import get_month_row
from .directory_service import get_employee, list_tracked_employees
from .reconcile_service import compute_day
from .sequence_service import STATE_ABSENT, STATE_PRESENT, state_after
from .timekeeping_service import reconcile_days

# Triage reads reconcile every day of the range; keep it bounded
MAX_RANGE_DAYS = 366

WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def _days(from_day: date, to_day: date) -> list[date]:
    return [from_day + timedelta(days=i) for i in range((to_day - from_day).days + 1)]


def _reconcile_until_today(employee_id: int, from_day: date, to_day: date, now: datetime) -> dict[date, DailySummary]:
    employee = get_employee(employee_id)
    today = local_date_of(now, employee.timezone)
    last = min(to_day, today)
    if last < from_day:
        return {}
    return {s.date: s for s in reconcile_days(employee_id=employee_id, days=_days(from_day, last), now=now)}


def _totals(summaries) -> dict:
    summaries = list(summaries)
    return {
        "target_minutes": sum(s.effective_target_minutes for s in summaries),
        "worked_minutes": sum(s.worked_minutes for s in summaries),
        "break_minutes": sum(s.break_minutes for s in summaries),
        "overtime_minutes": sum(s.overtime_minutes for s in summaries),
        "days_with_missing_entries": sum(1 for s in summaries if s.has_missing_entries),
        "days_needing_review": sum(1 for s in summaries if s.needs_review),
    }


def get_day_summary(*, employee_id: int, day: date, now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    summaries = _reconcile_until_today(employee_id, day, day, now)
    summary = summaries.get(day)
    employee = get_employee(employee_id)
    entries = entry_log_service.entries_for_day(employee, day)
    return {
        "employee_id": employee_id,
        "date": day.isoformat(),
        "summary": summary.to_dict() if summary else None,
        "entries": [e.to_dict() for e in entries],
    }


def get_week_summary(*, employee_id: int, day: date, now: Optional[datetime] = None) -> dict:
    """Monday..Sunday of the week containing `day`, with totals over the stored days."""
    now = now or utcnow()
    monday, sunday = week_bounds(day)
    summaries = _reconcile_until_today(employee_id, monday, sunday, now)

    days = []
    for d in _days(monday, sunday):
        summary = summaries.get(d)
        days.append({
            "date": d.isoformat(),
            "weekday": WEEKDAY_NAMES[d.weekday()],
            "summary": summary.to_dict() if summary else None,
        })
    return {
        "employee_id": employee_id,
        "week_start": monday.isoformat(),
        "week_end": sunday.isoformat(),
        "days": days,
        "totals": _totals(summaries.values()),
    }


def get_month_summaries(*, employee_id: int, year: int, month: int, now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    first, last = month_bounds(year, month)
    summaries = _reconcile_until_today(employee_id, first, last, now)
    balance = get_month_row(employee_id, year, month)
    return {
        "employee_id": employee_id,
        "year": year,
        "month": month,
        "days": [summaries[d].to_dict() for d in sorted(summaries)],
        "totals": _totals(summaries.values()),
        "balance": balance.to_dict() if balance else None,
    }


def get_missing_entries(
    *,
    from_day: date,
    to_day: date,
    employee_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> list[dict]:
    """Days with missing entries or an unacknowledged review flag, for supervisor triage."""
    if to_day < from_day:
        raise InvalidInput("to_date must not be before from_date", field="to_date")
    if (to_day - from_day).days >= MAX_RANGE_DAYS:
        raise InvalidInput(f"Date range must not exceed {MAX_RANGE_DAYS} days", field="to_date")
    now = now or utcnow()

    employees = [get_employee(employee_id)] if employee_id is not None else list_tracked_employees()
    names = {e.id: e.name for e in employees}
    for employee in employees:
        _reconcile_until_today(employee.id, from_day, to_day, now)

    rows = (
        db.session.query(DailySummary)
        .filter(
            DailySummary.employee_id.in_(list(names)),
            DailySummary.date >= from_day,
            DailySummary.date <= to_day,
            (DailySummary.has_missing_entries.is_(True)) | (DailySummary.needs_review.is_(True)),
        )
        .order_by(DailySummary.date.desc(), DailySummary.employee_id.asc())
        .all()
    )
    result = []
    for row in rows:
        data = row.to_dict()
        data["employee_name"] = names.get(row.employee_id)
        result.append(data)
    return result


def get_presence_snapshot(*, now: Optional[datetime] = None) -> list[dict]:
    """Current state of every tracked employee from the latest entry of their local today."""
    now = now or utcnow()
    snapshot = []
    for employee in list_tracked_employees():
        today = local_date_of(now, employee.timezone)
        entries = entry_log_service.entries_for_day(employee, today)
        state = state_after(entries)
        last = entries[-1] if entries else None

        computation = compute_day(entries)
        minutes_today = computation.worked_minutes
        if state == STATE_PRESENT and computation.open_since is not None:
            running = int((now - computation.open_since).total_seconds() // 60)
            minutes_today += max(running, 0)

        snapshot.append({
            "employee_id": employee.id,
            "employee_name": employee.name,
            "state": state,
            "is_present": state != STATE_ABSENT,
            "since": to_utc_z(last.timestamp) if last else None,
            "last_entry_type": last.entry_type if last else None,
            "minutes_today": minutes_today,
        })
    return snapshot
