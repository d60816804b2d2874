# Overview: Day reconciler (entries + time model -> DailySummary), including auto-complete of stale open days.

"""
Day reconciler

compute_day() is pure: it walks one day's sorted entries through the
attendance state machine and sums closed present/break intervals.
reconcile_day() wraps it with the stored side of things: time model
target, holiday lookup, auto-complete of a day left open past the
cutoff, and the DailySummary upsert.

A day left open whose next day starts with the matching closing entry
is a shift over midnight, not a forgotten clock out: both days are
counted up to and from local midnight and nothing is synthesized.

Derived vs manual fields: reconcile_day() replaces every derived column
on each run. note, target_override_minutes and review_note are never
touched except that a synthesized entry (or an explicit review request by
the caller) raises needs_review and appends to review_note. needs_review
is never cleared here; only a human does that (update_day_info).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional, Sequence

from flask import current_app

from ..extensions import db
from ..models import DailySummary, Employee, TimeEntry
from worktime.time_utils import day_bounds_utc, format_local_time, local_date_of, local_to_utc, utcnow
from . import entry_log_service
from .calendar_service import is_holiday
from .directory_service import time_model_for
from .sequence_service import (
    ENTRY_TYPE_LABELS,
    STATE_ABSENT,
    STATE_BREAK,
    STATE_PRESENT,
    VALID_TRANSITIONS,
    SequenceValidation,
    state_after,
    validate,
)
from .settings_service import get_setting


@dataclass
class DayComputation:
    worked_minutes: int = 0
    break_minutes: int = 0
    first_clock_in: Optional[datetime] = None
    last_clock_out: Optional[datetime] = None
    # State after the last entry; open_since is the start of the still-open interval
    end_state: str = STATE_ABSENT
    open_since: Optional[datetime] = None
    open_break_since: Optional[datetime] = None
    has_work_interval: bool = False


@dataclass
class ReconcileResult:
    summary: DailySummary
    validation: SequenceValidation
    overtime_changed: bool
    synthesized: list[TimeEntry] = field(default_factory=list)


def _floor_minutes(seconds: float) -> int:
    return int(seconds // 60)


def compute_day(
    entries: Sequence,
    *,
    carry_in: str = STATE_ABSENT,
    day_start: Optional[datetime] = None,
    day_end: Optional[datetime] = None,
) -> DayComputation:
    """
    Sum closed intervals of one chronologically sorted day.

    A shift running over midnight is split at the day boundary:
    `carry_in` (with `day_start`) opens the day in that state, and
    `day_end` closes whatever is still open at the end of the day. The
    end_state still reports the state after the last entry.

    Illegal transitions are still consumed into the running state:
    - clock_in while present keeps the earlier start
    - clock_in or clock_out during a break closes the break
    - break_start while absent opens a break without any work before it
    - break_end while absent starts work
    Durations are summed in seconds and floored to the minute once.
    """
    result = DayComputation()
    worked_seconds = 0.0
    break_seconds = 0.0
    state = carry_in
    work_start: Optional[datetime] = day_start if carry_in == STATE_PRESENT else None
    break_start: Optional[datetime] = day_start if carry_in == STATE_BREAK else None

    for entry in entries:
        ts = entry.timestamp
        kind = entry.entry_type

        if kind == "clock_in":
            if result.first_clock_in is None:
                result.first_clock_in = ts
            if state == STATE_BREAK:
                break_seconds += (ts - break_start).total_seconds()
                break_start = None
            if state != STATE_PRESENT:
                work_start = ts
            state = STATE_PRESENT

        elif kind == "clock_out":
            if state == STATE_PRESENT:
                worked_seconds += (ts - work_start).total_seconds()
                result.has_work_interval = True
            elif state == STATE_BREAK:
                break_seconds += (ts - break_start).total_seconds()
            work_start = None
            break_start = None
            result.last_clock_out = ts
            state = STATE_ABSENT

        elif kind == "break_start":
            if state == STATE_PRESENT:
                worked_seconds += (ts - work_start).total_seconds()
                result.has_work_interval = True
                work_start = None
            if state != STATE_BREAK:
                break_start = ts
            state = STATE_BREAK

        elif kind == "break_end":
            if state == STATE_BREAK:
                break_seconds += (ts - break_start).total_seconds()
                break_start = None
            if state != STATE_PRESENT:
                work_start = ts
            state = STATE_PRESENT

    result.end_state = state
    result.open_since = work_start if state == STATE_PRESENT else None
    result.open_break_since = break_start if state == STATE_BREAK else None
    if day_end is not None:
        if state == STATE_PRESENT:
            worked_seconds += (day_end - work_start).total_seconds()
            result.has_work_interval = True
        elif state == STATE_BREAK:
            break_seconds += (day_end - break_start).total_seconds()

    result.worked_minutes = _floor_minutes(worked_seconds)
    result.break_minutes = _floor_minutes(break_seconds)
    return result


def continues_into(end_state: str, next_entries: Sequence) -> bool:
    """True when the next day opens with the entry that legally follows end_state (a shift over midnight)."""
    if end_state == STATE_ABSENT or not next_entries:
        return False
    return next_entries[0].entry_type in VALID_TRANSITIONS[end_state]


def _overnight_state(employee: Employee, day: date, entries: Sequence) -> tuple[str, bool]:
    """(state carried in from the previous day, whether this day's open state carries over into the next)."""
    previous = entry_log_service.entries_for_day(employee, day - timedelta(days=1))
    previous_state = state_after(previous)
    carry_in = previous_state if continues_into(previous_state, entries) else STATE_ABSENT
    following = entry_log_service.entries_for_day(employee, day + timedelta(days=1))
    return carry_in, continues_into(state_after(entries), following)


def break_is_short(computation: DayComputation, *, target_minutes: int, model) -> bool:
    """Mandatory break check: gross presence above threshold and above target + buffer, break below minimum - tolerance."""
    if model is None:
        return False
    gross = computation.worked_minutes + computation.break_minutes
    duty = gross > model.break_threshold_minutes and gross > target_minutes + model.break_threshold_buffer_minutes
    return duty and computation.break_minutes < model.min_break_minutes - model.break_tolerance_minutes


def _append_review_note(summary: DailySummary, note: str) -> None:
    summary.needs_review = True
    if summary.review_note:
        if note not in summary.review_note.split(" | "):
            summary.review_note = f"{summary.review_note} | {note}"
    else:
        summary.review_note = note


def get_or_create_summary(employee: Employee, day: date) -> tuple[DailySummary, bool]:
    summary = db.session.query(DailySummary).filter_by(employee_id=employee.id, date=day).first()
    if summary is not None:
        return summary, False
    summary = DailySummary(employee_id=employee.id, date=day, needs_review=False)
    db.session.add(summary)
    return summary, True


def _auto_complete(
    employee: Employee,
    day: date,
    entries: list[TimeEntry],
    computation: DayComputation,
    *,
    target_minutes: int,
    model,
) -> list[TimeEntry]:
    """Close an open day with synthetic entries. Returns the appended rows (already flushed)."""
    tz = entry_log_service.employee_timezone(employee)
    cutoff = local_to_utc(day, get_setting("auto_complete_cutoff"), tz)
    strategy = get_setting("auto_complete_strategy")
    default_break = timedelta(minutes=model.default_break_minutes if model else 30)
    last_ts = entries[-1].timestamp
    reason = f"Auto-completed: day left open after {format_local_time(cutoff, tz)}"

    synthesized = []
    if computation.end_state == STATE_BREAK:
        break_end_ts = max(min(computation.open_break_since + default_break, cutoff), last_ts)
        synthesized.append(entry_log_service.append_entry(
            employee=employee,
            entry_type="break_end",
            timestamp=break_end_ts,
            source="auto_complete",
            is_correction=True,
            correction_reason=reason,
        ))
        last_ts = break_end_ts

    clock_out_ts = cutoff
    if strategy == "target" and computation.first_clock_in is not None:
        clock_out_ts = min(computation.first_clock_in + timedelta(minutes=target_minutes) + default_break, cutoff)
    clock_out_ts = max(clock_out_ts, last_ts)
    synthesized.append(entry_log_service.append_entry(
        employee=employee,
        entry_type="clock_out",
        timestamp=clock_out_ts,
        source="auto_complete",
        is_correction=True,
        correction_reason=reason,
    ))
    return synthesized


def reconcile_day(
    employee: Employee,
    day: date,
    *,
    now: Optional[datetime] = None,
    review_note: Optional[str] = None,
) -> ReconcileResult:
    """
    Derive and store the DailySummary of one employee-day.

    Must run inside the employee's section; flushes but does not commit.
    `review_note` raises needs_review with that note (self-corrections,
    writes that left sequence warnings behind).
    """
    now = now or utcnow()
    tz = entry_log_service.employee_timezone(employee)
    today = local_date_of(now, tz)
    model = time_model_for(employee)

    summary, created = get_or_create_summary(employee, day)
    old_overtime = None if created else summary.overtime_minutes

    target = model.target_for_weekday(day.weekday()) if model is not None else None
    effective_target = summary.target_override_minutes if summary.target_override_minutes is not None else (target or 0)

    entries = entry_log_service.entries_for_day(employee, day)
    carry_in, carries_over = _overnight_state(employee, day, entries)
    day_start, day_end = day_bounds_utc(day, tz)
    bounds = {"carry_in": carry_in, "day_start": day_start, "day_end": day_end if carries_over else None}
    computation = compute_day(entries, **bounds)

    synthesized: list[TimeEntry] = []
    if (
        computation.end_state != STATE_ABSENT
        and not carries_over
        and now >= local_to_utc(day, get_setting("auto_complete_cutoff"), tz)
    ):
        synthesized = _auto_complete(
            employee, day, entries, computation, target_minutes=effective_target, model=model,
        )
        entries = entry_log_service.entries_for_day(employee, day)
        computation = compute_day(entries, **bounds)
        labels = " and ".join(
            f'"{ENTRY_TYPE_LABELS[e.entry_type]}" at {format_local_time(e.timestamp, tz)}' for e in synthesized
        )
        _append_review_note(summary, f"Auto-complete synthesized {labels}, no closing entry was recorded")
        current_app.logger.info(
            "Auto-completed day %s of employee %s with %d synthetic entries",
            day.isoformat(), employee.id, len(synthesized),
        )

    validation = validate(entries, tz=tz)

    # Missing entries
    missing: list[str] = []
    if day < today and not carries_over:
        if computation.end_state == STATE_BREAK:
            missing.extend(["break_end", "clock_out"])
        elif computation.end_state == STATE_PRESENT:
            missing.append("clock_out")
    for e in entries:
        if e.source == "auto_complete" and e.entry_type not in missing:
            missing.append(e.entry_type)

    holiday_name = is_holiday(day, employee.region)
    if not entries and effective_target > 0 and day < today and holiday_name is None:
        missing.append("no_entries")

    worked = computation.worked_minutes
    credited = 0
    if holiday_name is not None and get_setting("holiday_credits_target"):
        credited = effective_target
        worked += credited

    warnings = [w.to_dict() for w in validation.warnings]
    if break_is_short(computation, target_minutes=effective_target, model=model):
        warnings.append({
            "entry_id": None,
            "time": None,
            "entry_type": None,
            "message": f"Break of {computation.break_minutes} min is below the required {model.min_break_minutes} min",
            "severity": "break_short",
        })

    # Status
    if holiday_name is not None:
        status = "holiday"
    elif not missing and computation.has_work_interval:
        status = "complete"
    elif effective_target > 0 and not entries:
        status = "absent"
    else:
        status = "open"

    summary.target_minutes = target
    summary.worked_minutes = worked
    summary.break_minutes = computation.break_minutes
    summary.credited_minutes = credited
    summary.overtime_minutes = worked - effective_target
    summary.status = status
    summary.first_clock_in = computation.first_clock_in
    summary.last_clock_out = computation.last_clock_out
    summary.has_missing_entries = bool(missing)
    summary.missing_entry_types = missing or None
    summary.warnings = warnings or None
    summary.holiday_name = holiday_name

    if review_note:
        _append_review_note(summary, review_note)

    db.session.flush()

    if old_overtime is None:
        overtime_changed = summary.overtime_minutes != 0
    else:
        overtime_changed = old_overtime != summary.overtime_minutes

    return ReconcileResult(
        summary=summary,
        validation=validation,
        overtime_changed=overtime_changed,
        synthesized=synthesized,
    )


def stale_open_days(employee: Employee, *, now: Optional[datetime] = None, lookback_days: Optional[int] = None) -> list[date]:
    """Days before today (within the lookback) whose entries leave the employee present or on a break."""
    now = now or utcnow()
    if lookback_days is None:
        lookback_days = get_setting("stale_day_lookback_days")
    if lookback_days <= 0:
        return []
    today = local_date_of(now, entry_log_service.employee_timezone(employee))
    stale = []
    for day in entry_log_service.days_with_entries(employee, today - timedelta(days=lookback_days), today - timedelta(days=1)):
        entries = entry_log_service.entries_for_day(employee, day)
        if state_after(entries) != STATE_ABSENT and not _overnight_state(employee, day, entries)[1]:
            stale.append(day)
    return stale
