# Overview: Correction/edit pipeline: every write to the entry log and its downstream reconciliation.

"""
Timekeeping write path

Each public operation runs inside the employee's exclusive section and
follows the same sequence:

    validate input -> write entry log -> reconcile affected day(s)
    -> enqueue ledger cascade from the earliest month whose overtime moved
    -> commit -> run the cascade

Input problems raise InvalidInput/NotFound before anything is written.
Sequence problems never block a write: they come back as warnings, are
stored on the day, and raise the day's needs_review when the write
introduced them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Optional

from flask import current_app

from ..extensions import db
from ..models import DailySummary, Employee, TimeEntry
from ..validation import (
    MAX_DAY_MINUTES,
    InvalidInput,
    coerce_int,
    parse_entry_type,
    parse_timestamp,
    require_reason,
)
from worktime.time_utils import format_local_time, local_date_of, utcnow
from . import entry_log_service, sequence_service
from .audit_service import append_audit_event
from .balance_service import cascade_employee, enqueue_cascade
from .concurrency import lock_employee, run_in_employee_section
from .directory_service import get_employee, is_time_tracking_enabled, list_tracked_employees
from .reconcile_service import ReconcileResult, get_or_create_summary, reconcile_day, stale_open_days
from .sequence_service import ENTRY_TYPE_LABELS, STATE_ABSENT, SequenceValidation, ValidationWarning
from .settings_service import get_setting

LIVE_SOURCES = ("web", "terminal")

_UNSET: Any = object()


@dataclass
class WriteResult:
    """What a write returns to the caller: the touched entry, the day's post-write validation, the reconciled days."""
    entry: Optional[TimeEntry]
    validation: SequenceValidation
    summaries: list[DailySummary]
    notices: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "entry": self.entry.to_dict() if self.entry is not None else None,
            "validation": self.validation.to_dict(),
            "warnings": [w.to_dict() for w in self.validation.warnings],
            "summaries": [s.to_dict() for s in self.summaries],
            "notices": list(self.notices),
        }


# -----------------------------------------------------------------------------
# Shared helpers
# -----------------------------------------------------------------------------

def _introduced_warnings(
    before: SequenceValidation,
    after: SequenceValidation,
    touched_entry_id: Optional[int],
) -> list[ValidationWarning]:
    """Warnings of the post-write day that were not there before, or that point at the touched entry."""
    previous = {(w.entry_id, w.message) for w in before.warnings}
    return [
        w for w in after.warnings
        if (w.entry_id, w.message) not in previous
        or (touched_entry_id is not None and w.entry_id == touched_entry_id)
    ]


def _warning_note(warnings: list[ValidationWarning]) -> Optional[str]:
    if not warnings:
        return None
    return "Sequence warning: " + "; ".join(w.message for w in warnings)


def _validate_days(employee: Employee, days) -> dict[date, SequenceValidation]:
    tz = entry_log_service.employee_timezone(employee)
    return {day: sequence_service.validate(entry_log_service.entries_for_day(employee, day), tz=tz) for day in days}


def _review_notes(
    employee: Employee,
    before: dict[date, SequenceValidation],
    touched_entry_id: Optional[int] = None,
) -> dict[date, str]:
    """Per-day review notes for warnings the write left behind on any of the days validated in `before`."""
    notes = {}
    for day, after in _validate_days(employee, before).items():
        note = _warning_note(_introduced_warnings(before[day], after, touched_entry_id))
        if note:
            notes[day] = note
    return notes


def _join_notes(*notes: Optional[str]) -> Optional[str]:
    parts = [n for n in notes if n]
    return " | ".join(parts) if parts else None


def _reconcile_days(
    employee: Employee,
    days,
    *,
    now: datetime,
    review_notes: Optional[dict[date, str]] = None,
) -> list[ReconcileResult]:
    """Reconcile each day, audit synthesized entries, and point the cascade at the earliest changed month."""
    review_notes = review_notes or {}
    days = set(days)
    # An open previous day may now continue over midnight into a touched day, or stop doing so
    for day in list(days):
        previous = day - timedelta(days=1)
        if sequence_service.state_after(entry_log_service.entries_for_day(employee, previous)) != STATE_ABSENT:
            days.add(previous)

    results = []
    changed_months = []
    for day in sorted(days):
        result = reconcile_day(employee, day, now=now, review_note=review_notes.get(day))
        for synthetic in result.synthesized:
            append_audit_event(
                employee_id=employee.id,
                event_type="entry.auto_completed",
                entity_type="time_entry",
                entity_id=synthetic.id,
                occurred_at=now,
                note=synthetic.correction_reason,
                payload={"entry_type": synthetic.entry_type, "timestamp": synthetic.timestamp, "date": day},
            )
        if result.overtime_changed:
            changed_months.append((day.year, day.month))
        results.append(result)

    if changed_months:
        year, month = min(changed_months)
        enqueue_cascade(employee.id, year, month)
    return results


def _result_for(results: list[ReconcileResult], day: date) -> ReconcileResult:
    return next(r for r in results if r.summary.date == day)


def _run_write(employee_id: int, func, *, now: datetime):
    """Run a write in the employee's section, then the ledger cascade it enqueued."""
    result = run_in_employee_section(employee_id, func)
    cascade_employee(employee_id, now=now)
    return result


def _require_tracking(employee: Employee) -> None:
    if not is_time_tracking_enabled(employee):
        raise InvalidInput(f"Time tracking is not enabled for employee {employee.id}", field="employee_id")


def _entry_label(entry_type: str, timestamp: datetime, tz: Optional[str]) -> str:
    return f'"{ENTRY_TYPE_LABELS[entry_type]}" at {format_local_time(timestamp, tz)}'


def _append_and_reconcile(
    employee: Employee,
    *,
    entry_type: str,
    timestamp: datetime,
    source: str,
    now: datetime,
    terminal_id: Optional[str] = None,
    correction_reason: Optional[str] = None,
    corrected_by: Optional[int] = None,
    review_note: Optional[str] = None,
    notices: Optional[list[str]] = None,
) -> WriteResult:
    day = entry_log_service.local_day_of(employee, timestamp)
    tz = entry_log_service.employee_timezone(employee)
    before = sequence_service.validate(entry_log_service.entries_for_day(employee, day), tz=tz)

    entry = entry_log_service.append_entry(
        employee=employee,
        entry_type=entry_type,
        timestamp=timestamp,
        source=source,
        terminal_id=terminal_id,
        is_correction=source not in LIVE_SOURCES,
        correction_reason=correction_reason,
        corrected_by=corrected_by,
    )

    after = sequence_service.validate(entry_log_service.entries_for_day(employee, day), tz=tz)
    note = _join_notes(review_note, _warning_note(_introduced_warnings(before, after, entry.id)))
    results = _reconcile_days(employee, [day], now=now, review_notes={day: note} if note else None)

    append_audit_event(
        employee_id=employee.id,
        event_type=f"entry.{source}",
        entity_type="time_entry",
        entity_id=entry.id,
        actor_id=corrected_by,
        occurred_at=now,
        note=correction_reason,
        payload={"entry_type": entry_type, "timestamp": timestamp, "date": day, "warnings": len(after.warnings)},
    )
    return WriteResult(
        entry=entry,
        validation=_result_for(results, day).validation,
        summaries=[r.summary for r in results],
        notices=notices or [],
    )


# -----------------------------------------------------------------------------
# Live stamps
# -----------------------------------------------------------------------------

def stamp(
    *,
    employee_id: int,
    entry_type: str,
    source: str = "web",
    terminal_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> WriteResult:
    """
    Record a live entry at `now`. Never rejected for sequence reasons.

    A clock_in first reconciles the employee's recent open days, so a
    forgotten clock_out from earlier in the week is auto-completed before the
    new day starts; those days come back as notices.
    """
    entry_type = parse_entry_type(entry_type)
    if source not in LIVE_SOURCES:
        raise InvalidInput(f"source must be one of: {', '.join(LIVE_SOURCES)}", field="source")
    now = now or utcnow()

    def _op():
        employee = lock_employee(employee_id)
        _require_tracking(employee)

        notices = []
        if entry_type == "clock_in":
            stale = stale_open_days(employee, now=now)
            for result in _reconcile_days(employee, stale, now=now):
                if result.synthesized:
                    notices.append(f"{result.summary.date.isoformat()}: {result.summary.review_note}")

        result = _append_and_reconcile(
            employee,
            entry_type=entry_type,
            timestamp=now,
            source=source,
            terminal_id=terminal_id,
            now=now,
            notices=notices,
        )
        db.session.commit()
        return result

    return _run_write(employee_id, _op, now=now)


# -----------------------------------------------------------------------------
# Corrections
# -----------------------------------------------------------------------------

def submit_self_correction(
    *,
    employee_id: int,
    entry_type: str,
    timestamp: Any,
    reason: Any,
    now: Optional[datetime] = None,
) -> WriteResult:
    """
    Employee-submitted retroactive entry. Limited to the self-correction
    window (today and yesterday by default) and never in the future. The
    day always needs supervisor review afterwards.
    """
    entry_type = parse_entry_type(entry_type)
    timestamp = parse_timestamp(timestamp)
    reason = require_reason(reason, min_length=get_setting("min_reason_length"))
    now = now or utcnow()
    if timestamp > now:
        raise InvalidInput("timestamp must not be in the future", field="timestamp")

    def _op():
        employee = lock_employee(employee_id)
        _require_tracking(employee)
        tz = entry_log_service.employee_timezone(employee)

        window = get_setting("self_correction_window_days")
        age = (local_date_of(now, tz) - entry_log_service.local_day_of(employee, timestamp)).days
        if age > window:
            raise InvalidInput(
                f"Self-corrections are only possible for the last {window} day(s)",
                field="timestamp",
            )

        result = _append_and_reconcile(
            employee,
            entry_type=entry_type,
            timestamp=timestamp,
            source="self_correction",
            now=now,
            correction_reason=reason,
            corrected_by=employee.id,
            review_note=f"Self-correction {_entry_label(entry_type, timestamp, tz)}: {reason}",
        )
        db.session.commit()
        return result

    return _run_write(employee_id, _op, now=now)


def admin_correction(
    *,
    employee_id: int,
    entry_type: str,
    timestamp: Any,
    reason: Any,
    actor_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> WriteResult:
    """Supervisor-entered retroactive entry. No acknowledgement needed unless it leaves sequence warnings."""
    entry_type = parse_entry_type(entry_type)
    timestamp = parse_timestamp(timestamp)
    reason = require_reason(reason, min_length=get_setting("min_reason_length"))
    now = now or utcnow()

    def _op():
        employee = lock_employee(employee_id)
        result = _append_and_reconcile(
            employee,
            entry_type=entry_type,
            timestamp=timestamp,
            source="admin_correction",
            now=now,
            correction_reason=reason,
            corrected_by=actor_id,
        )
        db.session.commit()
        return result

    return _run_write(employee_id, _op, now=now)


# -----------------------------------------------------------------------------
# Edits and deletes
# -----------------------------------------------------------------------------

def _edit_targets(entry_type: Any, timestamp: Any) -> tuple[Optional[str], Optional[datetime]]:
    new_type = parse_entry_type(entry_type) if entry_type is not None else None
    new_ts = parse_timestamp(timestamp) if timestamp is not None else None
    if new_type is None and new_ts is None:
        raise InvalidInput("entry_type or timestamp is required", field="entry_type")
    return new_type, new_ts


def _preview(entry: TimeEntry, employee: Employee, new_type: Optional[str], new_ts: Optional[datetime]) -> dict:
    tz = entry_log_service.employee_timezone(employee)
    source_day = entry_log_service.local_day_of(employee, entry.timestamp)
    target_day = entry_log_service.local_day_of(employee, new_ts or entry.timestamp)

    target_entries = entry_log_service.entries_for_day(employee, target_day)
    if target_day != source_day:
        target_entries = list(target_entries) + [entry]
    validation = sequence_service.preview_edit(
        target_entries, entry.id, new_type=new_type, new_timestamp=new_ts, tz=tz,
    )

    preview = {
        "entry_id": entry.id,
        "date": target_day.isoformat(),
        "validation": validation.to_dict(),
        "source_date": None,
        "source_validation": None,
    }
    if target_day != source_day:
        source_validation = sequence_service.preview_delete(
            entry_log_service.entries_for_day(employee, source_day), entry.id, tz=tz,
        )
        preview["source_date"] = source_day.isoformat()
        preview["source_validation"] = source_validation.to_dict()
    return preview


def preview_edit(*, entry_id: int, entry_type: Any = None, timestamp: Any = None) -> dict:
    """Validator result for the day(s) an edit would touch, without writing anything."""
    new_type, new_ts = _edit_targets(entry_type, timestamp)
    entry = entry_log_service.get_entry(entry_id)
    employee = get_employee(entry.employee_id)
    return _preview(entry, employee, new_type, new_ts)


def edit_entry(
    *,
    entry_id: int,
    entry_type: Any = None,
    timestamp: Any = None,
    reason: Any,
    actor_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> WriteResult:
    """
    Change an entry's type and/or timestamp. The first edit keeps the
    pre-edit values in original_*. An entry moved across midnight
    reconciles both days.
    """
    new_type, new_ts = _edit_targets(entry_type, timestamp)
    reason = require_reason(reason, min_length=get_setting("min_reason_length"))
    now = now or utcnow()
    employee_id = entry_log_service.get_entry(entry_id).employee_id

    def _op():
        employee = lock_employee(employee_id)
        entry = entry_log_service.get_entry(entry_id)

        source_day = entry_log_service.local_day_of(employee, entry.timestamp)
        target_day = entry_log_service.local_day_of(employee, new_ts or entry.timestamp)
        before = _validate_days(employee, {source_day, target_day})
        before_values = {"entry_type": entry.entry_type, "timestamp": entry.timestamp}

        if entry.original_entry_type is None and entry.original_timestamp is None:
            entry.original_entry_type = entry.entry_type
            entry.original_timestamp = entry.timestamp
        if new_type is not None:
            entry.entry_type = new_type
        if new_ts is not None:
            entry.timestamp = new_ts
        entry.is_correction = True
        entry.correction_reason = reason
        entry.corrected_by = actor_id
        db.session.flush()

        results = _reconcile_days(
            employee, {source_day, target_day}, now=now,
            review_notes=_review_notes(employee, before, entry.id),
        )

        append_audit_event(
            employee_id=employee.id,
            event_type="entry.edited",
            entity_type="time_entry",
            entity_id=entry.id,
            actor_id=actor_id,
            occurred_at=now,
            note=reason,
            payload={
                "before": before_values,
                "after": {"entry_type": entry.entry_type, "timestamp": entry.timestamp},
                "days": sorted({source_day, target_day}),
            },
        )
        db.session.commit()

        target = _result_for(results, target_day)
        return WriteResult(entry=entry, validation=target.validation, summaries=[r.summary for r in results])

    return _run_write(employee_id, _op, now=now)


def _require_confirm(confirm: Any) -> None:
    if confirm is not True:
        raise InvalidInput("Deletion must be confirmed (confirm=true)", field="confirm")


def _soft_delete(entry: TimeEntry, *, actor_id: Optional[int], reason: Optional[str], now: datetime) -> None:
    entry.is_deleted = True
    entry.deleted_at = now
    entry.deleted_by = actor_id
    entry.deletion_reason = reason


def delete_entry(
    *,
    entry_id: int,
    confirm: Any,
    reason: Any = None,
    actor_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> WriteResult:
    """Soft-delete one entry and reconcile its day."""
    _require_confirm(confirm)
    reason = str(reason).strip() if reason else None
    now = now or utcnow()
    employee_id = entry_log_service.get_entry(entry_id).employee_id

    def _op():
        employee = lock_employee(employee_id)
        entry = entry_log_service.get_entry(entry_id)
        day = entry_log_service.local_day_of(employee, entry.timestamp)
        before = _validate_days(employee, [day])

        _soft_delete(entry, actor_id=actor_id, reason=reason, now=now)
        db.session.flush()
        results = _reconcile_days(employee, [day], now=now, review_notes=_review_notes(employee, before))

        append_audit_event(
            employee_id=employee.id,
            event_type="entry.deleted",
            entity_type="time_entry",
            entity_id=entry.id,
            actor_id=actor_id,
            occurred_at=now,
            note=reason,
            payload={"entry_type": entry.entry_type, "timestamp": entry.timestamp, "date": day},
        )
        db.session.commit()
        return WriteResult(entry=entry, validation=_result_for(results, day).validation, summaries=[r.summary for r in results])

    return _run_write(employee_id, _op, now=now)


def reset_day(
    *,
    employee_id: int,
    day: date,
    reason: Any,
    confirm: Any,
    actor_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> WriteResult:
    """Soft-delete every entry of one day, then reconcile it."""
    _require_confirm(confirm)
    reason = require_reason(reason, min_length=get_setting("min_reason_length"))
    now = now or utcnow()

    def _op():
        employee = lock_employee(employee_id)
        entries = entry_log_service.entries_for_day(employee, day)
        before = _validate_days(employee, [day])
        for entry in entries:
            _soft_delete(entry, actor_id=actor_id, reason=reason, now=now)
        db.session.flush()
        results = _reconcile_days(employee, [day], now=now, review_notes=_review_notes(employee, before))

        append_audit_event(
            employee_id=employee.id,
            event_type="day.reset",
            entity_type="daily_summary",
            entity_id=_result_for(results, day).summary.id,
            actor_id=actor_id,
            occurred_at=now,
            note=reason,
            payload={"date": day, "deleted_entry_ids": [e.id for e in entries]},
        )
        db.session.commit()
        return WriteResult(entry=None, validation=_result_for(results, day).validation, summaries=[r.summary for r in results])

    return _run_write(employee_id, _op, now=now)


def update_day_info(
    *,
    employee_id: int,
    day: date,
    note: Any = _UNSET,
    target_override_minutes: Any = _UNSET,
    needs_review: Any = _UNSET,
    actor_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> DailySummary:
    """
    Write the manual fields of a day. Clearing needs_review also clears
    review_note. The day is reconciled first, so a human acknowledgement
    given here wins over a review flag raised by that reconciliation.
    """
    if target_override_minutes is not _UNSET and target_override_minutes is not None:
        target_override_minutes = coerce_int(target_override_minutes, "target_override_minutes")
        if not 0 <= target_override_minutes <= MAX_DAY_MINUTES:
            raise InvalidInput(
                f"target_override_minutes must be between 0 and {MAX_DAY_MINUTES}",
                field="target_override_minutes",
            )
    if needs_review is not _UNSET and not isinstance(needs_review, bool):
        raise InvalidInput("needs_review must be a boolean", field="needs_review")
    now = now or utcnow()

    def _op():
        employee = lock_employee(employee_id)
        summary, _ = get_or_create_summary(employee, day)
        before = {
            "note": summary.note,
            "target_override_minutes": summary.target_override_minutes,
            "needs_review": summary.needs_review,
        }

        if target_override_minutes is not _UNSET:
            summary.target_override_minutes = target_override_minutes
        _reconcile_days(employee, [day], now=now)

        if note is not _UNSET:
            summary.note = (str(note).strip() or None) if note is not None else None
        if needs_review is not _UNSET:
            summary.needs_review = needs_review
            if not needs_review:
                summary.review_note = None

        append_audit_event(
            employee_id=employee.id,
            event_type="day.updated",
            entity_type="daily_summary",
            entity_id=summary.id,
            actor_id=actor_id,
            occurred_at=now,
            payload={
                "date": day,
                "before": before,
                "after": {
                    "note": summary.note,
                    "target_override_minutes": summary.target_override_minutes,
                    "needs_review": summary.needs_review,
                },
            },
        )
        db.session.commit()
        return summary

    return _run_write(employee_id, _op, now=now)


# -----------------------------------------------------------------------------
# Reads that may reconcile, and sweeps
# -----------------------------------------------------------------------------

def validate_day(*, employee_id: int, day: date) -> SequenceValidation:
    """Run the sequence validator over the stored day. Read only."""
    employee = get_employee(employee_id)
    return sequence_service.validate(
        entry_log_service.entries_for_day(employee, day),
        tz=entry_log_service.employee_timezone(employee),
    )


def reconcile_days(*, employee_id: int, days, now: Optional[datetime] = None) -> list[DailySummary]:
    """Reconcile the given days on demand (auto-complete included) and run the cascade if overtime moved."""
    now = now or utcnow()

    def _op():
        employee = lock_employee(employee_id)
        results = _reconcile_days(employee, days, now=now)
        db.session.commit()
        return [r.summary for r in results]

    return _run_write(employee_id, _op, now=now)


def reconcile_range(*, employee_id: int, from_day: date, to_day: date, now: Optional[datetime] = None) -> list[DailySummary]:
    if to_day < from_day:
        raise InvalidInput("to_date must not be before from_date", field="to_date")
    days = [from_day + timedelta(days=i) for i in range((to_day - from_day).days + 1)]
    return reconcile_days(employee_id=employee_id, days=days, now=now)


def sweep_stale_days(*, now: Optional[datetime] = None) -> dict[int, list[date]]:
    """
    Auto-complete open days of every tracked employee. Same reconciliation
    as on read, only triggered for everyone at once (cron/CLI).
    """
    now = now or utcnow()
    swept: dict[int, list[date]] = {}
    for employee in list_tracked_employees():
        employee_id = employee.id

        def _op(employee_id=employee_id):
            locked = lock_employee(employee_id)
            stale = stale_open_days(locked, now=now)
            _reconcile_days(locked, stale, now=now)
            db.session.commit()
            return stale

        stale = _run_write(employee_id, _op, now=now)
        if stale:
            swept[employee_id] = stale
            current_app.logger.info(
                "Swept %d open day(s) of employee %s", len(stale), employee_id,
            )
    return swept
