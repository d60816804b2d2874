# Overview: Monthly overtime ledger (recompute, cascade, adjustments, payouts, balance reads).

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from flask import current_app

from ..extensions import db
from ..models import DailySummary, Employee, MonthlyBalance, PendingRecompute
from ..validation import InvalidInput, require_reason
from worktime.time_utils import local_date_of, month_bounds, next_month, previous_month, utcnow
from .audit_service import append_audit_event
from .concurrency import lock_employee, run_in_employee_section
from .directory_service import get_employee, list_tracked_employees
from .settings_service import get_setting

"""
Balance ledger invariants

- balance = carryover + overtime + adjustment - payout, per month.
- carryover(N) == balance(N-1). The first ledger month of an employee
  carries Employee.initial_balance_minutes.
- A month only moves when its inputs move: recomputing with unchanged
  inputs assigns nothing, so the row (and its to_dict()) stays identical.
- Ledger rows never lie after the current month: adjustments, payouts and
  recomputes for a later month are rejected.
- Cascades run strictly forward, from the earliest affected month up to the
  current month, through a durable PendingRecompute cursor. Each step is
  committed; an interrupted cascade resumes from the stored cursor and
  converges to the same end state.
"""


class InsufficientBalance(ValueError):
    """Payout exceeds the available balance; nothing is written."""

    def __init__(self, *, requested: int, available: int):
        super().__init__(f"Payout of {requested} min exceeds available balance of {available} min")
        self.requested = requested
        self.available = available

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "requested_minutes": self.requested,
            "available_minutes": self.available,
        }


def _ym(year: int, month: int) -> tuple[int, int]:
    return (year, month)


def current_month_for(employee: Employee, *, now: Optional[datetime] = None) -> tuple[int, int]:
    today = local_date_of(now or utcnow(), employee.timezone)
    return today.year, today.month


def get_month_row(employee_id: int, year: int, month: int) -> MonthlyBalance | None:
    return (
        db.session.query(MonthlyBalance)
        .filter_by(employee_id=employee_id, year=year, month=month)
        .first()
    )


def _latest_row_before(employee_id: int, year: int, month: int) -> MonthlyBalance | None:
    return (
        db.session.query(MonthlyBalance)
        .filter(MonthlyBalance.employee_id == employee_id)
        .filter(
            (MonthlyBalance.year < year)
            | ((MonthlyBalance.year == year) & (MonthlyBalance.month < month))
        )
        .order_by(MonthlyBalance.year.desc(), MonthlyBalance.month.desc())
        .first()
    )


def _month_sums(employee_id: int, year: int, month: int) -> tuple[int, int, int]:
    """(overtime, effective target, worked) summed over the month's DailySummary rows."""
    first, last = month_bounds(year, month)
    rows = (
        db.session.query(DailySummary)
        .filter(
            DailySummary.employee_id == employee_id,
            DailySummary.date >= first,
            DailySummary.date <= last,
        )
        .all()
    )
    overtime = sum(r.overtime_minutes for r in rows)
    target = sum(r.effective_target_minutes for r in rows)
    worked = sum(r.worked_minutes for r in rows)
    return overtime, target, worked


def _recompute_single(employee: Employee, year: int, month: int) -> tuple[MonthlyBalance, bool]:
    prev_year, prev_month = previous_month(year, month)
    prev = get_month_row(employee.id, prev_year, prev_month)
    carryover = prev.balance_minutes if prev is not None else (employee.initial_balance_minutes or 0)

    row = get_month_row(employee.id, year, month)
    created = row is None
    if created:
        row = MonthlyBalance(
            employee_id=employee.id,
            year=year,
            month=month,
            adjustment_minutes=0,
            payout_minutes=0,
        )
        db.session.add(row)

    overtime, target, worked = _month_sums(employee.id, year, month)
    values = {
        "carryover_minutes": carryover,
        "overtime_minutes": overtime,
        "target_minutes": target,
        "worked_minutes": worked,
        "balance_minutes": carryover + overtime + (row.adjustment_minutes or 0) - (row.payout_minutes or 0),
    }

    changed = created
    for attr, value in values.items():
        if getattr(row, attr) != value:
            setattr(row, attr, value)
            changed = True

    db.session.flush()
    return row, changed


def recompute_month_row(employee: Employee, year: int, month: int) -> tuple[MonthlyBalance, bool]:
    """
    Recompute one month, filling any gap after the latest earlier row first
    so the carryover chain never skips a month. Flushes, does not commit.
    Returns (row, balance_or_inputs_changed).
    """
    latest = _latest_row_before(employee.id, year, month)
    if latest is not None:
        y, m = next_month(latest.year, latest.month)
        while _ym(y, m) < _ym(year, month):
            if get_month_row(employee.id, y, m) is None:
                _recompute_single(employee, y, m)
            y, m = next_month(y, m)
    return _recompute_single(employee, year, month)


# -----------------------------------------------------------------------------
# Cascade
# -----------------------------------------------------------------------------

def enqueue_cascade(employee_id: int, year: int, month: int) -> PendingRecompute:
    """Point the employee's cascade cursor at (year, month), unless it already sits earlier."""
    item = db.session.query(PendingRecompute).filter_by(employee_id=employee_id, kind="month").first()
    if item is None:
        item = PendingRecompute(employee_id=employee_id, kind="month", year=year, month=month)
        db.session.add(item)
    elif _ym(year, month) < _ym(item.year, item.month):
        item.year, item.month = year, month
    db.session.flush()
    return item


def run_cascade(employee: Employee, *, now: Optional[datetime] = None) -> int:
    """
    Advance the employee's cursor month by month up to the current month,
    committing after each step. Returns the number of months recomputed.
    Must run inside the employee's section.
    """
    item = db.session.query(PendingRecompute).filter_by(employee_id=employee.id, kind="month").first()
    if item is None:
        return 0

    end = max(current_month_for(employee, now=now), _ym(item.year, item.month))
    steps = 0
    while True:
        recompute_month_row(employee, item.year, item.month)
        steps += 1
        if _ym(item.year, item.month) >= end:
            db.session.delete(item)
            db.session.commit()
            break
        item.year, item.month = next_month(item.year, item.month)
        db.session.commit()

    if steps > 1:
        current_app.logger.info("Balance cascade for employee %s recomputed %d months", employee.id, steps)
    return steps


def cascade_employee(employee_id: int, *, now: Optional[datetime] = None) -> int:
    """
    Run the employee's pending cascade in its own section.

    Kept apart from the write that enqueued it: the write is committed
    first, so a retry of the cascade can never re-apply the write.
    """
    def _op():
        return run_cascade(get_employee(employee_id), now=now)

    return run_in_employee_section(employee_id, _op)


def process_pending_recomputes(*, employee_id: Optional[int] = None, now: Optional[datetime] = None) -> dict[int, int]:
    """Resume every stored cascade (or only one employee's). Returns {employee_id: months recomputed}."""
    query = db.session.query(PendingRecompute.employee_id).filter_by(kind="month")
    if employee_id is not None:
        query = query.filter_by(employee_id=employee_id)
    employee_ids = sorted({row[0] for row in query.all()})

    processed = {}
    for eid in employee_ids:
        current_app.logger.warning("Resuming interrupted balance cascade for employee %s", eid)
        processed[eid] = cascade_employee(eid, now=now)
    return processed


# -----------------------------------------------------------------------------
# Operations
# -----------------------------------------------------------------------------

def _validate_month(year: int, month: int) -> None:
    if not 1 <= month <= 12:
        raise InvalidInput("month must be between 1 and 12", field="month")


def _reject_future_month(employee: Employee, year: int, month: int, now: Optional[datetime]) -> None:
    if _ym(year, month) > current_month_for(employee, now=now):
        raise InvalidInput("month must not be after the current month", field="month")


def _available_for_payout(employee: Employee, year: int, month: int, now: Optional[datetime]) -> int:
    """
    Lowest balance from (year, month) through the current month. A payout
    lowers every later month by the same amount, so none of them may go
    below zero.
    """
    end = current_month_for(employee, now=now)
    y, m = year, month
    balances = []
    while True:
        row, _ = recompute_month_row(employee, y, m)
        balances.append(row.balance_minutes)
        if _ym(y, m) >= end:
            return min(balances)
        y, m = next_month(y, m)


def recompute_month(*, employee_id: int, year: int, month: int, now: Optional[datetime] = None) -> MonthlyBalance:
    """Recompute (year, month) and cascade forward to the current month."""
    _validate_month(year, month)

    def _op():
        employee = lock_employee(employee_id)
        _reject_future_month(employee, year, month, now)
        enqueue_cascade(employee.id, year, month)
        db.session.commit()

    run_in_employee_section(employee_id, _op)
    cascade_employee(employee_id, now=now)
    return get_month_row(employee_id, year, month)


def recompute_all(*, year: int, month: int, now: Optional[datetime] = None) -> list[MonthlyBalance]:
    return [
        recompute_month(employee_id=e.id, year=year, month=month, now=now)
        for e in list_tracked_employees()
    ]


def record_adjustment(
    *,
    employee_id: int,
    year: int,
    month: int,
    minutes: int,
    reason: str,
    actor_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> MonthlyBalance:
    """
    Add a manual correction to a month. The reason is appended to the
    month's adjustment log as "YYYY-MM-DD: reason (+N min)".
    """
    _validate_month(year, month)
    if minutes == 0:
        raise InvalidInput("minutes must not be zero", field="minutes")
    reason = require_reason(reason, min_length=get_setting("min_reason_length"))

    def _op():
        employee = lock_employee(employee_id)
        _reject_future_month(employee, year, month, now)
        row, _ = recompute_month_row(employee, year, month)
        before = row.balance_minutes

        today = local_date_of(now or utcnow(), employee.timezone)
        line = f"{today.isoformat()}: {reason} ({minutes:+d} min)"
        row.adjustment_log = f"{row.adjustment_log}\n{line}" if row.adjustment_log else line
        row.adjustment_minutes = (row.adjustment_minutes or 0) + minutes
        row, _ = recompute_month_row(employee, year, month)

        append_audit_event(
            employee_id=employee.id,
            event_type="balance.adjusted",
            entity_type="monthly_balance",
            entity_id=row.id,
            actor_id=actor_id,
            note=reason,
            payload={"year": year, "month": month, "minutes": minutes, "balance_before": before, "balance_after": row.balance_minutes},
        )
        enqueue_cascade(employee.id, year, month)
        db.session.commit()
        return row

    row = run_in_employee_section(employee_id, _op)
    cascade_employee(employee_id, now=now)
    return row


def record_payout(
    *,
    employee_id: int,
    year: int,
    month: int,
    minutes: int,
    actor_id: Optional[int] = None,
    payout_date: Optional[date] = None,
    now: Optional[datetime] = None,
) -> MonthlyBalance:
    """
    Cash out overtime. The months from (year, month) to now are recomputed
    first, so the check runs against current balances.
    """
    _validate_month(year, month)
    if minutes <= 0:
        raise InvalidInput("minutes must be positive", field="minutes")

    def _op():
        employee = lock_employee(employee_id)
        _reject_future_month(employee, year, month, now)
        available = _available_for_payout(employee, year, month, now)
        if minutes > available:
            raise InsufficientBalance(requested=minutes, available=available)

        row = get_month_row(employee.id, year, month)
        before = row.balance_minutes
        row.payout_minutes = (row.payout_minutes or 0) + minutes
        row.payout_date = payout_date or local_date_of(now or utcnow(), employee.timezone)
        row, _ = recompute_month_row(employee, year, month)

        append_audit_event(
            employee_id=employee.id,
            event_type="balance.payout",
            entity_type="monthly_balance",
            entity_id=row.id,
            actor_id=actor_id,
            payload={"year": year, "month": month, "minutes": minutes, "balance_before": before, "balance_after": row.balance_minutes},
        )
        enqueue_cascade(employee.id, year, month)
        db.session.commit()
        return row

    row = run_in_employee_section(employee_id, _op)
    cascade_employee(employee_id, now=now)
    return row


def get_current_balance(*, employee_id: int, now: Optional[datetime] = None) -> MonthlyBalance:
    """
    Ledger row of the current month. Missing months between the latest
    stored row and now are created on demand.
    """
    def _op():
        employee = lock_employee(employee_id)
        year, month = current_month_for(employee, now=now)
        row = get_month_row(employee.id, year, month)
        if row is None:
            row, _ = recompute_month_row(employee, year, month)
        db.session.commit()
        return row

    return run_in_employee_section(employee_id, _op)


def get_balance(*, employee_id: int, year: Optional[int] = None, now: Optional[datetime] = None) -> dict:
    """Current balance, the year's month rows and the overtime threshold flags."""
    current = get_current_balance(employee_id=employee_id, now=now)
    year = year or current.year
    months = (
        db.session.query(MonthlyBalance)
        .filter_by(employee_id=employee_id, year=year)
        .order_by(MonthlyBalance.month.asc())
        .all()
    )

    balance = current.balance_minutes
    limit_enabled = get_setting("overtime_limit_enabled")
    return {
        "employee_id": employee_id,
        "current_balance_minutes": balance,
        "current": current.to_dict(),
        "year": year,
        "months": [m.to_dict() for m in months],
        "overtime_warning": balance >= get_setting("overtime_warning_minutes"),
        "overtime_limit_enabled": limit_enabled,
        "overtime_limit_exceeded": bool(limit_enabled and balance > get_setting("overtime_limit_minutes")),
    }


def get_all_balances(*, year: int, month: int) -> list[dict]:
    """Pure read over tracked employees; balance is None where the month has no row yet."""
    _validate_month(year, month)
    rows = {
        r.employee_id: r
        for r in db.session.query(MonthlyBalance).filter_by(year=year, month=month).all()
    }
    result = []
    for employee in list_tracked_employees():
        row = rows.get(employee.id)
        result.append({
            "employee_id": employee.id,
            "employee_name": employee.name,
            "year": year,
            "month": month,
            "balance": row.to_dict() if row else None,
        })
    return result


def get_month_balance(*, employee_id: int, year: int, month: int) -> MonthlyBalance | None:
    get_employee(employee_id)
    return get_month_row(employee_id, year, month)
