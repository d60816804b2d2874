from __future__ import annotations

from ..extensions import db
from worktime.time_utils import to_utc_z

ENTRY_SOURCES = ("terminal", "web", "self_correction", "admin_correction", "auto_complete")

DAY_STATUSES = ("complete", "open", "absent", "holiday")


class TimeEntry(db.Model):
    """
    One attendance event (stamp) in the entry log.

    WHY: The entry log is the single source of truth. Daily summaries and
    monthly balances are derived from it and can always be regenerated.

    DESIGN:
    - timestamp is an absolute instant (stored UTC-naive). The local day an
      entry belongs to is derived from the employee's time zone on read and
      never stored.
    - Entries are mutated only by the correction/edit pipeline. The first
      edit preserves the pre-edit type/timestamp in original_* columns.
    - Deletion is a soft delete: the row stays, flagged and attributed.
    """
    __tablename__ = "time_entries"
    __table_args__ = (
        db.Index("ix_time_entries_employee_timestamp", "employee_id", "timestamp"),
        db.Index("ix_time_entries_timestamp", "timestamp"),
        db.CheckConstraint(
            "entry_type IN ('clock_in', 'clock_out', 'break_start', 'break_end')",
            name="ck_time_entries_entry_type",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)

    entry_type = db.Column(db.String(20), nullable=False)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False)

    # terminal, web, self_correction, admin_correction, auto_complete
    source = db.Column(db.String(20), nullable=False, default="web")
    terminal_id = db.Column(db.String(64), nullable=True)

    # Corrections
    is_correction = db.Column(db.Boolean, nullable=False, default=False)
    correction_reason = db.Column(db.Text, nullable=True)
    corrected_by = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)
    original_entry_type = db.Column(db.String(20), nullable=True)
    original_timestamp = db.Column(db.DateTime(timezone=True), nullable=True)

    # Soft delete
    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_by = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)
    deletion_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    employee = db.relationship("Employee", foreign_keys=[employee_id], backref=db.backref("time_entries", lazy=True))

    def __repr__(self) -> str:
        return f"<TimeEntry id={self.id} {self.entry_type} @ {self.timestamp}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "entry_type": self.entry_type,
            "timestamp": to_utc_z(self.timestamp),
            "source": self.source,
            "terminal_id": self.terminal_id,
            "is_correction": self.is_correction,
            "correction_reason": self.correction_reason,
            "corrected_by": self.corrected_by,
            "original_entry_type": self.original_entry_type,
            "original_timestamp": to_utc_z(self.original_timestamp) if self.original_timestamp else None,
            "is_deleted": self.is_deleted,
            "deleted_at": to_utc_z(self.deleted_at) if self.deleted_at else None,
            "deleted_by": self.deleted_by,
            "deletion_reason": self.deletion_reason,
            "created_at": to_utc_z(self.created_at),
        }


class DailySummary(db.Model):
    """
    One reconciled day for one employee.

    WHY: Monthly balances and supervisor triage read days, not raw entries.

    DERIVED vs MANUAL:
    - Derived (replaced on every reconciliation): target_minutes,
      worked_minutes, break_minutes, overtime_minutes, status,
      has_missing_entries, missing_entry_types, warnings, first_clock_in,
      last_clock_out, holiday_name, credited_minutes.
    - Manual (never touched by reconciliation): note, needs_review,
      review_note, target_override_minutes. Reconciliation may *raise*
      needs_review when it synthesizes entries, but never clears it.

    INVARIANT: overtime_minutes == worked_minutes
                                  - (target_override_minutes ?? target_minutes ?? 0)
    """
    __tablename__ = "time_daily_summaries"
    __table_args__ = (
        db.UniqueConstraint("employee_id", "date", name="uq_time_daily_employee_date"),
        db.Index("ix_time_daily_needs_review", "needs_review"),
        db.Index("ix_time_daily_missing", "has_missing_entries"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, index=True)

    # NULL = the time model has no schedule for this weekday
    target_minutes = db.Column(db.Integer, nullable=True)
    target_override_minutes = db.Column(db.Integer, nullable=True)

    worked_minutes = db.Column(db.Integer, nullable=False, default=0)
    break_minutes = db.Column(db.Integer, nullable=False, default=0)
    overtime_minutes = db.Column(db.Integer, nullable=False, default=0)
    # Portion of worked_minutes credited without presence (holidays)
    credited_minutes = db.Column(db.Integer, nullable=False, default=0)

    # complete, open, absent, holiday
    status = db.Column(db.String(20), nullable=False, default="open")

    first_clock_in = db.Column(db.DateTime(timezone=True), nullable=True)
    last_clock_out = db.Column(db.DateTime(timezone=True), nullable=True)

    has_missing_entries = db.Column(db.Boolean, nullable=False, default=False)
    missing_entry_types = db.Column(db.JSON, nullable=True)
    warnings = db.Column(db.JSON, nullable=True)
    holiday_name = db.Column(db.String(200), nullable=True)

    # Manual fields
    needs_review = db.Column(db.Boolean, nullable=False, default=False)
    review_note = db.Column(db.Text, nullable=True)
    note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    employee = db.relationship("Employee", backref=db.backref("daily_summaries", lazy=True))

    @property
    def effective_target_minutes(self) -> int:
        if self.target_override_minutes is not None:
            return self.target_override_minutes
        return self.target_minutes or 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "date": self.date.isoformat(),
            "target_minutes": self.target_minutes,
            "target_override_minutes": self.target_override_minutes,
            "effective_target_minutes": self.effective_target_minutes,
            "worked_minutes": self.worked_minutes,
            "break_minutes": self.break_minutes,
            "overtime_minutes": self.overtime_minutes,
            "credited_minutes": self.credited_minutes,
            "status": self.status,
            "first_clock_in": to_utc_z(self.first_clock_in) if self.first_clock_in else None,
            "last_clock_out": to_utc_z(self.last_clock_out) if self.last_clock_out else None,
            "has_missing_entries": self.has_missing_entries,
            "missing_entry_types": list(self.missing_entry_types or []),
            "warnings": list(self.warnings or []),
            "holiday_name": self.holiday_name,
            "needs_review": self.needs_review,
            "review_note": self.review_note,
            "note": self.note,
        }
