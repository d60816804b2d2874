from __future__ import annotations

from ..extensions import db
from worktime.time_utils import to_utc_z


class MonthlyBalance(db.Model):
    """
    Overtime ledger row for one employee and month.

    INVARIANTS:
    - balance_minutes == carryover_minutes + overtime_minutes
                         + adjustment_minutes - payout_minutes
    - carryover_minutes of month N == balance_minutes of month N-1
      (the first month of an employee carries Employee.initial_balance_minutes)

    adjustment_log is append-only: every adjustment adds one line, nothing
    is ever rewritten.
    """
    __tablename__ = "time_monthly_balances"
    __table_args__ = (
        db.UniqueConstraint("employee_id", "year", "month", name="uq_time_balance_employee_month"),
        db.Index("ix_time_balance_employee_period", "employee_id", "year", "month"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    year = db.Column(db.Integer, nullable=False)
    month = db.Column(db.Integer, nullable=False)

    carryover_minutes = db.Column(db.Integer, nullable=False, default=0)
    overtime_minutes = db.Column(db.Integer, nullable=False, default=0)
    adjustment_minutes = db.Column(db.Integer, nullable=False, default=0)
    adjustment_log = db.Column(db.Text, nullable=True)
    payout_minutes = db.Column(db.Integer, nullable=False, default=0)
    payout_date = db.Column(db.Date, nullable=True)
    balance_minutes = db.Column(db.Integer, nullable=False, default=0)

    # Informational month sums
    target_minutes = db.Column(db.Integer, nullable=False, default=0)
    worked_minutes = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    employee = db.relationship("Employee", backref=db.backref("monthly_balances", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "year": self.year,
            "month": self.month,
            "carryover_minutes": self.carryover_minutes,
            "overtime_minutes": self.overtime_minutes,
            "adjustment_minutes": self.adjustment_minutes,
            "adjustment_log": self.adjustment_log,
            "payout_minutes": self.payout_minutes,
            "payout_date": self.payout_date.isoformat() if self.payout_date else None,
            "balance_minutes": self.balance_minutes,
            "target_minutes": self.target_minutes,
            "worked_minutes": self.worked_minutes,
        }


class PendingRecompute(db.Model):
    """
    Durable cascade work item.

    WHY: A balance change in month M invalidates the carryover of every
    later month. Instead of recursing, the cascade is an explicit work item
    holding the next month to recompute; it is advanced one month at a
    time and deleted once the current month is done. A cascade that was
    interrupted leaves its row behind and is resumed from there.

    kind is a tag for future item types; "month" is the only one today.
    One row per employee: enqueueing an earlier month moves the cursor back.
    """
    __tablename__ = "time_pending_recomputes"
    __table_args__ = (
        db.UniqueConstraint("employee_id", "kind", name="uq_time_pending_employee_kind"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    kind = db.Column(db.String(16), nullable=False, default="month")
    year = db.Column(db.Integer, nullable=False)
    month = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "kind": self.kind,
            "year": self.year,
            "month": self.month,
            "created_at": to_utc_z(self.created_at),
        }
