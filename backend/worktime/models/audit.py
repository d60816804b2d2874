from __future__ import annotations

from ..extensions import db
from worktime.time_utils import to_utc_z


class AuditEvent(db.Model):
    """
    Append-only audit trail for time-tracking mutations.

    Every committed stamp, correction, edit, delete, override, adjustment
    and payout writes one row in the same transaction as the change it
    records. payload carries before/after values as JSON text.
    """
    __tablename__ = "time_audit_events"
    __table_args__ = (
        db.Index("ix_time_audit_employee_occurred", "employee_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)

    # What happened
    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g., entry.stamped, entry.deleted, balance.payout

    # What it refers to (generic pointer)
    entity_type = db.Column(db.String(64), nullable=False)  # time_entry, daily_summary, monthly_balance
    entity_id = db.Column(db.Integer, nullable=True)

    actor_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="SET NULL"), nullable=True, index=True)

    # Business vs system time
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    note = db.Column(db.Text, nullable=True)
    payload = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_id": self.actor_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "note": self.note,
            "payload": self.payload,
        }
