from __future__ import annotations

from ..extensions import db
from worktime.time_utils import to_utc_z

# Monday=0 .. Sunday=6, matching date.weekday()
WEEKDAY_COLUMNS = (
    "monday_minutes",
    "tuesday_minutes",
    "wednesday_minutes",
    "thursday_minutes",
    "friday_minutes",
    "saturday_minutes",
    "sunday_minutes",
)


class TimeModel(db.Model):
    """
    Contractual working-time schedule.

    WHY: Target minutes and break rules differ per contract (full time,
    part time, four-day week). Employees reference a model; they never
    own a copy of it.

    NULL vs 0: a NULL weekday means "no schedule that day", which is not
    the same as an explicit 0-minute target. The distinction is kept in
    DailySummary.target_minutes and only collapses to 0 when overtime is
    computed.
    """
    __tablename__ = "time_models"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Target minutes per weekday (NULL = no schedule)
    monday_minutes = db.Column(db.Integer, nullable=True)
    tuesday_minutes = db.Column(db.Integer, nullable=True)
    wednesday_minutes = db.Column(db.Integer, nullable=True)
    thursday_minutes = db.Column(db.Integer, nullable=True)
    friday_minutes = db.Column(db.Integer, nullable=True)
    saturday_minutes = db.Column(db.Integer, nullable=True)
    sunday_minutes = db.Column(db.Integer, nullable=True)

    # Break rules
    default_break_minutes = db.Column(db.Integer, nullable=False, default=30)
    min_break_minutes = db.Column(db.Integer, nullable=False, default=30)
    # Gross presence (minutes) from which a break becomes mandatory
    break_threshold_minutes = db.Column(db.Integer, nullable=False, default=360)
    break_tolerance_minutes = db.Column(db.Integer, nullable=False, default=5)
    # Break duty only applies above target + buffer
    break_threshold_buffer_minutes = db.Column(db.Integer, nullable=False, default=30)

    is_default = db.Column(db.Boolean, nullable=False, default=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def target_for_weekday(self, weekday: int) -> int | None:
        return getattr(self, WEEKDAY_COLUMNS[weekday])

    @property
    def weekly_minutes(self) -> int:
        return sum(getattr(self, col) or 0 for col in WEEKDAY_COLUMNS)

    def __repr__(self) -> str:
        return f"<TimeModel id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
        }
        for col in WEEKDAY_COLUMNS:
            data[col] = getattr(self, col)
        data.update({
            "weekly_minutes": self.weekly_minutes,
            "default_break_minutes": self.default_break_minutes,
            "min_break_minutes": self.min_break_minutes,
            "break_threshold_minutes": self.break_threshold_minutes,
            "break_tolerance_minutes": self.break_tolerance_minutes,
            "break_threshold_buffer_minutes": self.break_threshold_buffer_minutes,
            "is_default": self.is_default,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        })
        return data


class Employee(db.Model):
    """
    Employee directory record as seen by time tracking.

    WHY: Every entry, summary and ledger row is partitioned by employee.
    The row also serves as the per-employee lock target: writers take
    SELECT ... FOR UPDATE on it and bump version_id, so two writers of the
    same employee serialize even across processes.
    """
    __tablename__ = "employees"
    __table_args__ = (
        db.Index("ix_employees_tracking_active", "time_tracking_enabled", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), nullable=True, unique=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    time_tracking_enabled = db.Column(db.Boolean, nullable=False, default=False)

    # NULL -> the default time model applies
    time_model_id = db.Column(db.Integer, db.ForeignKey("time_models.id", ondelete="SET NULL"), nullable=True, index=True)

    # IANA zone used to group entries into local calendar days (NULL -> app default)
    timezone = db.Column(db.String(64), nullable=True)
    # Holiday calendar region code (e.g. "BY"); NULL matches nation-wide holidays only
    region = db.Column(db.String(16), nullable=True)

    # Opening balance carried into the first ledger month
    initial_balance_minutes = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    time_model = db.relationship("TimeModel", backref=db.backref("employees", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Employee id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "is_active": self.is_active,
            "time_tracking_enabled": self.time_tracking_enabled,
            "time_model_id": self.time_model_id,
            "timezone": self.timezone,
            "region": self.region,
            "initial_balance_minutes": self.initial_balance_minutes,
            "created_at": to_utc_z(self.created_at),
        }
