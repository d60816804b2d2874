from __future__ import annotations

from ..extensions import db
from worktime.time_utils import to_utc_z


class TimeSetting(db.Model):
    """
    Key-value policy settings for time tracking.

    Values are stored as text; typing and defaults live in
    services/settings_service.SETTING_DEFINITIONS. A missing row means
    "use the default".
    """
    __tablename__ = "time_settings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    key = db.Column(db.String(128), nullable=False, unique=True, index=True)
    value = db.Column(db.Text, nullable=True)
    description = db.Column(db.Text, nullable=True)

    updated_by = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "key": self.key,
            "value": self.value,
            "description": self.description,
            "updated_by": self.updated_by,
            "updated_at": to_utc_z(self.updated_at),
        }
