from __future__ import annotations

from ..extensions import db


class Holiday(db.Model):
    """
    Public holiday lookup table.

    Rows are maintained by the surrounding administration system; time
    tracking only reads them. region NULL = holiday in every region.
    """
    __tablename__ = "holidays"
    __table_args__ = (
        db.UniqueConstraint("date", "region", name="uq_holidays_date_region"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    region = db.Column(db.String(16), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "name": self.name,
            "region": self.region,
        }
