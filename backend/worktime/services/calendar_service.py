# Overview: Holiday calendar lookup.

from __future__ import annotations

from datetime import date

from sqlalchemy import or_

from ..extensions import db
from ..models import Holiday


def is_holiday(day: date, region: str | None = None) -> str | None:
    """Name of the holiday on `day` for `region`, or None. Nation-wide rows (region NULL) always match."""
    query = db.session.query(Holiday).filter(Holiday.date == day)
    if region:
        query = query.filter(or_(Holiday.region.is_(None), Holiday.region == region))
    else:
        query = query.filter(Holiday.region.is_(None))
    holiday = query.order_by(Holiday.region.is_(None)).first()
    return holiday.name if holiday else None
