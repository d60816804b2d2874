# Overview: Service-layer operations for time models (contract schedules).

"""
Time models

A schedule change invalidates stored DailySummary targets. Days from
`effective_from` (default: first day of the current month) onward are
reconciled again for every employee the model applies to; earlier months
keep the targets they were closed with.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy import or_

from ..extensions import db
from ..models import DailySummary, Employee, TimeModel
from ..validation import WEEKDAY_FIELDS, ConflictError, NotFound
from worktime.time_utils import local_date_of, utcnow
from .timekeeping_service import reconcile_days

TIME_MODEL_MUTABLE_FIELDS = {
    "name",
    "description",
    *WEEKDAY_FIELDS,
    "default_break_minutes",
    "min_break_minutes",
    "break_threshold_minutes",
    "break_tolerance_minutes",
    "break_threshold_buffer_minutes",
    "is_default",
    "is_active",
}

# Fields whose change alters derived day values
SCHEDULE_FIELDS = set(WEEKDAY_FIELDS) | {
    "min_break_minutes",
    "break_threshold_minutes",
    "break_tolerance_minutes",
    "break_threshold_buffer_minutes",
    "is_default",
}


def apply_time_model_patch(model: TimeModel, patch: dict) -> None:
    for k, v in patch.items():
        if k not in TIME_MODEL_MUTABLE_FIELDS:
            continue
        setattr(model, k, v)


def _clear_other_defaults(model: TimeModel) -> None:
    (
        db.session.query(TimeModel)
        .filter(TimeModel.is_default.is_(True), TimeModel.id != model.id)
        .update({TimeModel.is_default: False}, synchronize_session="fetch")
    )


def list_time_models(*, include_inactive: bool = False) -> list[dict]:
    query = db.session.query(TimeModel)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return [m.to_dict() for m in query.order_by(TimeModel.name.asc()).all()]


def get_time_model(model_id: int) -> TimeModel:
    model = db.session.get(TimeModel, model_id)
    if not model:
        raise NotFound(f"Time model {model_id} not found", field="model_id")
    return model


def create_time_model(*, patch: dict) -> dict:
    model = TimeModel()
    apply_time_model_patch(model, patch)
    db.session.add(model)
    db.session.flush()
    if model.is_default:
        _clear_other_defaults(model)
    db.session.commit()
    return model.to_dict()


def _affected_employee_ids(model: TimeModel) -> list[int]:
    condition = Employee.time_model_id == model.id
    if model.is_default:
        condition = or_(condition, Employee.time_model_id.is_(None))
    rows = (
        db.session.query(Employee.id)
        .filter(condition, Employee.is_active.is_(True), Employee.time_tracking_enabled.is_(True))
        .all()
    )
    return [r[0] for r in rows]


def _summary_days(employee_id: int, from_day: date) -> list[date]:
    rows = (
        db.session.query(DailySummary.date)
        .filter(DailySummary.employee_id == employee_id, DailySummary.date >= from_day)
        .all()
    )
    return [r[0] for r in rows]


def update_time_model(*, model_id: int, patch: dict, effective_from: Optional[date] = None) -> dict:
    model = get_time_model(model_id)
    was_default = model.is_default
    apply_time_model_patch(model, patch)
    if model.is_default and not was_default:
        _clear_other_defaults(model)
    db.session.commit()

    if SCHEDULE_FIELDS & set(patch):
        if effective_from is None:
            today = local_date_of(utcnow(), None)
            effective_from = today.replace(day=1)
        affected = set(_affected_employee_ids(model))
        if was_default and not model.is_default:
            affected |= {
                r[0] for r in db.session.query(Employee.id).filter(Employee.time_model_id.is_(None)).all()
            }
        for employee_id in sorted(affected):
            days = _summary_days(employee_id, effective_from)
            if days:
                reconcile_days(employee_id=employee_id, days=days)

    return get_time_model(model_id).to_dict()


def delete_time_model(*, model_id: int) -> None:
    model = get_time_model(model_id)
    in_use = db.session.query(Employee.id).filter_by(time_model_id=model.id).first()
    if in_use is not None:
        raise ConflictError("Time model is assigned to employees and cannot be deleted")
    if model.is_default:
        raise ConflictError("The default time model cannot be deleted")
    db.session.delete(model)
    db.session.commit()


def seed_default_time_model() -> TimeModel:
    """Create the standard 40h week (Mon-Fri 8h, 30 min break) unless a default exists."""
    existing = db.session.query(TimeModel).filter_by(is_default=True).first()
    if existing is not None:
        return existing
    model = TimeModel(
        name="Full time 40h",
        description="Monday to Friday, 8 hours, 30 minutes break",
        monday_minutes=480,
        tuesday_minutes=480,
        wednesday_minutes=480,
        thursday_minutes=480,
        friday_minutes=480,
        saturday_minutes=None,
        sunday_minutes=None,
        default_break_minutes=30,
        min_break_minutes=30,
        is_default=True,
        is_active=True,
    )
    db.session.add(model)
    db.session.commit()
    return model
