# Overview: Employee directory lookups used by time tracking.

"""
Employee directory

Time tracking only needs three facts about an employee: whether they exist,
whether time tracking is enabled for them, and which time model applies.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Employee, TimeModel
from ..validation import NotFound


def get_employee(employee_id: int) -> Employee:
    employee = db.session.get(Employee, employee_id)
    if not employee:
        raise NotFound(f"Employee {employee_id} not found", field="employee_id")
    return employee


def is_time_tracking_enabled(employee: Employee) -> bool:
    return bool(employee.is_active and employee.time_tracking_enabled)


def get_default_time_model() -> TimeModel | None:
    return db.session.query(TimeModel).filter_by(is_default=True, is_active=True).first()


def time_model_for(employee: Employee) -> TimeModel | None:
    """Assigned model, else the default model, else None (no schedule at all)."""
    if employee.time_model is not None:
        return employee.time_model
    return get_default_time_model()


def list_tracked_employees() -> list[Employee]:
    return (
        db.session.query(Employee)
        .filter_by(is_active=True, time_tracking_enabled=True)
        .order_by(Employee.name)
        .all()
    )
