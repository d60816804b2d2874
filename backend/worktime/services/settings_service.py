# Overview: Service-layer operations for time-tracking policy settings.

"""
Time-tracking settings

Policy values that operators change at runtime (auto-complete cutoff,
reason length, overtime thresholds). Each key has a declared type and
default; the time_settings table only stores overrides.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import time
from typing import Any

from ..extensions import db
from ..models import TimeSetting
from ..validation import InvalidInput, NotFound
from .audit_service import append_audit_event


@dataclass(frozen=True)
class SettingDefinition:
    key: str
    value_type: str  # int, bool, time, choice
    default: Any
    description: str
    choices: tuple[str, ...] = ()
    min_value: int | None = None


SETTING_DEFINITIONS: dict[str, SettingDefinition] = {
    d.key: d
    for d in (
        SettingDefinition(
            "auto_complete_cutoff", "time", time(23, 59),
            "Local clock time at which an unfinished day is auto-completed",
        ),
        SettingDefinition(
            "auto_complete_strategy", "choice", "cutoff",
            "Where the synthetic clock_out lands: at the cutoff, or first clock_in + target + default break",
            choices=("cutoff", "target"),
        ),
        SettingDefinition(
            "min_reason_length", "int", 3,
            "Minimum length of a correction reason", min_value=1,
        ),
        SettingDefinition(
            "self_correction_window_days", "int", 1,
            "How many days back employees may self-correct (0 = today only)", min_value=0,
        ),
        SettingDefinition(
            "holiday_credits_target", "bool", True,
            "Credit the day's target on public holidays",
        ),
        SettingDefinition(
            "stale_day_lookback_days", "int", 7,
            "Days checked for unfinished days when an employee clocks in", min_value=0,
        ),
        SettingDefinition(
            "overtime_warning_minutes", "int", 1800,
            "Balance from which an overtime warning is shown", min_value=0,
        ),
        SettingDefinition(
            "overtime_limit_minutes", "int", 2400,
            "Maximum overtime balance", min_value=0,
        ),
        SettingDefinition(
            "overtime_limit_enabled", "bool", False,
            "Enforce the overtime limit flag",
        ),
    )
}


def _definition(key: str) -> SettingDefinition:
    definition = SETTING_DEFINITIONS.get(key)
    if definition is None:
        raise NotFound(f"Unknown setting: {key}", field="key")
    return definition


def _parse(definition: SettingDefinition, raw: Any) -> Any:
    if definition.value_type == "bool":
        if isinstance(raw, bool):
            return raw
        text = str(raw).strip().lower()
        if text in ("true", "1", "yes", "on"):
            return True
        if text in ("false", "0", "no", "off"):
            return False
        raise InvalidInput(f"{definition.key} must be a boolean", field=definition.key)

    if definition.value_type == "int":
        if isinstance(raw, bool):
            raise InvalidInput(f"{definition.key} must be an integer", field=definition.key)
        try:
            value = int(str(raw).strip())
        except ValueError:
            raise InvalidInput(f"{definition.key} must be an integer", field=definition.key)
        if definition.min_value is not None and value < definition.min_value:
            raise InvalidInput(f"{definition.key} must be >= {definition.min_value}", field=definition.key)
        return value

    if definition.value_type == "time":
        if isinstance(raw, time):
            return raw
        try:
            return time.fromisoformat(str(raw).strip())
        except ValueError:
            raise InvalidInput(f"{definition.key} must be a clock time (HH:MM)", field=definition.key)

    if definition.value_type == "choice":
        value = str(raw).strip()
        if value not in definition.choices:
            raise InvalidInput(
                f"{definition.key} must be one of: {', '.join(definition.choices)}",
                field=definition.key,
            )
        return value

    return raw


def _serialize(definition: SettingDefinition, value: Any) -> str:
    if definition.value_type == "bool":
        return "true" if value else "false"
    if definition.value_type == "time":
        return value.strftime("%H:%M")
    return str(value)


def get_setting(key: str) -> Any:
    """Typed value of a setting (stored override or declared default)."""
    definition = _definition(key)
    row = db.session.query(TimeSetting).filter_by(key=key).first()
    if row is None or row.value is None:
        return definition.default
    return _parse(definition, row.value)


def get_all_settings() -> list[dict]:
    rows = {r.key: r for r in db.session.query(TimeSetting).all()}
    result = []
    for key, definition in SETTING_DEFINITIONS.items():
        row = rows.get(key)
        value = definition.default if row is None or row.value is None else _parse(definition, row.value)
        result.append({
            "key": key,
            "type": definition.value_type,
            "value": _serialize(definition, value),
            "default": _serialize(definition, definition.default),
            "description": definition.description,
            "choices": list(definition.choices),
            "is_default": row is None,
        })
    return result


def set_setting(*, key: str, value: Any, actor_id: int | None = None) -> TimeSetting:
    """Validate and store an override. Audited against the acting employee when given."""
    definition = _definition(key)
    parsed = _parse(definition, value)
    text = _serialize(definition, parsed)

    row = db.session.query(TimeSetting).filter_by(key=key).first()
    old = row.value if row else None
    if row is None:
        row = TimeSetting(key=key, description=definition.description)
        db.session.add(row)
    row.value = text
    row.updated_by = actor_id
    db.session.flush()

    if actor_id is not None:
        append_audit_event(
            employee_id=actor_id,
            event_type="setting.updated",
            entity_type="time_setting",
            entity_id=row.id,
            actor_id=actor_id,
            payload={"key": key, "old": old, "new": text},
        )

    db.session.commit()
    return row


def set_settings(*, values: dict[str, Any], actor_id: int | None = None) -> list[TimeSetting]:
    """Bulk update; every value is validated before anything is written."""
    for key, value in values.items():
        _parse(_definition(key), value)
    return [set_setting(key=key, value=value, actor_id=actor_id) for key, value in values.items()]
