from __future__ import annotations
from datetime import date, datetime
from worktime.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


ENTRY_TYPES = ("clock_in", "clock_out", "break_start", "break_end")

WEEKDAY_FIELDS = (
    "monday_minutes",
    "tuesday_minutes",
    "wednesday_minutes",
    "thursday_minutes",
    "friday_minutes",
    "saturday_minutes",
    "sunday_minutes",
)

# A day has 1440 minutes; a target above that is always a typo
MAX_DAY_MINUTES = 24 * 60


class InvalidInput(ValueError):
    """400-level input problem, rejected before any state change."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        payload = {"error": str(self)}
        if self.field:
            payload["field"] = self.field
        return payload


class NotFound(InvalidInput):
    """Unknown employee, entry or time model (404)."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., deleting a time model still in use)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            return parse_timestamp(value, col.key)
        raise InvalidInput(f"{col.key} must be a datetime", field=col.key)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise InvalidInput("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise InvalidInput(f"Missing required fields: {', '.join(missing)}", field=missing[0])

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise InvalidInput(f"Field not allowed: {k}", field=k)
        if k not in cols:
            raise InvalidInput(f"Unknown field: {k}", field=k)

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise InvalidInput(f"{k} cannot be null", field=k)
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise InvalidInput(f"{k} cannot be blank", field=k)

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise InvalidInput(f"{k} exceeds max length {col.type.length}", field=k)

        patch[k] = val

    return patch


def enforce_rules_time_model(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.

    NULL weekday minutes mean "no schedule that day" and are allowed;
    an explicit 0 is a scheduled day without target.
    """
    for field in WEEKDAY_FIELDS:
        if field in patch and patch[field] is not None:
            if not 0 <= patch[field] <= MAX_DAY_MINUTES:
                raise InvalidInput(f"{field} must be between 0 and {MAX_DAY_MINUTES}", field=field)

    for field in (
        "default_break_minutes",
        "min_break_minutes",
        "break_threshold_minutes",
        "break_tolerance_minutes",
        "break_threshold_buffer_minutes",
    ):
        if field in patch and patch[field] is not None and patch[field] < 0:
            raise InvalidInput(f"{field} must be >= 0", field=field)


# -----------------------------------------------------------------------------
# Scalar coercion helpers shared by services and routes
# -----------------------------------------------------------------------------

def coerce_int(value: Any, field: str) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise InvalidInput(f"{field} must be an integer", field=field)
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise InvalidInput(f"{field} must be a plain integer (scientific notation not allowed)", field=field)
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise InvalidInput(f"{field} must be an integer (no decimals)", field=field)
        try:
            return int(stripped)
        except ValueError:
            raise InvalidInput(f"{field} must be an integer", field=field)
    # Reject floats explicitly
    if isinstance(value, float):
        raise InvalidInput(f"{field} must be an integer, not a decimal", field=field)
    raise InvalidInput(f"{field} must be an integer", field=field)


def parse_entry_type(value: Any, field: str = "entry_type") -> str:
    if value not in ENTRY_TYPES:
        raise InvalidInput(
            f"{field} must be one of: {', '.join(ENTRY_TYPES)}",
            field=field,
        )
    return value


def parse_timestamp(value: Any, field: str = "timestamp") -> datetime:
    """ISO-8601 string or datetime -> UTC-naive datetime."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return parse_iso_datetime(value.isoformat())
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f"{field} is required", field=field)
    try:
        dt = parse_iso_datetime(value)
    except ValueError:
        raise InvalidInput(f"{field} must be an ISO-8601 datetime", field=field)
    if dt is None:
        raise InvalidInput(f"{field} must be an ISO-8601 datetime", field=field)
    return dt


def parse_date(value: Any, field: str = "date") -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f"{field} is required (YYYY-MM-DD)", field=field)
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise InvalidInput(f"{field} must be a date (YYYY-MM-DD)", field=field)


def parse_year_month(year: Any, month: Any) -> tuple[int, int]:
    y = coerce_int(year, "year")
    m = coerce_int(month, "month")
    if not 1 <= m <= 12:
        raise InvalidInput("month must be between 1 and 12", field="month")
    if not 1970 <= y <= 9999:
        raise InvalidInput("year is out of range", field="year")
    return y, m


def require_reason(value: Any, *, min_length: int, field: str = "reason") -> str:
    reason = str(value).strip() if value is not None else ""
    if not reason:
        raise InvalidInput(f"{field} is required", field=field)
    if len(reason) < min_length:
        raise InvalidInput(
            f"{field} must be at least {min_length} characters",
            field=field,
        )
    return reason
