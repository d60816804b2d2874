# Overview: Flask API routes for time tracking; parses input and returns JSON responses.

"""
Time Tracking Routes

Entries (stamps, corrections, edits), day summaries, and the overtime
ledger. The caller is resolved by @require_actor; authorization policy
lives upstream.

Errors:
- 400 invalid input (body names the field)
- 404 unknown employee/entry
- 409 insufficient balance, or another writer is busy with the same
  employee (Retry-After set)
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor
from ..services import (
    audit_service,
    balance_service,
    entry_log_service,
    summary_service,
    timekeeping_service,
)
from ..services.directory_service import get_employee
from ..validation import InvalidInput, coerce_int, parse_date, parse_year_month
from worktime.time_utils import local_date_of, utcnow
from .responses import SERVICE_ERRORS, error_response

time_tracking_bp = Blueprint("time_tracking", __name__, url_prefix="/api/time-tracking")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidInput("Invalid JSON payload")
    return data


def _flag(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes")


def _day_arg(employee_id: int, name: str = "date"):
    """?date=YYYY-MM-DD, defaulting to the employee's local today."""
    raw = request.args.get(name)
    if raw:
        return parse_date(raw, name)
    return local_date_of(utcnow(), get_employee(employee_id).timezone)


def _unexpected(action: str):
    current_app.logger.exception("Unexpected error while %s", action)
    return jsonify({"error": f"Failed to {action}"}), 500


# -----------------------------------------------------------------------------
# Entries
# -----------------------------------------------------------------------------

@time_tracking_bp.post("/entries/stamp")
@require_actor
def stamp_route():
    """
    Record a live entry now.

    Body: entry_type, optional employee_id (defaults to the caller),
    source (web|terminal), terminal_id.
    Sequence mismatches come back as warnings; the entry is always stored.
    """
    try:
        data = _json_body()
        employee_id = coerce_int(data.get("employee_id", g.actor_id), "employee_id")
        result = timekeeping_service.stamp(
            employee_id=employee_id,
            entry_type=data.get("entry_type"),
            source=data.get("source", "web"),
            terminal_id=data.get("terminal_id"),
        )
        return jsonify(result.to_dict()), 201
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return _unexpected("record the time entry")


@time_tracking_bp.post("/entries/self-correction")
@require_actor
def self_correction_route():
    try:
        data = _json_body()
        result = timekeeping_service.submit_self_correction(
            employee_id=g.actor_id,
            entry_type=data.get("entry_type"),
            timestamp=data.get("timestamp"),
            reason=data.get("reason"),
        )
        return jsonify(result.to_dict()), 201
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return _unexpected("record the self-correction")


@time_tracking_bp.post("/entries/correction")
@require_actor
def admin_correction_route():
    try:
        data = _json_body()
        result = timekeeping_service.admin_correction(
            employee_id=coerce_int(data.get("employee_id"), "employee_id"),
            entry_type=data.get("entry_type"),
            timestamp=data.get("timestamp"),
            reason=data.get("reason"),
            actor_id=g.actor_id,
        )
        return jsonify(result.to_dict()), 201
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return _unexpected("record the correction")


@time_tracking_bp.put("/entries/<int:entry_id>")
@require_actor
def edit_entry_route(entry_id: int):
    try:
        data = _json_body()
        result = timekeeping_service.edit_entry(
            entry_id=entry_id,
            entry_type=data.get("entry_type"),
            timestamp=data.get("timestamp"),
            reason=data.get("reason"),
            actor_id=g.actor_id,
        )
        return jsonify(result.to_dict())
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return _unexpected("edit the time entry")


@time_tracking_bp.post("/entries/<int:entry_id>/preview")
@require_actor
def preview_edit_route(entry_id: int):
    """Validation result an edit would produce. Nothing is written."""
    try:
        data = _json_body()
        return jsonify(timekeeping_service.preview_edit(
            entry_id=entry_id,
            entry_type=data.get("entry_type"),
            timestamp=data.get("timestamp"),
        ))
    except SERVICE_ERRORS as e:
        return error_response(e)


@time_tracking_bp.delete("/entries/<int:entry_id>")
@require_actor
def delete_entry_route(entry_id: int):
    """Soft delete. Requires confirm=true (JSON body or query string)."""
    try:
        data = _json_body()
        confirm = data.get("confirm", request.args.get("confirm", False))
        result = timekeeping_service.delete_entry(
            entry_id=entry_id,
            confirm=_flag(confirm),
            reason=data.get("reason"),
            actor_id=g.actor_id,
        )
        return jsonify(result.to_dict())
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return _unexpected("delete the time entry")


@time_tracking_bp.get("/entries/employee/<int:employee_id>")
@require_actor
def list_entries_route(employee_id: int):
    """
    Query params:
    - from / to: YYYY-MM-DD (optional, inclusive local days)
    - include_deleted: bool (default false)
    - limit: int (default 500)
    """
    try:
        employee = get_employee(employee_id)
        from_raw = request.args.get("from")
        to_raw = request.args.get("to")
        entries = entry_log_service.list_entries(
            employee,
            from_day=parse_date(from_raw, "from") if from_raw else None,
            to_day=parse_date(to_raw, "to") if to_raw else None,
            include_deleted=_flag(request.args.get("include_deleted", False)),
            limit=coerce_int(request.args.get("limit", "500"), "limit"),
        )
        return jsonify({"entries": [e.to_dict() for e in entries], "count": len(entries)})
    except SERVICE_ERRORS as e:
        return error_response(e)


@time_tracking_bp.get("/entries/employee/<int:employee_id>/validate")
@require_actor
def validate_day_route(employee_id: int):
    try:
        day = _day_arg(employee_id)
        validation = timekeeping_service.validate_day(employee_id=employee_id, day=day)
        return jsonify({"employee_id": employee_id, "date": day.isoformat(), **validation.to_dict()})
    except SERVICE_ERRORS as e:
        return error_response(e)


@time_tracking_bp.get("/entries/presence")
@require_actor
def presence_route():
    return jsonify({"employees": summary_service.get_presence_snapshot()})


@time_tracking_bp.get("/entries/missing")
@require_actor
def missing_entries_route():
    """
    Days with missing entries or pending review.

    Query params: from, to (YYYY-MM-DD, required), employee_id (optional).
    """
    try:
        employee_id = request.args.get("employee_id")
        days = summary_service.get_missing_entries(
            from_day=parse_date(request.args.get("from"), "from"),
            to_day=parse_date(request.args.get("to"), "to"),
            employee_id=coerce_int(employee_id, "employee_id") if employee_id else None,
        )
        return jsonify({"days": days, "count": len(days)})
    except SERVICE_ERRORS as e:
        return error_response(e)


# -----------------------------------------------------------------------------
# Day summaries
# -----------------------------------------------------------------------------

@time_tracking_bp.put("/daily-summary/<int:employee_id>/<day>")
@require_actor
def update_day_info_route(employee_id: int, day: str):
    """Body: any of note, target_override_minutes, needs_review."""
    try:
        data = _json_body()
        fields = {k: data[k] for k in ("note", "target_override_minutes", "needs_review") if k in data}
        if not fields:
            raise InvalidInput("Nothing to update", field="note")
        summary = timekeeping_service.update_day_info(
            employee_id=employee_id,
            day=parse_date(day),
            actor_id=g.actor_id,
            **fields,
        )
        return jsonify({"summary": summary.to_dict()})
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return _unexpected("update the day")


@time_tracking_bp.delete("/daily-summary/<int:employee_id>/<day>")
@require_actor
def reset_day_route(employee_id: int, day: str):
    """Delete every entry of the day. Body: reason, confirm=true."""
    try:
        data = _json_body()
        result = timekeeping_service.reset_day(
            employee_id=employee_id,
            day=parse_date(day),
            reason=data.get("reason"),
            confirm=_flag(data.get("confirm", False)),
            actor_id=g.actor_id,
        )
        return jsonify(result.to_dict())
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return _unexpected("reset the day")


@time_tracking_bp.get("/summaries/<int:employee_id>/day")
@require_actor
def day_summary_route(employee_id: int):
    try:
        return jsonify(summary_service.get_day_summary(employee_id=employee_id, day=_day_arg(employee_id)))
    except SERVICE_ERRORS as e:
        return error_response(e)


@time_tracking_bp.get("/summaries/<int:employee_id>/week")
@require_actor
def week_summary_route(employee_id: int):
    try:
        return jsonify(summary_service.get_week_summary(employee_id=employee_id, day=_day_arg(employee_id)))
    except SERVICE_ERRORS as e:
        return error_response(e)


@time_tracking_bp.get("/summaries/<int:employee_id>/month")
@require_actor
def month_summary_route(employee_id: int):
    try:
        today = _day_arg(employee_id, "as_of")
        year, month = parse_year_month(
            request.args.get("year", str(today.year)),
            request.args.get("month", str(today.month)),
        )
        return jsonify(summary_service.get_month_summaries(employee_id=employee_id, year=year, month=month))
    except SERVICE_ERRORS as e:
        return error_response(e)


# -----------------------------------------------------------------------------
# Balances
# -----------------------------------------------------------------------------

@time_tracking_bp.get("/balances")
@require_actor
def all_balances_route():
    try:
        year, month = parse_year_month(request.args.get("year"), request.args.get("month"))
        return jsonify({"balances": balance_service.get_all_balances(year=year, month=month)})
    except SERVICE_ERRORS as e:
        return error_response(e)


@time_tracking_bp.get("/balances/<int:employee_id>")
@require_actor
def balance_route(employee_id: int):
    try:
        year = request.args.get("year")
        return jsonify(balance_service.get_balance(
            employee_id=employee_id,
            year=coerce_int(year, "year") if year else None,
        ))
    except SERVICE_ERRORS as e:
        return error_response(e)


@time_tracking_bp.post("/balances/recalculate")
@require_actor
def recalculate_route():
    """Body: year, month, optional employee_id (all tracked employees otherwise)."""
    try:
        data = _json_body()
        year, month = parse_year_month(data.get("year"), data.get("month"))
        if data.get("employee_id") is not None:
            rows = [balance_service.recompute_month(
                employee_id=coerce_int(data["employee_id"], "employee_id"), year=year, month=month,
            )]
        else:
            rows = balance_service.recompute_all(year=year, month=month)
        return jsonify({"balances": [r.to_dict() for r in rows if r is not None]})
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return _unexpected("recalculate balances")


@time_tracking_bp.post("/balances/<int:employee_id>/adjustment")
@require_actor
def adjustment_route(employee_id: int):
    """Body: year, month, minutes (signed, non-zero), reason."""
    try:
        data = _json_body()
        year, month = parse_year_month(data.get("year"), data.get("month"))
        row = balance_service.record_adjustment(
            employee_id=employee_id,
            year=year,
            month=month,
            minutes=coerce_int(data.get("minutes"), "minutes"),
            reason=data.get("reason"),
            actor_id=g.actor_id,
        )
        return jsonify({"balance": row.to_dict()}), 201
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return _unexpected("record the adjustment")


@time_tracking_bp.post("/balances/<int:employee_id>/payout")
@require_actor
def payout_route(employee_id: int):
    """Body: year, month, minutes (> 0), optional payout_date."""
    try:
        data = _json_body()
        year, month = parse_year_month(data.get("year"), data.get("month"))
        payout_date = data.get("payout_date")
        row = balance_service.record_payout(
            employee_id=employee_id,
            year=year,
            month=month,
            minutes=coerce_int(data.get("minutes"), "minutes"),
            payout_date=parse_date(payout_date, "payout_date") if payout_date else None,
            actor_id=g.actor_id,
        )
        return jsonify({"balance": row.to_dict()}), 201
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return _unexpected("record the payout")


@time_tracking_bp.get("/audit/<int:employee_id>")
@require_actor
def audit_route(employee_id: int):
    try:
        get_employee(employee_id)
        events = audit_service.list_audit_events(
            employee_id=employee_id,
            limit=coerce_int(request.args.get("limit", "100"), "limit"),
        )
        return jsonify({"events": [e.to_dict() for e in events]})
    except SERVICE_ERRORS as e:
        return error_response(e)
