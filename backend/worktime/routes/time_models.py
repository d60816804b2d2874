# Overview: Flask API routes for time models; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_actor
from ..models import TimeModel
from ..services import time_model_service
from ..validation import (
    WEEKDAY_FIELDS,
    ModelValidationPolicy,
    enforce_rules_time_model,
    parse_date,
    validate_payload,
)
from .responses import SERVICE_ERRORS, error_response

TIME_MODEL_POLICY = ModelValidationPolicy(
    writable_fields={
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
    },
    required_on_create={"name"},
)

time_models_bp = Blueprint("time_models", __name__, url_prefix="/api/time-tracking/models")


@time_models_bp.get("")
@require_actor
def list_time_models():
    include_inactive = request.args.get("include_inactive", "false").lower() in ("1", "true", "yes")
    models = time_model_service.list_time_models(include_inactive=include_inactive)
    return jsonify({"items": models, "count": len(models)})


@time_models_bp.get("/<int:model_id>")
@require_actor
def get_time_model(model_id: int):
    try:
        return jsonify(time_model_service.get_time_model(model_id).to_dict())
    except SERVICE_ERRORS as e:
        return error_response(e)


@time_models_bp.post("")
@require_actor
def create_time_model_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=TimeModel, payload=payload, policy=TIME_MODEL_POLICY, partial=False)
        enforce_rules_time_model(patch)
        created = time_model_service.create_time_model(patch=patch)
    except SERVICE_ERRORS as e:
        return error_response(e)
    return jsonify(created), 201


@time_models_bp.put("/<int:model_id>")
@require_actor
def update_time_model_route(model_id: int):
    """
    Update a time model.

    Query param effective_from (YYYY-MM-DD): first day whose stored summary
    is reconciled against the new schedule (default: first of this month).
    """
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=TimeModel, payload=payload, policy=TIME_MODEL_POLICY, partial=True)
        enforce_rules_time_model(patch)
        effective_from = request.args.get("effective_from")
        updated = time_model_service.update_time_model(
            model_id=model_id,
            patch=patch,
            effective_from=parse_date(effective_from, "effective_from") if effective_from else None,
        )
    except SERVICE_ERRORS as e:
        return error_response(e)
    return jsonify(updated), 200


@time_models_bp.delete("/<int:model_id>")
@require_actor
def delete_time_model_route(model_id: int):
    try:
        time_model_service.delete_time_model(model_id=model_id)
    except SERVICE_ERRORS as e:
        return error_response(e)
    return jsonify({"ok": True, "deleted_by": g.actor_id}), 200
