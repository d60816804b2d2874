from __future__ import annotations

from flask import Blueprint, jsonify, request, g

from ..decorators import require_actor
from ..services import settings_service
from .responses import SERVICE_ERRORS, error_response


settings_bp = Blueprint("settings", __name__, url_prefix="/api/time-tracking")


def _parse_updates(payload: dict) -> dict:
    """Accept {"values": {key: value}} or a single {"key": ..., "value": ...}."""
    if isinstance(payload.get("values"), dict):
        return payload["values"]
    key = payload.get("key")
    if not key:
        return {}
    return {key: payload.get("value")}


@settings_bp.get("/settings")
@require_actor
def get_settings():
    data = settings_service.get_all_settings()
    return jsonify({"items": data, "count": len(data)})


@settings_bp.put("/settings")
@require_actor
def update_settings():
    payload = request.get_json(silent=True) or {}
    updates = _parse_updates(payload)
    if not updates:
        return jsonify({"error": "No settings given", "field": "values"}), 400
    try:
        settings_service.set_settings(values=updates, actor_id=g.actor_id)
    except SERVICE_ERRORS as e:
        return error_response(e)
    data = settings_service.get_all_settings()
    return jsonify({"items": data, "count": len(data)})
