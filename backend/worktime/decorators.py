# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import Employee


def require_actor(f):
    """
    Resolve the calling employee.

    Authentication happens upstream; the gateway forwards the authenticated
    employee id in the X-Actor-Id header. Sets:
    - g.actor: the Employee making the request
    - g.actor_id: its id

    Returns 401 if the header is missing, malformed, or names an unknown or
    inactive employee.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get("X-Actor-Id", "").strip()
        if not raw.isdigit():
            return jsonify({"error": "Authentication required"}), 401

        actor = db.session.get(Employee, int(raw))
        if actor is None or not actor.is_active:
            return jsonify({"error": "Unknown or inactive actor"}), 401

        g.actor = actor
        g.actor_id = actor.id
        return f(*args, **kwargs)

    return decorated_function
