# Overview: Translation of service exceptions into JSON error responses.

from flask import jsonify

from ..services.balance_service import InsufficientBalance
from ..services.concurrency import ConcurrentModification
from ..validation import ConflictError, InvalidInput, NotFound

# Seconds a client should wait before retrying a write that hit a busy employee
RETRY_AFTER_SECONDS = 1

SERVICE_ERRORS = (InvalidInput, InsufficientBalance, ConcurrentModification, ConflictError)


def error_response(exc: Exception):
    """
    - NotFound -> 404
    - InvalidInput -> 400 (with the offending field)
    - InsufficientBalance, ConflictError -> 409
    - ConcurrentModification -> 409 with Retry-After
    """
    if isinstance(exc, NotFound):
        return jsonify(exc.to_dict()), 404
    if isinstance(exc, InvalidInput):
        return jsonify(exc.to_dict()), 400
    if isinstance(exc, InsufficientBalance):
        return jsonify(exc.to_dict()), 409
    if isinstance(exc, ConcurrentModification):
        response = jsonify({"error": str(exc), "retryable": True})
        response.headers["Retry-After"] = str(RETRY_AFTER_SECONDS)
        return response, 409
    return jsonify({"error": str(exc)}), 409
