"""Shared Flask JSON response helpers for the queue API."""

from flask import jsonify

_QUEUE_ERROR_STATUS = {
    "invalid_payload": 400,
    "unknown_feature": 404,
    "duplicate_request": 409,
    "enqueue_failed": 503,
}


def ok_response(payload=None, status_code=200):
    """Return ``{"ok": true, ...payload}`` with the given status."""
    body = {"ok": True}
    body.update(payload or {})
    return jsonify(body), status_code


def error_response(error, message, status_code):
    """Return the standard ``{"ok": false, "error", "message"}`` rejection."""
    return jsonify({"ok": False, "error": error, "message": message}), status_code


def queue_error_response(exc):
    """Map a ``QueueError`` onto its HTTP status."""
    code = getattr(exc, "error_code", "queue_error")
    return error_response(code, str(exc), _QUEUE_ERROR_STATUS.get(code, 400))


def storage_unavailable_response(message):
    """Return response when the shared storage cannot be read or written."""
    return error_response("storage_unavailable", f"Storage unavailable: {message}", 503)


def internal_error_response():
    """Return generic internal-error response payload."""
    return error_response("internal_error", "Internal server error.", 500)
