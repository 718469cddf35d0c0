"""Queue API route registration."""

from flask import request

from queuebridge.core.errors import QueueError, StorageError
from queuebridge.core.response_helpers import (
    error_response,
    ok_response,
    queue_error_response,
    storage_unavailable_response,
)
from queuebridge.services import queue_producer as producer
from queuebridge.services.queue_features import get_feature


def _wait_seconds(state):
    """Parse ``?wait=`` and clamp it to the configured poll ceiling.

    A bare ``?wait`` uses ``RESULT_POLL_TIMEOUT_SECONDS``.
    """
    raw = request.args.get("wait")
    if raw is None:
        return 0.0
    raw = raw.strip()
    if not raw:
        return state["RESULT_POLL_TIMEOUT_SECONDS"]
    try:
        value = float(raw)
    except ValueError:
        return None
    if value <= 0:
        return 0.0
    return min(value, state["RESULT_POLL_MAX_TIMEOUT_SECONDS"])


def register_queue_routes(app, state):
    """Register feature listing, enqueue, result and status routes."""

    def _feature_or_error(name):
        try:
            return get_feature(name, state["FEATURES"]), None
        except QueueError as exc:
            state["log_queue_action"]("reject", command=request.path, rejection_message=str(exc))
            return None, queue_error_response(exc)

    def _storage_failed(context, exc):
        state["log_queue_exception"](context, exc)
        return storage_unavailable_response(str(exc))

    # Route: /api/queues
    @app.route("/api/queues", methods=["GET"])
    def list_queues():
        features = [
            {
                "feature": feature.key,
                "queueFile": feature.queue_file,
                "resultFile": feature.result_file,
                "idPrefix": feature.id_prefix,
                "description": feature.description,
            }
            for feature in state["FEATURES"].values()
        ]
        return ok_response({"features": features})

    # Route: /api/queues/<feature>
    @app.route("/api/queues/<feature_name>", methods=["POST"])
    def enqueue_request(feature_name):
        feature, failure = _feature_or_error(feature_name)
        if failure is not None:
            return failure
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            state["log_queue_action"](f"enqueue/{feature.key}", rejection_message="Body must be a JSON object.")
            return error_response("invalid_payload", "Request body must be a JSON object.", 400)
        body = dict(payload)
        request_id = body.pop("requestId", None)
        try:
            record = producer.enqueue(
                state["queue_store"],
                feature,
                body,
                request_id=request_id,
                max_attempts=state["ENQUEUE_MAX_ATTEMPTS"],
                log_action=state["log_queue_action"],
            )
        except QueueError as exc:
            state["log_queue_action"](f"enqueue/{feature.key}", rejection_message=str(exc))
            return queue_error_response(exc)
        except StorageError as exc:
            return _storage_failed(f"enqueue/{feature.key}", exc)
        return ok_response({"status": "queued", "requestId": record["requestId"], "request": record})

    # Route: /api/queues/<feature>/results
    @app.route("/api/queues/<feature_name>/results", methods=["GET"])
    def list_results(feature_name):
        feature, failure = _feature_or_error(feature_name)
        if failure is not None:
            return failure
        try:
            results, diagnostic = producer.list_results(state["queue_store"], feature)
        except StorageError as exc:
            return _storage_failed(f"results/{feature.key}", exc)
        return ok_response({"feature": feature.key, "requests": results, "diagnostic": diagnostic})

    # Route: /api/queues/<feature>/pending
    @app.route("/api/queues/<feature_name>/pending", methods=["GET"])
    def list_pending(feature_name):
        feature, failure = _feature_or_error(feature_name)
        if failure is not None:
            return failure
        try:
            pending, diagnostic = producer.list_pending(state["queue_store"], feature)
        except StorageError as exc:
            return _storage_failed(f"pending/{feature.key}", exc)
        return ok_response({"feature": feature.key, "requests": pending, "diagnostic": diagnostic})

    # Route: /api/queues/<feature>/requests/<request_id>
    @app.route("/api/queues/<feature_name>/requests/<request_id>", methods=["GET"])
    def request_status(feature_name, request_id):
        feature, failure = _feature_or_error(feature_name)
        if failure is not None:
            return failure
        wait = _wait_seconds(state)
        if wait is None:
            return error_response("invalid_wait", "wait must be a number of seconds.", 400)
        store = state["queue_store"]
        try:
            if wait > 0:
                outcome = producer.poll_result(
                    store,
                    feature,
                    request_id,
                    timeout=wait,
                    interval=state["RESULT_POLL_INTERVAL_SECONDS"],
                    cancel_event=state["shutdown_event"],
                    log_exception=state["log_queue_exception"],
                )
                if outcome["state"] == producer.POLL_RESOLVED:
                    return ok_response({"requestId": request_id, "status": outcome["status"], "result": outcome["result"]})
            status = producer.get_request_status(store, feature, request_id)
        except StorageError as exc:
            return _storage_failed(f"status/{feature.key}", exc)
        code = 202 if status["status"] in ("pending", producer.POLL_UNKNOWN) else 200
        return ok_response(status, code)

    # Route: /api/health
    @app.route("/api/health", methods=["GET"])
    def health():
        reconciler_state = state["reconciler_state"]
        runtime = reconciler_state.runtime
        return ok_response({
            "storage": state["storage"].describe(),
            "apiPath": str(state["API_PATH"]),
            "features": sorted(state["FEATURES"]),
            "reconciler": {
                "enabled": runtime is not None,
                "running": bool(runtime is not None and runtime.running),
                "lastSummaries": dict(runtime.last_summaries) if runtime is not None else {},
            },
        })
