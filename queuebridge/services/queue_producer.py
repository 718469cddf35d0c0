"""Producer side of the queue protocol: enqueue, poll and status lookups."""

from __future__ import annotations

import re
import threading
import time

from queuebridge.core.errors import (
    DuplicateRequestError,
    EnqueueError,
    PayloadValidationError,
    StorageError,
)
from queuebridge.core.queue_records import (
    STATUS_PENDING,
    is_processed,
    new_request_id,
    normalize_status,
    request_id_of,
    utc_now_iso,
    with_normalized_status,
)

DEFAULT_ENQUEUE_ATTEMPTS = 3
DEFAULT_POLL_INTERVAL_SECONDS = 0.5
MIN_POLL_INTERVAL_SECONDS = 0.25
MAX_POLL_INTERVAL_SECONDS = 1.0
DEFAULT_POLL_TIMEOUT_SECONDS = 10.0
DEFAULT_POLL_MAX_TIMEOUT_SECONDS = 30.0

POLL_RESOLVED = "resolved"
POLL_UNKNOWN = "unknown"

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9_.:-]{1,128}$")


def build_request_record(feature, payload, *, request_id=None, now=None):
    """Validate ``payload`` and return a new unprocessed request record."""
    ok, parsed = feature.validate(payload)
    if not ok:
        raise PayloadValidationError(parsed)
    rid = str(request_id or "").strip() or new_request_id(feature.id_prefix)
    if not _REQUEST_ID_RE.match(rid):
        raise PayloadValidationError("requestId may only contain letters, digits, '_', '.', ':' or '-' (max 128).")
    record = {"requestId": rid}
    record.update(parsed)
    record["requestedAt"] = utc_now_iso(now)
    record["processed"] = False
    record["status"] = STATUS_PENDING
    record["result"] = ""
    return record


def _contains(records, request_id):
    return any(request_id_of(item) == request_id for item in records)


def enqueue(store, feature, payload, *, request_id=None, max_attempts=DEFAULT_ENQUEUE_ATTEMPTS, log_action=None):
    """Append one request to the feature's queue file and return the record.

    Uses read-merge-write: the queue is re-read immediately before each
    write and read back afterwards; a record dropped by a racing writer is
    re-merged up to ``max_attempts`` times. Duplicate ids are rejected.
    """
    record = build_request_record(feature, payload, request_id=request_id)
    rid = record["requestId"]
    queue_path = store.queue_path(feature)

    with store.lock(queue_path):
        current = store.read(queue_path)
        if _contains(current.records, rid) or _contains(store.read_results(feature).records, rid):
            raise DuplicateRequestError(rid)
        if current.diagnostic and callable(log_action):
            log_action("enqueue-reset", command=str(queue_path), rejection_message=current.diagnostic)

        for attempt in range(1, max(1, int(max_attempts)) + 1):
            fresh = store.read(queue_path)
            if _contains(fresh.records, rid):
                if attempt == 1:
                    raise DuplicateRequestError(rid)
                # Earlier attempt landed after all; the verify read raced.
                return record
            store.write(queue_path, fresh.records + [record])
            confirmed = store.read(queue_path)
            if _contains(confirmed.records, rid):
                if callable(log_action):
                    log_action("enqueue", command=f"{feature.key} {rid}")
                return record
            if callable(log_action):
                log_action(
                    "enqueue-retry",
                    command=f"{feature.key} {rid} attempt={attempt}",
                    rejection_message="record missing after write (concurrent writer)",
                )

    raise EnqueueError(f"Request {rid} could not be confirmed in {queue_path} after {max_attempts} attempts.")


def find_result(store, feature, request_id):
    """Return the newest finished result record for ``request_id`` or ``None``.

    ``pending`` placeholders are skipped; pollers keep waiting past them.
    """
    for record in reversed(store.read_results(feature).records):
        if request_id_of(record) == request_id and normalize_status(record) != STATUS_PENDING:
            return with_normalized_status(record)
    return None


def clamp_poll_interval(interval):
    try:
        value = float(interval)
    except (TypeError, ValueError):
        value = DEFAULT_POLL_INTERVAL_SECONDS
    return min(MAX_POLL_INTERVAL_SECONDS, max(MIN_POLL_INTERVAL_SECONDS, value))


def poll_result(
    store,
    feature,
    request_id,
    *,
    timeout,
    interval=DEFAULT_POLL_INTERVAL_SECONDS,
    cancel_event=None,
    log_exception=None,
    clock=time.monotonic,
):
    """Re-read the result file until ``request_id`` appears or time runs out.

    Returns ``{"state": "resolved", "status", "result"}`` or
    ``{"state": "unknown", "reason": "timeout"|"cancelled"}``. ``unknown``
    means the outcome is not known yet; the request may still complete.
    """
    try:
        timeout = float(timeout)
    except (TypeError, ValueError):
        raise ValueError("poll_result requires a numeric timeout") from None
    if timeout <= 0:
        raise ValueError("poll_result requires a positive timeout")
    interval = clamp_poll_interval(interval)
    waiter = cancel_event if cancel_event is not None else threading.Event()
    deadline = clock() + timeout

    while True:
        try:
            found = find_result(store, feature, request_id)
        except StorageError as exc:
            # Transient; the next interval is the retry.
            if callable(log_exception):
                log_exception(f"poll_result/{feature.key}", exc)
            found = None
        if found is not None:
            return {"state": POLL_RESOLVED, "requestId": request_id, "status": found["status"], "result": found}
        remaining = deadline - clock()
        if remaining <= 0:
            return {"state": POLL_UNKNOWN, "requestId": request_id, "reason": "timeout"}
        if waiter.wait(min(interval, remaining)):
            return {"state": POLL_UNKNOWN, "requestId": request_id, "reason": "cancelled"}


def get_request_status(store, feature, request_id):
    """One-shot lookup: success/failed from results, pending from the queue, else unknown."""
    found = find_result(store, feature, request_id)
    if found is not None:
        return {"requestId": request_id, "status": found["status"], "result": found}
    for record in store.read_queue(feature).records:
        if request_id_of(record) != request_id:
            continue
        if not is_processed(record):
            return {"requestId": request_id, "status": STATUS_PENDING, "request": record}
        return {"requestId": request_id, "status": normalize_status(record), "result": with_normalized_status(record)}
    return {"requestId": request_id, "status": POLL_UNKNOWN}


def list_results(store, feature):
    """Return result records with normalized status, plus any parse diagnostic."""
    read = store.read_results(feature)
    return [with_normalized_status(record) for record in read.records], read.diagnostic


def list_pending(store, feature):
    """Return queue records the consumer has not handled yet."""
    read = store.read_queue(feature)
    return [record for record in read.records if not is_processed(record)], read.diagnostic
