"""Queue/result record model: JSON document codec, ids, timestamps and status."""

from __future__ import annotations

import json
import time
import uuid
from datetime import datetime, timezone

from queuebridge.core.errors import MalformedDocument

REQUEST_LIST_KEY = "requests"

STATUS_PENDING = "pending"
STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"
STATUS_CHOICES = (STATUS_PENDING, STATUS_SUCCESS, STATUS_FAILED)

# Spellings written by older mod builds.
_SUCCESS_ALIASES = {"success", "completed", "complete", "ok", "done"}
_PENDING_ALIASES = {"pending", "queued", ""}


def utc_now_iso(now=None):
    """Return ``YYYY-MM-DDTHH:MM:SS.mmmZ`` for ``now`` (default: current time)."""
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value):
    """Parse an ISO timestamp into an aware datetime; ``None`` when unusable."""
    text = str(value or "").strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def new_request_id(prefix="req"):
    """Return a collision-resistant id: ``<prefix>_<epoch-ms>_<12 hex>``."""
    safe_prefix = str(prefix or "req").strip() or "req"
    return f"{safe_prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:12]}"


def request_id_of(record):
    """Return the record's ``requestId`` as a stripped string (may be empty)."""
    if not isinstance(record, dict):
        return ""
    return str(record.get("requestId") or "").strip()


def decode_document(data):
    """Decode a queue/result file body into its list of record dicts.

    Raises ``MalformedDocument`` for undecodable JSON or a non-object root.
    A missing ``requests`` key or an empty body yields an empty list.
    """
    if isinstance(data, bytes):
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise MalformedDocument(f"not UTF-8: {exc}") from exc
    else:
        text = str(data or "")
    if not text.strip():
        return []
    try:
        parsed = json.loads(text)
    except ValueError as exc:
        raise MalformedDocument(f"invalid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise MalformedDocument("document root must be an object")
    records = parsed.get(REQUEST_LIST_KEY)
    if records is None:
        return []
    if not isinstance(records, list):
        raise MalformedDocument(f"'{REQUEST_LIST_KEY}' must be a list")
    return [dict(item) for item in records if isinstance(item, dict)]


def encode_document(records):
    """Encode records as the ``{"requests": [...]}`` UTF-8 JSON document."""
    payload = {REQUEST_LIST_KEY: list(records)}
    return (json.dumps(payload, indent=2, ensure_ascii=False) + "\n").encode("utf-8")


def normalize_status(record):
    """Collapse the record's status/result into pending, success or failed."""
    status = str(record.get("status") or "").strip().lower()
    result = str(record.get("result") or "").strip()
    if status in _SUCCESS_ALIASES:
        return STATUS_SUCCESS
    if status == STATUS_FAILED:
        return STATUS_FAILED
    if status and status not in _PENDING_ALIASES:
        return STATUS_FAILED
    if status == STATUS_PENDING:
        return STATUS_PENDING
    # No status field: older grant/command results only carry ``result``.
    if result.upper() == "SUCCESS":
        return STATUS_SUCCESS
    if record.get("processed") and result:
        return STATUS_FAILED
    return STATUS_PENDING


def is_processed(record):
    """Return True when the consumer has already handled this request."""
    if record.get("processed") is True:
        return True
    if "processed" not in record and "status" in record:
        return normalize_status(record) != STATUS_PENDING
    return False


def with_normalized_status(record):
    """Return a copy whose ``status`` is one of ``STATUS_CHOICES``."""
    copy = dict(record)
    copy["status"] = normalize_status(record)
    return copy


def mark_processed(record, *, status, message, processed_at):
    """Mutate ``record`` in place into its processed form and return it."""
    record["processed"] = True
    record["status"] = status
    record["result"] = str(message or "")
    record["processedAt"] = processed_at
    return record


def build_result_record(record):
    """Return the result-file entry for one processed request record."""
    result = dict(record)
    result["requestId"] = request_id_of(record)
    result["status"] = normalize_status(record)
    result["result"] = str(record.get("result") or "")
    result["processedAt"] = str(record.get("processedAt") or "")
    result["processed"] = True
    return result


def record_time(record, *fields):
    """Return the first parseable timestamp among ``fields`` of ``record``."""
    for field in fields:
        parsed = parse_timestamp(record.get(field))
        if parsed is not None:
            return parsed
    return None
