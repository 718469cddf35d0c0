"""Queue event log writers.

Every line has the shape ``<ts> <source> [qbridge/<action>] <command> rejected: <reason>``.
``source`` is the HTTP client address inside a request, the worker thread
name inside a reconciler thread, and ``qbridge`` everywhere else.
"""

from datetime import datetime
import os
import threading
import traceback
from flask import request, has_request_context

LOG_ROTATE_MAX_BYTES = 5 * 1024 * 1024
LOG_ROTATE_BACKUP_COUNT = 5
LOG_SOURCE_TAG = "qbridge"
WORKER_THREAD_PREFIX = "reconcile-"
TRACEBACK_MAX_CHARS = 700


def _one_line(text):
    return " ".join(str(text or "").split())


def _event_source():
    if has_request_context():
        forwarded = (request.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
        return forwarded or (request.remote_addr or "").strip() or LOG_SOURCE_TAG
    thread_name = threading.current_thread().name
    if thread_name.startswith(WORKER_THREAD_PREFIX):
        return thread_name
    return LOG_SOURCE_TAG


def _rotate_log_file(path, max_bytes=LOG_ROTATE_MAX_BYTES, backup_count=LOG_ROTATE_BACKUP_COUNT):
    """Shift ``path`` to ``path.1`` (and older backups up by one) once it is full."""
    if max_bytes <= 0 or backup_count <= 0:
        return
    try:
        if not path.exists() or path.stat().st_size < max_bytes:
            return
        backups = [path.with_name(f"{path.name}.{idx}") for idx in range(1, backup_count + 1)]
        for older, newer in zip(reversed(backups[1:]), reversed(backups[:-1])):
            if newer.exists():
                os.replace(newer, older)
        os.replace(path, backups[0])
    except OSError:
        pass


def format_log_line(timestamp, action, command=None, rejection_message=None):
    fields = [f"{timestamp} <{_one_line(_event_source()) or 'unknown'}> [{LOG_SOURCE_TAG}/{_one_line(action) or 'unknown'}]"]
    if _one_line(command):
        fields.append(_one_line(command))
    if _one_line(rejection_message):
        fields.append(f"rejected: {_one_line(rejection_message)}")
    return " ".join(fields)


def make_log_action(display_tz, log_dir, action_log_file):
    """Return ``log_action(action, command=None, rejection_message=None)`` for one file.

    Web request threads and reconciler threads share the writer, so appends
    and rotation run under one lock. Write failures are dropped.
    """
    write_lock = threading.Lock()

    def log_action(action, command=None, rejection_message=None):
        stamp = datetime.now(tz=display_tz).strftime("%b %d %H:%M:%S")
        line = format_log_line(stamp, action, command, rejection_message)
        with write_lock:
            try:
                log_dir.mkdir(parents=True, exist_ok=True)
                _rotate_log_file(action_log_file)
                with action_log_file.open("a", encoding="utf-8") as handle:
                    handle.write(line + "\n")
            except OSError:
                pass

    return log_action


def make_log_exception(log_action):
    """Return ``log_exception(context, exc)`` that logs an ``error`` event via ``log_action``."""

    def log_exception(context, exc):
        summary = f"{context}: {type(exc).__name__}"
        detail = _one_line(exc)
        if detail:
            summary += f": {detail}"
        trace = _one_line(" | ".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
        if trace:
            summary += f" | traceback: {trace[:TRACEBACK_MAX_CHARS]}"
        log_action("error", rejection_message=summary)

    return log_exception
