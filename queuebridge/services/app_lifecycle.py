"""Flask lifecycle hook and startup runner composition helpers."""
from flask import has_request_context, request
from werkzeug.exceptions import HTTPException

from queuebridge.core.response_helpers import error_response, internal_error_response


def install_flask_hooks(app, *, log_queue_action, log_queue_exception):
    """Install JSON error handlers that log through the queue loggers."""

    @app.errorhandler(HTTPException)
    def _http_exception_handler(exc):
        path = request.path if has_request_context() else "unknown-path"
        log_queue_action("reject", command=path, rejection_message=f"{exc.code} {exc.name}")
        error = (exc.name or "http_error").lower().replace(" ", "_")
        return error_response(error, exc.description or exc.name, exc.code or 500)

    @app.errorhandler(Exception)
    def _unhandled_exception_handler(exc):
        path = request.path if has_request_context() else "unknown-path"
        log_queue_exception(f"unhandled_exception path={path}", exc)
        return internal_error_response()


def build_run_server(
    *,
    bootstrap_service,
    app,
    cfg_get_str,
    cfg_get_int,
    log_queue_system,
    log_queue_exception,
    log_storage_diagnostics,
    start_reconciler,
):
    """Return the app startup runner from explicit boot-step dependencies."""

    def run_server():
        boot_steps = [
            ("log_storage_diagnostics", log_storage_diagnostics),
            ("start_reconciler", start_reconciler),
        ]
        bootstrap_service.run_server(
            app,
            cfg_get_str,
            cfg_get_int,
            log_queue_system,
            log_queue_exception,
            boot_steps,
        )

    return run_server
