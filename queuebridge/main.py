"""Queue bridge: HTTP producer API plus the optional in-process consumer.

This app provides:
- Enqueue endpoints for the five game queues (item grants, item deletes,
  player commands, key grants, vehicle deletes)
- Result/pending listings and long-poll status lookups
- A reconciliation runtime that applies queued requests through a world
  adapter when one is configured
"""

import importlib
import os
import threading
from functools import partial
from pathlib import Path

from flask import Flask

from queuebridge.core.config import apply_default_flask_config, resolve_display_tz, resolve_secret_key
from queuebridge.core.errors import StorageError
from queuebridge.core.filesystem_utils import to_posix_path
from queuebridge.core.logging_setup import build_loggers
from queuebridge.core.storage import create_storage
from queuebridge.core.web_config import WebConfig
from queuebridge.routes.queue_routes import register_queue_routes
from queuebridge.services import bootstrap as bootstrap_service
from queuebridge.services.app_lifecycle import build_run_server, install_flask_hooks
from queuebridge.services.queue_features import FEATURES
from queuebridge.services.queue_files import QueueFileStore
from queuebridge.services.queue_producer import (
    DEFAULT_ENQUEUE_ATTEMPTS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_POLL_MAX_TIMEOUT_SECONDS,
    DEFAULT_POLL_TIMEOUT_SECONDS,
    MAX_POLL_INTERVAL_SECONDS,
    MIN_POLL_INTERVAL_SECONDS,
)
from queuebridge.services.reconciliation import build_reconciler_runtime
from queuebridge.services.retention import RetentionPolicy
from queuebridge.services.world_effects import build_effect_executors
from queuebridge.state import BridgeState, ReconcilerState

APP_DIR = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = APP_DIR / "qbridge.env"
DEFAULT_REMOTE_API_PATH = "./profiles/SST/api"


def resolve_config_path(environ=None):
    """``QBRIDGE_CONFIG`` from the environment, else ``qbridge.env`` beside the package."""
    source = os.environ if environ is None else environ
    raw = (source.get("QBRIDGE_CONFIG") or "").strip()
    return Path(raw) if raw else DEFAULT_CONFIG_PATH


def load_config(config_path=None, environ=None):
    return WebConfig(config_path or resolve_config_path(environ), APP_DIR, environ=environ)


def resolve_api_path(cfg, backend):
    """Local paths resolve against the app dir; remote paths stay POSIX under the remote root."""
    if backend == "local":
        return cfg.get_path("API_PATH", APP_DIR / "profiles" / "SST" / "api")
    return to_posix_path(cfg.get_str("API_PATH", DEFAULT_REMOTE_API_PATH))


def load_world_factory(factory_path):
    """Import ``package.module:callable`` and return the callable."""
    module_name, _, attr = str(factory_path or "").partition(":")
    if not module_name or not attr:
        raise ValueError(f"WORLD_FACTORY must look like 'package.module:callable', got {factory_path!r}")
    module = importlib.import_module(module_name)
    return getattr(module, attr)


def log_storage_diagnostics(state):
    """Log the storage target and probe every queue file once at boot."""
    log = state["log_queue_system"]
    describe = state["storage"].describe()
    log("storage", command=" ".join(f"{key}={value}" for key, value in describe.items()))
    log("api-path", command=str(state["API_PATH"]))
    store = state["queue_store"]
    for feature in state["FEATURES"].values():
        try:
            read = store.read_queue(feature)
        except StorageError as exc:
            # Boot continues; storage may come back before the first request.
            log("storage-probe", command=feature.queue_file, rejection_message=str(exc)[:500])
            continue
        detail = f"{feature.queue_file} exists={read.exists} records={len(read.records)}"
        log("storage-probe", command=detail, rejection_message=read.diagnostic or None)


def build_app(cfg, *, storage=None, world=None, features=None):
    """Build the Flask app and its runtime state from ``cfg``."""
    app = Flask(__name__)
    app.config["SECRET_KEY"] = resolve_secret_key(cfg, "QBRIDGE_SECRET_KEY", "FLASK_SECRET_KEY")
    apply_default_flask_config(app)

    display_tz = resolve_display_tz(cfg)
    log_dir = cfg.get_path("LOG_DIR", APP_DIR / "logs")
    log_queue_action, log_queue_system, log_queue_exception = build_loggers(
        display_tz,
        log_dir,
        log_dir / "qbridge-actions.log",
        log_dir / "qbridge.log",
    )

    if storage is None:
        storage = create_storage(cfg)
    backend = storage.backend
    api_path = resolve_api_path(cfg, backend)
    store = QueueFileStore(storage, api_path, log_action=log_queue_system)
    features = dict(features or FEATURES)
    policy = RetentionPolicy.from_config(cfg)

    if world is None and cfg.has("WORLD_FACTORY"):
        world = load_world_factory(cfg.get_str("WORLD_FACTORY", ""))(cfg)
    runtime = None
    if world is not None:
        runtime = build_reconciler_runtime(
            cfg,
            store,
            build_effect_executors(world),
            features,
            policy=policy,
            log_action=log_queue_system,
            log_exception=log_queue_exception,
        )
    reconciler_state = ReconcilerState(runtime=runtime, start_lock=threading.Lock(), started=False)

    def start_reconciler():
        """Start consumer threads once; no-op without a world adapter."""
        with reconciler_state.start_lock:
            if reconciler_state.started or reconciler_state.runtime is None:
                return False
            if not cfg.get_bool("RECONCILER_ENABLED", True):
                log_queue_system("reconciler-disabled")
                return False
            reconciler_state.runtime.start()
            reconciler_state.started = True
            return True

    def stop_reconciler():
        with reconciler_state.start_lock:
            if not reconciler_state.started:
                return
            reconciler_state.runtime.stop()
            reconciler_state.started = False

    max_timeout = cfg.get_float("RESULT_POLL_MAX_TIMEOUT_SECONDS", DEFAULT_POLL_MAX_TIMEOUT_SECONDS, minimum=1.0, maximum=DEFAULT_POLL_MAX_TIMEOUT_SECONDS)
    state = BridgeState({
        "API_PATH": api_path,
        "DISPLAY_TZ": display_tz,
        "ENQUEUE_MAX_ATTEMPTS": cfg.get_int("ENQUEUE_MAX_ATTEMPTS", DEFAULT_ENQUEUE_ATTEMPTS, minimum=1, maximum=10),
        "FEATURES": features,
        "LOG_DIR": log_dir,
        "RESULT_POLL_INTERVAL_SECONDS": cfg.get_float(
            "RESULT_POLL_INTERVAL_SECONDS",
            DEFAULT_POLL_INTERVAL_SECONDS,
            minimum=MIN_POLL_INTERVAL_SECONDS,
            maximum=MAX_POLL_INTERVAL_SECONDS,
        ),
        "RESULT_POLL_MAX_TIMEOUT_SECONDS": max_timeout,
        "RESULT_POLL_TIMEOUT_SECONDS": cfg.get_float("RESULT_POLL_TIMEOUT_SECONDS", DEFAULT_POLL_TIMEOUT_SECONDS, minimum=0.25, maximum=max_timeout),
        "STORAGE_BACKEND": backend,
        "reconciler_state": reconciler_state,
        "retention_policy": policy,
        "shutdown_event": threading.Event(),
        "storage": storage,
        "log_queue_action": log_queue_action,
        "log_queue_exception": log_queue_exception,
        "log_queue_system": log_queue_system,
        "queue_store": store,
        "start_reconciler": start_reconciler,
        "stop_reconciler": stop_reconciler,
    })

    install_flask_hooks(app, log_queue_action=log_queue_action, log_queue_exception=log_queue_exception)
    register_queue_routes(app, state)
    app.extensions["queuebridge"] = state
    return app, state


def main(config_path=None):
    cfg = load_config(config_path)
    app, state = build_app(cfg)
    run_server = build_run_server(
        bootstrap_service=bootstrap_service,
        app=app,
        cfg_get_str=cfg.get_str,
        cfg_get_int=cfg.get_int,
        log_queue_system=state["log_queue_system"],
        log_queue_exception=state["log_queue_exception"],
        log_storage_diagnostics=partial(log_storage_diagnostics, state),
        start_reconciler=state["start_reconciler"],
    )
    try:
        run_server()
    finally:
        state["shutdown_event"].set()
        state["stop_reconciler"]()


if __name__ == "__main__":
    main()
