"""Typed application runtime state container."""
from dataclasses import dataclass
from collections.abc import Iterator, MutableMapping
from typing import Any


@dataclass
class ReconcilerState:
    """Consumer runtime handle plus start-once bookkeeping."""
    runtime: Any
    start_lock: Any
    started: bool


_STATE_CORE_KEYS = (
    "API_PATH",
    "DISPLAY_TZ",
    "ENQUEUE_MAX_ATTEMPTS",
    "FEATURES",
    "LOG_DIR",
    "RESULT_POLL_INTERVAL_SECONDS",
    "RESULT_POLL_MAX_TIMEOUT_SECONDS",
    "RESULT_POLL_TIMEOUT_SECONDS",
    "STORAGE_BACKEND",
    "reconciler_state",
    "retention_policy",
    "shutdown_event",
    "storage",
)

_STATE_BINDING_KEYS = (
    "log_queue_action",
    "log_queue_exception",
    "log_queue_system",
    "queue_store",
    "start_reconciler",
    "stop_reconciler",
)

REQUIRED_STATE_KEYS = _STATE_CORE_KEYS + _STATE_BINDING_KEYS
REQUIRED_STATE_KEY_SET = frozenset(REQUIRED_STATE_KEYS)


class BridgeState(MutableMapping[str, Any]):
    """Strict runtime mapping with attribute and dict-style access."""

    __slots__ = ("_data",)

    def __init__(self, data: dict[str, Any]):
        missing = [key for key in REQUIRED_STATE_KEYS if key not in data]
        if missing:
            raise KeyError(f"Missing state members: {', '.join(missing)}")
        self._data = {key: data[key] for key in REQUIRED_STATE_KEYS}

    def __getitem__(self, key: str) -> Any:
        try:
            return self._data[key]
        except KeyError as exc:
            raise KeyError(key) from exc

    def __setitem__(self, key: str, value: Any) -> None:
        if key not in REQUIRED_STATE_KEY_SET:
            raise KeyError(key)
        self._data[key] = value

    def __delitem__(self, key: str) -> None:
        raise TypeError("BridgeState does not support deleting members")

    def __iter__(self) -> Iterator[str]:
        return iter(REQUIRED_STATE_KEYS)

    def __len__(self) -> int:
        return len(REQUIRED_STATE_KEYS)

    def __getattr__(self, name: str) -> Any:
        """Support attribute-style state reads used across services."""
        if name in REQUIRED_STATE_KEY_SET:
            return self._data[name]
        raise AttributeError(name)

    def __setattr__(self, name: str, value: Any) -> None:
        """Support attribute-style state writes for known keys only."""
        if name == "_data":
            object.__setattr__(self, name, value)
            return
        if name in REQUIRED_STATE_KEY_SET:
            self._data[name] = value
            return
        raise AttributeError(name)
