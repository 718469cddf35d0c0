"""Queue feature definitions: file names, id prefixes and payload schemas."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable

from queuebridge.core.errors import UnknownFeatureError

PLAYER_ID_MAX_LENGTH = 64
TEXT_FIELD_MAX_LENGTH = 256
MESSAGE_MAX_LENGTH = 500
COMMAND_TYPES = ("heal", "teleport", "message", "broadcast")
MESSAGE_TYPES = ("notification", "chat", "both")
DEFAULT_KEY_CLASS_NAME = "ExpansionCarKey"


@dataclass(frozen=True)
class QueueFeature:
    """One queue/result file pair and the payload schema it carries."""
    key: str
    queue_file: str
    result_file: str
    id_prefix: str
    validate: Callable[[dict], tuple[bool, Any]]
    description: str = ""
    default_poll_interval_seconds: float = 2.0


def _text(payload, key, *, required=True, default="", max_length=TEXT_FIELD_MAX_LENGTH, label=None):
    """Return ``(ok, value_or_message)`` for one string field."""
    label = label or key
    raw = payload.get(key)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        if required:
            return False, f"{label} is required."
        return True, default
    if not isinstance(raw, (str, int)) or isinstance(raw, bool):
        return False, f"{label} must be a string."
    value = str(raw).strip()
    if len(value) > max_length:
        return False, f"{label} must be at most {max_length} characters."
    return True, value


def _integer(payload, key, *, default, minimum=None, maximum=None, label=None):
    label = label or key
    raw = payload.get(key)
    if raw is None or raw == "":
        return True, default
    if isinstance(raw, bool):
        return False, f"{label} must be an integer."
    try:
        if isinstance(raw, float) and not raw.is_integer():
            raise ValueError(raw)
        value = int(str(raw).strip()) if not isinstance(raw, (int, float)) else int(raw)
    except (TypeError, ValueError):
        return False, f"{label} must be an integer."
    if minimum is not None and value < minimum:
        return False, f"{label} must be at least {minimum}."
    if maximum is not None and value > maximum:
        return False, f"{label} must be at most {maximum}."
    return True, value


def _number(payload, key, *, default=None, required=False, minimum=None, maximum=None, label=None):
    label = label or key
    raw = payload.get(key)
    if raw is None or raw == "":
        if required:
            return False, f"{label} is required."
        return True, default
    if isinstance(raw, bool):
        return False, f"{label} must be a number."
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return False, f"{label} must be a number."
    if not math.isfinite(value):
        return False, f"{label} must be a finite number."
    if minimum is not None and value < minimum:
        return False, f"{label} must be at least {minimum}."
    if maximum is not None and value > maximum:
        return False, f"{label} must be at most {maximum}."
    return True, value


def _flag(payload, key, *, default=False):
    raw = payload.get(key)
    if raw is None:
        return True, default
    if isinstance(raw, bool):
        return True, raw
    lowered = str(raw).strip().lower()
    if lowered in {"1", "true", "yes"}:
        return True, True
    if lowered in {"0", "false", "no", ""}:
        return True, False
    return False, f"{key} must be a boolean."


def _collect(checks):
    """Run ``(field, (ok, value))`` checks; return the first failure or the dict."""
    parsed = {}
    for field, (ok, value) in checks:
        if not ok:
            return False, value
        parsed[field] = value
    return True, parsed


def _player_id(payload):
    return _text(payload, "playerId", max_length=PLAYER_ID_MAX_LENGTH)


def validate_item_grant(payload):
    """Grant ``quantity`` of ``itemClassName`` to ``playerId`` at ``health`` percent."""
    if not isinstance(payload, dict):
        return False, "Payload must be an object."
    return _collect([
        ("playerId", _player_id(payload)),
        ("itemClassName", _text(payload, "itemClassName")),
        ("quantity", _integer(payload, "quantity", default=1, minimum=1, maximum=100_000)),
        ("health", _number(payload, "health", default=100.0, minimum=0, maximum=100)),
    ])


def validate_item_delete(payload):
    if not isinstance(payload, dict):
        return False, "Payload must be an object."
    return _collect([
        ("playerId", _player_id(payload)),
        ("itemClassName", _text(payload, "itemClassName")),
        ("itemPath", _text(payload, "itemPath", max_length=1024)),
        ("deleteCount", _integer(payload, "deleteCount", default=0, minimum=0, maximum=100_000)),
    ])


def validate_player_command(payload):
    """Validate heal/teleport/message/broadcast commands.

    Teleport accepts ``x``/``y``/``z`` as aliases for ``posX``/``posY``/``posZ``.
    A ``posY`` of 0 lets the game place the player on the surface.
    """
    if not isinstance(payload, dict):
        return False, "Payload must be an object."
    ok, command_type = _text(payload, "commandType", max_length=32)
    if not ok:
        return False, command_type
    command_type = command_type.lower()
    if command_type not in COMMAND_TYPES:
        return False, f"commandType must be one of: {', '.join(COMMAND_TYPES)}."

    if command_type == "broadcast":
        player_check = (True, "all")
    else:
        player_check = _player_id(payload)

    checks = [("playerId", player_check), ("commandType", (True, command_type))]
    if command_type == "heal":
        checks.append(("value", _number(payload, "value", default=100.0, minimum=1, maximum=100)))
    elif command_type == "teleport":
        source = dict(payload)
        for alias, field in (("x", "posX"), ("y", "posY"), ("z", "posZ")):
            if source.get(field) is None and source.get(alias) is not None:
                source[field] = source[alias]
        checks.append(("posX", _number(source, "posX", required=True, label="x")))
        checks.append(("posY", _number(source, "posY", default=0.0, label="y")))
        checks.append(("posZ", _number(source, "posZ", required=True, label="z")))
    else:
        checks.append(("message", _text(payload, "message", max_length=MESSAGE_MAX_LENGTH)))
        ok, message_type = _text(payload, "messageType", required=False, default="notification", max_length=32)
        if ok:
            message_type = message_type.lower()
            if message_type not in MESSAGE_TYPES:
                ok, message_type = False, f"messageType must be one of: {', '.join(MESSAGE_TYPES)}."
        checks.append(("messageType", (ok, message_type)))
    return _collect(checks)


def validate_key_grant(payload):
    if not isinstance(payload, dict):
        return False, "Payload must be an object."
    return _collect([
        ("playerId", _player_id(payload)),
        ("vehicleId", _text(payload, "vehicleId")),
        ("keyClassName", _text(payload, "keyClassName", required=False, default=DEFAULT_KEY_CLASS_NAME)),
        ("isMasterKey", _flag(payload, "isMasterKey")),
    ])


def validate_vehicle_delete(payload):
    if not isinstance(payload, dict):
        return False, "Payload must be an object."
    return _collect([
        ("vehicleId", _text(payload, "vehicleId")),
        ("vehicleClassName", _text(payload, "vehicleClassName", required=False)),
        ("vehicleDisplayName", _text(payload, "vehicleDisplayName", required=False)),
    ])


FEATURES = {
    feature.key: feature
    for feature in (
        QueueFeature(
            key="item_grants",
            queue_file="item_grants.json",
            result_file="item_grants_results.json",
            id_prefix="grant",
            validate=validate_item_grant,
            description="Spawn items into a player's inventory.",
        ),
        QueueFeature(
            key="item_deletes",
            queue_file="item_deletes.json",
            result_file="item_deletes_results.json",
            id_prefix="idel",
            validate=validate_item_delete,
            description="Delete an item from a player's inventory.",
            default_poll_interval_seconds=5.0,
        ),
        QueueFeature(
            key="player_commands",
            queue_file="player_commands.json",
            result_file="player_commands_results.json",
            id_prefix="cmd",
            validate=validate_player_command,
            description="Heal, teleport, message or broadcast.",
        ),
        QueueFeature(
            key="key_grants",
            queue_file="key_grants.json",
            result_file="key_grants_results.json",
            id_prefix="key",
            validate=validate_key_grant,
            description="Generate a vehicle key for a player.",
        ),
        QueueFeature(
            key="vehicle_delete",
            queue_file="vehicle_delete.json",
            result_file="vehicle_delete_results.json",
            id_prefix="vdel",
            validate=validate_vehicle_delete,
            description="Delete a vehicle from the world and tracking.",
        ),
    )
}


def get_feature(name, features=None):
    """Return the feature definition for ``name`` or raise ``UnknownFeatureError``."""
    registry = FEATURES if features is None else features
    key = str(name or "").strip().lower()
    feature = registry.get(key)
    if feature is None:
        raise UnknownFeatureError(f"Unknown queue feature: {name}")
    return feature
