"""Effect executors: apply one validated request to the game world.

Every executor has the shape ``executor(record) -> (ok, message)``. The
world object is supplied by the game runtime and exposes:

- ``find_player(player_id)`` -> player or ``None``
- ``item_class_exists(class_name)`` -> bool
- ``give_item(player, class_name, quantity, health)`` -> item or ``None``
- ``drop_item_at_player(player, class_name, quantity, health)`` -> item or ``None``
- ``remove_item(player, item_path, class_name, delete_count)`` -> ``(ok, message)``
- ``heal_player(player, percent)`` / ``teleport_player(player, x, y, z)`` -> bool (False when dead)
- ``send_message(player, message, message_type)``
- ``broadcast(message, message_type)`` -> number of recipients
- ``find_vehicle(vehicle_id)`` -> vehicle or ``None``
- ``create_vehicle_key(player, vehicle, key_class_name, is_master)`` -> key or ``None``
- ``delete_vehicle(vehicle)``, ``is_vehicle_tracked(vehicle_id)``, ``untrack_vehicle(vehicle_id)``
"""

from __future__ import annotations

SUCCESS_MESSAGE = "SUCCESS"
PLAYER_NOT_ONLINE = "Player not online"
UNKNOWN_ITEM_CLASS = "unknown item class"
MAP_COORDINATE_LIMIT = 20000.0


def make_item_grant_executor(world):
    def execute(record):
        player = world.find_player(record["playerId"])
        if player is None:
            return False, PLAYER_NOT_ONLINE
        class_name = record["itemClassName"]
        if not world.item_class_exists(class_name):
            return False, UNKNOWN_ITEM_CLASS
        quantity = int(record.get("quantity") or 1)
        health = float(record.get("health", 100.0))
        item = world.give_item(player, class_name, quantity, health)
        if item is None:
            # Inventory full: fall back to the ground under the player.
            item = world.drop_item_at_player(player, class_name, quantity, health)
        if item is None:
            return False, f"Could not spawn {class_name}"
        return True, SUCCESS_MESSAGE
    return execute


def make_item_delete_executor(world):
    def execute(record):
        player = world.find_player(record["playerId"])
        if player is None:
            return False, PLAYER_NOT_ONLINE
        ok, message = world.remove_item(
            player,
            record["itemPath"],
            record["itemClassName"],
            int(record.get("deleteCount") or 0),
        )
        return bool(ok), str(message or "")
    return execute


def _heal(world, player, record):
    percent = float(record.get("value") or 100.0)
    if not world.heal_player(player, percent):
        return False, "PLAYER_DEAD"
    return True, SUCCESS_MESSAGE


def _teleport(world, player, record):
    x = float(record["posX"])
    y = float(record.get("posY") or 0.0)
    z = float(record["posZ"])
    if not (0 <= x <= MAP_COORDINATE_LIMIT and 0 <= z <= MAP_COORDINATE_LIMIT):
        return False, "INVALID_COORDINATES"
    if not world.teleport_player(player, x, y, z):
        return False, "PLAYER_DEAD"
    return True, SUCCESS_MESSAGE


def make_player_command_executor(world):
    def execute(record):
        command_type = str(record.get("commandType") or "").lower()
        message = str(record.get("message") or "")
        message_type = str(record.get("messageType") or "notification")
        if command_type == "broadcast":
            if not message:
                return False, "EMPTY_MESSAGE"
            world.broadcast(message, message_type)
            return True, SUCCESS_MESSAGE

        player = world.find_player(record.get("playerId"))
        if player is None:
            return False, PLAYER_NOT_ONLINE
        if command_type == "heal":
            return _heal(world, player, record)
        if command_type == "teleport":
            return _teleport(world, player, record)
        if command_type == "message":
            if not message:
                return False, "EMPTY_MESSAGE"
            world.send_message(player, message, message_type)
            return True, SUCCESS_MESSAGE
        return False, "INVALID_COMMAND"
    return execute


def make_key_grant_executor(world):
    def execute(record):
        player = world.find_player(record["playerId"])
        if player is None:
            return False, PLAYER_NOT_ONLINE
        vehicle = world.find_vehicle(record["vehicleId"])
        if vehicle is None:
            return False, "Vehicle not found in world"
        key = world.create_vehicle_key(
            player,
            vehicle,
            record.get("keyClassName") or "ExpansionCarKey",
            bool(record.get("isMasterKey")),
        )
        if key is None:
            return False, "Could not create key item"
        return True, "Key created and paired to vehicle"
    return execute


def make_vehicle_delete_executor(world):
    def execute(record):
        vehicle_id = record["vehicleId"]
        was_tracked = bool(world.is_vehicle_tracked(vehicle_id))
        vehicle = world.find_vehicle(vehicle_id)
        if vehicle is not None:
            world.delete_vehicle(vehicle)
        # Tracking is dropped whether or not the vehicle was still in the world.
        if was_tracked:
            world.untrack_vehicle(vehicle_id)

        if vehicle is not None and was_tracked:
            return True, "Vehicle destroyed and removed from tracking"
        if vehicle is not None:
            return True, "Vehicle destroyed (was not tracked)"
        if was_tracked:
            return True, "Vehicle not found in world (already despawned) - removed from tracking"
        return False, "Vehicle not found in world or tracking"
    return execute


EXECUTOR_FACTORIES = {
    "item_grants": make_item_grant_executor,
    "item_deletes": make_item_delete_executor,
    "player_commands": make_player_command_executor,
    "key_grants": make_key_grant_executor,
    "vehicle_delete": make_vehicle_delete_executor,
}


def build_effect_executors(world):
    """Return ``{feature_key: executor}`` for every known feature."""
    return {key: factory(world) for key, factory in EXECUTOR_FACTORIES.items()}
