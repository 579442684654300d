from __future__ import annotations

from typing import Any

SUPPORTED_SCHEMA_VERSIONS = {1}
REQUIRED_SAVE_FIELDS = {"schema_version", "player", "cell_states", "save_hash"}


def _is_json_primitive(value: Any) -> bool:
    return value is None or isinstance(value, (bool, int, float, str))


def _validate_json_value(value: Any, *, field_name: str) -> None:
    if _is_json_primitive(value):
        return
    if isinstance(value, list):
        for item in value:
            _validate_json_value(item, field_name=field_name)
        return
    if isinstance(value, dict):
        for key, nested_value in value.items():
            if not isinstance(key, str):
                raise ValueError(f"{field_name} keys must be strings")
            _validate_json_value(nested_value, field_name=field_name)
        return
    raise ValueError(f"{field_name} must contain only canonical JSON primitives")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _validate_token(value: Any, *, field_name: str) -> None:
    if value is None:
        return
    if not _is_int(value) or value <= 0:
        raise ValueError(f"{field_name} must be a positive integer or null")


def _validate_player_shape(player: Any) -> None:
    if not isinstance(player, dict):
        raise ValueError("player must be an object")
    cell = player.get("cell")
    if not isinstance(cell, dict) or not {"x", "y"} <= cell.keys():
        raise ValueError("player.cell must be an object with x and y")
    if not _is_int(cell["x"]) or not _is_int(cell["y"]):
        raise ValueError("player.cell x and y must be integers")
    if "held_token" not in player:
        raise ValueError("player missing held_token")
    _validate_token(player["held_token"], field_name="player.held_token")


def _validate_cell_states_shape(cell_states: Any) -> None:
    if not isinstance(cell_states, list):
        raise ValueError("cell_states must be a list")
    seen: set[str] = set()
    for index, row in enumerate(cell_states):
        if not isinstance(row, list) or len(row) != 2:
            raise ValueError(f"cell_states[{index}] must be a [key, value] pair")
        key, value = row
        if not isinstance(key, str) or not key:
            raise ValueError(f"cell_states[{index}] key must be a non-empty string")
        if key in seen:
            raise ValueError(f"cell_states[{index}] duplicates key {key!r}")
        seen.add(key)
        _validate_token(value, field_name=f"cell_states[{index}] value")


def validate_save_payload(payload: Any) -> None:
    if not isinstance(payload, dict):
        raise ValueError("save payload must be an object")
    missing = REQUIRED_SAVE_FIELDS - set(payload.keys())
    if missing:
        raise ValueError(f"save payload missing fields: {sorted(missing)}")
    schema_version = payload["schema_version"]
    if not _is_int(schema_version) or schema_version not in SUPPORTED_SCHEMA_VERSIONS:
        raise ValueError(f"unsupported schema_version: {schema_version}")
    if not isinstance(payload["save_hash"], str) or not payload["save_hash"]:
        raise ValueError("save_hash must be a non-empty string")
    _validate_player_shape(payload["player"])
    _validate_cell_states_shape(payload["cell_states"])
    metadata = payload.get("metadata", {})
    if not isinstance(metadata, dict):
        raise ValueError("metadata must be an object")
    _validate_json_value(metadata, field_name="metadata")
