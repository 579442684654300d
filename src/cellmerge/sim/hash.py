from __future__ import annotations

import hashlib
import json
from typing import Any

from cellmerge.sim.world import PlayerState, WorldState


def _digest(payload: Any) -> str:
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def world_hash(world: WorldState) -> str:
    return _digest(world.to_list())


def player_hash(player: PlayerState) -> str:
    return _digest(player.to_dict())


def save_hash(payload: dict[str, Any]) -> str:
    hash_payload = {
        "schema_version": payload["schema_version"],
        "player": payload["player"],
        "cell_states": payload["cell_states"],
    }
    return _digest(hash_payload)
