from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any

from cellmerge.content.config import GameConfig
from cellmerge.content.schema import validate_save_payload
from cellmerge.sim.generation import TokenGenerator
from cellmerge.sim.grid import latlng_to_cell
from cellmerge.sim.hash import save_hash
from cellmerge.sim.world import Generator, PlayerState, WorldState

SCHEMA_VERSION = 1
DEFAULT_SAVE_PATH = "saves/cellmerge_save.json"
NO_SAVE_REASON = "no save"
CANONICAL_JSON_INDENT = 2
CANONICAL_JSON_SEPARATORS = (",", ": ")


@dataclass
class LoadResult:
    player: PlayerState
    world: WorldState
    metadata: dict[str, Any] = field(default_factory=dict)
    restored: bool = False
    reason: str | None = None


def generator_for(config: GameConfig) -> TokenGenerator:
    return TokenGenerator(ladder=config.token_ladder, world_seed=config.world_seed)


def fresh_state(config: GameConfig, generator: Generator | None = None) -> tuple[PlayerState, WorldState]:
    start_cell = latlng_to_cell(config.start_lat, config.start_lng, config.cell_size)
    world = WorldState(generator=generator if generator is not None else generator_for(config))
    return PlayerState(cell=start_cell), world


def build_save_payload(
    player: PlayerState,
    world: WorldState,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "schema_version": SCHEMA_VERSION,
        "player": player.to_dict(),
        "cell_states": world.to_list(),
        "metadata": dict(metadata) if isinstance(metadata, dict) else {},
    }
    payload["save_hash"] = save_hash(payload)
    return payload


def _canonical_json(payload: dict[str, Any]) -> str:
    return json.dumps(
        payload,
        indent=CANONICAL_JSON_INDENT,
        separators=CANONICAL_JSON_SEPARATORS,
        sort_keys=True,
    )


def dumps_save(player: PlayerState, world: WorldState, metadata: dict[str, Any] | None = None) -> str:
    payload = build_save_payload(player, world, metadata)
    validate_save_payload(payload)
    return _canonical_json(payload)


def _state_from_payload(payload: Any, generator: Generator) -> tuple[PlayerState, WorldState, dict[str, Any]]:
    validate_save_payload(payload)
    expected_hash = payload["save_hash"]
    actual_hash = save_hash(payload)
    if expected_hash != actual_hash:
        raise ValueError(
            f"save_hash mismatch while loading save (stored={expected_hash}, recomputed={actual_hash})"
        )
    player = PlayerState.from_dict(payload["player"])
    world = WorldState.from_list(payload["cell_states"], generator=generator)
    return player, world, dict(payload.get("metadata", {}))


def loads_save(blob: str, generator: Generator) -> tuple[PlayerState, WorldState]:
    player, world, _ = _state_from_payload(json.loads(blob), generator)
    return player, world


def _write_atomic_text(path: str | Path, serialized: str) -> None:
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)

    temp_path: Path | None = None
    try:
        with NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=destination.parent,
            delete=False,
            suffix=".tmp",
        ) as temp_file:
            temp_file.write(serialized)
            temp_file.flush()
            os.fsync(temp_file.fileno())
            temp_path = Path(temp_file.name)
        os.replace(temp_path, destination)
    except Exception:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        raise


def save_game_json(
    path: str | Path,
    player: PlayerState,
    world: WorldState,
    metadata: dict[str, Any] | None = None,
) -> None:
    _write_atomic_text(path, dumps_save(player, world, metadata))


def load_game_json(
    path: str | Path,
    config: GameConfig,
    generator: Generator | None = None,
) -> tuple[PlayerState, WorldState, dict[str, Any]]:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    return _state_from_payload(payload, generator if generator is not None else generator_for(config))


def load_game_or_fresh(
    path: str | Path,
    config: GameConfig,
    generator: Generator | None = None,
) -> LoadResult:
    """Restore a save, or fall back to a fresh start if it is absent or unusable."""
    generator = generator if generator is not None else generator_for(config)
    save_file = Path(path)
    if not save_file.exists():
        player, world = fresh_state(config, generator)
        return LoadResult(player=player, world=world, reason=NO_SAVE_REASON)
    try:
        player, world, metadata = load_game_json(save_file, config, generator)
    except (OSError, ValueError, KeyError, TypeError, RecursionError) as exc:
        player, world = fresh_state(config, generator)
        return LoadResult(player=player, world=world, reason=f"discarded unreadable save: {exc}")
    return LoadResult(player=player, world=world, metadata=metadata, restored=True)


class SaveSlot:
    """The single named durable slot holding the current save."""

    def __init__(self, path: str | Path = DEFAULT_SAVE_PATH) -> None:
        self.path = Path(path)
        self.metadata: dict[str, Any] = {}

    def exists(self) -> bool:
        return self.path.exists()

    def write(self, player: PlayerState, world: WorldState) -> None:
        save_game_json(self.path, player, world, self.metadata)

    def load_or_fresh(self, config: GameConfig, generator: Generator | None = None) -> LoadResult:
        result = load_game_or_fresh(self.path, config, generator)
        if result.restored:
            self.metadata = dict(result.metadata)
        return result

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
        self.metadata = {}
