from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from cellmerge.sim.generation import DEFAULT_TOKEN_LADDER, TokenLadder

CONFIG_SCHEMA_VERSION = 1
DEFAULT_GAME_CONFIG_PATH = "content/config/game_config.json"

DEFAULT_CELL_SIZE = 0.0001
DEFAULT_VIEWPORT_RADIUS = 8
DEFAULT_INTERACTION_RADIUS = 3
DEFAULT_WINNING_VALUE = 256
DEFAULT_START_LAT = 36.997936938057016
DEFAULT_START_LNG = -122.05703507501151
DEFAULT_POSITION_MIN_INTERVAL_SECONDS = 1.0

INTERACTION_METRICS = {"manhattan", "chebyshev"}


def _require_number(value: Any, *, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{field_name} must be numeric")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"{field_name} must be finite")
    return float(value)


def _require_int(value: Any, *, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{field_name} must be an integer")
    return value


@dataclass(frozen=True)
class GameConfig:
    """Startup constants; validated once, never mutated at runtime."""

    cell_size: float = DEFAULT_CELL_SIZE
    viewport_radius: int = DEFAULT_VIEWPORT_RADIUS
    interaction_radius: int = DEFAULT_INTERACTION_RADIUS
    interaction_metric: str = "manhattan"
    winning_value: int = DEFAULT_WINNING_VALUE
    world_seed: int = 0
    start_lat: float = DEFAULT_START_LAT
    start_lng: float = DEFAULT_START_LNG
    position_min_interval_seconds: float = DEFAULT_POSITION_MIN_INTERVAL_SECONDS
    token_ladder: TokenLadder = field(default=DEFAULT_TOKEN_LADDER)

    def __post_init__(self) -> None:
        if _require_number(self.cell_size, field_name="config.cell_size") <= 0.0:
            raise ValueError("config.cell_size must be > 0")
        if _require_int(self.viewport_radius, field_name="config.viewport_radius") <= 0:
            raise ValueError("config.viewport_radius must be > 0")
        if _require_int(self.interaction_radius, field_name="config.interaction_radius") < 0:
            raise ValueError("config.interaction_radius must be >= 0")
        if self.interaction_metric not in INTERACTION_METRICS:
            raise ValueError(f"config.interaction_metric must be one of {sorted(INTERACTION_METRICS)}")
        if _require_int(self.winning_value, field_name="config.winning_value") <= 0:
            raise ValueError("config.winning_value must be > 0")
        _require_int(self.world_seed, field_name="config.world_seed")
        _require_number(self.start_lat, field_name="config.start_lat")
        _require_number(self.start_lng, field_name="config.start_lng")
        if _require_number(self.position_min_interval_seconds, field_name="config.position_min_interval_seconds") < 0.0:
            raise ValueError("config.position_min_interval_seconds must be >= 0")
        if not isinstance(self.token_ladder, TokenLadder):
            raise ValueError("config.token_ladder must be a TokenLadder")

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": CONFIG_SCHEMA_VERSION,
            "cell_size": self.cell_size,
            "viewport_radius": self.viewport_radius,
            "interaction_radius": self.interaction_radius,
            "interaction_metric": self.interaction_metric,
            "winning_value": self.winning_value,
            "world_seed": self.world_seed,
            "start_lat": self.start_lat,
            "start_lng": self.start_lng,
            "position_min_interval_seconds": self.position_min_interval_seconds,
            "token_ladder": self.token_ladder.to_dict(),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "GameConfig":
        if not isinstance(payload, dict):
            raise ValueError("game config payload must be an object")
        schema_version = payload.get("schema_version")
        if not isinstance(schema_version, int):
            raise ValueError("game config must contain integer field: schema_version")
        if schema_version != CONFIG_SCHEMA_VERSION:
            raise ValueError(f"unsupported game config schema_version: {schema_version}")

        defaults = cls()
        ladder_payload = payload.get("token_ladder")
        return cls(
            cell_size=payload.get("cell_size", defaults.cell_size),
            viewport_radius=payload.get("viewport_radius", defaults.viewport_radius),
            interaction_radius=payload.get("interaction_radius", defaults.interaction_radius),
            interaction_metric=payload.get("interaction_metric", defaults.interaction_metric),
            winning_value=payload.get("winning_value", defaults.winning_value),
            world_seed=payload.get("world_seed", defaults.world_seed),
            start_lat=payload.get("start_lat", defaults.start_lat),
            start_lng=payload.get("start_lng", defaults.start_lng),
            position_min_interval_seconds=payload.get(
                "position_min_interval_seconds",
                defaults.position_min_interval_seconds,
            ),
            token_ladder=(
                TokenLadder.from_dict(ladder_payload) if ladder_payload is not None else defaults.token_ladder
            ),
        )


def load_game_config_json(path: str | Path) -> GameConfig:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    return GameConfig.from_dict(payload)
