from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from cellmerge.sim.movement import PositionFix

TRACK_SCHEMA_VERSION = 1
DEFAULT_TRACK_PATH = "content/tracks/campus_walk.json"


@dataclass(frozen=True)
class PositionTrack:
    track_id: str
    fixes: tuple[PositionFix, ...]


def load_track_json(path: str | Path) -> PositionTrack:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    return _track_from_payload(payload)


def _track_from_payload(payload: Any) -> PositionTrack:
    if not isinstance(payload, dict):
        raise ValueError("position track payload must be an object")

    schema_version = payload.get("schema_version")
    if not isinstance(schema_version, int):
        raise ValueError("position track must contain integer field: schema_version")
    if schema_version != TRACK_SCHEMA_VERSION:
        raise ValueError(f"unsupported position track schema_version: {schema_version}")

    track_id = payload.get("track_id")
    if not isinstance(track_id, str) or not track_id:
        raise ValueError("position track must contain non-empty string field: track_id")

    rows = payload.get("fixes")
    if not isinstance(rows, list):
        raise ValueError("position track must contain list field: fixes")

    fixes: list[PositionFix] = []
    previous_at: float | None = None
    for index, row in enumerate(rows):
        if not isinstance(row, dict):
            raise ValueError(f"fixes[{index}] must be an object")
        missing = {"at_seconds", "lat", "lng"} - set(row.keys())
        if missing:
            raise ValueError(f"fixes[{index}] missing fields: {sorted(missing)}")
        try:
            fix = PositionFix(at_seconds=row["at_seconds"], lat=row["lat"], lng=row["lng"])
        except ValueError as exc:
            raise ValueError(f"fixes[{index}]: {exc}") from exc
        if previous_at is not None and fix.at_seconds < previous_at:
            raise ValueError(f"fixes[{index}].at_seconds must not decrease")
        previous_at = fix.at_seconds
        fixes.append(fix)

    return PositionTrack(track_id=track_id, fixes=tuple(fixes))
