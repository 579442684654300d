import json
from pathlib import Path

import pytest

from cellmerge.content.config import GameConfig
from cellmerge.content.io import (
    NO_SAVE_REASON,
    SaveSlot,
    build_save_payload,
    dumps_save,
    load_game_json,
    load_game_or_fresh,
    loads_save,
    save_game_json,
)
from cellmerge.content.schema import validate_save_payload
from cellmerge.sim.grid import CellCoord
from cellmerge.sim.hash import player_hash, save_hash, world_hash
from cellmerge.sim.world import PlayerState, WorldState

CONFIG = GameConfig(start_lat=0.00005, start_lng=0.00005)


def _generator(key: str) -> int | None:
    return {"1,0": 1, "2,0": 1}.get(key)


def _state() -> tuple[PlayerState, WorldState]:
    player = PlayerState(cell=CellCoord(3, -2), held_token=4)
    world = WorldState(generator=_generator, records={"1,0": None, "2,0": 2, "-7,11": 16})
    return player, world


def test_save_then_load_round_trip_matches_hashes(tmp_path: Path) -> None:
    player, world = _state()
    out_path = tmp_path / "save.json"

    save_game_json(out_path, player, world)
    loaded_player, loaded_world, metadata = load_game_json(out_path, CONFIG, _generator)

    assert loaded_player == player
    assert world_hash(loaded_world) == world_hash(world)
    assert player_hash(loaded_player) == player_hash(player)
    assert metadata == {}


def test_saved_file_is_canonical_json(tmp_path: Path) -> None:
    player, world = _state()
    out_path = tmp_path / "save.json"

    save_game_json(out_path, player, world)
    text = out_path.read_text(encoding="utf-8")
    payload = json.loads(text)

    assert text == dumps_save(player, world)
    assert payload["schema_version"] == 1
    assert payload["player"] == {"cell": {"x": 3, "y": -2}, "held_token": 4}
    assert payload["cell_states"] == [["-7,11", 16], ["1,0", None], ["2,0", 2]]
    assert payload["save_hash"] == save_hash(payload)


def test_repeated_save_load_cycles_are_stable() -> None:
    player, world = _state()
    first = dumps_save(player, world)

    loaded_player, loaded_world = loads_save(first, _generator)

    assert dumps_save(loaded_player, loaded_world) == first


def test_empty_records_are_persisted_as_null() -> None:
    player = PlayerState(cell=CellCoord(0, 0), held_token=1)
    world = WorldState(generator=_generator, records={"1,0": None})

    _, loaded_world = loads_save(dumps_save(player, world), _generator)

    assert loaded_world.has_record("1,0")
    assert loaded_world.get("1,0") is None


def test_metadata_is_preserved_but_not_hashed() -> None:
    player, world = _state()
    plain = build_save_payload(player, world)
    tagged = build_save_payload(player, world, metadata={"note": "walk", "laps": 2})

    assert plain["save_hash"] == tagged["save_hash"]
    assert tagged["metadata"] == {"note": "walk", "laps": 2}


def test_tampered_save_fails_hash_check(tmp_path: Path) -> None:
    player, world = _state()
    out_path = tmp_path / "save.json"
    save_game_json(out_path, player, world)
    payload = json.loads(out_path.read_text(encoding="utf-8"))
    payload["player"]["held_token"] = 256
    out_path.write_text(json.dumps(payload), encoding="utf-8")

    with pytest.raises(ValueError, match="save_hash mismatch"):
        load_game_json(out_path, CONFIG, _generator)

    result = load_game_or_fresh(out_path, CONFIG, _generator)
    assert result.restored is False
    assert "save_hash mismatch" in str(result.reason)


def test_missing_save_starts_fresh() -> None:
    result = load_game_or_fresh(Path("does/not/exist.json"), CONFIG, _generator)

    assert result.restored is False
    assert result.reason == NO_SAVE_REASON
    assert result.player == PlayerState(cell=CellCoord(0, 0))
    assert len(result.world) == 0


@pytest.mark.parametrize(
    "blob",
    [
        "{not json",
        "[]",
        "[" * 200000,
        json.dumps({"schema_version": 99, "player": {}, "cell_states": [], "save_hash": "x"}),
        json.dumps(
            {
                "schema_version": 1,
                "player": {"cell": {"x": 0, "y": 0}, "held_token": -2},
                "cell_states": [],
                "save_hash": "x",
            }
        ),
        json.dumps(
            {
                "schema_version": 1,
                "player": {"cell": {"x": 0, "y": 0}, "held_token": None},
                "cell_states": [["0,0", 1], ["0,0", 2]],
                "save_hash": "x",
            }
        ),
    ],
)
def test_unusable_save_is_discarded_for_fresh_state(tmp_path: Path, blob: str) -> None:
    out_path = tmp_path / "save.json"
    out_path.write_text(blob, encoding="utf-8")

    result = load_game_or_fresh(out_path, CONFIG, _generator)

    assert result.restored is False
    assert str(result.reason).startswith("discarded")
    assert result.player.held_token is None
    assert len(result.world) == 0


def test_schema_rejects_bad_cell_keys_on_load() -> None:
    player, world = _state()
    payload = build_save_payload(player, world)
    payload["cell_states"] = [["one,two", 1]]
    payload["save_hash"] = save_hash(payload)

    validate_save_payload(payload)
    with pytest.raises(ValueError, match="cell key"):
        loads_save(json.dumps(payload), _generator)


def test_atomic_write_leaves_no_temp_files(tmp_path: Path) -> None:
    player, world = _state()
    out_path = tmp_path / "nested" / "save.json"

    save_game_json(out_path, player, world)
    save_game_json(out_path, player, world)

    assert sorted(path.name for path in out_path.parent.iterdir()) == ["save.json"]


def test_save_slot_round_trip_keeps_metadata_and_clears(tmp_path: Path) -> None:
    player, world = _state()
    slot = SaveSlot(tmp_path / "slot.json")
    slot.metadata = {"device": "phone"}
    slot.write(player, world)

    reopened = SaveSlot(tmp_path / "slot.json")
    result = reopened.load_or_fresh(CONFIG, _generator)

    assert result.restored is True
    assert result.player == player
    assert reopened.metadata == {"device": "phone"}

    reopened.clear()
    reopened.clear()
    assert not reopened.exists()
    assert reopened.metadata == {}
