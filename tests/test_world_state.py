import pytest

from cellmerge.sim.grid import CellCoord
from cellmerge.sim.world import PlayerState, WorldState


class _CountingGenerator:
    def __init__(self, values: dict[str, int]) -> None:
        self.values = values
        self.calls: list[str] = []

    def __call__(self, key: str) -> int | None:
        self.calls.append(key)
        return self.values.get(key)


def test_unrecorded_cells_read_through_generator_without_caching() -> None:
    generator = _CountingGenerator({"1,0": 2})
    world = WorldState(generator=generator)

    assert world.get("1,0") == 2
    assert world.get("1,0") == 2
    assert world.get("5,5") is None

    assert generator.calls == ["1,0", "1,0", "5,5"]
    assert len(world) == 0
    assert not world.has_record("1,0")


def test_recorded_value_wins_over_generator_including_empty() -> None:
    generator = _CountingGenerator({"1,0": 2, "2,0": 4})
    world = WorldState(generator=generator)

    world.set("1,0", None)
    world.set_cell(CellCoord(2, 0), 8)

    assert world.get("1,0") is None
    assert world.get_cell(CellCoord(2, 0)) == 8
    assert generator.calls == []


def test_set_rejects_bad_keys_and_values() -> None:
    world = WorldState(generator=lambda key: None)

    with pytest.raises(ValueError):
        world.set("not-a-key", 1)
    with pytest.raises(ValueError, match="positive integer"):
        world.set("0,0", 0)
    with pytest.raises(ValueError, match="positive integer"):
        world.set("0,0", True)


def test_to_list_is_sorted_and_clear_drops_records() -> None:
    world = WorldState(generator=lambda key: None, records={"2,0": 4, "-1,3": None})

    assert world.to_list() == [["-1,3", None], ["2,0", 4]]
    assert list(world) == [("-1,3", None), ("2,0", 4)]

    world.clear()

    assert world.to_list() == []


def test_from_list_rejects_malformed_rows() -> None:
    generator = lambda key: None

    restored = WorldState.from_list([["0,0", 2], ["1,1", None]], generator=generator)
    assert restored.records() == {"0,0": 2, "1,1": None}

    with pytest.raises(ValueError, match="must be a list"):
        WorldState.from_list({"0,0": 2}, generator=generator)
    with pytest.raises(ValueError, match="pair"):
        WorldState.from_list([["0,0"]], generator=generator)
    with pytest.raises(ValueError, match="duplicates"):
        WorldState.from_list([["0,0", 2], ["0,0", 4]], generator=generator)


def test_player_held_token_is_read_only() -> None:
    player = PlayerState(cell=CellCoord(0, 0), held_token=4)

    with pytest.raises(AttributeError):
        player.held_token = 8  # type: ignore[misc]

    assert player.held_token == 4


def test_player_round_trips_through_dict() -> None:
    player = PlayerState(cell=CellCoord(-3, 9), held_token=16)

    assert PlayerState.from_dict(player.to_dict()) == player
    assert player.to_dict() == {"cell": {"x": -3, "y": 9}, "held_token": 16}

    with pytest.raises(ValueError, match="player.cell"):
        PlayerState.from_dict({"held_token": None})
