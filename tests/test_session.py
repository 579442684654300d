import json
from pathlib import Path

import pytest

from cellmerge.content.config import GameConfig
from cellmerge.content.io import SaveSlot
from cellmerge.sim.core import GameCommand, GameSession
from cellmerge.sim.grid import CellCoord, latlng_to_cell
from cellmerge.sim.interactions import OUTCOME_MERGED, OUTCOME_PICKED_UP
from cellmerge.sim.observers import (
    NOTICE_EMPTY_CELL,
    NOTICE_OUT_OF_RANGE,
    NOTICE_SAVE_DISCARDED,
    NOTICE_SAVE_FAILED,
    Notice,
    SessionObserver,
)
from cellmerge.sim.viewport import CellRenderer
from cellmerge.sim.world import PlayerState, WorldState


class _EventRecorder(SessionObserver):
    def __init__(self) -> None:
        self.events: list[tuple[str, object]] = []

    def on_player_moved(self, session: GameSession, cell: CellCoord) -> None:
        self.events.append(("moved", cell))

    def on_held_token_changed(self, session: GameSession, value: int | None) -> None:
        self.events.append(("held", value))

    def on_notice(self, session: GameSession, notice: Notice) -> None:
        self.events.append(("notice", notice.kind))

    def on_win(self, session: GameSession, value: int) -> None:
        self.events.append(("win", value))

    def on_new_game(self, session: GameSession) -> None:
        self.events.append(("new_game", None))


class _LiveRenderer(CellRenderer):
    def __init__(self) -> None:
        self.live: dict[int, tuple[CellCoord, int | None]] = {}
        self._next = 0

    def show_cell(self, cell: CellCoord, token: int | None) -> int:
        self._next += 1
        self.live[self._next] = (cell, token)
        return self._next

    def hide_cell(self, handle: int) -> None:
        del self.live[handle]

    def redraw_cell(self, handle: int, cell: CellCoord, token: int | None) -> None:
        self.live[handle] = (cell, token)


def _config(**overrides) -> GameConfig:
    values = {"viewport_radius": 4, "start_lat": 0.00005, "start_lng": 0.00005, "winning_value": 8}
    values.update(overrides)
    return GameConfig(**values)


def _session(values: dict[str, int], *, slot: SaveSlot | None = None, observers=(), renderer=None) -> GameSession:
    config = _config()
    return GameSession(
        config,
        player=PlayerState(cell=CellCoord(0, 0)),
        world=WorldState(generator=lambda key: values.get(key)),
        slot=slot,
        observers=observers,
        renderer=renderer,
    )


def test_pick_up_then_merge_scenario_persists_across_restore(tmp_path: Path) -> None:
    values = {"1,0": 1, "2,0": 1}
    slot = SaveSlot(tmp_path / "save.json")
    session = _session(values, slot=slot)

    assert session.activate(CellCoord(1, 0)).outcome == OUTCOME_PICKED_UP
    assert session.held_token == 1
    assert session.token_at(CellCoord(1, 0)) is None

    assert session.activate(CellCoord(2, 0)).outcome == OUTCOME_MERGED
    assert session.held_token is None
    assert session.token_at(CellCoord(2, 0)) == 2

    restored = GameSession.restore(session.config, SaveSlot(tmp_path / "save.json"))

    assert restored.player.cell == CellCoord(0, 0)
    assert restored.held_token is None
    assert restored.token_at(CellCoord(1, 0)) is None
    assert restored.token_at(CellCoord(2, 0)) == 2


def test_rejected_interactions_notify_and_leave_state_unchanged(tmp_path: Path) -> None:
    recorder = _EventRecorder()
    slot = SaveSlot(tmp_path / "save.json")
    session = _session({"9,0": 4}, slot=slot, observers=[recorder])

    session.activate(CellCoord(9, 0))
    session.activate(CellCoord(1, 1))

    assert recorder.events == [("notice", NOTICE_OUT_OF_RANGE), ("notice", NOTICE_EMPTY_CELL)]
    assert len(session.world) == 0
    assert session.held_token is None
    assert not slot.exists()


def test_interaction_redraws_visible_cell_and_autosaves(tmp_path: Path) -> None:
    renderer = _LiveRenderer()
    slot = SaveSlot(tmp_path / "save.json")
    session = _session({"1,0": 2}, slot=slot, renderer=renderer)

    session.activate(CellCoord(1, 0))

    handle = session.viewport.handle_for(CellCoord(1, 0))
    assert renderer.live[handle] == (CellCoord(1, 0), None)
    payload = json.loads(slot.path.read_text(encoding="utf-8"))
    assert payload["player"]["held_token"] == 2
    assert payload["cell_states"] == [["1,0", None]]


def test_mutated_cell_survives_leaving_and_reentering_window() -> None:
    renderer = _LiveRenderer()
    session = _session({"1,0": 2}, renderer=renderer)
    session.activate(CellCoord(1, 0))

    for _ in range(12):
        session.step("west")
    assert not session.viewport.is_visible(CellCoord(1, 0))
    for _ in range(12):
        session.step("east")

    handle = session.viewport.handle_for(CellCoord(1, 0))
    assert renderer.live[handle] == (CellCoord(1, 0), None)
    assert session.held_token == 2
    assert len(renderer.live) == 81


def test_win_is_signalled_per_acquisition() -> None:
    recorder = _EventRecorder()
    session = _session({"1,0": 4, "0,1": 4}, observers=[recorder])
    session.activate(CellCoord(1, 0))

    session.activate(CellCoord(0, 1))
    session.activate(CellCoord(0, 1))

    assert session.held_token == 8
    assert session.win_count == 1
    assert recorder.events[-2:] == [("held", 8), ("win", 8)]


def test_new_game_resets_world_player_and_slot(tmp_path: Path) -> None:
    recorder = _EventRecorder()
    renderer = _LiveRenderer()
    slot = SaveSlot(tmp_path / "save.json")
    session = _session({"1,0": 2}, slot=slot, observers=[recorder], renderer=renderer)
    session.activate(CellCoord(1, 0))
    session.step("north")
    assert slot.exists()

    session.new_game()

    start = latlng_to_cell(0.00005, 0.00005, session.config.cell_size)
    assert session.player.cell == start
    assert session.held_token is None
    assert len(session.world) == 0
    assert session.token_at(CellCoord(1, 0)) == 2
    assert not slot.exists()
    assert session.engine.player is session.player
    assert {handle for handle in renderer.live} == {
        session.viewport.handle_for(cell) for cell in session.viewport.visible_cells()
    }
    assert ("new_game", None) in recorder.events


def test_command_dispatched_during_another_runs_after_it() -> None:
    recorder = _EventRecorder()

    class _Chaser(SessionObserver):
        def __init__(self) -> None:
            self.nested_results: list[object] = []

        def on_player_moved(self, session: GameSession, cell: CellCoord) -> None:
            if cell == CellCoord(0, 1):
                self.nested_results.append(session.step("north"))

    chaser = _Chaser()
    session = _session({}, observers=[chaser, recorder])

    result = session.step("north")

    assert result == CellCoord(0, 1)
    assert chaser.nested_results == [None]
    assert recorder.events == [("moved", CellCoord(0, 1)), ("moved", CellCoord(0, 2))]
    assert session.player.cell == CellCoord(0, 2)


def test_set_position_and_pan_view_commands() -> None:
    session = _session({})

    session.dispatch({"command_type": "set_position", "params": {"lat": 0.00035, "lng": -0.00025}})
    assert session.player.cell == CellCoord(-3, 3)
    assert session.viewport.center == CellCoord(-3, 3)

    session.pan_view(0.00105, 0.00105)
    assert session.viewport.center == CellCoord(10, 10)
    assert session.player.cell == CellCoord(-3, 3)


def test_game_command_validation() -> None:
    assert GameCommand.from_dict({"command_type": "activate_cell", "params": {"x": 1, "y": 2}}).to_dict() == {
        "command_type": "activate_cell",
        "params": {"x": 1, "y": 2},
    }
    with pytest.raises(ValueError, match="unknown command_type"):
        GameCommand("teleport")
    with pytest.raises(ValueError, match="missing"):
        GameCommand("set_position", {"lat": 1.0})
    with pytest.raises(ValueError, match="direction"):
        GameCommand("step", {"direction": "up"})
    with pytest.raises(ValueError, match="params.x"):
        GameCommand("activate_cell", {"x": 1.5, "y": 0})


def test_save_failure_is_reported_and_game_continues(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    recorder = _EventRecorder()
    session = _session({"1,0": 2}, slot=SaveSlot(blocker / "save.json"), observers=[recorder])

    outcome = session.activate(CellCoord(1, 0))

    assert outcome.outcome == OUTCOME_PICKED_UP
    assert session.held_token == 2
    assert ("notice", NOTICE_SAVE_FAILED) in recorder.events
    assert session.save() is False


def test_restore_discards_corrupt_save_with_notice(tmp_path: Path) -> None:
    save_path = tmp_path / "save.json"
    save_path.write_text("{not json", encoding="utf-8")
    recorder = _EventRecorder()

    session = GameSession.restore(_config(), SaveSlot(save_path), observers=[recorder])

    assert recorder.events == [("notice", NOTICE_SAVE_DISCARDED)]
    assert session.player.cell == CellCoord(0, 0)
    assert len(session.world) == 0


def test_restore_without_save_starts_fresh_silently(tmp_path: Path) -> None:
    recorder = _EventRecorder()

    session = GameSession.restore(_config(), SaveSlot(tmp_path / "missing.json"), observers=[recorder])

    assert recorder.events == []
    assert session.held_token is None


def test_restore_discards_deeply_nested_save(tmp_path: Path) -> None:
    save_path = tmp_path / "save.json"
    save_path.write_text("[" * 200000, encoding="utf-8")
    recorder = _EventRecorder()

    session = GameSession.restore(_config(), SaveSlot(save_path), observers=[recorder])

    assert recorder.events == [("notice", NOTICE_SAVE_DISCARDED)]
    assert session.player.cell == CellCoord(0, 0)
