from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Iterable

from cellmerge.content.config import GameConfig
from cellmerge.content.io import NO_SAVE_REASON, LoadResult, SaveSlot, fresh_state, generator_for
from cellmerge.sim.grid import DIRECTION_STEPS, CellCoord, cell_center_latlng, latlng_to_cell
from cellmerge.sim.interactions import InteractionEngine, InteractionOutcome, OUTCOME_EMPTY_CELL, OUTCOME_OUT_OF_RANGE
from cellmerge.sim.movement import MovementController, MovementSource
from cellmerge.sim.observers import (
    NOTICE_EMPTY_CELL,
    NOTICE_OUT_OF_RANGE,
    NOTICE_SAVE_DISCARDED,
    NOTICE_SAVE_FAILED,
    Notice,
    SessionObserver,
)
from cellmerge.sim.viewport import CellRenderer, ViewportManager
from cellmerge.sim.world import PlayerState, TokenValue, WorldState

STEP_COMMAND_TYPE = "step"
SET_POSITION_COMMAND_TYPE = "set_position"
PAN_VIEW_COMMAND_TYPE = "pan_view"
ACTIVATE_CELL_COMMAND_TYPE = "activate_cell"
NEW_GAME_COMMAND_TYPE = "new_game"
SAVE_COMMAND_TYPE = "save"

_COMMAND_PARAMS: dict[str, set[str]] = {
    STEP_COMMAND_TYPE: {"direction"},
    SET_POSITION_COMMAND_TYPE: {"lat", "lng"},
    PAN_VIEW_COMMAND_TYPE: {"lat", "lng"},
    ACTIVATE_CELL_COMMAND_TYPE: {"x", "y"},
    NEW_GAME_COMMAND_TYPE: set(),
    SAVE_COMMAND_TYPE: set(),
}


def _require_number(value: Any, *, field_name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{field_name} must be numeric")


def _require_int(value: Any, *, field_name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{field_name} must be an integer")


@dataclass
class GameCommand:
    command_type: str
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.command_type, str) or self.command_type not in _COMMAND_PARAMS:
            raise ValueError(f"unknown command_type: {self.command_type!r}")
        if not isinstance(self.params, dict):
            raise ValueError("params must be a dict")
        missing = _COMMAND_PARAMS[self.command_type] - set(self.params.keys())
        if missing:
            raise ValueError(f"{self.command_type} params missing: {sorted(missing)}")
        if self.command_type == STEP_COMMAND_TYPE and self.params["direction"] not in DIRECTION_STEPS:
            raise ValueError(f"unknown direction: {self.params['direction']!r}")
        if self.command_type in (SET_POSITION_COMMAND_TYPE, PAN_VIEW_COMMAND_TYPE):
            _require_number(self.params["lat"], field_name="params.lat")
            _require_number(self.params["lng"], field_name="params.lng")
        if self.command_type == ACTIVATE_CELL_COMMAND_TYPE:
            _require_int(self.params["x"], field_name="params.x")
            _require_int(self.params["y"], field_name="params.y")

    def to_dict(self) -> dict[str, Any]:
        return {"command_type": self.command_type, "params": dict(self.params)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameCommand":
        return cls(command_type=str(data["command_type"]), params=dict(data.get("params", {})))


class GameSession:
    """Owned aggregate for one game: world records, player, window and rules.

    Commands are processed one at a time to completion. A command dispatched
    while another is running is queued behind it.
    """

    def __init__(
        self,
        config: GameConfig,
        *,
        player: PlayerState | None = None,
        world: WorldState | None = None,
        renderer: CellRenderer | None = None,
        slot: SaveSlot | None = None,
        observers: Iterable[SessionObserver] = (),
    ) -> None:
        self.config = config
        if world is None or player is None:
            fresh_player, fresh_world = fresh_state(config, generator_for(config))
            player = player if player is not None else fresh_player
            world = world if world is not None else fresh_world
        self.world = world
        self.player = player
        self.slot = slot
        self.observers: list[SessionObserver] = list(observers)
        self.viewport = ViewportManager(
            world,
            cell_size=config.cell_size,
            radius=config.viewport_radius,
            renderer=renderer,
        )
        self.engine = InteractionEngine(
            world,
            player,
            interaction_radius=config.interaction_radius,
            winning_value=config.winning_value,
            metric=config.interaction_metric,
        )
        self.movement = MovementController(self)
        self.win_count = 0
        self._queue: deque[GameCommand] = deque()
        self._dispatching = False
        self._recenter_on_player()

    @classmethod
    def restore(
        cls,
        config: GameConfig,
        slot: SaveSlot,
        *,
        renderer: CellRenderer | None = None,
        observers: Iterable[SessionObserver] = (),
    ) -> "GameSession":
        result: LoadResult = slot.load_or_fresh(config, generator_for(config))
        session = cls(
            config,
            player=result.player,
            world=result.world,
            renderer=renderer,
            slot=slot,
            observers=observers,
        )
        if not result.restored and result.reason != NO_SAVE_REASON:
            session.notify(Notice(NOTICE_SAVE_DISCARDED, str(result.reason), {"path": str(slot.path)}))
        return session

    @property
    def held_token(self) -> TokenValue:
        return self.player.held_token

    def token_at(self, cell: CellCoord) -> TokenValue:
        return self.world.get_cell(cell)

    def notify(self, notice: Notice) -> None:
        for observer in list(self.observers):
            observer.on_notice(self, notice)

    def use_movement(self, source: MovementSource) -> bool:
        return self.movement.switch_to(source)

    def close(self) -> None:
        self.movement.release()

    # Command entry points.

    def step(self, direction: str) -> Any:
        return self.dispatch(GameCommand(STEP_COMMAND_TYPE, {"direction": direction}))

    def move_to_latlng(self, lat: float, lng: float) -> Any:
        return self.dispatch(GameCommand(SET_POSITION_COMMAND_TYPE, {"lat": lat, "lng": lng}))

    def pan_view(self, lat: float, lng: float) -> Any:
        return self.dispatch(GameCommand(PAN_VIEW_COMMAND_TYPE, {"lat": lat, "lng": lng}))

    def activate(self, cell: CellCoord) -> InteractionOutcome | None:
        return self.dispatch(GameCommand(ACTIVATE_CELL_COMMAND_TYPE, {"x": cell.x, "y": cell.y}))

    def new_game(self) -> Any:
        return self.dispatch(GameCommand(NEW_GAME_COMMAND_TYPE))

    def save(self) -> Any:
        return self.dispatch(GameCommand(SAVE_COMMAND_TYPE))

    def dispatch(self, command: GameCommand | dict[str, Any]) -> Any:
        """Run ``command`` to completion and return its result.

        Returns None when the command was queued behind one already running.
        """
        normalized = command if isinstance(command, GameCommand) else GameCommand.from_dict(command)
        self._queue.append(normalized)
        if self._dispatching:
            return None
        self._dispatching = True
        try:
            result = self._execute(self._queue.popleft())
            while self._queue:
                self._execute(self._queue.popleft())
        finally:
            self._queue.clear()
            self._dispatching = False
        return result

    # Transitions.

    def _execute(self, command: GameCommand) -> Any:
        params = command.params
        if command.command_type == STEP_COMMAND_TYPE:
            dx, dy = DIRECTION_STEPS[params["direction"]]
            return self._move_player(self.player.cell.offset(dx, dy))
        if command.command_type == SET_POSITION_COMMAND_TYPE:
            return self._move_player(latlng_to_cell(params["lat"], params["lng"], self.config.cell_size))
        if command.command_type == PAN_VIEW_COMMAND_TYPE:
            return self.viewport.recenter(params["lat"], params["lng"])
        if command.command_type == ACTIVATE_CELL_COMMAND_TYPE:
            return self._activate_cell(CellCoord(params["x"], params["y"]))
        if command.command_type == NEW_GAME_COMMAND_TYPE:
            return self._reset()
        if command.command_type == SAVE_COMMAND_TYPE:
            return self._autosave()
        raise ValueError(f"unhandled command_type: {command.command_type}")

    def _recenter_on_player(self) -> None:
        lat, lng = cell_center_latlng(self.player.cell, self.config.cell_size)
        self.viewport.recenter(lat, lng)

    def _move_player(self, cell: CellCoord) -> CellCoord:
        self.player.cell = cell
        self._recenter_on_player()
        for observer in list(self.observers):
            observer.on_player_moved(self, cell)
        self._autosave()
        return cell

    def _activate_cell(self, cell: CellCoord) -> InteractionOutcome:
        outcome = self.engine.activate(cell)
        if outcome.outcome == OUTCOME_OUT_OF_RANGE:
            self.notify(Notice(NOTICE_OUT_OF_RANGE, "Too far away to interact!", {"cell": cell.to_dict()}))
            return outcome
        if outcome.outcome == OUTCOME_EMPTY_CELL:
            self.notify(Notice(NOTICE_EMPTY_CELL, "Cell is empty!", {"cell": cell.to_dict()}))
            return outcome

        self.viewport.refresh_cell(cell)
        for observer in list(self.observers):
            observer.on_held_token_changed(self, outcome.held_token)
        if outcome.won:
            self.win_count += 1
            for observer in list(self.observers):
                observer.on_win(self, self.config.winning_value)
        self._autosave()
        return outcome

    def _reset(self) -> PlayerState:
        self.viewport.clear()
        self.world.clear()
        start_cell = latlng_to_cell(self.config.start_lat, self.config.start_lng, self.config.cell_size)
        self.player = PlayerState(cell=start_cell)
        self.engine.player = self.player
        self.win_count = 0
        if self.slot is not None:
            try:
                self.slot.clear()
            except OSError as exc:
                self.notify(Notice(NOTICE_SAVE_FAILED, f"could not clear save: {exc}", {"path": str(self.slot.path)}))
        self._recenter_on_player()
        for observer in list(self.observers):
            observer.on_new_game(self)
            observer.on_held_token_changed(self, None)
            observer.on_player_moved(self, start_cell)
        return self.player

    def _autosave(self) -> bool:
        if self.slot is None:
            return False
        try:
            self.slot.write(self.player, self.world)
        except OSError as exc:
            self.notify(Notice(NOTICE_SAVE_FAILED, f"save failed: {exc}", {"path": str(self.slot.path)}))
            return False
        return True
