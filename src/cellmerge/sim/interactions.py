from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from cellmerge.sim.grid import CellCoord, chebyshev_distance, manhattan_distance
from cellmerge.sim.world import PlayerState, TokenValue, WorldState

OUTCOME_PICKED_UP = "picked_up"
OUTCOME_MERGED = "merged"
OUTCOME_TRADED = "traded"
OUTCOME_OUT_OF_RANGE = "out_of_range"
OUTCOME_EMPTY_CELL = "empty_cell"
MUTATING_OUTCOMES = {OUTCOME_PICKED_UP, OUTCOME_MERGED, OUTCOME_TRADED}

_DISTANCE_METRICS = {
    "manhattan": manhattan_distance,
    "chebyshev": chebyshev_distance,
}


@dataclass(frozen=True)
class InteractionOutcome:
    outcome: str
    cell: CellCoord
    cell_value: TokenValue
    held_token: TokenValue
    distance: int
    won: bool = False

    @property
    def changed(self) -> bool:
        return self.outcome in MUTATING_OUTCOMES

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome,
            "cell": self.cell.to_dict(),
            "cell_value": self.cell_value,
            "held_token": self.held_token,
            "distance": self.distance,
            "won": self.won,
        }


class InteractionEngine:
    """Pick-up / merge / trade rule for an activated cell.

    The only gameplay path that writes ``WorldState`` records or the player's
    held token.
    """

    def __init__(
        self,
        world: WorldState,
        player: PlayerState,
        *,
        interaction_radius: int,
        winning_value: int,
        metric: str = "manhattan",
    ) -> None:
        if metric not in _DISTANCE_METRICS:
            raise ValueError(f"unknown interaction metric: {metric}")
        if interaction_radius < 0:
            raise ValueError("interaction_radius must be >= 0")
        self.world = world
        self.player = player
        self.interaction_radius = interaction_radius
        self.winning_value = winning_value
        self.metric = metric
        self._distance = _DISTANCE_METRICS[metric]

    def in_range(self, cell: CellCoord) -> bool:
        return self._distance(cell, self.player.cell) <= self.interaction_radius

    def activate(self, cell: CellCoord) -> InteractionOutcome:
        distance = self._distance(cell, self.player.cell)
        held = self.player.held_token
        if distance > self.interaction_radius:
            return InteractionOutcome(OUTCOME_OUT_OF_RANGE, cell, self.world.get_cell(cell), held, distance)

        cell_value = self.world.get_cell(cell)
        if cell_value is None:
            return InteractionOutcome(OUTCOME_EMPTY_CELL, cell, None, held, distance)

        if held is None:
            self.player._exchange_held_token(cell_value)
            self.world.set_cell(cell, None)
            outcome = OUTCOME_PICKED_UP
        elif held == cell_value:
            self.player._exchange_held_token(None)
            self.world.set_cell(cell, held * 2)
            outcome = OUTCOME_MERGED
        else:
            self.player._exchange_held_token(cell_value)
            self.world.set_cell(cell, held)
            outcome = OUTCOME_TRADED

        new_held = self.player.held_token
        return InteractionOutcome(
            outcome,
            cell,
            self.world.get_cell(cell),
            new_held,
            distance,
            won=new_held == self.winning_value,
        )
