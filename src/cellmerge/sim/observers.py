from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from cellmerge.sim.grid import CellCoord

if TYPE_CHECKING:
    from cellmerge.sim.core import GameSession

NOTICE_OUT_OF_RANGE = "out_of_range"
NOTICE_EMPTY_CELL = "empty_cell"
NOTICE_POSITIONING_ERROR = "positioning_error"
NOTICE_MOVEMENT_SWITCH_FAILED = "movement_switch_failed"
NOTICE_SAVE_FAILED = "save_failed"
NOTICE_SAVE_DISCARDED = "save_discarded"


@dataclass(frozen=True)
class Notice:
    """User-facing, recoverable condition; never accompanied by a state change."""

    kind: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "details": dict(self.details)}


class SessionObserver:
    """UI-facing hooks, called in registration order after each transition."""

    def on_player_moved(self, session: GameSession, cell: CellCoord) -> None:
        """Called after the player's cell changed and the window was rebuilt."""

    def on_held_token_changed(self, session: GameSession, value: int | None) -> None:
        """Called after an interaction changed the held token."""

    def on_notice(self, session: GameSession, notice: Notice) -> None:
        """Called for recoverable conditions the player should be told about."""

    def on_win(self, session: GameSession, value: int) -> None:
        """Called once per acquisition of the winning token."""

    def on_new_game(self, session: GameSession) -> None:
        """Called after world and player state were reset."""
