from __future__ import annotations

import sys

from cellmerge.content.config import DEFAULT_GAME_CONFIG_PATH, GameConfig, load_game_config_json
from cellmerge.content.io import DEFAULT_SAVE_PATH, SaveSlot
from cellmerge.sim.core import GameSession
from cellmerge.sim.grid import DIRECTION_STEPS, CellCoord, cell_center_latlng
from cellmerge.sim.movement import ManualStepMovement
from cellmerge.sim.observers import Notice, SessionObserver

CELL_WIDTH = 4
DIRECTION_ALIASES = {"n": "north", "s": "south", "e": "east", "w": "west"}


class AsciiViewer:
    """Read-only projection of the visible window for terminal display."""

    def render(self, session: GameSession) -> str:
        player = session.player
        lines = [f"cell=({player.cell.x},{player.cell.y}) wins={session.win_count}"]

        center = session.viewport.center
        if center is None:
            return "\n".join(lines + ["<no window>"])

        radius = session.viewport.radius
        for dy in range(radius, -radius - 1, -1):
            row: list[str] = []
            for dx in range(-radius, radius + 1):
                cell = CellCoord(center.x + dx, center.y + dy)
                if cell == player.cell:
                    label = "@"
                else:
                    token = session.token_at(cell)
                    label = "." if token is None else str(token)
                row.append(f"{label:>{CELL_WIDTH}}")
            lines.append("".join(row))

        lines.append(inventory_text(session.held_token))
        return "\n".join(lines)


def inventory_text(held_token: int | None) -> str:
    return f"Holding: {held_token}" if held_token else "Empty"


def pan_target(session: GameSession, dx: int, dy: int) -> tuple[float, float]:
    """Center of the cell ``(dx, dy)`` away from the current view center."""
    center = session.viewport.center if session.viewport.center is not None else session.player.cell
    return cell_center_latlng(center.offset(dx, dy), session.config.cell_size)


class TerminalObserver(SessionObserver):
    def on_notice(self, session: GameSession, notice: Notice) -> None:
        print(f"[cellmerge.viewer] {notice.kind}: {notice.message}")

    def on_win(self, session: GameSession, value: int) -> None:
        print(f"[cellmerge.viewer] You win! holding {value}")

    def on_new_game(self, session: GameSession) -> None:
        print("[cellmerge.viewer] New game started!")


class SessionController:
    """Parses terminal commands into session operations; owns no game state."""

    def __init__(self, session: GameSession) -> None:
        self.session = session
        self.manual = ManualStepMovement()
        session.use_movement(self.manual)

    def handle(self, raw: str) -> str | None:
        parts = raw.strip().split()
        if not parts:
            return None
        head = parts[0].lower()
        direction = DIRECTION_ALIASES.get(head, head)
        if len(parts) == 1 and direction in DIRECTION_STEPS:
            self.manual.step(direction)
            return "moved"
        if len(parts) == 3 and head == "click":
            outcome = self.session.activate(CellCoord(int(parts[1]), int(parts[2])))
            return outcome.outcome if outcome is not None else None
        if len(parts) == 3 and head == "tap":
            origin = self.session.player.cell
            outcome = self.session.activate(origin.offset(int(parts[1]), int(parts[2])))
            return outcome.outcome if outcome is not None else None
        if len(parts) == 3 and head == "pan":
            self.session.pan_view(*pan_target(self.session, int(parts[1]), int(parts[2])))
            return "panned"
        if len(parts) == 1 and head == "center":
            self.session.pan_view(*cell_center_latlng(self.session.player.cell, self.session.config.cell_size))
            return "centered"
        if len(parts) == 3 and head == "goto":
            self.session.move_to_latlng(float(parts[1]), float(parts[2]))
            return "moved"
        if len(parts) == 1 and head == "save":
            return "saved" if self.session.save() else "save skipped"
        if len(parts) == 1 and head == "new":
            self.session.new_game()
            return "new game"
        return "unknown command"


def load_cli_config(config_path: str, *, tag: str = "viewer") -> GameConfig:
    """Load startup config; a missing file means defaults, a bad one is fatal."""
    try:
        return load_game_config_json(config_path)
    except FileNotFoundError:
        print(f"[cellmerge.{tag}] config not found path={config_path}; using defaults", file=sys.stderr)
        return GameConfig()


def run_demo(config_path: str = DEFAULT_GAME_CONFIG_PATH, save_path: str = DEFAULT_SAVE_PATH) -> None:
    config = load_cli_config(config_path)
    session = GameSession.restore(config, SaveSlot(save_path), observers=[TerminalObserver()])
    controller = SessionController(session)
    view = AsciiViewer()

    print("cellmerge demo. Commands: n | s | e | w | click <x> <y> | tap <dx> <dy> | pan <dx> <dy> | center | goto <lat> <lng> | save | new | show | quit")
    print(view.render(session))

    try:
        while True:
            raw = input("> ").strip()
            if raw in {"quit", "exit"}:
                break
            if raw == "show":
                print(view.render(session))
                continue
            try:
                reply = controller.handle(raw)
            except ValueError as exc:
                print(f"invalid command: {exc}")
                continue
            if reply is not None:
                print(reply)
            print(view.render(session))
    finally:
        session.close()


if __name__ == "__main__":
    run_demo()
