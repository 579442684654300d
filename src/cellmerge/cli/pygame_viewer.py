from __future__ import annotations

import argparse
import importlib.metadata
import os
import platform
import sys
from dataclasses import dataclass
from typing import Any

from cellmerge.cli.viewer import inventory_text, load_cli_config, pan_target
from cellmerge.content.config import DEFAULT_GAME_CONFIG_PATH
from cellmerge.content.io import DEFAULT_SAVE_PATH, SaveSlot
from cellmerge.content.tracks import DEFAULT_TRACK_PATH, load_track_json
from cellmerge.sim.core import GameSession
from cellmerge.sim.grid import CellCoord, cell_center_latlng
from cellmerge.sim.movement import (
    ExternalPositionMovement,
    ManualStepMovement,
    MovementSource,
    TrackPositionProvider,
)
from cellmerge.sim.observers import NOTICE_POSITIONING_ERROR, Notice, SessionObserver
from cellmerge.sim.viewport import CellRenderer

CELL_PIXELS = 36
WINDOW_SIZE = (1024, 768)
HUD_HEIGHT = 96
MOVEMENT_MODES = ("manual", "track")

EMPTY_CELL_COLOR = (52, 58, 70)
GRID_LINE_COLOR = (30, 33, 40)
OUT_OF_RANGE_SHADE = (24, 26, 32)
TOKEN_COLORS: dict[int, tuple[int, int, int]] = {
    1: (96, 160, 220),
    2: (92, 188, 140),
    4: (214, 180, 80),
    8: (226, 132, 74),
    16: (214, 92, 92),
}
HIGH_TOKEN_COLOR = (190, 110, 220)
PLAYER_COLOR = (0, 191, 255)

pygame: Any | None = None


@dataclass
class CellSprite:
    cell: CellCoord
    token: int | None


class SpriteCellRenderer(CellRenderer):
    """Keeps one sprite per visible cell; the frame loop draws them."""

    def __init__(self) -> None:
        self.sprites: dict[CellCoord, CellSprite] = {}

    def show_cell(self, cell: CellCoord, token: int | None) -> CellSprite:
        sprite = CellSprite(cell=cell, token=token)
        self.sprites[cell] = sprite
        return sprite

    def hide_cell(self, handle: Any) -> None:
        if isinstance(handle, CellSprite) and self.sprites.get(handle.cell) is handle:
            del self.sprites[handle.cell]

    def redraw_cell(self, handle: Any, cell: CellCoord, token: int | None) -> None:
        if isinstance(handle, CellSprite):
            handle.token = token


class ViewerObserver(SessionObserver):
    def __init__(self) -> None:
        self.status_message: str | None = None

    def on_notice(self, session: GameSession, notice: Notice) -> None:
        self.status_message = notice.message
        print(f"[cellmerge.viewer] notice kind={notice.kind} message={notice.message}")

    def on_win(self, session: GameSession, value: int) -> None:
        self.status_message = f"You win! ({value})"
        print(f"[cellmerge.viewer] win value={value} cell=({session.player.cell.x},{session.player.cell.y})")

    def on_new_game(self, session: GameSession) -> None:
        self.status_message = "New game started!"
        print("[cellmerge.viewer] new game")


def token_color(token: int) -> tuple[int, int, int]:
    return TOKEN_COLORS.get(token, HIGH_TOKEN_COLOR)


def _cell_to_pixel(cell: CellCoord, view_center: CellCoord, origin: tuple[float, float]) -> tuple[int, int]:
    """Top-left pixel of ``cell``; north is up."""
    x = origin[0] + (cell.x - view_center.x) * CELL_PIXELS - CELL_PIXELS / 2
    y = origin[1] - (cell.y - view_center.y) * CELL_PIXELS - CELL_PIXELS / 2
    return (int(x), int(y))


def _pixel_to_cell(pixel_x: int, pixel_y: int, view_center: CellCoord, origin: tuple[float, float]) -> CellCoord:
    dx = (pixel_x - origin[0] + CELL_PIXELS / 2) // CELL_PIXELS
    row = (pixel_y - origin[1] + CELL_PIXELS / 2) // CELL_PIXELS
    return CellCoord(view_center.x + int(dx), view_center.y - int(row))


def _world_origin() -> tuple[float, float]:
    return (WINDOW_SIZE[0] / 2.0, HUD_HEIGHT + (WINDOW_SIZE[1] - HUD_HEIGHT) / 2.0)


def _draw_world(screen: Any, session: GameSession, renderer: SpriteCellRenderer, font: Any) -> None:
    view_center = session.viewport.center
    if view_center is None:
        return
    origin = _world_origin()
    for cell in sorted(renderer.sprites):
        sprite = renderer.sprites[cell]
        x, y = _cell_to_pixel(cell, view_center, origin)
        rect = pygame.Rect(x, y, CELL_PIXELS, CELL_PIXELS)
        fill = EMPTY_CELL_COLOR if session.engine.in_range(cell) else OUT_OF_RANGE_SHADE
        pygame.draw.rect(screen, fill, rect)
        pygame.draw.rect(screen, GRID_LINE_COLOR, rect, 1)
        if sprite.token is not None:
            pygame.draw.circle(screen, token_color(sprite.token), rect.center, CELL_PIXELS // 2 - 4)
            label = font.render(str(sprite.token), True, (248, 250, 255))
            screen.blit(label, label.get_rect(center=rect.center))

    px, py = _cell_to_pixel(session.player.cell, view_center, origin)
    center = (px + CELL_PIXELS // 2, py + CELL_PIXELS // 2)
    pygame.draw.circle(screen, PLAYER_COLOR, center, 8)
    pygame.draw.circle(screen, (0, 0, 255), center, 8, 2)


def _draw_hud(screen: Any, session: GameSession, font: Any, mode: str, status_message: str | None) -> None:
    pygame.draw.rect(screen, (17, 18, 25), pygame.Rect(0, 0, WINDOW_SIZE[0], HUD_HEIGHT))
    cell = session.player.cell
    lines = [
        f"cell=({cell.x},{cell.y}) | {inventory_text(session.held_token)} | goal={session.config.winning_value} | movement={mode}",
        "WASD/arrows step | IJKL pan | C center | LMB interact | M switch movement | N new game | F5 save | ESC quit",
    ]
    if status_message:
        lines.append(f"status: {status_message}")
    y = 10
    for line in lines:
        surface = font.render(line, True, (240, 240, 240))
        screen.blit(surface, (12, y))
        y += 26


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m cellmerge.cli.pygame_viewer",
        description="Run the cellmerge pygame viewer.",
    )
    parser.add_argument("--config-path", default=DEFAULT_GAME_CONFIG_PATH, help="Path to game config JSON.")
    parser.add_argument("--save-path", default=DEFAULT_SAVE_PATH, help="Save slot JSON path (autosaved).")
    parser.add_argument(
        "--movement",
        choices=MOVEMENT_MODES,
        default="manual",
        help="Initial movement source: manual steps or a recorded position track.",
    )
    parser.add_argument("--track-path", default=DEFAULT_TRACK_PATH, help="Position track JSON used by track movement.")
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Force SDL dummy video driver for CI/testing and exit without opening a real window.",
    )
    return parser


def _env_flag_enabled(var_name: str) -> bool:
    return os.environ.get(var_name, "").strip().lower() in {"1", "true", "yes", "on"}


def _print_startup_banner() -> None:
    try:
        pygame_version = importlib.metadata.version("pygame")
    except importlib.metadata.PackageNotFoundError:
        pygame_version = "not-installed"
    print(
        "[cellmerge.viewer] startup "
        f"python={platform.python_version()} "
        f"pygame={pygame_version} "
        f"platform={platform.platform()}"
    )
    for name in ("SDL_VIDEODRIVER", "SDL_AUDIODRIVER", "SDL_VIDEO_WINDOW_POS"):
        value = os.environ.get(name, "<unset>")
        print(f"[cellmerge.viewer] env {name}={value}")


def _ensure_pygame_imported() -> Any:
    global pygame
    if pygame is None:
        import pygame as pygame_module

        pygame = pygame_module
    return pygame


def _build_track_movement(session: GameSession, track_path: str) -> tuple[ExternalPositionMovement, TrackPositionProvider]:
    track = load_track_json(track_path)
    provider = TrackPositionProvider(track.fixes, loop=True)
    movement = ExternalPositionMovement(
        provider,
        min_interval_seconds=session.config.position_min_interval_seconds,
    )
    return movement, provider


def _build_viewer_session(
    config_path: str,
    save_path: str,
    *,
    renderer: CellRenderer | None = None,
    observers: list[SessionObserver] | None = None,
) -> GameSession:
    config = load_cli_config(config_path)
    session = GameSession.restore(config, SaveSlot(save_path), renderer=renderer, observers=observers or [])
    print(
        "[cellmerge.viewer] session "
        f"save={save_path} cell=({session.player.cell.x},{session.player.cell.y}) "
        f"held={session.held_token} records={len(session.world)}"
    )
    return session


def run_pygame_viewer(
    config_path: str = DEFAULT_GAME_CONFIG_PATH,
    *,
    save_path: str = DEFAULT_SAVE_PATH,
    movement: str = "manual",
    track_path: str = DEFAULT_TRACK_PATH,
    headless: bool = False,
) -> int:
    if headless:
        os.environ["SDL_VIDEODRIVER"] = "dummy"
        print("[cellmerge.viewer] warning: headless mode active; no window will open.")

    _print_startup_banner()
    pygame_module = _ensure_pygame_imported()

    try:
        pygame_module.init()
    except Exception as exc:
        print(
            "[cellmerge.viewer] failed during pygame.init(): "
            f"{exc}. Hint: verify a working SDL video driver (set SDL_VIDEODRIVER=dummy for headless mode).",
            file=sys.stderr,
        )
        return 1

    renderer = SpriteCellRenderer()
    observer = ViewerObserver()
    try:
        session = _build_viewer_session(config_path, save_path, renderer=renderer, observers=[observer])
    except (OSError, ValueError) as exc:
        print(f"[cellmerge.viewer] failed to initialize session: {exc}", file=sys.stderr)
        pygame_module.quit()
        return 1

    manual = ManualStepMovement()
    track_movement: ExternalPositionMovement | None = None
    track_provider: TrackPositionProvider | None = None

    def switch_movement(mode: str) -> str:
        nonlocal track_movement, track_provider
        target: MovementSource = manual
        if mode == "track":
            if track_movement is None:
                try:
                    track_movement, track_provider = _build_track_movement(session, track_path)
                except (OSError, ValueError) as exc:
                    session.notify(Notice(NOTICE_POSITIONING_ERROR, f"track unavailable: {exc}"))
                    return current_mode
            target = track_movement
        if session.use_movement(target):
            return mode
        return current_mode

    current_mode = "manual"
    session.use_movement(manual)
    if movement != "manual":
        current_mode = switch_movement(movement)

    try:
        pygame_module.display.set_caption("cellmerge")
        screen = pygame_module.display.set_mode(WINDOW_SIZE)
    except Exception as exc:
        print(
            "[cellmerge.viewer] failed during pygame.display.set_mode(...): "
            f"{exc}. Hint: GUI sessions require a valid display; in CI/WSL/remote shells use --headless or CELLMERGE_HEADLESS=1.",
            file=sys.stderr,
        )
        session.close()
        pygame_module.quit()
        return 1

    driver_name = pygame_module.display.get_driver()
    print(f"[cellmerge.viewer] display initialized: {driver_name}, window size={WINDOW_SIZE}")

    if headless:
        session.close()
        pygame_module.quit()
        return 0

    step_keys = {
        pygame_module.K_w: "north",
        pygame_module.K_UP: "north",
        pygame_module.K_s: "south",
        pygame_module.K_DOWN: "south",
        pygame_module.K_a: "west",
        pygame_module.K_LEFT: "west",
        pygame_module.K_d: "east",
        pygame_module.K_RIGHT: "east",
    }
    pan_keys = {
        pygame_module.K_i: (0, 1),
        pygame_module.K_k: (0, -1),
        pygame_module.K_j: (-1, 0),
        pygame_module.K_l: (1, 0),
    }

    clock = pygame_module.time.Clock()
    font = pygame_module.font.SysFont("consolas", 20)
    token_font = pygame_module.font.SysFont("consolas", 15)
    running = True

    while running:
        clock.tick(60)
        for event in pygame_module.event.get():
            if event.type == pygame_module.QUIT:
                running = False
            elif event.type == pygame_module.KEYDOWN and event.key == pygame_module.K_ESCAPE:
                running = False
            elif event.type == pygame_module.KEYDOWN and event.key in step_keys:
                manual.step(step_keys[event.key])
            elif event.type == pygame_module.KEYDOWN and event.key in pan_keys:
                session.pan_view(*pan_target(session, *pan_keys[event.key]))
            elif event.type == pygame_module.KEYDOWN and event.key == pygame_module.K_c:
                session.pan_view(*cell_center_latlng(session.player.cell, session.config.cell_size))
            elif event.type == pygame_module.KEYDOWN and event.key == pygame_module.K_m:
                requested = "track" if current_mode == "manual" else "manual"
                current_mode = switch_movement(requested)
            elif event.type == pygame_module.KEYDOWN and event.key == pygame_module.K_n:
                session.new_game()
            elif event.type == pygame_module.KEYDOWN and event.key == pygame_module.K_F5:
                if session.save():
                    observer.status_message = f"saved {save_path}"
                    print(f"[cellmerge.viewer] saved path={save_path} records={len(session.world)}")
            elif event.type == pygame_module.MOUSEBUTTONDOWN and event.button == 1:
                view_center = session.viewport.center
                if view_center is not None and event.pos[1] > HUD_HEIGHT:
                    cell = _pixel_to_cell(event.pos[0], event.pos[1], view_center, _world_origin())
                    session.activate(cell)

        if current_mode == "track" and track_provider is not None:
            track_provider.pump()

        screen.fill((17, 18, 25))
        _draw_world(screen, session, renderer, token_font)
        _draw_hud(screen, session, font, current_mode, observer.status_message)
        pygame_module.display.flip()

    session.close()
    pygame_module.quit()
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    headless = args.headless or _env_flag_enabled("CELLMERGE_HEADLESS")
    raise SystemExit(
        run_pygame_viewer(
            args.config_path,
            save_path=args.save_path,
            movement=args.movement,
            track_path=args.track_path,
            headless=headless,
        )
    )


if __name__ == "__main__":
    main()
