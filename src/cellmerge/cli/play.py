from __future__ import annotations

import argparse
from pathlib import Path
from typing import Sequence

from cellmerge.cli.pygame_viewer import MOVEMENT_MODES, run_pygame_viewer
from cellmerge.content.config import DEFAULT_GAME_CONFIG_PATH
from cellmerge.content.io import DEFAULT_SAVE_PATH, SaveSlot
from cellmerge.content.tracks import DEFAULT_TRACK_PATH


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python play.py", description="Canonical cellmerge launcher.")
    parser.add_argument("--config-path", default=DEFAULT_GAME_CONFIG_PATH, help="Game config JSON.")
    parser.add_argument("--save-path", default=DEFAULT_SAVE_PATH, help="Save slot JSON restored at startup.")
    parser.add_argument(
        "--movement",
        choices=MOVEMENT_MODES,
        default="manual",
        help="Initial movement source.",
    )
    parser.add_argument("--track-path", default=DEFAULT_TRACK_PATH, help="Position track for track movement.")
    parser.add_argument("--new-game", action="store_true", help="Clear the save slot before starting.")
    parser.add_argument("--headless", action="store_true", help="Run startup path in headless mode.")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    if args.new_game:
        slot = SaveSlot(args.save_path)
        if slot.exists():
            print(f"[cellmerge.play] clearing save path={Path(args.save_path)}")
        slot.clear()
    return run_pygame_viewer(
        args.config_path,
        save_path=args.save_path,
        movement=args.movement,
        track_path=args.track_path,
        headless=args.headless,
    )


if __name__ == "__main__":
    raise SystemExit(main())
