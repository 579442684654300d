from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from cellmerge.sim.grid import CellCoord, latlng_to_cell, window_cells
from cellmerge.sim.world import TokenValue, WorldState


class CellRenderer:
    """Render collaborator for visible cells.

    ``show_cell`` returns an opaque handle that is later passed back to
    ``redraw_cell`` and ``hide_cell``. The base class draws nothing.
    """

    def show_cell(self, cell: CellCoord, token: TokenValue) -> Any:
        return None

    def hide_cell(self, handle: Any) -> None:
        """Dispose of a handle returned by ``show_cell``."""

    def redraw_cell(self, handle: Any, cell: CellCoord, token: TokenValue) -> None:
        """Called after the token on a visible cell changed."""


@dataclass(frozen=True)
class ViewportDelta:
    center: CellCoord
    entered: tuple[str, ...]
    left: tuple[str, ...]


class ViewportManager:
    """Square window of visible cells around a moving center.

    Only render handles are created and torn down here; cell values are
    always resolved through ``WorldState.get`` so hidden cells come back
    exactly as they were left.
    """

    def __init__(
        self,
        world: WorldState,
        *,
        cell_size: float,
        radius: int,
        renderer: CellRenderer | None = None,
    ) -> None:
        if isinstance(radius, bool) or not isinstance(radius, int) or radius <= 0:
            raise ValueError("viewport radius must be a positive integer")
        if isinstance(cell_size, bool) or not isinstance(cell_size, (int, float)):
            raise ValueError("viewport cell_size must be > 0")
        if not math.isfinite(float(cell_size)) or cell_size <= 0:
            raise ValueError("viewport cell_size must be > 0")
        self.world = world
        self.cell_size = float(cell_size)
        self.radius = radius
        self.renderer = renderer if renderer is not None else CellRenderer()
        self.center: CellCoord | None = None
        self._handles: dict[str, Any] = {}
        self._revision = 0

    def recenter(self, lat: float, lng: float) -> ViewportDelta:
        return self.recenter_cell(latlng_to_cell(lat, lng, self.cell_size))

    def recenter_cell(self, center: CellCoord) -> ViewportDelta:
        self._revision += 1
        revision = self._revision
        self.center = center

        window = list(window_cells(center, self.radius))
        window_keys = {cell.key() for cell in window}
        left = [key for key in self._handles if key not in window_keys]
        entered: list[str] = []

        for key in left:
            handle = self._handles.pop(key, None)
            self.renderer.hide_cell(handle)
            if self._revision != revision:
                # A nested recenter from the renderer already owns the window.
                return ViewportDelta(center=center, entered=tuple(entered), left=tuple(left))

        for cell in window:
            key = cell.key()
            if key in self._handles:
                continue
            handle = self.renderer.show_cell(cell, self.world.get(key))
            if self._revision != revision:
                self.renderer.hide_cell(handle)
                break
            self._handles[key] = handle
            entered.append(key)

        return ViewportDelta(center=center, entered=tuple(entered), left=tuple(left))

    def refresh_cell(self, cell: CellCoord) -> bool:
        key = cell.key()
        if key not in self._handles:
            return False
        self.renderer.redraw_cell(self._handles[key], cell, self.world.get(key))
        return True

    def clear(self) -> None:
        self._revision += 1
        handles = list(self._handles.values())
        self._handles.clear()
        self.center = None
        for handle in handles:
            self.renderer.hide_cell(handle)

    def is_visible(self, cell: CellCoord) -> bool:
        return cell.key() in self._handles

    def visible_keys(self) -> frozenset[str]:
        return frozenset(self._handles)

    def visible_cells(self) -> list[CellCoord]:
        return sorted(CellCoord.from_key(key) for key in self._handles)

    def handle_for(self, cell: CellCoord) -> Any:
        return self._handles.get(cell.key())
