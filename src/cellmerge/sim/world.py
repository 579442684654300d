from __future__ import annotations

from typing import Any, Callable, Iterator

from cellmerge.sim.grid import CellCoord

TokenValue = int | None
Generator = Callable[[str], TokenValue]


def _normalize_token(value: Any, *, field_name: str) -> TokenValue:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{field_name} must be a positive integer or null")
    return value


class WorldState:
    """Explicit cell records layered over a deterministic generator.

    Reads fall back to the generator for cells that were never recorded and
    never cache what they generate. Recorded keys are never dropped except by
    ``clear()``.
    """

    def __init__(self, generator: Generator, records: dict[str, TokenValue] | None = None) -> None:
        self.generator = generator
        self._records: dict[str, TokenValue] = {}
        for key, value in (records or {}).items():
            self.set(key, value)

    def get(self, key: str) -> TokenValue:
        if key in self._records:
            return self._records[key]
        return self.generator(key)

    def get_cell(self, cell: CellCoord) -> TokenValue:
        return self.get(cell.key())

    def set(self, key: str, value: TokenValue) -> None:
        CellCoord.from_key(key)
        self._records[key] = _normalize_token(value, field_name=f"cell_states[{key}]")

    def set_cell(self, cell: CellCoord, value: TokenValue) -> None:
        self.set(cell.key(), value)

    def has_record(self, key: str) -> bool:
        return key in self._records

    def clear(self) -> None:
        self._records.clear()

    def records(self) -> dict[str, TokenValue]:
        return dict(self._records)

    def __iter__(self) -> Iterator[tuple[str, TokenValue]]:
        return iter(sorted(self._records.items()))

    def __len__(self) -> int:
        return len(self._records)

    def to_list(self) -> list[list[Any]]:
        return [[key, value] for key, value in sorted(self._records.items())]

    @classmethod
    def from_list(cls, rows: Any, generator: Generator) -> "WorldState":
        if not isinstance(rows, list):
            raise ValueError("cell_states must be a list")
        world = cls(generator=generator)
        for index, row in enumerate(rows):
            if not isinstance(row, (list, tuple)) or len(row) != 2:
                raise ValueError(f"cell_states[{index}] must be a [key, value] pair")
            key, value = row
            if not isinstance(key, str):
                raise ValueError(f"cell_states[{index}] key must be a string")
            if world.has_record(key):
                raise ValueError(f"cell_states[{index}] duplicates key {key!r}")
            world.set(key, value)
        return world


class PlayerState:
    """Player cell plus the single held token.

    ``held_token`` is read-only from the outside; only the interaction engine
    exchanges it, through ``_exchange_held_token``.
    """

    def __init__(self, cell: CellCoord, held_token: TokenValue = None) -> None:
        self.cell = cell
        self._held_token = _normalize_token(held_token, field_name="player.held_token")

    @property
    def held_token(self) -> TokenValue:
        return self._held_token

    def _exchange_held_token(self, value: TokenValue) -> TokenValue:
        previous = self._held_token
        self._held_token = _normalize_token(value, field_name="player.held_token")
        return previous

    def to_dict(self) -> dict[str, Any]:
        return {"cell": self.cell.to_dict(), "held_token": self._held_token}

    @classmethod
    def from_dict(cls, data: Any) -> "PlayerState":
        if not isinstance(data, dict):
            raise ValueError("player must be an object")
        raw_cell = data.get("cell")
        if not isinstance(raw_cell, dict):
            raise ValueError("player.cell must be an object")
        return cls(cell=CellCoord.from_dict(raw_cell), held_token=data.get("held_token"))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PlayerState):
            return NotImplemented
        return self.cell == other.cell and self._held_token == other._held_token

    def __repr__(self) -> str:
        return f"PlayerState(cell={self.cell!r}, held_token={self._held_token!r})"
