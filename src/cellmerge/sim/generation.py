from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from cellmerge.sim.rng import derive_stream_seed, luck

TOKEN_STREAM_NAME = "rng_cell_tokens"
PROBABILITY_TOLERANCE = 1e-9


@dataclass(frozen=True)
class TokenTier:
    value: int
    probability: float

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int) or self.value <= 0:
            raise ValueError("token_tier.value must be a positive integer")
        if isinstance(self.probability, bool) or not isinstance(self.probability, (int, float)):
            raise ValueError("token_tier.probability must be numeric")
        if not 0.0 < float(self.probability) < 1.0:
            raise ValueError("token_tier.probability must be within (0.0, 1.0)")

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "probability": self.probability}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TokenTier":
        if not isinstance(data, dict):
            raise ValueError("token_tier must be an object")
        return cls(value=data.get("value"), probability=data.get("probability"))


@dataclass(frozen=True)
class TokenLadder:
    """Rarity buckets for cell contents.

    A draw below ``empty_probability`` leaves the cell empty; the remaining
    mass is split across ``tiers`` in ascending value order. Higher values are
    strictly rarer.
    """

    empty_probability: float
    tiers: tuple[TokenTier, ...]

    def __post_init__(self) -> None:
        if not isinstance(self.empty_probability, (int, float)) or isinstance(self.empty_probability, bool):
            raise ValueError("token_ladder.empty_probability must be numeric")
        if not 0.0 <= float(self.empty_probability) < 1.0:
            raise ValueError("token_ladder.empty_probability must be within [0.0, 1.0)")
        if not self.tiers:
            raise ValueError("token_ladder.tiers must not be empty")
        for previous, current in zip(self.tiers, self.tiers[1:]):
            if current.value <= previous.value:
                raise ValueError("token_ladder.tiers values must strictly ascend")
            if current.probability >= previous.probability:
                raise ValueError("token_ladder.tiers must get strictly rarer as values ascend")
        total = float(self.empty_probability) + sum(float(tier.probability) for tier in self.tiers)
        if abs(total - 1.0) > PROBABILITY_TOLERANCE:
            raise ValueError(f"token_ladder probabilities must sum to 1 (got {total!r})")

    def values(self) -> tuple[int, ...]:
        return tuple(tier.value for tier in self.tiers)

    def pick(self, draw: float) -> int | None:
        if draw < self.empty_probability:
            return None
        threshold = float(self.empty_probability)
        for tier in self.tiers:
            threshold += float(tier.probability)
            if draw < threshold:
                return tier.value
        # Float rounding can leave the final threshold a hair under 1.0.
        return self.tiers[-1].value

    def to_dict(self) -> dict[str, Any]:
        return {
            "empty_probability": self.empty_probability,
            "tiers": [tier.to_dict() for tier in self.tiers],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TokenLadder":
        if not isinstance(data, dict):
            raise ValueError("token_ladder must be an object")
        raw_tiers = data.get("tiers")
        if not isinstance(raw_tiers, list):
            raise ValueError("token_ladder.tiers must be a list")
        return cls(
            empty_probability=data.get("empty_probability"),
            tiers=tuple(TokenTier.from_dict(row) for row in raw_tiers),
        )


DEFAULT_TOKEN_LADDER = TokenLadder(
    empty_probability=0.8,
    tiers=(
        TokenTier(value=1, probability=0.12),
        TokenTier(value=2, probability=0.06),
        TokenTier(value=4, probability=0.02),
    ),
)


class TokenGenerator:
    """Pure mapping from cell key to the cell's initial token."""

    def __init__(self, ladder: TokenLadder = DEFAULT_TOKEN_LADDER, world_seed: int = 0) -> None:
        self.ladder = ladder
        self.world_seed = world_seed
        self._stream_seed = derive_stream_seed(master_seed=world_seed, stream_name=TOKEN_STREAM_NAME)

    def draw(self, key: str) -> float:
        return luck(f"{self._stream_seed}:cell:{key}")

    def generate(self, key: str) -> int | None:
        return self.ladder.pick(self.draw(key))

    def __call__(self, key: str) -> int | None:
        return self.generate(key)
