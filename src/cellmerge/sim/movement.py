from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from cellmerge.sim.grid import DIRECTION_STEPS, latlng_to_cell
from cellmerge.sim.observers import NOTICE_MOVEMENT_SWITCH_FAILED, NOTICE_POSITIONING_ERROR, Notice

if TYPE_CHECKING:
    from cellmerge.sim.core import GameSession

FixCallback = Callable[[float, float], None]
ErrorCallback = Callable[[str], None]
Clock = Callable[[], float]


class PositioningUnavailable(RuntimeError):
    """Raised when a positioning signal cannot be subscribed to."""


@dataclass(frozen=True)
class PositionFix:
    at_seconds: float
    lat: float
    lng: float

    def __post_init__(self) -> None:
        for field_name in ("at_seconds", "lat", "lng"):
            value = getattr(self, field_name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"fix.{field_name} must be numeric")
        if self.at_seconds < 0:
            raise ValueError("fix.at_seconds must be >= 0")


class PositionSubscription:
    def __init__(self, provider: "PositionProvider", on_fix: FixCallback, on_error: ErrorCallback) -> None:
        self.provider = provider
        self.on_fix = on_fix
        self.on_error = on_error
        self.active = True

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        self.provider._release(self)


class PositionProvider:
    """External positioning signal; delivers fixes to its subscribers."""

    def __init__(self) -> None:
        self._subscriptions: list[PositionSubscription] = []

    def subscribe(self, on_fix: FixCallback, on_error: ErrorCallback) -> PositionSubscription:
        subscription = PositionSubscription(self, on_fix, on_error)
        self._subscriptions.append(subscription)
        return subscription

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def emit_fix(self, lat: float, lng: float) -> None:
        for subscription in list(self._subscriptions):
            if subscription.active:
                subscription.on_fix(lat, lng)

    def emit_error(self, message: str) -> None:
        for subscription in list(self._subscriptions):
            if subscription.active:
                subscription.on_error(message)

    def _release(self, subscription: PositionSubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)


class TrackPositionProvider(PositionProvider):
    """Replays a recorded track of timed fixes, advanced by ``pump()``."""

    def __init__(self, fixes: tuple[PositionFix, ...], *, clock: Clock = time.monotonic, loop: bool = False) -> None:
        super().__init__()
        self.fixes = tuple(sorted(fixes, key=lambda fix: fix.at_seconds))
        self.clock = clock
        self.loop = loop
        self._started_at: float | None = None
        self._next_index = 0

    def subscribe(self, on_fix: FixCallback, on_error: ErrorCallback) -> PositionSubscription:
        if not self.fixes:
            raise PositioningUnavailable("position track has no fixes")
        if not self._subscriptions:
            self._started_at = self.clock()
            self._next_index = 0
        return super().subscribe(on_fix, on_error)

    def pump(self) -> int:
        """Emit every fix that is due; returns how many were emitted."""
        if self._started_at is None or not self._subscriptions:
            return 0
        elapsed = self.clock() - self._started_at
        emitted = 0
        while True:
            if self._next_index >= len(self.fixes):
                period = self.fixes[-1].at_seconds
                if not self.loop or period <= 0:
                    return emitted
                self._started_at += period
                elapsed = self.clock() - self._started_at
                self._next_index = 0
            fix = self.fixes[self._next_index]
            if fix.at_seconds > elapsed:
                return emitted
            self._next_index += 1
            self.emit_fix(fix.lat, fix.lng)
            emitted += 1
            if not self._subscriptions:
                return emitted

    def _release(self, subscription: PositionSubscription) -> None:
        super()._release(subscription)
        if not self._subscriptions:
            self._started_at = None


class MovementSource:
    """Driver of player position updates with an activate/deactivate lifecycle."""

    name: str

    def __init__(self) -> None:
        self.session: GameSession | None = None

    @property
    def active(self) -> bool:
        return self.session is not None

    def activate(self, session: GameSession) -> None:
        self.session = session

    def deactivate(self) -> None:
        self.session = None


class ManualStepMovement(MovementSource):
    name = "manual"

    def step(self, direction: str) -> bool:
        if direction not in DIRECTION_STEPS:
            raise ValueError(f"unknown direction: {direction}")
        if self.session is None:
            return False
        self.session.step(direction)
        return True


class ExternalPositionMovement(MovementSource):
    name = "external"

    def __init__(
        self,
        provider: PositionProvider,
        *,
        min_interval_seconds: float = 1.0,
        clock: Clock = time.monotonic,
    ) -> None:
        super().__init__()
        if min_interval_seconds < 0:
            raise ValueError("min_interval_seconds must be >= 0")
        self.provider = provider
        self.min_interval_seconds = min_interval_seconds
        self.clock = clock
        self._subscription: PositionSubscription | None = None
        self._last_accepted_at: float | None = None

    def activate(self, session: GameSession) -> None:
        subscription = self.provider.subscribe(self._on_fix, self._on_error)
        super().activate(session)
        self._subscription = subscription
        self._last_accepted_at = None

    def deactivate(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        super().deactivate()

    def _on_fix(self, lat: float, lng: float) -> None:
        session = self.session
        if session is None:
            return
        now = self.clock()
        if self._last_accepted_at is not None and now - self._last_accepted_at < self.min_interval_seconds:
            return
        if latlng_to_cell(lat, lng, session.config.cell_size) == session.player.cell:
            return
        self._last_accepted_at = now
        session.move_to_latlng(lat, lng)

    def _on_error(self, message: str) -> None:
        if self.session is None:
            return
        self.session.notify(Notice(NOTICE_POSITIONING_ERROR, f"positioning unavailable: {message}"))


class MovementController:
    """Owns the single active movement source; switching is teardown then setup."""

    def __init__(self, session: GameSession) -> None:
        self.session = session
        self.active_source: MovementSource | None = None

    def switch_to(self, source: MovementSource) -> bool:
        previous = self.active_source
        if previous is source:
            return True
        if previous is not None:
            previous.deactivate()
        self.active_source = None
        try:
            source.activate(self.session)
        except PositioningUnavailable as exc:
            if previous is not None:
                previous.activate(self.session)
                self.active_source = previous
            self.session.notify(
                Notice(
                    NOTICE_MOVEMENT_SWITCH_FAILED,
                    f"could not switch to {source.name} movement: {exc}",
                    {"requested": source.name, "active": previous.name if previous is not None else None},
                )
            )
            return False
        self.active_source = source
        return True

    def release(self) -> None:
        if self.active_source is not None:
            self.active_source.deactivate()
            self.active_source = None
