"""
Location tracker.

The tracker owns the user's current position. It listens to a positioning source in
two ways at once:
- a push subscription (`PositionSource.watch`)
- a periodic poll (`PositionSource.current`) that covers a watch which silently stalls

Every accepted fix overwrites `last_position` and is pushed to subscribers in the
order it was accepted. A fix older than the one already held (for example a slow poll
resolving after a newer push) is discarded.

Errors are delivered to subscribers as notifications. Only `PERMISSION_DENIED` halts
tracking; timeouts, unavailable positions and unexpected source failures (reported as
`UNKNOWN`) leave both channels running.

A `PROMPT` or `UNKNOWN` answer to the permission request still starts tracking, but
`permission` only becomes `GRANTED` once a fix is actually delivered.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

from tourguide.config.settings import Settings, get_settings
from tourguide.core.errors import LocationError, LocationErrorKind
from tourguide.core.time import ensure_tz
from tourguide.domain.models import Position

logger = logging.getLogger(__name__)

PositionListener = Callable[[Position], None]
ErrorListener = Callable[[LocationError], None]


class PermissionState(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    PROMPT = "prompt"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class PositionOptions:
    high_accuracy: bool = True
    timeout_seconds: float = 10
    maximum_age_seconds: float = 60


class PositionSource(Protocol):
    """The device positioning surface (browser geolocation, GPS daemon, a replay file)."""

    async def request_permission(self) -> PermissionState: ...

    def watch(
        self, on_fix: PositionListener, on_error: ErrorListener, options: PositionOptions
    ) -> Callable[[], None]:
        """Start pushing fixes; returns a callable that cancels the watch."""
        ...

    async def current(self, options: PositionOptions) -> Position:
        """Resolve one fix, or raise `LocationError`."""
        ...


class LocationTracker:
    def __init__(self, source: PositionSource, settings: Settings | None = None):
        self._source = source
        self._settings = settings or get_settings()
        cfg = self._settings.tracking
        self._options = PositionOptions(
            high_accuracy=cfg.high_accuracy,
            timeout_seconds=cfg.fix_timeout_seconds,
            maximum_age_seconds=cfg.maximum_age_seconds,
        )
        self._subscribers: list[tuple[PositionListener, ErrorListener | None]] = []
        self._cancel_watch: Callable[[], None] | None = None
        self._poll_task: asyncio.Task | None = None
        # Bumped on every start/stop so callbacks from a previous run are ignored.
        self._generation = 0

        self.last_position: Position | None = None
        self.last_error: LocationError | None = None
        self.tracking = False
        self.permission = PermissionState.UNKNOWN

    def subscribe(self, on_position: PositionListener, on_error: ErrorListener | None = None) -> Callable[[], None]:
        entry = (on_position, on_error)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    async def start(self) -> bool:
        """Begin tracking; returns whether tracking actually started."""
        if self.tracking:
            return True

        if self.permission is not PermissionState.GRANTED:
            try:
                self.permission = await self._source.request_permission()
            except LocationError as exc:
                self._handle_error(exc, generation=self._generation)
                return False

        if self.permission is PermissionState.DENIED:
            self._handle_error(LocationError(LocationErrorKind.PERMISSION_DENIED), generation=self._generation)
            return False

        self._generation += 1
        generation = self._generation
        self.tracking = True
        self._cancel_watch = self._source.watch(
            lambda position: self._handle_fix(position, generation=generation),
            lambda error: self._handle_error(error, generation=generation),
            self._options,
        )
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop(generation))
        logger.info("Location tracking started (poll every %.0fs)", self._settings.tracking.poll_interval_seconds)
        return True

    def stop(self) -> None:
        """Cancel the watch and the poll; no notifications fire after this returns."""
        was_tracking = self.tracking
        self._generation += 1
        self.tracking = False
        cancel, self._cancel_watch = self._cancel_watch, None
        if cancel is not None:
            cancel()
        task, self._poll_task = self._poll_task, None
        if task is not None and not task.done():
            task.cancel()
        if was_tracking:
            logger.info("Location tracking stopped")

    async def poll_once(self) -> Position | None:
        """Ask the source for one fix and process it like a pushed one."""
        return await self._poll(self._generation)

    async def _poll(self, generation: int) -> Position | None:
        try:
            position = await asyncio.wait_for(
                self._source.current(self._options), timeout=self._options.timeout_seconds
            )
        except asyncio.TimeoutError:
            self._handle_error(LocationError(LocationErrorKind.TIMEOUT), generation=generation)
            return None
        except LocationError as exc:
            self._handle_error(exc, generation=generation)
            return None
        except Exception as exc:
            logger.warning("Position source failed during poll: %r", exc)
            self._handle_error(LocationError(LocationErrorKind.UNKNOWN, str(exc) or None), generation=generation)
            return None
        return position if self._handle_fix(position, generation=generation) else None

    async def _poll_loop(self, generation: int) -> None:
        interval = self._settings.tracking.poll_interval_seconds
        while generation == self._generation:
            await self._poll(generation)
            await asyncio.sleep(interval)

    def _handle_fix(self, position: Position, *, generation: int) -> bool:
        if generation != self._generation or not self.tracking:
            return False

        position = position.model_copy(update={"timestamp": ensure_tz(position.timestamp)})
        current = self.last_position
        if current is not None and position.timestamp < current.timestamp:
            logger.debug("Discarding stale fix from %s (holding %s)", position.timestamp, current.timestamp)
            return False

        self.last_position = position
        self.last_error = None
        # A delivered fix is the proof of access when the source answered PROMPT or UNKNOWN.
        self.permission = PermissionState.GRANTED
        for on_position, _ in list(self._subscribers):
            try:
                on_position(position)
            except Exception:
                logger.exception("Position subscriber failed")
        return True

    def _handle_error(self, error: LocationError, *, generation: int) -> None:
        if generation != self._generation:
            return

        self.last_error = error
        if error.kind.is_fatal:
            self.permission = PermissionState.DENIED
            logger.warning("Location permission denied; tracking halted")
            self.stop()
        else:
            logger.info("Transient location error: %s", error)

        for _, on_error in list(self._subscribers):
            if on_error is None:
                continue
            try:
                on_error(error)
            except Exception:
                logger.exception("Location error subscriber failed")
