"""
Proximity alerting engine.

Each attraction carries a small state machine:

    OUT_OF_RANGE --(in range, eligible)--> IN_RANGE_ALERTED      (alert emitted)
    IN_RANGE_ALERTED --(out of range)--> OUT_OF_RANGE
    OUT_OF_RANGE --(in range, cooldown running)--> IN_RANGE_COOLING_DOWN  (no alert)
    IN_RANGE_COOLING_DOWN --(out of range)--> OUT_OF_RANGE

An attraction is eligible when it has never alerted, or when a fix has seen it out of
range since its last alert and `cooldown_seconds` have passed since that alert.
Cooldown expiry is evaluated lazily against the injected clock on each fix; no timer
is scheduled.

At most one non-dismissed alert exists per attraction: a new alert dismisses the
previous one for the same attraction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable

from tourguide.catalog.catalog import AttractionCatalog
from tourguide.config.settings import Settings, get_settings
from tourguide.core.errors import LocationError
from tourguide.core.geo import distance_m
from tourguide.core.time import Clock, ensure_tz, epoch_ms, utc_now
from tourguide.domain.models import Attraction, Position, ProximityAlert
from tourguide.tracking.location import LocationTracker

logger = logging.getLogger(__name__)

AlertListener = Callable[[ProximityAlert], None]


class ProximityState(str, Enum):
    OUT_OF_RANGE = "out_of_range"
    IN_RANGE_ALERTED = "in_range_alerted"
    IN_RANGE_COOLING_DOWN = "in_range_cooling_down"


@dataclass
class _AttractionTrack:
    state: ProximityState = ProximityState.OUT_OF_RANGE
    alerted_at: datetime | None = None
    left_since_alert: bool = True


class ProximityEngine:
    def __init__(
        self,
        catalog: AttractionCatalog,
        settings: Settings | None = None,
        *,
        clock: Clock = utc_now,
    ):
        self._catalog = catalog
        self._settings = settings or get_settings()
        self._clock = clock
        self._tracks: dict[str, _AttractionTrack] = {}
        self._alerts: list[ProximityAlert] = []
        self._listeners: list[AlertListener] = []
        self._sequence = 0
        self.last_position: Position | None = None

    @property
    def threshold_m(self) -> float:
        return self._settings.proximity.threshold_m

    @property
    def cooldown(self) -> timedelta:
        return timedelta(seconds=self._settings.proximity.cooldown_seconds)

    def subscribe(self, listener: AlertListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def attach(self, tracker: LocationTracker) -> Callable[[], None]:
        """Subscribe to a `LocationTracker`; returns the unsubscribe handle."""
        return tracker.subscribe(self.on_position, self.on_location_error)

    def on_location_error(self, error: LocationError) -> None:
        # Alerts simply stop appearing while there is no fix.
        logger.debug("Proximity engine saw location error: %s", error.kind.value)

    def on_position(self, position: Position) -> list[ProximityAlert]:
        """Evaluate every attraction against a fix; returns the alerts it produced."""
        now = ensure_tz(self._clock())
        cfg = self._settings.proximity
        self.last_position = position
        if position.accuracy is not None and position.accuracy > cfg.accuracy_advisory_m:
            logger.debug("Fix accuracy %.0fm exceeds advisory %.0fm", position.accuracy, cfg.accuracy_advisory_m)

        fired: list[ProximityAlert] = []
        for attraction in self._catalog.attractions():
            d = distance_m(position, attraction)
            track = self._tracks.setdefault(attraction.id, _AttractionTrack())
            if d <= cfg.threshold_m:
                if self._eligible(track, now):
                    fired.append(self._fire(attraction, d, position, now))
                    track.state = ProximityState.IN_RANGE_ALERTED
                    track.alerted_at = now
                    track.left_since_alert = False
                elif track.state is ProximityState.OUT_OF_RANGE:
                    track.state = ProximityState.IN_RANGE_COOLING_DOWN
            else:
                track.state = ProximityState.OUT_OF_RANGE
                track.left_since_alert = True

        for alert in fired:
            logger.info("Proximity alert: %s at %.0fm", alert.attraction.name, alert.distance_m)
            for listener in list(self._listeners):
                try:
                    listener(alert)
                except Exception:
                    logger.exception("Proximity alert listener failed")
        return fired

    def _eligible(self, track: _AttractionTrack, now: datetime) -> bool:
        if track.alerted_at is None:
            return True
        return track.left_since_alert and now - track.alerted_at >= self.cooldown

    def _fire(self, attraction: Attraction, d: float, position: Position, now: datetime) -> ProximityAlert:
        for alert in self._alerts:
            if alert.attraction.id == attraction.id and not alert.dismissed:
                alert.dismissed = True
        self._sequence += 1
        alert = ProximityAlert(
            id=f"{attraction.id}_{epoch_ms(now)}_{self._sequence}",
            attraction=attraction,
            distance_m=d,
            timestamp=now,
            accuracy_m=position.accuracy,
        )
        self._alerts.append(alert)
        return alert

    # Alert views

    @property
    def alerts(self) -> list[ProximityAlert]:
        """All alerts, most recent first."""
        return list(reversed(self._alerts))

    @property
    def active_alerts(self) -> list[ProximityAlert]:
        return [a for a in self.alerts if not a.dismissed]

    def visible_alerts(self, now: datetime | None = None) -> list[ProximityAlert]:
        """Active alerts still inside the display window."""
        now = ensure_tz(now or self._clock())
        window = timedelta(seconds=self._settings.proximity.alert_display_seconds)
        return [a for a in self.active_alerts if now - a.timestamp < window]

    def dismiss_alert(self, alert_id: str) -> bool:
        """Mark an alert dismissed; returns whether the id was known."""
        for alert in self._alerts:
            if alert.id == alert_id:
                alert.dismissed = True
                return True
        return False

    def open_alert(self, alert_id: str) -> Attraction | None:
        """Details-view action: dismiss the alert and hand back its attraction."""
        for alert in self._alerts:
            if alert.id == alert_id:
                alert.dismissed = True
                return alert.attraction
        return None

    def clear_alerts(self) -> None:
        self._alerts = []

    def state_of(self, attraction_id: str) -> ProximityState:
        track = self._tracks.get(attraction_id)
        return track.state if track else ProximityState.OUT_OF_RANGE

    def reset(self) -> None:
        """Forget alerts and per-attraction state (cooldowns included)."""
        self._alerts = []
        self._tracks = {}
        self.last_position = None
