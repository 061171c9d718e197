"""
Guide session wiring.

A `GuideSession` owns one user's catalog, location tracker, proximity engine and
conversation, constructed explicitly (no module-level singletons) and torn down
with `dispose()`.

Lifecycle:
- `create(...)`: build every component from settings (plus optional per-session
  overrides) and subscribe the engine to the tracker
- `start()`: load the catalog if empty, then start location tracking
- `stop()`: stop tracking; state is kept
- `reset()`: forget alerts, conversation history, message ids and the catalog
- `dispose()`: stop, unsubscribe, close the model client; safe to call twice
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import random
from typing import Any, Callable, Mapping

from tourguide.catalog.catalog import AttractionCatalog, AttractionSource
from tourguide.config.overrides import apply_settings_overrides
from tourguide.config.settings import Settings, get_settings
from tourguide.conversation.orchestrator import ConversationOrchestrator, NavigateHandler, OutputChannel
from tourguide.core.time import Clock, utc_now
from tourguide.domain.models import TourismContext
from tourguide.ingestion.stb_client import StbClient
from tourguide.llm.base import LanguageModel
from tourguide.proximity.engine import ProximityEngine
from tourguide.recommender.context import build_guide_context
from tourguide.recommender.rank import recommend_for_context
from tourguide.tracking.location import LocationTracker, PositionSource

logger = logging.getLogger(__name__)


class GuideSession:
    def __init__(
        self,
        *,
        settings: Settings,
        catalog: AttractionCatalog,
        tracker: LocationTracker,
        engine: ProximityEngine,
        model: LanguageModel,
        preferences: TourismContext | None = None,
    ):
        self.settings = settings
        self.catalog = catalog
        self.tracker = tracker
        self.engine = engine
        self.model = model
        self.preferences = preferences or TourismContext()
        self.orchestrator: ConversationOrchestrator | None = None
        self._unsubscribers: list[Callable[[], None]] = [engine.attach(tracker)]
        self._disposed = False

    @classmethod
    def create(
        cls,
        *,
        position_source: PositionSource,
        model: LanguageModel,
        settings: Settings | None = None,
        settings_overrides: Mapping[str, Any] | None = None,
        attraction_source: AttractionSource | None = None,
        preferences: TourismContext | None = None,
        output: OutputChannel | None = None,
        on_navigate: NavigateHandler | None = None,
        clock: Clock = utc_now,
        rng: random.Random | None = None,
    ) -> "GuideSession":
        settings = apply_settings_overrides(settings or get_settings(), settings_overrides)
        if attraction_source is None and settings.ingestion.stb.api_key:
            attraction_source = StbClient(settings)

        catalog = AttractionCatalog(settings, source=attraction_source)
        tracker = LocationTracker(position_source, settings)
        engine = ProximityEngine(catalog, settings, clock=clock)
        session = cls(
            settings=settings,
            catalog=catalog,
            tracker=tracker,
            engine=engine,
            model=model,
            preferences=preferences,
        )
        session.orchestrator = ConversationOrchestrator(
            model,
            catalog,
            settings,
            context_provider=session.build_context,
            tourism_context=session.tourism_context,
            on_navigate=on_navigate,
            output=output,
            rng=rng,
            clock=clock,
        )
        # A fresh alert is worth mentioning on the next turn.
        session._unsubscribers.append(engine.subscribe(lambda _alert: session.orchestrator.refresh_context()))
        return session

    def tourism_context(self) -> TourismContext:
        """User preferences with the latest tracked position filled in."""
        return self.preferences.model_copy(update={"user_location": self.tracker.last_position})

    def update_preferences(self, **changes: Any) -> TourismContext:
        self.preferences = self.preferences.model_copy(update=changes)
        if self.orchestrator is not None:
            self.orchestrator.refresh_context()
        return self.preferences

    def build_context(self) -> str:
        cfg = self.settings.conversation
        context = self.tourism_context()
        recommendations = recommend_for_context(self.catalog, context, limit=cfg.context_top_k, settings=self.settings)
        return build_guide_context(
            self.engine.active_alerts,
            recommendations,
            context.user_location,
            alert_limit=cfg.context_alert_limit,
        )

    async def start(self) -> bool:
        """Load attractions if needed and start tracking; returns whether tracking started."""
        self._ensure_alive()
        if not len(self.catalog):
            # The tourism-board client is synchronous; keep the event loop free while it runs.
            await asyncio.to_thread(self.catalog.refresh)
            logger.info("Session catalog ready: %d attractions (%s)", len(self.catalog), self.catalog.mode)
        return await self.tracker.start()

    def stop(self) -> None:
        self.tracker.stop()

    async def ask(self, text: str) -> str:
        self._ensure_alive()
        if self.orchestrator is None:
            raise RuntimeError("GuideSession has no conversation; build it with GuideSession.create()")
        return await self.orchestrator.submit_utterance(text)

    def reset(self) -> None:
        self.engine.reset()
        if self.orchestrator is not None:
            self.orchestrator.reset()
        self.catalog.reset()

    async def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self.tracker.stop()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        close = getattr(self.model, "aclose", None)
        if close is not None:
            result = close()
            if inspect.isawaitable(result):
                await result
        logger.info("Guide session disposed")

    def _ensure_alive(self) -> None:
        if self._disposed:
            raise RuntimeError("GuideSession has been disposed")
