"""
Conversation orchestrator.

One conversation moves through

    IDLE -> AWAITING_MODEL_RESPONSE -> (DISPATCHING_TOOL | EMITTING_TEXT) -> IDLE

`submit_utterance` appends the user turn, calls the language model with the bounded
history and the tool catalog, turns the reply into final text, appends that text as
the assistant turn and sends it to the output channel with a fresh message id.

Failure policy:
- a model failure (including the configured timeout) rolls back the user turn,
  records `last_error` and returns the utterance unchanged
- an unknown tool or invalid tool input degrades to rule-based rephrasing
- a second submission while one is in flight raises `ConversationBusyError`
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import random
from enum import Enum
from typing import Any, Callable

from tourguide.catalog.catalog import AttractionCatalog
from tourguide.config.settings import Settings, get_settings
from tourguide.conversation.messages import MessageIdFactory, MessageTracker
from tourguide.conversation.tools import (
    NAVIGATION_CONFIRMATION,
    TOOL_CATALOG,
    NavigateCall,
    NavigationRequest,
    SearchCatalogCall,
    WeatherCall,
    enhance_text,
    fake_weather,
    parse_tool_call,
    search_summary,
)
from tourguide.core.errors import ConversationBusyError, ModelInvocationError
from tourguide.core.time import Clock, utc_now
from tourguide.domain.models import ConversationTurn, NearbyAttraction, TourismContext
from tourguide.llm.base import LanguageModel, ModelReply, ToolUseReply
from tourguide.recommender.rank import rank

logger = logging.getLogger(__name__)

OutputChannel = Callable[[str, str], Any]
ContextProvider = Callable[[], str]
TourismContextProvider = Callable[[], TourismContext]
NavigateHandler = Callable[[NavigationRequest], None]


class ConversationState(str, Enum):
    IDLE = "idle"
    AWAITING_MODEL_RESPONSE = "awaiting_model_response"
    DISPATCHING_TOOL = "dispatching_tool"
    EMITTING_TEXT = "emitting_text"


class ConversationOrchestrator:
    def __init__(
        self,
        model: LanguageModel,
        catalog: AttractionCatalog,
        settings: Settings | None = None,
        *,
        context_provider: ContextProvider | None = None,
        tourism_context: TourismContextProvider | None = None,
        on_navigate: NavigateHandler | None = None,
        output: OutputChannel | None = None,
        message_ids: MessageIdFactory | None = None,
        message_tracker: MessageTracker | None = None,
        rng: random.Random | None = None,
        clock: Clock = utc_now,
    ):
        self._model = model
        self._catalog = catalog
        self._settings = settings or get_settings()
        self._context_provider = context_provider
        self._tourism_context = tourism_context
        self._on_navigate = on_navigate
        self._output = output
        self._message_ids = message_ids or MessageIdFactory()
        self._tracker = message_tracker or MessageTracker(
            self._settings.conversation.message_ttl_seconds, clock=clock
        )
        self._rng = rng or random.Random()

        self._history: list[ConversationTurn] = []
        self._context_text: str | None = None
        self._context_stale = True
        self.state = ConversationState.IDLE
        self.last_error: ModelInvocationError | None = None

    @property
    def history(self) -> tuple[ConversationTurn, ...]:
        return tuple(self._history)

    @property
    def message_tracker(self) -> MessageTracker:
        return self._tracker

    def refresh_context(self) -> None:
        """Rebuild the injected context before the next model call."""
        self._context_stale = True

    def clear_history(self) -> None:
        self._history = []
        self._context_stale = True

    def reset(self) -> None:
        self.clear_history()
        self._tracker.clear()
        self.last_error = None

    def _system_prompt(self) -> str:
        prompt = self._settings.conversation.system_prompt
        if self._context_stale:
            try:
                self._context_text = self._context_provider() if self._context_provider else ""
                self._context_stale = False
            except Exception:
                # Stays stale so the next turn tries again.
                logger.exception("Context provider failed; using the bare system prompt")
                self._context_text = ""
        if self._context_text:
            return f"{prompt}\n\n{self._context_text}"
        return prompt

    def _window(self) -> list[ConversationTurn]:
        limit = self._settings.conversation.history_limit
        window = self._history[-limit:]
        # Keep the window starting on a user turn.
        if window and window[0].role == "assistant":
            window = window[1:]
        return window

    async def submit_utterance(self, text: str) -> str:
        """Run one user utterance through the model; returns the final text."""
        if self.state is not ConversationState.IDLE:
            raise ConversationBusyError("A model call is already in flight for this conversation")
        if not text.strip():
            return text

        self.state = ConversationState.AWAITING_MODEL_RESPONSE
        try:
            self._history.append(ConversationTurn(role="user", content=text))
            try:
                reply = await self._invoke_model()
            except ModelInvocationError as e:
                self._history.pop()
                self.last_error = e
                logger.warning("Model call failed (%s); passing utterance through: %s", e.reason, e)
                await self._emit(text)
                return text

            self.last_error = None
            final = await self._resolve(reply, text)
            self._history.append(ConversationTurn(role="assistant", content=final))
            self._history = self._window()
            await self._emit(final)
            return final
        finally:
            self.state = ConversationState.IDLE

    async def _invoke_model(self) -> ModelReply:
        timeout = self._settings.conversation.model_timeout_seconds
        system = self._system_prompt()
        try:
            return await asyncio.wait_for(
                self._model.complete(tuple(self._window()), tools=TOOL_CATALOG, system=system),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise ModelInvocationError("timeout", f"Model call exceeded {timeout:.0f}s") from e
        except ModelInvocationError:
            raise
        except Exception as e:
            raise ModelInvocationError("error", f"{type(e).__name__}: {e}") from e

    async def _resolve(self, reply: ModelReply, text: str) -> str:
        if isinstance(reply, ToolUseReply):
            self.state = ConversationState.DISPATCHING_TOOL
            return self._dispatch(reply, text)
        self.state = ConversationState.EMITTING_TEXT
        content = reply.content.strip()
        return content or enhance_text(text)

    def _dispatch(self, reply: ToolUseReply, text: str) -> str:
        call = parse_tool_call(reply.name, reply.input)
        if isinstance(call, WeatherCall):
            return fake_weather(call.city, call.country, rng=self._rng)
        if isinstance(call, SearchCatalogCall):
            return self._search(call)
        if isinstance(call, NavigateCall):
            self._navigate(NavigationRequest(view=call.view))
            return NAVIGATION_CONFIRMATION
        logger.warning("Discarding unusable tool call %r", reply.name)
        return enhance_text(text)

    def _search(self, call: SearchCatalogCall) -> str:
        cfg = self._settings.conversation
        context = self._tourism_context() if self._tourism_context else TourismContext()
        located = context.user_location is not None
        center = context.user_location or self._settings.region.center_point
        categories = call.all_categories()

        candidates: list[NearbyAttraction] = []
        seen: set[str] = set()
        for category in categories:
            for nearby in self._catalog.decorate(center, self._catalog.by_category(category)):
                if nearby.attraction.id in seen:
                    continue
                if located and nearby.distance_m is not None and nearby.distance_m > cfg.search_radius_m:
                    continue
                seen.add(nearby.attraction.id)
                candidates.append(nearby)

        top = rank(context, candidates, self._settings)[: cfg.search_result_limit]
        self._navigate(NavigationRequest(view="map", attraction_ids=tuple(r.attraction.id for r in top)))
        return search_summary(categories, [r.attraction.name for r in top])

    def _navigate(self, request: NavigationRequest) -> None:
        if self._on_navigate is None:
            return
        try:
            self._on_navigate(request)
        except Exception:
            logger.exception("Navigation handler failed")

    async def _emit(self, text: str) -> str | None:
        if self._output is None:
            return None
        message_id = self._message_ids.next_id()
        if not self._tracker.track(message_id):
            return None
        try:
            result = self._output(message_id, text)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Output channel failed for message %s", message_id)
        return message_id
