import asyncio
import json
import random

import pytest

from tourguide.catalog.catalog import AttractionCatalog
from tourguide.config.settings import get_settings
from tourguide.conversation.orchestrator import ConversationOrchestrator, ConversationState
from tourguide.conversation.tools import NAVIGATION_CONFIRMATION, NavigationRequest, enhance_text
from tourguide.core.errors import ConversationBusyError, ModelInvocationError
from tourguide.llm.base import TextReply, ToolUseReply


def _settings(**conversation):
    settings = get_settings()
    return settings.model_copy(update={"conversation": settings.conversation.model_copy(update=conversation)})


class StubModel:
    """Replays scripted replies; an exception instance is raised, a coroutine function is awaited."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    async def complete(self, turns, *, tools, system=None):
        self.calls.append({"turns": list(turns), "tools": [t.name for t in tools], "system": system})
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            return await reply()
        return reply


class RecordingCatalog(AttractionCatalog):
    def __init__(self, settings):
        super().__init__(settings)
        self.category_calls = []

    def by_category(self, category):
        self.category_calls.append(category)
        return super().by_category(category)


class Outbox:
    def __init__(self):
        self.sent = []

    async def __call__(self, message_id, text):
        self.sent.append((message_id, text))


def _orchestrator(model, settings=None, **kwargs):
    settings = settings or _settings()
    catalog = kwargs.pop("catalog", None) or AttractionCatalog(settings)
    return ConversationOrchestrator(model, catalog, settings, **kwargs)


def test_text_reply_is_returned_and_recorded():
    model = StubModel(TextReply("Try the hawker centres!"))
    outbox = Outbox()
    orch = _orchestrator(model, output=outbox)

    result = asyncio.run(orch.submit_utterance("Where should I eat?"))

    assert result == "Try the hawker centres!"
    assert [(t.role, t.content) for t in orch.history] == [
        ("user", "Where should I eat?"),
        ("assistant", "Try the hawker centres!"),
    ]
    assert model.calls[0]["tools"] == ["getWeather", "searchCatalog", "navigateTo"]
    assert [text for _, text in outbox.sent] == ["Try the hawker centres!"]
    assert orch.state is ConversationState.IDLE


def test_model_timeout_passes_utterance_through():
    async def slow():
        await asyncio.sleep(5)
        return TextReply("too late")

    orch = _orchestrator(StubModel(slow), _settings(model_timeout_seconds=0.01))

    result = asyncio.run(orch.submit_utterance("hello"))

    assert result == "hello"
    assert isinstance(orch.last_error, ModelInvocationError)
    assert orch.last_error.reason == "timeout"
    assert orch.history == ()
    assert orch.state is ConversationState.IDLE


def test_model_error_passes_utterance_through_and_next_success_clears_it():
    model = StubModel(ModelInvocationError("network", "unreachable"), TextReply("Hi there"))
    outbox = Outbox()
    orch = _orchestrator(model, output=outbox)

    assert asyncio.run(orch.submit_utterance("hello")) == "hello"
    assert orch.last_error.reason == "network"

    assert asyncio.run(orch.submit_utterance("hello again")) == "Hi there"
    assert orch.last_error is None
    # The failed turn was rolled back, so roles still alternate.
    assert [t.role for t in orch.history] == ["user", "assistant"]
    assert [text for _, text in outbox.sent] == ["hello", "Hi there"]


def test_unexpected_model_exception_is_reported_as_invocation_error():
    orch = _orchestrator(StubModel(RuntimeError("sdk bug")))
    assert asyncio.run(orch.submit_utterance("hello")) == "hello"
    assert orch.last_error.reason == "error"


def test_search_tool_uses_catalog_and_returns_plain_summary():
    settings = _settings()
    catalog = RecordingCatalog(settings)
    catalog.refresh()
    navigations = []
    model = StubModel(ToolUseReply(name="searchCatalog", input={"category": "Cultural"}))
    orch = _orchestrator(model, settings, catalog=catalog, on_navigate=navigations.append)

    result = asyncio.run(orch.submit_utterance("Show me cultural places"))

    assert catalog.category_calls == ["Cultural"]
    assert result == "I searched for cultural attractions and found 1 place: Chinatown Heritage Centre."
    assert "toolUse" not in result
    assert "{" not in result
    chinatown = catalog.find_by_name("Chinatown Heritage Centre")
    assert navigations == [NavigationRequest(view="map", attraction_ids=(chinatown.id,))]
    assert orch.history[-1].content == result


def test_search_tool_is_bounded_by_result_limit():
    settings = _settings(search_result_limit=2)
    catalog = AttractionCatalog(settings)
    catalog.refresh()
    model = StubModel(ToolUseReply(name="searchCatalog", input={"categories": ["Nature & Wildlife", "Cultural"]}))
    orch = _orchestrator(model, settings, catalog=catalog)

    result = asyncio.run(orch.submit_utterance("nature or culture?"))

    assert "found 2 places" in result


def test_navigate_tool_returns_fixed_confirmation():
    navigations = []
    orch = _orchestrator(StubModel(ToolUseReply(name="navigateTo", input={"view": "swipe"})), on_navigate=navigations.append)

    assert asyncio.run(orch.submit_utterance("open swipe")) == NAVIGATION_CONFIRMATION
    assert navigations == [NavigationRequest(view="swipe")]


def test_weather_tool_uses_injected_rng():
    orch = _orchestrator(
        StubModel(ToolUseReply(name="getWeather", input={"city": "Singapore"})), rng=random.Random(1)
    )

    result = asyncio.run(orch.submit_utterance("weather?"))

    assert result.startswith("Current weather in Singapore: ")


def test_unknown_or_invalid_tool_degrades_to_rephrasing():
    model = StubModel(
        ToolUseReply(name="bookFlight", input={"to": "SIN"}),
        ToolUseReply(name="getWeather", input={}),
        TextReply("   "),
    )
    orch = _orchestrator(model)

    assert asyncio.run(orch.submit_utterance("book a flight")) == enhance_text("book a flight")
    assert asyncio.run(orch.submit_utterance("weather")) == enhance_text("weather")
    assert asyncio.run(orch.submit_utterance("durian")) == enhance_text("durian")


def test_concurrent_submission_is_rejected():
    async def run():
        gate = asyncio.Event()

        async def gated():
            await gate.wait()
            return TextReply("done")

        orch = _orchestrator(StubModel(gated))
        first = asyncio.create_task(orch.submit_utterance("one"))
        await asyncio.sleep(0)
        assert orch.state is ConversationState.AWAITING_MODEL_RESPONSE
        with pytest.raises(ConversationBusyError):
            await orch.submit_utterance("two")
        gate.set()
        return await first

    assert asyncio.run(run()) == "done"


def test_history_is_bounded_and_starts_with_user_turn():
    model = StubModel(*(TextReply(f"reply {i}") for i in range(5)))
    orch = _orchestrator(model, _settings(history_limit=4))

    async def run():
        for i in range(5):
            await orch.submit_utterance(f"question {i}")

    asyncio.run(run())

    assert len(orch.history) == 4
    assert orch.history[0].role == "user"
    assert orch.history[-1].content == "reply 4"
    assert len(model.calls[-1]["turns"]) <= 4


def test_context_is_injected_on_first_turn_and_on_demand():
    builds = []

    def provider():
        builds.append(1)
        return "Guide context: Marina Bay Sands is 120m away."

    model = StubModel(TextReply("a"), TextReply("b"), TextReply("c"))
    orch = _orchestrator(model, context_provider=provider)

    async def run():
        await orch.submit_utterance("one")
        await orch.submit_utterance("two")
        orch.refresh_context()
        await orch.submit_utterance("three")

    asyncio.run(run())

    assert len(builds) == 2
    assert "Marina Bay Sands is 120m away" in model.calls[0]["system"]
    assert model.calls[0]["system"].startswith(get_settings().conversation.system_prompt)


def test_empty_utterance_skips_the_model():
    model = StubModel()
    orch = _orchestrator(model)
    assert asyncio.run(orch.submit_utterance("   ")) == "   "
    assert model.calls == []


def test_outbound_message_ids_are_unique():
    outbox = Outbox()
    orch = _orchestrator(StubModel(*(TextReply(str(i)) for i in range(3))), output=outbox)

    async def run():
        for i in range(3):
            await orch.submit_utterance(f"q{i}")

    asyncio.run(run())

    ids = [mid for mid, _ in outbox.sent]
    assert len(ids) == len(set(ids)) == 3
    assert all(orch.message_tracker.is_sent(mid) for mid in ids)
    json.dumps(ids)


def test_failing_context_provider_does_not_count_as_model_failure():
    calls = []

    def provider():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("ranker blew up")
        return "Guide context: Gardens by the Bay is 300m away."

    model = StubModel(TextReply("first"), TextReply("second"))
    orch = _orchestrator(model, context_provider=provider)

    assert asyncio.run(orch.submit_utterance("one")) == "first"
    assert orch.last_error is None
    assert model.calls[0]["system"] == get_settings().conversation.system_prompt

    # The context was never built, so the next turn tries again.
    assert asyncio.run(orch.submit_utterance("two")) == "second"
    assert "Gardens by the Bay is 300m away" in model.calls[1]["system"]
