import asyncio
from datetime import datetime, timezone

import pytest

from tourguide.config.settings import get_settings
from tourguide.domain.models import Position
from tourguide.llm.base import TextReply
from tourguide.session import GuideSession
from tourguide.tracking.location import PermissionState

MBS = (1.2834, 103.8607)


def _settings():
    settings = get_settings()
    tracking = settings.tracking.model_copy(update={"poll_interval_seconds": 3600, "fix_timeout_seconds": 1})
    stb = settings.ingestion.stb.model_copy(update={"api_key": None})
    return settings.model_copy(
        update={"tracking": tracking, "ingestion": settings.ingestion.model_copy(update={"stb": stb})}
    )


class PushSource:
    def __init__(self):
        self.on_fix = None
        self.cancelled = False

    async def request_permission(self):
        return PermissionState.GRANTED

    def watch(self, on_fix, on_error, options):
        self.on_fix = on_fix

        def cancel():
            self.cancelled = True

        return cancel

    async def current(self, options):
        return Position(latitude=1.45, longitude=103.70, timestamp=datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc))

    def push(self, lat, lon):
        self.on_fix(Position(latitude=lat, longitude=lon, accuracy=12, timestamp=datetime.now(timezone.utc)))


class EchoModel:
    def __init__(self):
        self.systems = []
        self.closed = 0

    async def complete(self, turns, *, tools, system=None):
        self.systems.append(system)
        return TextReply(f"You said: {turns[-1].content}")

    async def aclose(self):
        self.closed += 1


def _session(**kwargs):
    source = PushSource()
    model = EchoModel()
    session = GuideSession.create(position_source=source, model=model, settings=_settings(), **kwargs)
    return session, source, model


def test_start_loads_fallback_catalog_and_tracks():
    async def run():
        session, source, _ = _session()
        started = await session.start()
        await session.dispose()
        return session, source, started

    session, source, started = asyncio.run(run())

    assert started is True
    assert session.catalog.mode == "fallback"
    assert len(session.catalog) == 10
    assert source.cancelled is True


def test_alert_reaches_the_model_context():
    async def run():
        session, source, model = _session()
        await session.start()
        source.push(*MBS)
        alerts = list(session.engine.active_alerts)
        reply = await session.ask("What is around me?")
        await session.dispose()
        return alerts, reply, model

    alerts, reply, model = asyncio.run(run())

    assert "Marina Bay Sands" in [a.attraction.name for a in alerts]
    assert reply == "You said: What is around me?"
    assert "Attractions that just came into range:" in model.systems[0]
    assert "Marina Bay Sands" in model.systems[0]
    assert "The user is currently at latitude 1.2834, longitude 103.8607." in model.systems[0]


def test_tourism_context_carries_latest_position_and_preferences():
    async def run():
        session, source, _ = _session()
        await session.start()
        source.push(*MBS)
        session.update_preferences(interests={"Cultural"}, budget="low")
        context = session.tourism_context()
        await session.dispose()
        return context

    context = asyncio.run(run())

    assert context.user_location.latitude == MBS[0]
    assert context.interests == {"Cultural"}
    assert context.budget == "low"


def test_settings_overrides_apply_per_session():
    session, _, _ = _session(settings_overrides={"proximity": {"threshold_m": 50}})

    assert session.settings.proximity.threshold_m == 50
    assert session.engine.threshold_m == 50
    assert get_settings().proximity.threshold_m != 50


def test_reset_forgets_alerts_history_and_catalog():
    async def run():
        session, source, _ = _session()
        await session.start()
        source.push(*MBS)
        await session.ask("hello")
        session.reset()
        await session.dispose()
        return session

    session = asyncio.run(run())

    assert session.engine.alerts == []
    assert session.orchestrator.history == ()
    assert len(session.catalog) == 0


def test_dispose_is_idempotent_and_blocks_further_use():
    async def run():
        session, _, model = _session()
        await session.dispose()
        await session.dispose()
        with pytest.raises(RuntimeError):
            await session.ask("hello")
        with pytest.raises(RuntimeError):
            await session.start()
        return model

    model = asyncio.run(run())

    assert model.closed == 1


def test_ask_without_conversation_raises_runtime_error():
    session, _, _ = _session()
    session.orchestrator = None

    with pytest.raises(RuntimeError, match="no conversation"):
        asyncio.run(session.ask("hello"))
