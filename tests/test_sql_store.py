from datetime import timedelta

import pytest

from lifetwin.autonomy.types import AutonomySettings
from lifetwin.database.sql_store import SqlStores
from lifetwin.database.stores import EventFilter
from lifetwin.learning.engine import LearningEngine
from lifetwin.learning.types import EventType, Impact, utcnow
from tests.conftest import make_event

pytestmark = pytest.mark.asyncio


@pytest.fixture
def stores():
    return SqlStores.from_url("sqlite:///:memory:")


async def test_events_round_trip(stores):
    event = make_event(module="drive", confidence=0.7, impact=Impact.HIGH, query="find the invoice")
    await stores.events.append(event)

    (loaded,) = await stores.events.query("u1")

    assert loaded.id == event.id
    assert loaded.event_type is EventType.INTERACTION
    assert loaded.impact is Impact.HIGH
    assert loaded.payload == {"query": "find the invoice"}
    assert loaded.timestamp == event.timestamp
    assert not loaded.applied


async def test_query_is_newest_first_and_filtered(stores):
    old = make_event(days_ago=3)
    new = make_event(days_ago=1)
    feedback = make_event(event_type=EventType.FEEDBACK, days_ago=2)
    other_user = make_event(user_id="u2")
    for event in (old, new, feedback, other_user):
        await stores.events.append(event)

    everything = await stores.events.query("u1")
    interactions = await stores.events.query("u1", EventFilter.of(EventType.INTERACTION))
    recent = await stores.events.query("u1", window=timedelta(days=2, hours=12))
    limited = await stores.events.query("u1", limit=1)

    assert [e.id for e in everything] == [new.id, feedback.id, old.id]
    assert [e.id for e in interactions] == [new.id, old.id]
    assert [e.id for e in recent] == [new.id, feedback.id]
    assert [e.id for e in limited] == [new.id]


async def test_mark_applied(stores):
    event = make_event()
    await stores.events.append(event)
    await stores.events.mark_applied(event.id)

    assert await stores.events.query("u1", EventFilter.of(applied=False)) == []
    (applied,) = await stores.events.query("u1", EventFilter.of(applied=True))
    assert applied.id == event.id


async def test_personality_profile(stores):
    assert await stores.personality.get("u1") is None

    await stores.personality.put("u1", {"openness": 0.6}, utcnow())
    await stores.personality.put("u1", {"openness": 0.7, "precision": 0.5}, utcnow())

    assert await stores.personality.get("u1") == {"openness": 0.7, "precision": 0.5}


async def test_autonomy_settings_default_and_update(stores):
    assert await stores.autonomy.get("u1") == AutonomySettings()

    await stores.autonomy.put("u1", AutonomySettings(scheduling=90, communication=10))
    settings = await stores.autonomy.get("u1")

    assert settings.scheduling == 90
    assert settings.communication == 10
    assert settings.data_analysis == 80


async def test_learning_engine_over_sql(stores):
    engine = LearningEngine(stores.events, stores.personality)
    for _ in range(3):
        await engine.process_interaction("u1", "chat", "what next?", "Review.", 0.8, action_type="question")

    patterns = await stores.events.query("u1", EventFilter.of(EventType.PATTERN, applied=True))
    unapplied = await stores.events.query("u1", EventFilter.of(applied=False))

    assert patterns
    assert unapplied == []
    assert (await engine.get_learning_analytics("u1"))["event_types"]["interaction"] == 3
