from collections import Counter

import pytest

from lifetwin.database.stores import EventFilter
from lifetwin.learning.patterns import PatternAnalyzer, confidence_distribution, replay_patterns
from lifetwin.learning.types import EventType, PatternType
from tests.conftest import make_event

pytestmark = pytest.mark.asyncio


async def _seed(store, events):
    for event in events:
        await store.append(event)


def _window():
    return [
        make_event(module="chat", hour=9, confidence=0.8, action_type="question"),
        make_event(module="chat", hour=9, confidence=0.6, action_type="question"),
        make_event(module="chat", hour=9, confidence=0.7, action_type="schedule"),
        make_event(event_type=EventType.FEEDBACK, module="drive", hour=14, confidence=0.9),
    ]


async def test_empty_window_yields_no_patterns_and_writes_nothing(event_store):
    patterns = await PatternAnalyzer(event_store).analyze_user("nobody")
    assert patterns == []
    assert len(event_store) == 0


async def test_every_family_is_derived_with_bounded_values(event_store):
    await _seed(event_store, _window())
    patterns = await PatternAnalyzer(event_store).analyze_user("u1")

    kinds = Counter(p.pattern_type for p in patterns)
    assert kinds == {
        PatternType.TEMPORAL: 2,
        PatternType.BEHAVIORAL: 2,
        PatternType.PREFERENCE: 2,
        PatternType.COMMUNICATION: 1,
    }
    for pattern in patterns:
        assert 0.0 <= pattern.confidence <= 1.0
        assert 0.0 <= pattern.strength <= 1.0
        assert pattern.frequency >= 1


async def test_temporal_pattern_ranks_peak_hours(event_store):
    await _seed(event_store, _window())
    patterns = await PatternAnalyzer(event_store).analyze_user("u1")
    hourly = next(p for p in patterns if "peak_hours" in p.data)

    assert hourly.data["peak_hours"] == [[9, 3], [14, 1]]
    assert hourly.strength == pytest.approx(0.75)
    assert hourly.frequency == 4


async def test_action_pattern_frequency_counts_actions(event_store):
    await _seed(event_store, _window())
    patterns = await PatternAnalyzer(event_store).analyze_user("u1")
    action = next(p for p in patterns if "action_types" in p.data)

    assert action.data["action_types"] == {"question": 2, "schedule": 1}
    assert action.frequency == 3
    assert action.strength == pytest.approx(0.5)


async def test_communication_pattern_measures_interaction_share(event_store):
    await _seed(event_store, _window())
    patterns = await PatternAnalyzer(event_store).analyze_user("u1")
    comm = next(p for p in patterns if p.pattern_type is PatternType.COMMUNICATION)

    assert comm.data["interaction_frequency"] == pytest.approx(0.75)
    assert comm.data["total_interactions"] == 3
    assert comm.frequency == 3


async def test_reanalysis_of_unchanged_window_is_idempotent(event_store):
    await _seed(event_store, _window())
    analyzer = PatternAnalyzer(event_store)

    first = await analyzer.analyze_user("u1")
    second = await analyzer.analyze_user("u1")

    def signature(patterns):
        return Counter((p.pattern_type, round(p.strength, 9), p.frequency) for p in patterns)

    assert signature(first) == signature(second)


async def test_derived_events_are_not_part_of_the_window(event_store):
    await _seed(event_store, _window())
    analyzer = PatternAnalyzer(event_store)
    await analyzer.analyze_user("u1")

    window = await analyzer.load_window("u1")
    assert len(window) == 4
    assert all(e.event_type is not EventType.PATTERN for e in window)


async def test_window_is_bounded_by_count_and_age(event_store):
    await _seed(event_store, [make_event(days_ago=0.1 * i) for i in range(1, 9)])
    await event_store.append(make_event(days_ago=40))

    assert len(await PatternAnalyzer(event_store, window_limit=5).load_window("u1")) == 5
    assert len(await PatternAnalyzer(event_store).load_window("u1")) == 8


async def test_persisted_patterns_replay(event_store):
    await _seed(event_store, _window())
    patterns = await PatternAnalyzer(event_store).analyze_user("u1")

    stored = await event_store.query("u1", EventFilter.of(EventType.PATTERN, applied=True))
    replayed = replay_patterns(stored)
    assert {p.id for p in replayed} == {p.id for p in patterns}
    assert all(e.validated for e in stored)


async def test_confidence_distribution_closes_top_bucket():
    dist = confidence_distribution([0.1, 1.0])
    assert dist["0-20%"] == pytest.approx(0.5)
    assert dist["80-100%"] == pytest.approx(0.5)
    assert sum(dist.values()) == pytest.approx(1.0)
