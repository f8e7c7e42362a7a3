import pytest

from lifetwin.database.stores import EventFilter
from lifetwin.learning.insights import (
    InsightDetector,
    behavior_modifications,
    detect_anomalies,
    detect_behavior_change,
    detect_pattern_emergence,
    detect_preference_shift,
    recommendations,
)
from lifetwin.learning.types import EventType, Impact, InsightType, LearningPattern, PatternType
from tests.conftest import make_event

pytestmark = pytest.mark.asyncio


def _module_pattern(strength=0.75):
    return LearningPattern(
        "u1", PatternType.BEHAVIORAL, 0.9, strength, 4,
        data={"active_modules": [["chat", 3], ["drive", 1]]},
    )


def _preference_pattern(average=0.5):
    return LearningPattern(
        "u1", PatternType.PREFERENCE, 0.7, average, 4,
        data={"average_confidence": average, "confidence_distribution": {"40-60%": 1.0}},
    )


async def test_module_switch_is_a_behavior_change():
    insights = detect_behavior_change(make_event(module="drive"), [_module_pattern()])
    assert len(insights) == 1
    assert insights[0].insight_type is InsightType.BEHAVIOR_CHANGE
    assert insights[0].data["previous_behavior"] == "chat"
    assert insights[0].data["current_behavior"] == "drive"

    assert detect_behavior_change(make_event(module="chat"), [_module_pattern()]) == []


async def test_preference_shift_needs_more_than_point_two():
    assert len(detect_preference_shift(make_event(confidence=0.9), [_preference_pattern(0.5)])) == 1
    assert detect_preference_shift(make_event(confidence=0.6), [_preference_pattern(0.5)]) == []


async def test_emergence_requires_both_thresholds_strictly():
    strong = LearningPattern("u1", PatternType.TEMPORAL, 0.9, 0.7, 5)
    borderline = LearningPattern("u1", PatternType.TEMPORAL, 0.9, 0.6, 5)

    insights = detect_pattern_emergence(make_event(), [strong, borderline])
    assert len(insights) == 1
    assert insights[0].confidence == pytest.approx(0.9)
    assert insights[0].significance == pytest.approx(0.7)


async def test_preference_anomaly_compares_event_confidence():
    insights = detect_anomalies(make_event(confidence=0.9), [_preference_pattern(0.5)])
    assert len(insights) == 1
    assert insights[0].insight_type is InsightType.ANOMALY_DETECTION
    assert insights[0].data["expected_value"] == pytest.approx(0.5)
    assert insights[0].data["actual_value"] == pytest.approx(0.9)


async def test_rare_action_is_a_behavioral_anomaly():
    pattern = LearningPattern(
        "u1", PatternType.BEHAVIORAL, 0.8, 0.9, 10, data={"action_types": {"question": 1, "schedule": 9}}
    )
    rare = detect_anomalies(make_event(action_type="question"), [pattern])
    common = detect_anomalies(make_event(action_type="schedule"), [pattern])

    assert len(rare) == 1
    assert rare[0].data["expected_value"] == pytest.approx(0.1)
    assert common == []


async def test_strong_behavioral_patterns_become_modifications():
    mods = behavior_modifications([_module_pattern(0.8), _module_pattern(0.7)])
    assert len(mods) == 1
    assert mods[0].behavior == "module_preference"
    assert mods[0].context == "chat"
    assert mods[0].modification == "increase"


async def test_recommendations_append_event_level_advice():
    event = make_event(event_type=EventType.CORRECTION, confidence=0.3)
    insights = detect_preference_shift(event, [_preference_pattern(0.8)])
    recs = recommendations(event, insights)

    assert recs[:2] == insights[0].recommendations
    assert "Review and improve AI accuracy in this domain" in recs
    assert recs[-1] == "Increase AI confidence through better pattern recognition"


async def test_detected_insights_are_stored_as_high_impact_events(event_store):
    insights = await InsightDetector(event_store).detect(make_event(module="drive"), [_module_pattern()])

    stored = await event_store.query("u1", EventFilter.of(EventType.INSIGHT, applied=True))
    assert {i.insight_type for i in insights} == {InsightType.BEHAVIOR_CHANGE, InsightType.PATTERN_EMERGENCE}
    assert len(stored) == len(insights)
    assert all(e.impact is Impact.HIGH for e in stored)
