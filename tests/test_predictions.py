from datetime import timedelta

import pytest

from lifetwin.database.stores import EventFilter
from lifetwin.learning.predictions import PredictionGenerator, replay_predictions
from lifetwin.learning.types import (
    EventType,
    LearningPattern,
    PatternType,
    Prediction,
    PredictionType,
    Timeframe,
    utcnow,
)
from tests.conftest import make_event

pytestmark = pytest.mark.asyncio


def _patterns():
    return [
        LearningPattern("u1", PatternType.TEMPORAL, 0.8, 0.75, 4, data={"peak_hours": [[9, 3], [14, 1]]}),
        LearningPattern("u1", PatternType.TEMPORAL, 0.7, 1.0, 4, data={"daily_activity": {"2": 4}}),
        LearningPattern("u1", PatternType.BEHAVIORAL, 0.8, 0.5, 3, data={"action_types": {"question": 2, "schedule": 1}}),
        LearningPattern(
            "u1", PatternType.PREFERENCE, 0.7, 0.75, 4,
            data={"average_confidence": 0.75, "confidence_distribution": {"60-80%": 1.0}},
        ),
        LearningPattern("u1", PatternType.PREFERENCE, 0.6, 1.0, 4, data={"impact_preferences": {"medium": 4}}),
        LearningPattern("u1", PatternType.COMMUNICATION, 0.8, 0.75, 3, data={"interaction_frequency": 0.75}),
    ]


async def test_one_prediction_per_qualifying_pattern(event_store):
    now = utcnow()
    predictions = PredictionGenerator(event_store).derive("u1", _patterns(), now=now)

    by_type = {p.type: p for p in predictions}
    assert len(predictions) == 4
    assert set(by_type) == {
        PredictionType.SCHEDULE,
        PredictionType.ACTION,
        PredictionType.PREFERENCE,
        PredictionType.COMMUNICATION,
    }


async def test_schedule_prediction_uses_peak_hour_and_24h_window(event_store):
    now = utcnow()
    predictions = PredictionGenerator(event_store).derive("u1", _patterns(), now=now)
    schedule = next(p for p in predictions if p.type is PredictionType.SCHEDULE)

    assert schedule.timeframe is Timeframe.IMMEDIATE
    assert schedule.expires_at - schedule.created_at == timedelta(hours=24)
    assert schedule.probability == pytest.approx(0.75)
    assert schedule.confidence == pytest.approx(0.48)
    assert schedule.data["peak_hour"] == 9


async def test_preference_prediction_has_seven_day_window(event_store):
    now = utcnow()
    predictions = PredictionGenerator(event_store).derive("u1", _patterns(), now=now)
    preference = next(p for p in predictions if p.type is PredictionType.PREFERENCE)

    assert preference.timeframe is Timeframe.LONG_TERM
    assert preference.expires_at - preference.created_at == timedelta(days=7)
    assert preference.probability == pytest.approx(0.75)


async def test_action_prediction_probability_is_share_of_actions(event_store):
    predictions = PredictionGenerator(event_store).derive("u1", _patterns())
    action = next(p for p in predictions if p.type is PredictionType.ACTION)

    assert action.data["predicted_action"] == "question"
    assert action.probability == pytest.approx(2 / 3)
    assert action.timeframe is Timeframe.SHORT_TERM


async def test_every_prediction_expires_after_creation(event_store):
    for prediction in PredictionGenerator(event_store).derive("u1", _patterns()):
        assert prediction.expires_at > prediction.created_at


async def test_prediction_rejects_non_positive_window():
    now = utcnow()
    with pytest.raises(ValueError):
        Prediction("u1", PredictionType.ACTION, 0.5, 0.5, Timeframe.IMMEDIATE, "x", now, now)


async def test_generated_predictions_are_stored_unvalidated(event_store):
    generator = PredictionGenerator(event_store)
    predictions = await generator.generate(make_event(), _patterns())

    stored = await event_store.query("u1", EventFilter.of(EventType.PREDICTION, applied=True))
    assert len(stored) == len(predictions)
    assert not any(e.validated for e in stored)
    assert {p.id for p in replay_predictions(stored)} == {p.id for p in predictions}
