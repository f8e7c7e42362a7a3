"""
predictions.py

Prediction Generator.
Turns a user's current pattern set into time-bounded predictions. Each
qualifying pattern yields its own prediction, so several predictions of the
same type can coexist. Predictions are written back as `prediction` events
with validated=False.
Part of LifeTwin — Adaptive Personalization Core.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from lifetwin import config
from lifetwin.database.stores import EventStore
from lifetwin.learning.patterns import LEARNING_MODULE
from lifetwin.learning.types import (
    EventType,
    Impact,
    LearningEvent,
    LearningPattern,
    PatternType,
    Prediction,
    PredictionType,
    Timeframe,
    clamp_unit,
    utcnow,
    warn_malformed,
)

_log = logging.getLogger("lifetwin.learning")
if not _log.handlers:
    _handler = logging.FileHandler(config.LOGS_DIR / "learning.log", encoding="utf-8")
    _handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
    _log.addHandler(_handler)
    _log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

# Validity window per prediction kind
DAY = timedelta(hours=24)
WEEK = timedelta(days=7)


def _number(value, default: float) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if value is not None:
        warn_malformed("pattern value", value)
    return default


def predict_action(pattern: LearningPattern, now: datetime) -> Optional[Prediction]:
    """Top action from a behavioral action-type histogram."""
    actions = pattern.data.get("action_types")
    if not isinstance(actions, dict) or not actions:
        return None
    action, count = sorted(actions.items(), key=lambda kv: (-_number(kv[1], 0.0), kv[0]))[0]
    return Prediction(
        user_id=pattern.user_id,
        type=PredictionType.ACTION,
        confidence=pattern.confidence * 0.8,
        probability=_number(count, 0.0) / pattern.frequency,
        timeframe=Timeframe.SHORT_TERM,
        description=f"Likely to perform {action} action",
        data={"predicted_action": action, "pattern": pattern.id},
        created_at=now,
        expires_at=now + DAY,
    )


def predict_preference(pattern: LearningPattern, now: datetime) -> Optional[Prediction]:
    """Expected confidence level from a preference pattern that carries a distribution."""
    if not pattern.data.get("confidence_distribution"):
        return None
    expected = clamp_unit(_number(pattern.data.get("average_confidence"), 0.5))
    return Prediction(
        user_id=pattern.user_id,
        type=PredictionType.PREFERENCE,
        confidence=pattern.confidence * 0.7,
        probability=expected,
        timeframe=Timeframe.LONG_TERM,
        description=f"Expected confidence level: {expected * 100:.1f}%",
        data={"expected_confidence": expected, "pattern": pattern.id},
        created_at=now,
        expires_at=now + WEEK,
    )


def predict_schedule(pattern: LearningPattern, now: datetime) -> Optional[Prediction]:
    """Next peak hour from a temporal pattern's peak-hour list."""
    peak_hours = pattern.data.get("peak_hours")
    if not isinstance(peak_hours, list) or not peak_hours:
        return None
    top = peak_hours[0]
    if not isinstance(top, (list, tuple)) or len(top) < 2:
        warn_malformed("peak_hours", top)
        return None
    hour = int(_number(top[0], 9))
    probability = _number(top[1], 0.0) / pattern.frequency
    return Prediction(
        user_id=pattern.user_id,
        type=PredictionType.SCHEDULE,
        confidence=pattern.confidence * 0.6,
        probability=probability,
        timeframe=Timeframe.IMMEDIATE,
        description=f"Peak activity expected at {hour}:00",
        data={"peak_hour": hour, "pattern": pattern.id},
        created_at=now,
        expires_at=now + DAY,
    )


def predict_communication(pattern: LearningPattern, now: datetime) -> Optional[Prediction]:
    """Expected interaction rate from a communication pattern."""
    if "interaction_frequency" not in pattern.data:
        return None
    frequency = clamp_unit(_number(pattern.data.get("interaction_frequency"), 0.5))
    return Prediction(
        user_id=pattern.user_id,
        type=PredictionType.COMMUNICATION,
        confidence=pattern.confidence * 0.8,
        probability=frequency,
        timeframe=Timeframe.SHORT_TERM,
        description=f"Expected interaction frequency: {frequency * 100:.1f}%",
        data={"expected_frequency": frequency, "pattern": pattern.id},
        created_at=now,
        expires_at=now + DAY,
    )


_PREDICTORS: dict[PatternType, Callable[[LearningPattern, datetime], Optional[Prediction]]] = {
    PatternType.BEHAVIORAL: predict_action,
    PatternType.PREFERENCE: predict_preference,
    PatternType.TEMPORAL: predict_schedule,
    PatternType.COMMUNICATION: predict_communication,
}


class PredictionGenerator:
    """
    Derives and persists predictions.

    Example:
        generator = PredictionGenerator(store)
        predictions = await generator.generate(event, patterns)
    """

    def __init__(self, event_store: EventStore) -> None:
        self._store = event_store

    def derive(self, user_id: str, patterns: Iterable[LearningPattern], now: Optional[datetime] = None) -> list[Prediction]:
        """Pure derivation: one prediction per qualifying pattern."""
        now = now or utcnow()
        predictions: list[Prediction] = []
        for pattern in patterns:
            predictor = _PREDICTORS.get(pattern.pattern_type)
            if predictor is None:
                continue
            prediction = predictor(pattern, now)
            if prediction is not None:
                prediction.user_id = user_id
                predictions.append(prediction)
        return predictions

    async def generate(self, event: LearningEvent, patterns: Iterable[LearningPattern]) -> list[Prediction]:
        predictions = self.derive(event.user_id, patterns)
        for prediction in predictions:
            await self._store.append(
                LearningEvent(
                    user_id=prediction.user_id,
                    event_type=EventType.PREDICTION,
                    module=LEARNING_MODULE,
                    payload=prediction.to_dict(),
                    confidence=prediction.confidence,
                    impact=Impact.MEDIUM,
                    applied=True,
                    validated=False,
                )
            )
        _log.info(
            "GENERATE_PREDICTIONS | user=%s | event=%s | predictions=%d",
            event.user_id, event.id, len(predictions),
        )
        return predictions


def replay_predictions(events: Iterable[LearningEvent]) -> list[Prediction]:
    """Rebuild predictions from stored `prediction` events, skipping malformed payloads."""
    predictions: list[Prediction] = []
    for event in events:
        try:
            predictions.append(Prediction.from_dict(event.payload))
        except (KeyError, TypeError, ValueError):
            warn_malformed("prediction payload", event.id)
    return predictions
