"""
insights.py

Insight Detector.
Compares a live event against the user's patterns and reports behavior
changes, preference shifts, emerging patterns, and anomalies. Also derives
the behavior modifications and recommendation list returned with every
adaptive response.
Part of LifeTwin — Adaptive Personalization Core.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from lifetwin import config
from lifetwin.database.stores import EventStore
from lifetwin.learning.patterns import ACTION_TYPE_KEY, LEARNING_MODULE, dominant_module
from lifetwin.learning.types import (
    BehaviorModification,
    EventType,
    Impact,
    Insight,
    InsightType,
    LearningEvent,
    LearningPattern,
    PatternType,
    read_str,
    warn_malformed,
)

_log = logging.getLogger("lifetwin.learning")
if not _log.handlers:
    _handler = logging.FileHandler(config.LOGS_DIR / "learning.log", encoding="utf-8")
    _handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
    _log.addHandler(_handler)
    _log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

PREFERENCE_SHIFT_THRESHOLD = 0.2
ANOMALY_THRESHOLD = 0.3
EMERGENCE_MIN_CONFIDENCE = 0.8
EMERGENCE_MIN_STRENGTH = 0.6
MODIFICATION_MIN_STRENGTH = 0.7


def _average_confidence(pattern: LearningPattern) -> Optional[float]:
    value = pattern.data.get("average_confidence")
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    warn_malformed("average_confidence", value)
    return None


# ===========================================================================
# Detectors
# ===========================================================================


def detect_behavior_change(event: LearningEvent, patterns: list[LearningPattern]) -> list[Insight]:
    insights: list[Insight] = []
    for pattern in patterns:
        if pattern.pattern_type is not PatternType.BEHAVIORAL:
            continue
        expected = dominant_module(pattern)
        if expected is None or expected == event.module:
            continue
        insights.append(
            Insight(
                user_id=event.user_id,
                insight_type=InsightType.BEHAVIOR_CHANGE,
                confidence=0.8,
                significance=0.7,
                description=f"User switched from {expected} to {event.module} module",
                recommendations=[
                    "Consider adapting AI responses for the new module",
                    "Update user preferences for the current context",
                ],
                data={
                    "previous_behavior": expected,
                    "current_behavior": event.module,
                    "pattern": pattern.id,
                },
            )
        )
    return insights


def detect_preference_shift(event: LearningEvent, patterns: list[LearningPattern]) -> list[Insight]:
    insights: list[Insight] = []
    for pattern in patterns:
        if pattern.pattern_type is not PatternType.PREFERENCE:
            continue
        expected = _average_confidence(pattern)
        if expected is None or abs(event.confidence - expected) <= PREFERENCE_SHIFT_THRESHOLD:
            continue
        insights.append(
            Insight(
                user_id=event.user_id,
                insight_type=InsightType.PREFERENCE_SHIFT,
                confidence=0.7,
                significance=0.6,
                description=(
                    f"User confidence shifted from {expected * 100:.1f}% "
                    f"to {event.confidence * 100:.1f}%"
                ),
                recommendations=[
                    "Adjust AI confidence levels accordingly",
                    "Review recent interactions for cause of shift",
                ],
                data={
                    "previous_confidence": expected,
                    "current_confidence": event.confidence,
                    "pattern": pattern.id,
                },
            )
        )
    return insights


def detect_pattern_emergence(event: LearningEvent, patterns: list[LearningPattern]) -> list[Insight]:
    return [
        Insight(
            user_id=event.user_id,
            insight_type=InsightType.PATTERN_EMERGENCE,
            confidence=pattern.confidence,
            significance=pattern.strength,
            description=(
                f"New {pattern.pattern_type.value} pattern detected "
                f"with {pattern.confidence * 100:.1f}% confidence"
            ),
            recommendations=[
                "Incorporate this pattern into AI decision-making",
                "Use pattern for future predictions",
            ],
            data={
                "pattern_type": pattern.pattern_type.value,
                "confidence": pattern.confidence,
                "strength": pattern.strength,
                "pattern": pattern.id,
            },
        )
        for pattern in patterns
        if pattern.confidence > EMERGENCE_MIN_CONFIDENCE and pattern.strength > EMERGENCE_MIN_STRENGTH
    ]


def _expected_behavioral(pattern: LearningPattern, event: LearningEvent) -> Optional[float]:
    actions = pattern.data.get("action_types")
    action = read_str(event.payload, ACTION_TYPE_KEY)
    if not isinstance(actions, dict) or action is None:
        return None
    count = actions.get(action)
    if not isinstance(count, (int, float)) or isinstance(count, bool):
        return None
    return count / pattern.frequency


def _actual_behavioral(event: LearningEvent) -> Optional[float]:
    # The event happened, so its observed frequency is 1
    return 1.0


# pattern type → (expected-value accessor, actual-value accessor)
_ANOMALY_ACCESSORS: dict[
    PatternType,
    tuple[
        Callable[[LearningPattern, LearningEvent], Optional[float]],
        Callable[[LearningEvent], Optional[float]],
    ],
] = {
    PatternType.PREFERENCE: (lambda p, e: _average_confidence(p), lambda e: e.confidence),
    PatternType.BEHAVIORAL: (_expected_behavioral, _actual_behavioral),
}


def detect_anomalies(event: LearningEvent, patterns: list[LearningPattern]) -> list[Insight]:
    insights: list[Insight] = []
    for pattern in patterns:
        accessors = _ANOMALY_ACCESSORS.get(pattern.pattern_type)
        if accessors is None:
            continue
        expected_of, actual_of = accessors
        expected = expected_of(pattern, event)
        actual = actual_of(event)
        if expected is None or actual is None or abs(actual - expected) <= ANOMALY_THRESHOLD:
            continue
        insights.append(
            Insight(
                user_id=event.user_id,
                insight_type=InsightType.ANOMALY_DETECTION,
                confidence=0.9,
                significance=0.8,
                description=f"Anomaly detected: expected {expected:.2f}, got {actual:.2f}",
                recommendations=[
                    "Investigate cause of anomaly",
                    "Consider if this represents a new pattern",
                ],
                data={"expected_value": expected, "actual_value": actual, "pattern": pattern.id},
            )
        )
    return insights


def detect_insights(event: LearningEvent, patterns: list[LearningPattern]) -> list[Insight]:
    """Run every detector in order: behavior change, preference shift, emergence, anomaly."""
    return (
        detect_behavior_change(event, patterns)
        + detect_preference_shift(event, patterns)
        + detect_pattern_emergence(event, patterns)
        + detect_anomalies(event, patterns)
    )


# ===========================================================================
# Behavior modifications and recommendations
# ===========================================================================


def behavior_modifications(patterns: Iterable[LearningPattern]) -> list[BehaviorModification]:
    """One 'increase module preference' modification per strong behavioral pattern."""
    modifications: list[BehaviorModification] = []
    for pattern in patterns:
        if pattern.pattern_type is not PatternType.BEHAVIORAL or pattern.strength <= MODIFICATION_MIN_STRENGTH:
            continue
        module = dominant_module(pattern) or "general"
        modifications.append(
            BehaviorModification(
                behavior="module_preference",
                context=module,
                modification="increase",
                confidence=pattern.confidence,
                reasoning=f"Strong pattern detected for {module} module usage",
            )
        )
    return modifications


def recommendations(event: LearningEvent, insights: Iterable[Insight]) -> list[str]:
    """Insight recommendations in order, followed by event-level suggestions."""
    result: list[str] = []
    for insight in insights:
        result.extend(insight.recommendations)
    if event.event_type is EventType.FEEDBACK:
        result.append("Consider adjusting AI response style based on feedback")
    if event.event_type is EventType.CORRECTION:
        result.append("Review and improve AI accuracy in this domain")
    if event.confidence < 0.5:
        result.append("Increase AI confidence through better pattern recognition")
    return result


class InsightDetector:
    """
    Detects and persists insights for a triggering event.

    Example:
        detector = InsightDetector(store)
        insights = await detector.detect(event, patterns)
    """

    def __init__(self, event_store: EventStore) -> None:
        self._store = event_store

    async def detect(self, event: LearningEvent, patterns: list[LearningPattern]) -> list[Insight]:
        insights = detect_insights(event, patterns)
        for insight in insights:
            await self._store.append(
                LearningEvent(
                    user_id=insight.user_id,
                    event_type=EventType.INSIGHT,
                    module=LEARNING_MODULE,
                    payload=insight.to_dict(),
                    confidence=insight.confidence,
                    impact=Impact.HIGH,
                    applied=True,
                    validated=True,
                )
            )
        _log.info(
            "DETECT_INSIGHTS | user=%s | event=%s | insights=%d",
            event.user_id, event.id, len(insights),
        )
        return insights


def replay_insights(events: Iterable[LearningEvent]) -> list[Insight]:
    """Rebuild insights from stored `insight` events, skipping malformed payloads."""
    insights: list[Insight] = []
    for event in events:
        try:
            insights.append(Insight.from_dict(event.payload))
        except (KeyError, TypeError, ValueError):
            warn_malformed("insight payload", event.id)
    return insights
