"""
patterns.py

Pattern Analyzer.
Derives temporal, behavioral, preference, and communication patterns from a
bounded window of a user's most recent source events (interaction, feedback,
correction), then writes every pattern back to the event store as a
`pattern` event so the derivation can be replayed.

Analysis itself is a pure function of the window: re-running it on an
unchanged window yields the same strengths and frequencies.
Part of LifeTwin — Adaptive Personalization Core.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import timedelta
from typing import Iterable, Optional

import numpy as np

from lifetwin import config
from lifetwin.database.stores import EventFilter, EventStore
from lifetwin.learning.types import (
    SOURCE_EVENT_TYPES,
    EventType,
    Impact,
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

# Payload key naming the action a user performed in an event
ACTION_TYPE_KEY = "action_type"

# Five equal-width confidence buckets over [0, 1]
CONFIDENCE_BINS = np.linspace(0.0, 1.0, 6)
CONFIDENCE_LABELS = ("0-20%", "20-40%", "40-60%", "60-80%", "80-100%")

# Module name recorded on derived events
LEARNING_MODULE = "learning"


def _top(counter: Counter, n: int) -> list[list]:
    """Most common entries, ties broken by key so results are deterministic."""
    ranked = sorted(counter.items(), key=lambda kv: (-kv[1], str(kv[0])))
    return [[key, count] for key, count in ranked[:n]]


def confidence_distribution(values: list[float]) -> dict[str, float]:
    """
    Fraction of *values* in each 20% confidence bucket.

    The top bucket is closed, so a confidence of exactly 1.0 lands in "80-100%".

    Example:
        confidence_distribution([0.1, 0.9])  # {"0-20%": 0.5, ..., "80-100%": 0.5}
    """
    if not values:
        return {label: 0.0 for label in CONFIDENCE_LABELS}
    counts, _ = np.histogram(np.asarray(values, dtype=float), bins=CONFIDENCE_BINS)
    total = float(len(values))
    return {label: float(count) / total for label, count in zip(CONFIDENCE_LABELS, counts)}


class PatternAnalyzer:
    """
    Derives patterns from a user's recent event window.

    Args:
        event_store: Where the window is read from and patterns are written to.
        window_days: Oldest event age included in the window.
        window_limit: Maximum number of events in the window.

    Example:
        analyzer = PatternAnalyzer(store)
        patterns = await analyzer.analyze_user("u1")
    """

    def __init__(
        self,
        event_store: EventStore,
        window_days: int = config.PATTERN_WINDOW_DAYS,
        window_limit: int = config.PATTERN_WINDOW_LIMIT,
    ) -> None:
        self._store = event_store
        self._window = timedelta(days=window_days)
        self._limit = window_limit

    async def load_window(self, user_id: str) -> list[LearningEvent]:
        """Return the user's newest source events inside the window, newest first."""
        return await self._store.query(
            user_id,
            EventFilter(event_types=SOURCE_EVENT_TYPES),
            window=self._window,
            limit=self._limit,
        )

    async def analyze_user(self, user_id: str) -> list[LearningPattern]:
        """
        Load the user's window, derive patterns, and persist them.

        Returns:
            The derived patterns. Empty when the window is empty; nothing is written then.
        """
        events = await self.load_window(user_id)
        patterns = self.analyze(events)
        if patterns:
            await self.persist(patterns)
        _log.info(
            "ANALYZE_PATTERNS | user=%s | window=%d | patterns=%d",
            user_id, len(events), len(patterns),
        )
        return patterns

    def analyze(self, events: list[LearningEvent]) -> list[LearningPattern]:
        """
        Derive every pattern family from an event window.

        Args:
            events: Newest-first event window. May be empty.

        Returns:
            Temporal, behavioral, preference, then communication patterns.
        """
        if not events:
            return []
        patterns: list[LearningPattern] = []
        patterns.extend(self._temporal(events))
        patterns.extend(self._behavioral(events))
        patterns.extend(self._preference(events))
        patterns.extend(self._communication(events))
        return patterns

    async def persist(self, patterns: Iterable[LearningPattern]) -> None:
        for pattern in patterns:
            await self._store.append(
                LearningEvent(
                    user_id=pattern.user_id,
                    event_type=EventType.PATTERN,
                    module=LEARNING_MODULE,
                    payload=pattern.to_dict(),
                    confidence=pattern.confidence,
                    impact=Impact.MEDIUM,
                    applied=True,
                    validated=True,
                    frequency=pattern.frequency,
                )
            )

    # ------------------------------------------------------------------
    # Pattern families
    # ------------------------------------------------------------------

    @staticmethod
    def _temporal(events: list[LearningEvent]) -> list[LearningPattern]:
        user_id = events[0].user_id
        observed = events[0].timestamp
        total = len(events)

        hourly = Counter(e.timestamp.hour for e in events)
        peak_hours = _top(hourly, 3)

        daily = Counter(e.timestamp.weekday() for e in events)  # Monday = 0

        return [
            LearningPattern(
                user_id=user_id,
                pattern_type=PatternType.TEMPORAL,
                confidence=0.8,
                strength=peak_hours[0][1] / total,
                frequency=total,
                last_observed=observed,
                data={
                    "peak_hours": peak_hours,
                    "hourly_activity": {str(h): c for h, c in sorted(hourly.items())},
                },
            ),
            LearningPattern(
                user_id=user_id,
                pattern_type=PatternType.TEMPORAL,
                confidence=0.7,
                strength=max(daily.values()) / total,
                frequency=total,
                last_observed=observed,
                data={"daily_activity": {str(d): c for d, c in sorted(daily.items())}},
            ),
        ]

    @staticmethod
    def _behavioral(events: list[LearningEvent]) -> list[LearningPattern]:
        user_id = events[0].user_id
        observed = events[0].timestamp
        total = len(events)
        patterns: list[LearningPattern] = []

        modules = Counter(e.module for e in events)
        active_modules = _top(modules, 3)
        patterns.append(
            LearningPattern(
                user_id=user_id,
                pattern_type=PatternType.BEHAVIORAL,
                confidence=0.9,
                strength=active_modules[0][1] / total,
                frequency=total,
                last_observed=observed,
                data={
                    "active_modules": active_modules,
                    "module_activity": dict(sorted(modules.items())),
                },
            )
        )

        actions = Counter()
        for event in events:
            action = read_str(event.payload, ACTION_TYPE_KEY)
            if action is not None:
                actions[action] += 1

        if actions:
            patterns.append(
                LearningPattern(
                    user_id=user_id,
                    pattern_type=PatternType.BEHAVIORAL,
                    confidence=0.8,
                    strength=max(actions.values()) / total,
                    frequency=sum(actions.values()),
                    last_observed=observed,
                    data={"action_types": dict(sorted(actions.items()))},
                )
            )
        return patterns

    @staticmethod
    def _preference(events: list[LearningEvent]) -> list[LearningPattern]:
        user_id = events[0].user_id
        observed = events[0].timestamp
        total = len(events)

        confidences = [e.confidence for e in events]
        average = float(np.mean(confidences))

        impacts = Counter(e.impact.value for e in events)

        return [
            LearningPattern(
                user_id=user_id,
                pattern_type=PatternType.PREFERENCE,
                confidence=0.7,
                strength=average,
                frequency=total,
                last_observed=observed,
                data={
                    "average_confidence": average,
                    "confidence_distribution": confidence_distribution(confidences),
                },
            ),
            LearningPattern(
                user_id=user_id,
                pattern_type=PatternType.PREFERENCE,
                confidence=0.6,
                strength=max(impacts.values()) / total,
                frequency=total,
                last_observed=observed,
                data={"impact_preferences": dict(sorted(impacts.items()))},
            ),
        ]

    @staticmethod
    def _communication(events: list[LearningEvent]) -> list[LearningPattern]:
        interactions = [e for e in events if e.event_type is EventType.INTERACTION]
        if not interactions:
            return []
        frequency = len(interactions) / len(events)
        return [
            LearningPattern(
                user_id=events[0].user_id,
                pattern_type=PatternType.COMMUNICATION,
                confidence=0.8,
                strength=frequency,
                frequency=len(interactions),
                last_observed=events[0].timestamp,
                data={
                    "interaction_frequency": frequency,
                    "total_interactions": len(interactions),
                    "average_confidence": float(np.mean([e.confidence for e in interactions])),
                },
            )
        ]


def replay_patterns(events: Iterable[LearningEvent]) -> list[LearningPattern]:
    """
    Rebuild patterns from stored `pattern` events.

    Events whose payload cannot be decoded are reported and skipped.
    """
    patterns: list[LearningPattern] = []
    for event in events:
        try:
            patterns.append(LearningPattern.from_dict(event.payload))
        except (KeyError, TypeError, ValueError):
            warn_malformed("pattern payload", event.id)
    return patterns


def dominant_module(pattern: LearningPattern) -> Optional[str]:
    """Return the busiest module recorded in a behavioral module pattern, if any."""
    active = pattern.data.get("active_modules")
    if isinstance(active, list) and active and isinstance(active[0], (list, tuple)) and active[0]:
        module = active[0][0]
        if isinstance(module, str):
            return module
    return None
