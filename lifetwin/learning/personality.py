"""
personality.py

Personality Adapter.
Nudges a user's trait vector from a single triggering event using two rule
tables, one keyed by event type and one keyed by module. Deltas from both
tables sum per trait and are scaled by the event's confidence (0–1) and an
impact multiplier.

Example (correction in drive, confidence 0.9, impact critical → ×1.8):
    precision            0.04 × 1.8 = 0.072  → adjusted
    attention_to_detail  0.03 × 1.8 = 0.054  → adjusted
    organization         0.02 × 1.8 = 0.036  → below threshold, ignored

Part of LifeTwin — Adaptive Personalization Core.
"""

from __future__ import annotations

import logging
from typing import Optional

from lifetwin import config
from lifetwin.database.stores import PersonalityStore
from lifetwin.learning.types import (
    DEFAULT_TRAIT_VALUE,
    EventType,
    Impact,
    LearningEvent,
    PersonalityAdjustment,
    utcnow,
)

_log = logging.getLogger("lifetwin.learning")
if not _log.handlers:
    _handler = logging.FileHandler(config.LOGS_DIR / "learning.log", encoding="utf-8")
    _handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
    _log.addHandler(_handler)
    _log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

# Minimum |new - current| for an adjustment to be materialized
ADJUSTMENT_THRESHOLD = 0.05
ADJUSTMENT_CONFIDENCE = 0.7

EVENT_TYPE_RULES: dict[EventType, dict[str, float]] = {
    EventType.INTERACTION: {"communication_style": 0.02, "social_preference": 0.01},
    EventType.FEEDBACK: {"adaptability": 0.03, "learning_orientation": 0.02},
    EventType.CORRECTION: {"precision": 0.04, "attention_to_detail": 0.03},
    EventType.PATTERN: {"consistency": 0.02, "predictability": 0.01},
    EventType.PREDICTION: {},
    EventType.INSIGHT: {},
}

MODULE_RULES: dict[str, dict[str, float]] = {
    "drive": {"organization": 0.02, "efficiency": 0.01},
    "chat": {"communication_style": 0.02, "social_preference": 0.01},
    "household": {"family_orientation": 0.02, "responsibility": 0.01},
    "business": {"professionalism": 0.02, "ambition": 0.01},
}

IMPACT_MULTIPLIERS: dict[Impact, float] = {
    Impact.LOW: 0.5,
    Impact.MEDIUM: 1.0,
    Impact.HIGH: 1.5,
    Impact.CRITICAL: 2.0,
}


def trait_deltas(event: LearningEvent) -> dict[str, float]:
    """
    Compute the scaled per-trait delta an event implies.

    Args:
        event: The triggering event. Its confidence is on the 0–1 scale.

    Returns:
        trait → final delta. Empty when no rule matches.
    """
    summed: dict[str, float] = {}
    for table in (EVENT_TYPE_RULES[event.event_type], MODULE_RULES.get(event.module, {})):
        for trait, delta in table.items():
            summed[trait] = summed.get(trait, 0.0) + delta

    multiplier = event.confidence * IMPACT_MULTIPLIERS[event.impact]
    return {trait: delta * multiplier for trait, delta in summed.items()}


def compute_adjustments(event: LearningEvent, traits: dict[str, float]) -> list[PersonalityAdjustment]:
    """Return the significant adjustments *event* implies for *traits*, without persisting."""
    adjustments: list[PersonalityAdjustment] = []
    for trait, delta in trait_deltas(event).items():
        current = traits.get(trait, DEFAULT_TRAIT_VALUE)
        if not isinstance(current, (int, float)) or isinstance(current, bool):
            current = DEFAULT_TRAIT_VALUE
        new_value = max(0.0, min(1.0, current + delta))
        if abs(new_value - current) > ADJUSTMENT_THRESHOLD:
            adjustments.append(
                PersonalityAdjustment(
                    trait=trait,
                    current_value=current,
                    new_value=new_value,
                    confidence=ADJUSTMENT_CONFIDENCE,
                    reasoning=f"Based on {event.event_type.value} event in {event.module}",
                    evidence=(
                        f"Event confidence: {event.confidence}",
                        f"Event impact: {event.impact.value}",
                    ),
                )
            )
    return adjustments


class PersonalityAdapter:
    """
    Applies trait adjustments to stored profiles.

    Example:
        adapter = PersonalityAdapter(personality_store)
        adjustments = await adapter.adapt(event)
    """

    def __init__(self, store: PersonalityStore) -> None:
        self._store = store

    async def adapt(self, event: LearningEvent) -> list[PersonalityAdjustment]:
        """
        Update the user's trait vector from one event.

        Returns:
            The materialized adjustments. Empty when the user has no profile
            or no trait moved by more than the threshold.
        """
        traits: Optional[dict[str, float]] = await self._store.get(event.user_id)
        if traits is None:
            _log.info("ADAPT_PERSONALITY | user=%s | no profile", event.user_id)
            return []

        adjustments = compute_adjustments(event, traits)
        if adjustments:
            updated = dict(traits)
            for adj in adjustments:
                updated[adj.trait] = adj.new_value
            await self._store.put(event.user_id, updated, utcnow())

        _log.info(
            "ADAPT_PERSONALITY | user=%s | type=%s | module=%s | adjustments=%d",
            event.user_id, event.event_type.value, event.module, len(adjustments),
        )
        return adjustments
