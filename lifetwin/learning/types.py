"""
types.py

Closed enums and record types shared by the learning pipeline.
Every confidence, probability, and strength is clamped to [0, 1] when a
record is built, and every record round-trips through a plain dict so
derived artifacts can be written back to the event store and replayed.
Part of LifeTwin — Adaptive Personalization Core.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum, unique
from typing import Any, Optional
from uuid import uuid4

from lifetwin import config
from lifetwin.exceptions import DataIntegrityWarning

_log = logging.getLogger("lifetwin.learning")
if not _log.handlers:
    _handler = logging.FileHandler(config.LOGS_DIR / "learning.log", encoding="utf-8")
    _handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
    _log.addHandler(_handler)
    _log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))


# ===========================================================================
# Enums
# ===========================================================================


@unique
class EventType(Enum):
    """Kinds of learning events. Source events come from users, derived ones from the pipeline."""

    INTERACTION = "interaction"
    FEEDBACK = "feedback"
    CORRECTION = "correction"
    PATTERN = "pattern"
    PREDICTION = "prediction"
    INSIGHT = "insight"


# Events the pattern window is built from
SOURCE_EVENT_TYPES: frozenset[EventType] = frozenset(
    {EventType.INTERACTION, EventType.FEEDBACK, EventType.CORRECTION}
)


@unique
class Impact(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def parse(cls, value: Any) -> "Impact":
        """
        Parse a stored impact value, defaulting to MEDIUM when malformed.

        Args:
            value: An Impact, its string value, or anything else.

        Returns:
            The matching Impact, or Impact.MEDIUM.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            if value is not None:
                warn_malformed("impact", value)
            return cls.MEDIUM


@unique
class PatternType(Enum):
    BEHAVIORAL = "behavioral"
    TEMPORAL = "temporal"
    PREFERENCE = "preference"
    COMMUNICATION = "communication"
    DECISION = "decision"


@unique
class PredictionType(Enum):
    ACTION = "action"
    PREFERENCE = "preference"
    SCHEDULE = "schedule"
    COMMUNICATION = "communication"
    DECISION = "decision"


@unique
class Timeframe(Enum):
    IMMEDIATE = "immediate"
    SHORT_TERM = "short_term"
    LONG_TERM = "long_term"


@unique
class InsightType(Enum):
    BEHAVIOR_CHANGE = "behavior_change"
    PREFERENCE_SHIFT = "preference_shift"
    PATTERN_EMERGENCE = "pattern_emergence"
    ANOMALY_DETECTION = "anomaly_detection"


# ===========================================================================
# Helpers
# ===========================================================================


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    """Return a unique identifier such as ``temporal_3f2a...``."""
    return f"{prefix}_{uuid4().hex}"


def clamp_unit(value: Any) -> float:
    """
    Clamp a numeric value to [0, 1].

    Non-numeric input is treated as 0.0 and reported as a data-integrity warning.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        warn_malformed("unit value", value)
        return 0.0
    if number != number:  # NaN
        return 0.0
    return max(0.0, min(1.0, number))


def normalize_confidence(value: Any) -> float:
    """
    Convert a provider-reported confidence to the canonical 0–1 scale.

    Values above 1 are read as percentages (0–100).

    Example:
        normalize_confidence(85)   # 0.85
        normalize_confidence(0.4)  # 0.4
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        warn_malformed("confidence", value)
        return 0.0
    if number > 1.0:
        number /= 100.0
    return clamp_unit(number)


def warn_malformed(field_name: str, value: Any) -> None:
    """Log and emit a DataIntegrityWarning for a defaulted payload field."""
    message = f"Malformed field '{field_name}' ({value!r}) defaulted"
    _log.warning("DATA_INTEGRITY | %s", message)
    warnings.warn(message, DataIntegrityWarning, stacklevel=3)


def read_str(payload: Any, key: str) -> Optional[str]:
    """
    Read an optional string field from an event payload.

    Missing keys and non-mapping payloads give None; non-string values are
    reported and ignored.
    """
    if not isinstance(payload, dict):
        return None
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        warn_malformed(key, value)
        return None
    return value


def _parse_time(value: Any) -> datetime:
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, str):
        try:
            moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            warn_malformed("timestamp", value)
            return utcnow()
    else:
        return utcnow()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


# ===========================================================================
# Records
# ===========================================================================


@dataclass(frozen=True)
class LearningEvent:
    """
    An immutable record of a user interaction or a derived artifact.

    Attributes:
        user_id: Owner of the event.
        event_type: One of EventType.
        module: The module / context the event happened in ("chat", "drive", ...).
        payload: Free-form event data.
        confidence: Confidence on the canonical 0–1 scale.
        impact: Impact level; malformed values fall back to MEDIUM.
        id: Unique identifier.
        timestamp: When the event happened (aware UTC).
        applied: True once the full derivation pipeline completed.
        validated: True for derived artifacts that need no further validation.
        frequency: Observation count carried by derived pattern events.

    Example:
        event = LearningEvent(
            user_id="u1",
            event_type=EventType.FEEDBACK,
            module="chat",
            payload={"rating": 5},
            confidence=0.9,
        )
    """

    user_id: str
    event_type: EventType
    module: str
    payload: dict = field(default_factory=dict)
    confidence: float = 0.5
    impact: Impact = Impact.MEDIUM
    id: str = field(default_factory=lambda: new_id("event"))
    timestamp: datetime = field(default_factory=utcnow)
    applied: bool = False
    validated: bool = False
    frequency: int = 1

    def __post_init__(self) -> None:
        object.__setattr__(self, "event_type", EventType(self.event_type))
        object.__setattr__(self, "impact", Impact.parse(self.impact))
        object.__setattr__(self, "confidence", clamp_unit(self.confidence))
        object.__setattr__(self, "timestamp", _parse_time(self.timestamp))
        object.__setattr__(self, "frequency", max(1, int(self.frequency or 1)))
        if not isinstance(self.payload, dict):
            warn_malformed("payload", self.payload)
            object.__setattr__(self, "payload", {})
        if not self.module:
            object.__setattr__(self, "module", "unknown")

    def mark_applied(self) -> "LearningEvent":
        """Return a copy of this event flagged as applied."""
        return replace(self, applied=True)

    def to_record(self) -> dict[str, Any]:
        """Serialize to a plain dict."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "event_type": self.event_type.value,
            "module": self.module,
            "payload": self.payload,
            "confidence": self.confidence,
            "impact": self.impact.value,
            "timestamp": self.timestamp.isoformat(),
            "applied": self.applied,
            "validated": self.validated,
            "frequency": self.frequency,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "LearningEvent":
        """Rebuild an event from a dict produced by to_record()."""
        return cls(
            id=record.get("id") or new_id("event"),
            user_id=record["user_id"],
            event_type=EventType(record["event_type"]),
            module=record.get("module") or "unknown",
            payload=record.get("payload") or {},
            confidence=record.get("confidence", 0.5),
            impact=record.get("impact"),
            timestamp=record.get("timestamp"),
            applied=bool(record.get("applied", False)),
            validated=bool(record.get("validated", False)),
            frequency=record.get("frequency") or 1,
        )


@dataclass
class LearningPattern:
    """A statistical summary derived from a window of events."""

    user_id: str
    pattern_type: PatternType
    confidence: float
    strength: float
    frequency: int
    data: dict = field(default_factory=dict)
    id: str = field(default_factory=lambda: new_id("pattern"))
    last_observed: datetime = field(default_factory=utcnow)
    predictions: list = field(default_factory=list)

    def __post_init__(self) -> None:
        self.pattern_type = PatternType(self.pattern_type)
        self.confidence = clamp_unit(self.confidence)
        self.strength = clamp_unit(self.strength)
        self.frequency = max(1, int(self.frequency))
        self.last_observed = _parse_time(self.last_observed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "pattern_type": self.pattern_type.value,
            "confidence": self.confidence,
            "strength": self.strength,
            "frequency": self.frequency,
            "last_observed": self.last_observed.isoformat(),
            "data": self.data,
            "predictions": list(self.predictions),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LearningPattern":
        return cls(
            id=data.get("id") or new_id("pattern"),
            user_id=data.get("user_id", ""),
            pattern_type=PatternType(data["pattern_type"]),
            confidence=data.get("confidence", 0.0),
            strength=data.get("strength", 0.0),
            frequency=data.get("frequency") or 1,
            last_observed=data.get("last_observed"),
            data=data.get("data") or {},
            predictions=data.get("predictions") or [],
        )


@dataclass
class Prediction:
    """A time-bounded forecast derived from a pattern. expires_at is always after created_at."""

    user_id: str
    type: PredictionType
    confidence: float
    probability: float
    timeframe: Timeframe
    description: str
    created_at: datetime
    expires_at: datetime
    data: dict = field(default_factory=dict)
    id: str = field(default_factory=lambda: new_id("prediction"))
    validated: bool = False

    def __post_init__(self) -> None:
        self.type = PredictionType(self.type)
        self.timeframe = Timeframe(self.timeframe)
        self.confidence = clamp_unit(self.confidence)
        self.probability = clamp_unit(self.probability)
        self.created_at = _parse_time(self.created_at)
        self.expires_at = _parse_time(self.expires_at)
        if self.expires_at <= self.created_at:
            raise ValueError(
                f"Prediction expires_at ({self.expires_at}) must be after created_at ({self.created_at})"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type.value,
            "confidence": self.confidence,
            "probability": self.probability,
            "timeframe": self.timeframe.value,
            "description": self.description,
            "data": self.data,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "validated": self.validated,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Prediction":
        return cls(
            id=data.get("id") or new_id("prediction"),
            user_id=data.get("user_id", ""),
            type=PredictionType(data["type"]),
            confidence=data.get("confidence", 0.0),
            probability=data.get("probability", 0.0),
            timeframe=Timeframe(data["timeframe"]),
            description=data.get("description", ""),
            data=data.get("data") or {},
            created_at=data["created_at"],
            expires_at=data["expires_at"],
            validated=bool(data.get("validated", False)),
        )


@dataclass
class Insight:
    """A derived observation about a change, emergence, or anomaly in behavior."""

    user_id: str
    insight_type: InsightType
    confidence: float
    significance: float
    description: str
    recommendations: list[str] = field(default_factory=list)
    data: dict = field(default_factory=dict)
    id: str = field(default_factory=lambda: new_id("insight"))
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        self.insight_type = InsightType(self.insight_type)
        self.confidence = clamp_unit(self.confidence)
        self.significance = clamp_unit(self.significance)
        self.created_at = _parse_time(self.created_at)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "insight_type": self.insight_type.value,
            "confidence": self.confidence,
            "significance": self.significance,
            "description": self.description,
            "recommendations": list(self.recommendations),
            "data": self.data,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Insight":
        return cls(
            id=data.get("id") or new_id("insight"),
            user_id=data.get("user_id", ""),
            insight_type=InsightType(data["insight_type"]),
            confidence=data.get("confidence", 0.0),
            significance=data.get("significance", 0.0),
            description=data.get("description", ""),
            recommendations=list(data.get("recommendations") or []),
            data=data.get("data") or {},
            created_at=data.get("created_at"),
        )


DEFAULT_TRAIT_VALUE = 0.5


@dataclass
class PersonalityProfile:
    """Per-user adaptive trait vector. Missing traits read as 0.5."""

    user_id: str
    traits: dict[str, float] = field(default_factory=dict)
    last_updated: datetime = field(default_factory=utcnow)

    def trait(self, name: str) -> float:
        value = self.traits.get(name)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        return DEFAULT_TRAIT_VALUE


@dataclass(frozen=True)
class PersonalityAdjustment:
    trait: str
    current_value: float
    new_value: float
    confidence: float
    reasoning: str
    evidence: tuple[str, ...] = ()

    @property
    def delta(self) -> float:
        return self.new_value - self.current_value


@dataclass(frozen=True)
class BehaviorModification:
    behavior: str
    context: str
    modification: str  # "increase" | "decrease" | "change"
    confidence: float
    reasoning: str


@dataclass
class AdaptiveResponse:
    """Everything one pass of the learning pipeline derived from a triggering event."""

    event: LearningEvent
    patterns: list[LearningPattern] = field(default_factory=list)
    personality_adjustments: list[PersonalityAdjustment] = field(default_factory=list)
    behavior_modifications: list[BehaviorModification] = field(default_factory=list)
    new_predictions: list[Prediction] = field(default_factory=list)
    insights: list[Insight] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
