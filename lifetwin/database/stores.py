"""
stores.py

Abstract storage interfaces consumed by the personalization core, plus
in-memory implementations used by the CLI demo and the test-suite.

    EventStore              append(event) → id
                            query(user_id, event_filter, window, limit) → events, newest-first
                            mark_applied(event_id)
    PersonalityStore        get(user_id) → traits | None
                            put(user_id, traits, timestamp)
    AutonomySettingsStore   get(user_id) → AutonomySettings (defaulted if absent)

SQL-backed versions live in sql_store.py.
Part of LifeTwin — Adaptive Personalization Core.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from lifetwin import config
from lifetwin.autonomy.types import AutonomySettings
from lifetwin.learning.types import EventType, LearningEvent, utcnow

_log = logging.getLogger("lifetwin.storage")
if not _log.handlers:
    _handler = logging.FileHandler(config.LOGS_DIR / "storage.log", encoding="utf-8")
    _handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
    _log.addHandler(_handler)
    _log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))


@dataclass(frozen=True)
class EventFilter:
    """
    Restricts an event query.

    Attributes:
        event_types: Only return events of these types. None means all types.
        applied: Only return events whose applied flag equals this. None means either.
    """

    event_types: Optional[frozenset[EventType]] = None
    applied: Optional[bool] = None

    @classmethod
    def of(cls, *event_types: EventType, applied: Optional[bool] = None) -> "EventFilter":
        return cls(event_types=frozenset(event_types) or None, applied=applied)

    def matches(self, event: LearningEvent) -> bool:
        if self.event_types is not None and event.event_type not in self.event_types:
            return False
        if self.applied is not None and event.applied != self.applied:
            return False
        return True


def window_start(window: Optional[timedelta], now: Optional[datetime] = None) -> Optional[datetime]:
    """Return the oldest timestamp inside *window*, or None for an unbounded query."""
    if window is None:
        return None
    return (now or utcnow()) - window


# ===========================================================================
# Interfaces
# ===========================================================================


class EventStore(ABC):
    """Append-only, time-ordered per-user event log."""

    @abstractmethod
    async def append(self, event: LearningEvent) -> str:
        """Persist *event* and return its id."""

    @abstractmethod
    async def query(
        self,
        user_id: str,
        event_filter: Optional[EventFilter] = None,
        window: Optional[timedelta] = None,
        limit: Optional[int] = None,
    ) -> list[LearningEvent]:
        """Return the user's events matching *event_filter* inside *window*, newest first."""

    @abstractmethod
    async def mark_applied(self, event_id: str) -> None:
        """Flag an event as fully processed by the learning pipeline."""


class PersonalityStore(ABC):
    """Per-user trait vectors. Profile creation happens outside the core."""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[dict[str, float]]:
        """Return the user's trait map, or None when no profile exists."""

    @abstractmethod
    async def put(self, user_id: str, traits: dict[str, float], timestamp: datetime) -> None:
        """Replace the user's trait map and stamp it with *timestamp*."""


class AutonomySettingsStore(ABC):
    @abstractmethod
    async def get(self, user_id: str) -> AutonomySettings:
        """Return the user's autonomy scores, defaulted when none are stored."""


# ===========================================================================
# In-memory implementations
# ===========================================================================


class InMemoryEventStore(EventStore):
    """
    Process-local event log.

    Example:
        store = InMemoryEventStore()
        await store.append(event)
        recent = await store.query("u1", EventFilter.of(EventType.INTERACTION), limit=10)
    """

    def __init__(self, events: Iterable[LearningEvent] = ()):
        self._events: dict[str, LearningEvent] = {}
        for event in events:
            self._events[event.id] = event

    async def append(self, event: LearningEvent) -> str:
        self._events[event.id] = event
        _log.debug("APPEND | user=%s | type=%s | id=%s", event.user_id, event.event_type.value, event.id)
        return event.id

    async def query(
        self,
        user_id: str,
        event_filter: Optional[EventFilter] = None,
        window: Optional[timedelta] = None,
        limit: Optional[int] = None,
    ) -> list[LearningEvent]:
        since = window_start(window)
        matched = [
            e for e in self._events.values()
            if e.user_id == user_id
            and (since is None or e.timestamp >= since)
            and (event_filter is None or event_filter.matches(e))
        ]
        matched.sort(key=lambda e: e.timestamp, reverse=True)
        if limit is not None:
            matched = matched[:limit]
        return matched

    async def mark_applied(self, event_id: str) -> None:
        event = self._events.get(event_id)
        if event is None:
            _log.warning("MARK_APPLIED | unknown event id=%s", event_id)
            return
        self._events[event_id] = event.mark_applied()

    def get(self, event_id: str) -> Optional[LearningEvent]:
        return self._events.get(event_id)

    def __len__(self) -> int:
        return len(self._events)


class InMemoryPersonalityStore(PersonalityStore):
    def __init__(self, profiles: Optional[dict[str, dict[str, float]]] = None):
        self._profiles: dict[str, dict[str, float]] = {
            user_id: dict(traits) for user_id, traits in (profiles or {}).items()
        }
        self._updated: dict[str, datetime] = {}

    async def get(self, user_id: str) -> Optional[dict[str, float]]:
        traits = self._profiles.get(user_id)
        return dict(traits) if traits is not None else None

    async def put(self, user_id: str, traits: dict[str, float], timestamp: datetime) -> None:
        self._profiles[user_id] = dict(traits)
        self._updated[user_id] = timestamp
        _log.info("PERSONALITY_PUT | user=%s | traits=%d", user_id, len(traits))

    def last_updated(self, user_id: str) -> Optional[datetime]:
        return self._updated.get(user_id)


class InMemoryAutonomySettingsStore(AutonomySettingsStore):
    def __init__(self, settings: Optional[dict[str, AutonomySettings]] = None):
        self._settings = dict(settings or {})

    async def get(self, user_id: str) -> AutonomySettings:
        return self._settings.get(user_id) or AutonomySettings()

    def set(self, user_id: str, settings: AutonomySettings) -> None:
        self._settings[user_id] = settings
