"""Shared fixtures: in-memory stores, recording engines, and context providers that fail on demand."""

from datetime import timedelta
from typing import Any, Optional

import pytest

from lifetwin.autonomy.config_loader import AutonomyConfigLoader
from lifetwin.autonomy.gate import AutonomyGate
from lifetwin import config
from lifetwin.core.actions import ActionBuilder
from lifetwin.core.context import ContextProvider, SmartContext, UserContext, default_user_context
from lifetwin.core.orchestrator import EngineOrchestrator, ProviderRole
from lifetwin.core.twin import DigitalTwinCore
from lifetwin.database.stores import (
    InMemoryAutonomySettingsStore,
    InMemoryEventStore,
    InMemoryPersonalityStore,
)
from lifetwin.engines.base import BaseEngine
from lifetwin.exceptions import EngineError, ProviderError
from lifetwin.learning.engine import LearningEngine
from lifetwin.learning.types import EventType, Impact, LearningEvent, utcnow


def make_event(
    user_id: str = "u1",
    event_type: EventType = EventType.INTERACTION,
    module: str = "chat",
    confidence: float = 0.5,
    impact: Impact = Impact.MEDIUM,
    hour: Optional[int] = None,
    days_ago: float = 1,
    **payload: Any,
) -> LearningEvent:
    """Build a source event `days_ago` in the past, optionally pinned to an hour of that day."""
    moment = utcnow() - timedelta(days=days_ago)
    if hour is not None:
        moment = moment.replace(hour=hour, minute=0, second=0, microsecond=0)
    return LearningEvent(
        user_id=user_id,
        event_type=event_type,
        module=module,
        payload=dict(payload),
        confidence=confidence,
        impact=impact,
        timestamp=moment,
    )


class RecordingEngine(BaseEngine):
    """Returns a fixed reply and remembers every prompt it was given."""

    def __init__(self, name: str, reply: str = "Done.", confidence: float = 0.8):
        self._name = name
        self.reply = reply
        self.confidence = confidence
        self.prompts: list[str] = []
        self.contexts: list[list[dict]] = []

    def generate(self, prompt, context, options=None):
        self.prompts.append(prompt)
        self.contexts.append(list(context))
        return self.reply

    def is_available(self):
        return True

    def get_name(self):
        return self._name


class FailingEngine(BaseEngine):
    def generate(self, prompt, context, options=None):
        raise EngineError("broken", "connection refused")

    def is_available(self):
        return False

    def get_name(self):
        return "broken"


class StubContextProvider(ContextProvider):
    """Serves a fixed context; either tier can be told to fail."""

    def __init__(self, context: Optional[UserContext] = None, fail_smart=False, fail_full=False):
        self.context = context
        self.fail_smart = fail_smart
        self.fail_full = fail_full
        self.calls: list[str] = []

    async def get_smart_context(self, user_id, query):
        self.calls.append("smart")
        if self.fail_smart:
            raise ProviderError("smart context unavailable")
        return SmartContext(
            full_context=self.context or default_user_context(user_id),
            relevant_module_count=1,
            analysis={
                "matched_modules": [{"module_name": "household", "relevance": "high"}],
                "suggested_context_providers": [{"provider_name": "stub"}],
            },
        )

    async def get_full_context(self, user_id):
        self.calls.append("full")
        if self.fail_full:
            raise ProviderError("full context unavailable")
        return self.context or default_user_context(user_id)


@pytest.fixture
def event_store():
    return InMemoryEventStore()


@pytest.fixture
def personality_store():
    return InMemoryPersonalityStore()


@pytest.fixture
def autonomy_store():
    return InMemoryAutonomySettingsStore()


@pytest.fixture
def learning_engine(event_store, personality_store):
    return LearningEngine(event_store, personality_store)


@pytest.fixture
def gate():
    loader = AutonomyConfigLoader()
    loader.load(config.AUTONOMY_CONFIG_PATH)
    return AutonomyGate(loader)


@pytest.fixture
def engines():
    return {
        ProviderRole.DEFAULT: RecordingEngine("openai", "Default reply."),
        ProviderRole.HIGH_CAPABILITY: RecordingEngine("claude", "Detailed reply."),
        ProviderRole.PRIVATE: RecordingEngine("local", "Private reply."),
    }


@pytest.fixture
def make_twin(learning_engine, personality_store, autonomy_store, engines, gate):
    def _make(provider: Optional[ContextProvider] = None, **overrides) -> DigitalTwinCore:
        kwargs = dict(
            learning=learning_engine,
            personality_store=personality_store,
            autonomy_store=autonomy_store,
            context_provider=provider,
            orchestrator=EngineOrchestrator(engines),
            actions=ActionBuilder(gate),
        )
        kwargs.update(overrides)
        return DigitalTwinCore(**kwargs)

    return _make
