import pytest

from lifetwin.core import context as context_module
from lifetwin.core.classifier import KeywordQueryClassifier
from lifetwin.core.context import (
    LearningContextProvider,
    SemanticHints,
    UserDefinedContext,
    build_prompt,
    default_user_context,
    semantic_hints,
)
from lifetwin.learning.engine import LearningEngine
from lifetwin.learning.facts import Fact
from lifetwin.learning.types import Insight, InsightType, LearningPattern, PatternType
from tests.conftest import make_event

pytestmark = pytest.mark.asyncio


class StubLearning:
    """Serves fixed patterns and insights to the provider."""

    def __init__(self, patterns=(), insights=()):
        self.patterns = list(patterns)
        self.insights = list(insights)

    async def get_user_patterns(self, user_id):
        return list(self.patterns)

    async def get_recent_insights(self, user_id):
        return list(self.insights)


def _module_pattern(pattern_id, *modules):
    return LearningPattern(
        user_id="u1",
        pattern_type=PatternType.BEHAVIORAL,
        confidence=0.9,
        strength=0.6,
        frequency=10,
        data={"active_modules": [[m, 5] for m in modules]},
        id=pattern_id,
    )


def _shift(insight_id, current, previous):
    return Insight(
        user_id="u1",
        insight_type=InsightType.BEHAVIOR_CHANGE,
        confidence=0.7,
        significance=0.6,
        description=f"Most activity moved from {previous} to {current}",
        data={"current_behavior": current, "previous_behavior": previous},
        id=insight_id,
    )


@pytest.fixture
def learning():
    temporal = LearningPattern(
        user_id="u1", pattern_type=PatternType.TEMPORAL, confidence=0.8, strength=0.4, frequency=10,
        data={"peak_hours": [[9, 4]]}, id="p-time",
    )
    return StubLearning(
        patterns=[_module_pattern("p-chat", "chat"), _module_pattern("p-drive", "drive", "chat"), temporal],
        insights=[_shift("i-chat", "chat", "household"), _shift("i-drive", "drive", "chat")],
    )


async def test_smart_context_keeps_what_the_query_touches(learning):
    provider = LearningContextProvider(learning)

    smart = await provider.get_smart_context("u1", "find the budget document")
    full = await provider.get_full_context("u1")

    assert smart.relevant_module_count == 1
    assert [p.id for p in smart.full_context.patterns] == ["p-drive", "p-time"]
    assert [i.id for i in smart.full_context.cross_module_insights] == ["i-drive"]
    assert len(full.patterns) == 3
    assert len(full.cross_module_insights) == 2


async def test_smart_context_without_module_keywords_is_unfiltered(learning):
    smart = await LearningContextProvider(learning).get_smart_context("u1", "how am I doing?")

    assert smart.relevant_module_count == 0
    assert len(smart.full_context.patterns) == 3
    assert len(smart.full_context.cross_module_insights) == 2


async def test_facts_become_user_wide_context():
    provider = LearningContextProvider(StubLearning())
    provider.add_user_context("u1", UserDefinedContext("Tone", "Keep replies short"))

    await provider.add_facts([
        Fact("u1", "name", "Sam"),
        Fact("u1", "location", "Porto"),
        Fact("u1", "location", "Lisbon", "chat"),
        Fact("u1", "preference", "hiking"),
        Fact("u1", "preference", "hiking"),
    ])
    entries = (await provider.get_full_context("u1")).user_defined_context

    assert [(e.scope, e.content) for e in entries] == [
        (None, "Keep replies short"),
        ("name", "Sam"),
        ("location", "Lisbon"),
        ("preference", "hiking"),
    ]
    assert all(e.module_id is None for e in entries)


async def test_fact_context_drops_oldest_facts_past_the_limit(monkeypatch):
    monkeypatch.setattr(context_module, "FACT_CONTEXT_LIMIT", 2)
    provider = LearningContextProvider(StubLearning())
    provider.add_user_context("u1", UserDefinedContext("Tone", "Keep replies short"))

    await provider.add_facts([Fact("u1", "preference", v) for v in ("tea", "jazz", "hiking")])
    entries = (await provider.get_full_context("u1")).user_defined_context

    assert [e.content for e in entries] == ["Keep replies short", "jazz", "hiking"]


async def test_prompt_renders_semantic_hints():
    context = default_user_context("u1")
    analysis = KeywordQueryClassifier().classify("schedule a meeting", context)
    hints = SemanticHints(
        related_queries=[("schedule a meeting with sam", 0.5), ("schedule lunch", 0.4), ("plan a meeting", 0.3)],
        suggested_categories=["household"],
        confidence_boost=0.25,
    )

    prompt = build_prompt("schedule a meeting", context, {}, analysis, semantics=hints)

    assert "SEMANTIC CONTEXT:" in prompt
    assert '- "schedule a meeting with sam" (50% similar)' in prompt
    assert '- "schedule lunch" (40% similar)' in prompt
    assert "plan a meeting" not in prompt
    assert "- Suggested categories: household" in prompt
    assert "- Context understanding boost: +25%" in prompt


async def test_prompt_without_semantic_hints_shows_defaults():
    context = default_user_context("u1")
    analysis = KeywordQueryClassifier().classify("hello", context)

    prompt = build_prompt("hello", context, {}, analysis)

    assert "SEMANTIC CONTEXT:\n- Learning query patterns..." in prompt
    assert "- Suggested categories: general" in prompt
    assert "- Context understanding boost: +0%" in prompt


async def test_semantic_hints_relate_past_queries(event_store, personality_store):
    for past in ("schedule a meeting with sam", "schedule a meeting with sam", "buy milk", "schedule a meeting with ana"):
        await event_store.append(make_event(query=past))
    engine = LearningEngine(event_store, personality_store)

    hints = await semantic_hints(engine, "u1", "Schedule a meeting with Ana")

    assert hints.related_queries == [("schedule a meeting with sam", 0.67)]
    assert hints.suggested_categories == ["household"]
    assert hints.confidence_boost == pytest.approx(0.15)


async def test_semantic_hints_for_a_new_user(learning_engine):
    hints = await semantic_hints(learning_engine, "nobody", "hello there")

    assert hints.related_queries == []
    assert hints.suggested_categories == ["general"]
    assert hints.confidence_boost == 0.0
