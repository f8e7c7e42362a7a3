"""
context.py

Cross-module context for the digital twin.
Defines the UserContext the twin reasons over, the provider interface that
supplies it, and the three-tier assembly the twin runs before every query:

    1. smart context  (query-relevance filtered)
    2. full context   (everything the provider knows)
    3. default context (static, always available)

Also builds the structured prompt sent to the text-generation engine.
Part of LifeTwin — Adaptive Personalization Core.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from lifetwin import config
from lifetwin.learning.facts import Fact
from lifetwin.learning.patterns import dominant_module
from lifetwin.learning.types import LearningPattern, utcnow

if TYPE_CHECKING:
    from lifetwin.core.classifier import QueryAnalysis
    from lifetwin.learning.engine import LearningEngine

_log = logging.getLogger("lifetwin.context")
if not _log.handlers:
    _handler = logging.FileHandler(config.LOGS_DIR / "context.log", encoding="utf-8")
    _handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
    _log.addHandler(_handler)
    _log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

DEFAULT_MODULES = ["household", "chat", "drive", "business"]

# module → keywords that pull it into a query's scope
MODULE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "drive": ("drive", "file", "document"),
    "chat": ("chat", "message", "conversation"),
    "household": ("household", "task", "schedule"),
    "business": ("business", "project", "team"),
}

USER_DEFINED_CONTEXT_LIMIT = 5
FACT_CONTEXT_TYPE = "fact"
FACT_CONTEXT_LIMIT = 20
SINGLE_VALUED_FACTS = frozenset({"name", "workplace", "location"})


def modules_mentioned(query_lower: str) -> list[str]:
    """Return the modules whose keywords occur in an already lower-cased query, in table order."""
    return [
        module
        for module, keywords in MODULE_KEYWORDS.items()
        if any(keyword in query_lower for keyword in keywords)
    ]


# ===========================================================================
# Context records
# ===========================================================================


@dataclass
class ContextPattern:
    """A user pattern as seen by the twin: a name, the modules it spans, and its impact."""

    id: str
    pattern: str
    type: str
    modules: list[str] = field(default_factory=list)
    confidence: float = 0.5
    impact: str = "neutral"  # "positive" | "neutral" | "negative"


@dataclass
class ContextInsight:
    id: str
    type: str
    title: str
    description: str
    modules: list[str] = field(default_factory=list)
    confidence: float = 0.5


@dataclass
class Relationship:
    name: str
    modules: list[str] = field(default_factory=list)
    strength: float = 0.5


@dataclass
class UserDefinedContext:
    """An explicit instruction the user attached to a module or to everything."""

    title: str
    content: str
    scope: Optional[str] = None
    module_id: Optional[str] = None
    context_type: str = "instruction"


@dataclass
class CurrentFocus:
    module: str = "general"
    activity: str = "general_usage"
    priority: str = "medium"
    time_spent: int = 0
    dashboard_id: Optional[str] = None
    business_id: Optional[str] = None


@dataclass
class UserContext:
    """
    Everything the twin knows about a user across modules.

    Life-state scores are 0–100 and keyed by area, e.g.
    life_state["productivity"]["score"].
    """

    user_id: str
    timestamp: datetime = field(default_factory=utcnow)
    active_modules: list[str] = field(default_factory=list)
    current_focus: CurrentFocus = field(default_factory=CurrentFocus)
    patterns: list[ContextPattern] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)
    cross_module_insights: list[ContextInsight] = field(default_factory=list)
    preferences: dict[str, Any] = field(default_factory=dict)
    life_state: dict[str, dict[str, Any]] = field(default_factory=dict)
    user_defined_context: list[UserDefinedContext] = field(default_factory=list)

    def populated_fields(self) -> list[str]:
        """Names of the fields that carry data."""
        return [f.name for f in fields(self) if getattr(self, f.name) not in (None, [], {}, "")]

    def life_score(self, area: str, default: int = 50) -> int:
        value = (self.life_state.get(area) or {}).get("score", default)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return int(round(value))
        return default


@dataclass
class SmartContext:
    """
    Result of a query-relevance filtered fetch.

    Attributes:
        full_context: The assembled UserContext.
        relevant_module_count: Number of modules judged relevant to the query.
        analysis: Provider-specific detail. "matched_modules" is a list of
                  {"module_name", "relevance"} and "suggested_context_providers"
                  a list of {"provider_name"}.
    """

    full_context: UserContext
    relevant_module_count: int = 0
    analysis: dict[str, Any] = field(default_factory=dict)

    def metadata(self) -> dict[str, Any]:
        matched = self.analysis.get("matched_modules") or []
        providers = self.analysis.get("suggested_context_providers") or []
        return {
            "query_analysis": {
                "relevant_modules": [
                    {"name": m.get("module_name"), "relevance": m.get("relevance")} for m in matched
                ],
                "context_providers_fetched": [p.get("provider_name") for p in providers],
            },
            "performance_gain": {
                "modules_analyzed": self.relevant_module_count,
                "total_modules_available": len(matched),
            },
        }


def default_user_context(user_id: str) -> UserContext:
    """
    Static context used when no provider can answer.

    Example:
        ctx = default_user_context("owner")
        ctx.life_score("productivity")  # 75
    """
    return UserContext(
        user_id=user_id,
        active_modules=list(DEFAULT_MODULES),
        current_focus=CurrentFocus(module="general", activity="general_usage", priority="medium"),
        preferences={
            "communication": {
                "preferred_channels": ["email", "chat"],
                "response_time_expectations": {"email": 240, "chat": 30},
                "formality_level": 70,
                "timezone": "UTC",
            },
            "work": {
                "productive_hours": [9, 10, 11, 14, 15, 16],
                "focus_block_preference": 120,
                "interruption_tolerance": 50,
                "collaboration_style": "collaborative",
                "prioritization_method": "importance",
            },
            "personal": {
                "social_engagement": 70,
                "privacy_level": 80,
                "sharing_comfort": 60,
                "planning_horizon": 7,
            },
        },
        life_state={
            "work_life_balance": {"score": 70, "trend": "stable", "concerns": [], "opportunities": []},
            "productivity": {"score": 75, "peak_hours": [9, 10, 14, 15], "efficiency": 75, "bottlenecks": []},
            "relationships": {"score": 80, "social_connections": 25, "communication_health": 80, "network_growth": 5},
            "goals": {"active_goals": 5, "progress_rate": 70, "completion_rate": 80, "alignment": 75},
        },
    )


# ===========================================================================
# Provider interface
# ===========================================================================


class ContextProvider(ABC):
    """Supplies cross-module user context. Either call may raise ProviderError."""

    @abstractmethod
    async def get_smart_context(self, user_id: str, query: str) -> SmartContext:
        ...

    @abstractmethod
    async def get_full_context(self, user_id: str) -> UserContext:
        ...


async def assemble_context(
    provider: Optional[ContextProvider], user_id: str, query: str
) -> tuple[UserContext, Optional[SmartContext]]:
    """
    Resolve the context for one query, degrading tier by tier.

    Args:
        provider: The context provider, or None to go straight to the default.
        user_id: The querying user.
        query: The raw query text.

    Returns:
        (user_context, smart_context). smart_context is None unless the
        smart tier succeeded.

    Example:
        ctx, smart = await assemble_context(provider, "owner", "schedule a meeting")
    """
    if provider is not None:
        try:
            smart = await provider.get_smart_context(user_id, query)
            if smart is not None and smart.full_context is not None:
                _log.info(
                    "CONTEXT_SMART | user=%s | relevant_modules=%d",
                    user_id, smart.relevant_module_count,
                )
                return smart.full_context, smart
        except Exception as exc:
            _log.warning("CONTEXT_SMART_FAILED | user=%s | error=%s", user_id, exc)

        try:
            full = await provider.get_full_context(user_id)
            if full is not None:
                _log.info("CONTEXT_FULL | user=%s", user_id)
                return full, None
        except Exception as exc:
            _log.warning("CONTEXT_FULL_FAILED | user=%s | error=%s", user_id, exc)

    _log.info("CONTEXT_DEFAULT | user=%s", user_id)
    return default_user_context(user_id), None


# ===========================================================================
# Learning-backed provider
# ===========================================================================


def _context_pattern(pattern: LearningPattern) -> ContextPattern:
    modules: list[str] = []
    active = pattern.data.get("active_modules")
    if isinstance(active, list):
        modules = [entry[0] for entry in active if isinstance(entry, (list, tuple)) and entry]
    label = dominant_module(pattern)
    name = f"{label} {pattern.pattern_type.value}" if label else pattern.pattern_type.value
    return ContextPattern(
        id=pattern.id,
        pattern=name,
        type=pattern.pattern_type.value,
        modules=modules,
        confidence=pattern.confidence,
        impact="positive" if pattern.strength >= 0.5 else "neutral",
    )


class LearningContextProvider(ContextProvider):
    """
    Builds UserContext from what the learning engine has derived.

    Patterns and recent insights come from the engine; everything else is
    taken from the default context, optionally extended with relationships
    and user-defined instructions held in memory.

    Example:
        provider = LearningContextProvider(engine)
        provider.add_user_context("owner", UserDefinedContext("Tone", "Keep replies short"))
    """

    def __init__(
        self,
        engine: "LearningEngine",
        relationships: Optional[dict[str, list[Relationship]]] = None,
    ) -> None:
        self._engine = engine
        self._relationships = relationships or {}
        self._user_context: dict[str, list[UserDefinedContext]] = {}

    def add_user_context(self, user_id: str, entry: UserDefinedContext) -> None:
        self._user_context.setdefault(user_id, []).append(entry)

    async def add_facts(self, facts: list[Fact]) -> None:
        """
        Fact sink: keep extracted facts as user-wide context entries.

        A new name, workplace or location replaces the previous one; repeated
        facts are ignored. Each user keeps at most FACT_CONTEXT_LIMIT facts,
        the oldest dropped first.
        """
        for fact in facts:
            entries = self._user_context.setdefault(fact.user_id, [])
            known = [e for e in entries if e.context_type == FACT_CONTEXT_TYPE]
            if any(e.scope == fact.category and e.content == fact.value for e in known):
                continue
            if fact.category in SINGLE_VALUED_FACTS:
                for stale in [e for e in known if e.scope == fact.category]:
                    entries.remove(stale)
                    known.remove(stale)
            if len(known) >= FACT_CONTEXT_LIMIT:
                entries.remove(known[0])
            entries.append(
                UserDefinedContext(
                    title=fact.category.title(),
                    content=fact.value,
                    scope=fact.category,
                    context_type=FACT_CONTEXT_TYPE,
                )
            )
            _log.info("FACT_CONTEXT_ADDED | user=%s | category=%s", fact.user_id, fact.category)

    async def get_full_context(self, user_id: str) -> UserContext:
        context = default_user_context(user_id)
        patterns = await self._engine.get_user_patterns(user_id)
        insights = await self._engine.get_recent_insights(user_id)

        context.patterns = [_context_pattern(p) for p in patterns]
        context.cross_module_insights = [
            ContextInsight(
                id=insight.id,
                type=insight.insight_type.value,
                title=insight.insight_type.value.replace("_", " ").title(),
                description=insight.description,
                modules=[m for m in (insight.data.get("current_behavior"), insight.data.get("previous_behavior")) if isinstance(m, str)],
                confidence=insight.confidence,
            )
            for insight in insights
        ]
        context.relationships = list(self._relationships.get(user_id, []))
        context.user_defined_context = list(self._user_context.get(user_id, []))
        return context

    async def get_smart_context(self, user_id: str, query: str) -> SmartContext:
        context = await self.get_full_context(user_id)
        matched = modules_mentioned((query or "").lower())
        if matched:
            wanted = set(matched)
            # Module-agnostic patterns describe the user as a whole and always stay
            context.patterns = [
                p for p in context.patterns if not p.modules or wanted.intersection(p.modules)
            ]
            context.cross_module_insights = [
                i for i in context.cross_module_insights if wanted.intersection(i.modules)
            ]
            _log.debug(
                "SMART_CONTEXT_FILTERED | user=%s | modules=%s | patterns=%d | insights=%d",
                user_id, matched, len(context.patterns), len(context.cross_module_insights),
            )
        return SmartContext(
            full_context=context,
            relevant_module_count=len(matched),
            analysis={
                "matched_modules": [{"module_name": m, "relevance": "high"} for m in matched],
                "suggested_context_providers": [{"provider_name": "learning"}],
            },
        )


# ===========================================================================
# Semantic hints
# ===========================================================================

SEMANTIC_BOOST_PER_QUERY = 0.1
SEMANTIC_BOOST_CATEGORY = 0.05
SEMANTIC_BOOST_CAP = 0.25


@dataclass
class SemanticHints:
    related_queries: list[tuple[str, float]] = field(default_factory=list)  # (past query, similarity)
    suggested_categories: list[str] = field(default_factory=lambda: ["general"])
    confidence_boost: float = 0.0


async def semantic_hints(engine: "LearningEngine", user_id: str, query: str) -> SemanticHints:
    """
    Relate a query to what the user has asked before.

    Categories are the modules the query mentions. Related queries are past
    interaction queries with overlapping words. Each kind of hit adds to a
    small confidence boost, capped at SEMANTIC_BOOST_CAP.

    Example:
        hints = await semantic_hints(engine, "u1", "share the project file")
        hints.suggested_categories  # ["drive", "business"]
    """
    categories = modules_mentioned((query or "").lower())
    related = await engine.similar_queries(user_id, query)
    boost = SEMANTIC_BOOST_PER_QUERY * len(related) + (SEMANTIC_BOOST_CATEGORY if categories else 0.0)
    hints = SemanticHints(
        related_queries=related,
        suggested_categories=categories or ["general"],
        confidence_boost=round(min(boost, SEMANTIC_BOOST_CAP), 2),
    )
    _log.debug(
        "SEMANTIC_HINTS | user=%s | related=%d | categories=%s",
        user_id, len(hints.related_queries), hints.suggested_categories,
    )
    return hints


# ===========================================================================
# Prompt
# ===========================================================================


def _trait_score(traits: dict[str, float], name: str) -> int:
    value = traits.get(name)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(round(value * 100))
    return 50


def relevant_user_context(
    entries: list[UserDefinedContext], query: str, current_module: Optional[str]
) -> list[UserDefinedContext]:
    """User-defined entries scoped to the current module or overlapping the query, top 5."""
    query_lower = (query or "").lower()
    relevant = []
    for entry in entries:
        module_match = not entry.module_id or entry.module_id == current_module
        content = (entry.content or "").lower()
        content_match = bool(content) and (content[:20] in query_lower or query_lower[:20] in content)
        if module_match or content_match:
            relevant.append(entry)
    return relevant[:USER_DEFINED_CONTEXT_LIMIT]


def build_prompt(
    query: str,
    context: UserContext,
    traits: dict[str, float],
    analysis: "QueryAnalysis",
    current_module: Optional[str] = None,
    dashboard_type: Optional[str] = None,
    semantics: Optional[SemanticHints] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Build the twin prompt.

    Traits are stored on 0–1 and rendered on 0–100. Missing traits read as 50.
    Without semantic hints the SEMANTIC CONTEXT section shows the neutral defaults.

    Example:
        prompt = build_prompt("schedule a meeting", ctx, {"openness": 0.8}, analysis)
    """
    now = now or utcnow()
    semantics = semantics or SemanticHints()
    communication = context.preferences.get("communication") or {}
    decision = context.preferences.get("decision") or {}

    patterns = "\n".join(
        f"- {p.pattern} ({round(p.confidence * 100)}% confidence)" for p in context.patterns[:3]
    )
    insights = "\n".join(
        f"- {i.title}: {i.description}" for i in context.cross_module_insights[:3]
    )
    related = "\n".join(
        f"- \"{past}\" ({round(similarity * 100)}% similar)" for past, similarity in semantics.related_queries[:2]
    )

    sections = [
        "You are the user's Digital Life Twin - an AI that understands and operates as their "
        "digital representation across their entire life ecosystem.",
        "",
        "PERSONALITY PROFILE:",
        f"- Openness: {_trait_score(traits, 'openness')}/100",
        f"- Conscientiousness: {_trait_score(traits, 'conscientiousness')}/100",
        f"- Extraversion: {_trait_score(traits, 'extraversion')}/100",
        f"- Agreeableness: {_trait_score(traits, 'agreeableness')}/100",
        f"- Risk Tolerance: {_trait_score(traits, 'risk_tolerance')}/100",
        f"- Communication Style: {communication.get('formality', 'professional but friendly')}",
        f"- Planning Horizon: {decision.get('timeframe_preference', 'planned')}",
        "",
        "CURRENT DIGITAL LIFE STATE:",
        f"- Active Modules: {', '.join(context.active_modules)}",
        f"- Current Focus: {context.current_focus.activity} ({context.current_focus.priority} priority)",
        f"- Work-Life Balance Score: {context.life_score('work_life_balance')}/100",
        f"- Productivity Score: {context.life_score('productivity')}/100",
        f"- Relationship Health: {context.life_score('relationships')}/100",
        "",
        "RECENT PATTERNS:",
        patterns or "- Learning your patterns...",
        "",
        "KEY INSIGHTS:",
        insights or "- No insights yet",
        "",
        "SEMANTIC CONTEXT:",
        f"Similar past queries:\n{related}" if related else "- Learning query patterns...",
        f"- Suggested categories: {', '.join(semantics.suggested_categories) or 'general'}",
        f"- Context understanding boost: +{round(semantics.confidence_boost * 100)}%",
        "",
        "CURRENT CONTEXT:",
        f"- Time: {now.strftime('%Y-%m-%d %H:%M')} UTC",
        f"- Current Module: {current_module or 'Dashboard'}",
        f"- Dashboard Type: {dashboard_type or 'Personal'}",
        f"- Query Type: {analysis.query_type}",
        f"- Query Urgency: {analysis.urgency}",
        "",
        f'USER QUERY: "{query}"',
        "",
        "INSTRUCTIONS:",
        "Respond as the user's Digital Life Twin, demonstrating deep understanding of their:",
        "1. Personality and communication style",
        "2. Current life situation and priorities",
        "3. Patterns and behaviors across all modules",
        "4. Relationships and responsibilities",
        "",
        "Your response should:",
        "- Reflect their personality in tone and approach",
        "- Consider cross-module connections and implications",
        "- Suggest actions that align with their patterns and goals",
        "- Be helpful while respecting their autonomy preferences",
        "- Follow any user-defined context instructions below",
    ]

    user_defined = relevant_user_context(context.user_defined_context, query, current_module)
    if user_defined:
        sections += ["", "USER-DEFINED CONTEXT (IMPORTANT - Follow these instructions):"]
        for idx, entry in enumerate(user_defined, start=1):
            scope = f"[{entry.scope}] " if entry.scope else ""
            module = f"[Module: {entry.module_id}] " if entry.module_id else ""
            sections.append(f"{idx}. {scope}{module}{entry.title or 'Context'}:")
            sections.append(f"   {entry.content}")
            sections.append(f"   Type: {entry.context_type}")

    sections += ["", "Respond naturally as if you ARE them, making decisions and suggestions they would make."]
    return "\n".join(sections)
