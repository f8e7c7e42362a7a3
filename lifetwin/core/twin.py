"""
twin.py

Digital Twin Core.
The public entry point of the personalization core. One call to
process_as_digital_twin() runs the whole per-query pipeline:

    RECEIVED_QUERY
      → CONTEXT_ASSEMBLED    smart → full → default context
      → QUERY_ANALYZED       type, scope, urgency, complexity
      → RESPONSE_GENERATED   semantic hints + prompt + policy-selected engine
      → ACTIONS_DETERMINED   autonomy-gated action builders
      → FINALIZED            connections, insights, alignment, learning feedback

Every step after validation is guarded and degrades to a default value.
Missing query text or user id ends in FAILED_FALLBACK with a canned,
low-confidence response. The entry point never raises.
Part of LifeTwin — Adaptive Personalization Core.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from enum import Enum, unique
from typing import Any, Awaitable, Callable, Optional

from lifetwin import config
from lifetwin.autonomy.types import AutonomySettings
from lifetwin.core.actions import ActionBuilder, LifeTwinAction, extract_people
from lifetwin.core.classifier import (
    KeywordQueryClassifier,
    QueryAnalysis,
    QueryClassifier,
    is_pattern_relevant,
)
from lifetwin.core.context import (
    ContextInsight,
    ContextProvider,
    SemanticHints,
    UserContext,
    assemble_context,
    build_prompt,
    semantic_hints,
)
from lifetwin.core.orchestrator import EngineOrchestrator, GenerationResult, select_role
from lifetwin.database.stores import AutonomySettingsStore, PersonalityStore
from lifetwin.exceptions import ValidationError
from lifetwin.learning.engine import LearningEngine

_log = logging.getLogger("lifetwin.twin")
if not _log.handlers:
    _handler = logging.FileHandler(config.LOGS_DIR / "twin.log", encoding="utf-8")
    _handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
    _log.addHandler(_handler)
    _log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

CANNED_RESPONSE = (
    "I apologize, but I'm having trouble accessing your full digital context right now. "
    "Let me try to help with what I can access."
)
CANNED_CONFIDENCE = 0.3
CANNED_REASONING = "Limited context due to system error"

BASE_ALIGNMENT = 0.5
INSIGHT_LIMIT = 3
FORMAL_LEVEL = 70  # formality_level on 0–100 at or above which replies should be formal

ActionSink = Callable[[list[LifeTwinAction]], Awaitable[None]]


@unique
class PipelineStage(Enum):
    RECEIVED_QUERY = "received_query"
    CONTEXT_ASSEMBLED = "context_assembled"
    QUERY_ANALYZED = "query_analyzed"
    RESPONSE_GENERATED = "response_generated"
    ACTIONS_DETERMINED = "actions_determined"
    FINALIZED = "finalized"
    FAILED_FALLBACK = "failed_fallback"


@dataclass
class LifeTwinQuery:
    """
    A query addressed to the twin.

    Attributes:
        query: The user's text. Required.
        user_id: The querying user. Required.
        urgency: Explicit urgency ("low" | "medium" | "high"); overrides inference.
        conversation_history: Prior turns as {"role", "content"} dicts.
    """

    query: str
    user_id: str
    current_module: Optional[str] = None
    dashboard_type: Optional[str] = None
    dashboard_name: Optional[str] = None
    urgency: Optional[str] = None
    recent_activity: list[dict[str, Any]] = field(default_factory=list)
    conversation_history: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class CrossModuleConnection:
    type: str  # "workflow" | "relationship" | "pattern" | "opportunity"
    description: str
    modules: list[str]
    strength: float
    actionable: bool
    suggested_action: Optional[str] = None


@dataclass
class DigitalTwinResponse:
    response: str
    confidence: float
    reasoning: str
    personality_alignment: float
    actions: list[LifeTwinAction] = field(default_factory=list)
    insights: list[ContextInsight] = field(default_factory=list)
    cross_module_connections: list[CrossModuleConnection] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "response": self.response,
            "confidence": self.confidence,
            "actions": [a.to_dict() for a in self.actions],
            "insights": [asdict(i) for i in self.insights],
            "reasoning": self.reasoning,
            "personality_alignment": self.personality_alignment,
            "cross_module_connections": [asdict(c) for c in self.cross_module_connections],
            "metadata": self.metadata,
        }


# ===========================================================================
# Pure helpers
# ===========================================================================


def identify_connections(query: str, context: UserContext) -> list[CrossModuleConnection]:
    """
    Workflow, relationship, and pattern connections implied by a query.

    Example:
        identify_connections("schedule a meeting with sarah", ctx)
        # [workflow (0.8), relationship (0.7)]
    """
    query_lower = query.lower()
    connections: list[CrossModuleConnection] = []

    if "schedule" in query_lower or "meeting" in query_lower:
        connections.append(
            CrossModuleConnection(
                type="workflow",
                description="Scheduling affects Calendar, Chat notifications, and Drive document sharing",
                modules=["household", "chat", "drive"],
                strength=0.8,
                actionable=True,
                suggested_action="Automatically share relevant documents with meeting participants",
            )
        )

    people = extract_people(query)
    if people:
        connections.append(
            CrossModuleConnection(
                type="relationship",
                description=f"Actions involving {', '.join(people)} may affect multiple communication channels",
                modules=["chat", "business"],
                strength=0.7,
                actionable=True,
                suggested_action="Consider notifying all relevant channels",
            )
        )

    for pattern in context.patterns:
        if len(pattern.modules) < 2 or not is_pattern_relevant(pattern, query_lower, "action"):
            continue
        positive = pattern.impact == "positive"
        connections.append(
            CrossModuleConnection(
                type="pattern",
                description=f"This aligns with your {pattern.pattern} pattern across {' and '.join(pattern.modules)}",
                modules=list(pattern.modules),
                strength=pattern.confidence,
                actionable=positive,
                suggested_action="Leverage this pattern for efficiency" if positive else "Consider adjusting approach",
            )
        )
    return connections


def extract_relevant_insights(
    context: UserContext, query: str, current_module: Optional[str]
) -> list[ContextInsight]:
    query_lower = query.lower()
    words = query_lower.split()
    first_word = words[0] if words else ""
    relevant = [
        insight
        for insight in context.cross_module_insights
        if current_module in insight.modules
        or insight.type in query_lower
        or (first_word and first_word in insight.title.lower())
    ]
    return relevant[:INSIGHT_LIMIT]


def is_formal(communication: dict[str, Any]) -> bool:
    """True for an explicit "formal" style or a formality_level of at least FORMAL_LEVEL."""
    if communication.get("formality") == "formal":
        return True
    level = communication.get("formality_level")
    return isinstance(level, (int, float)) and not isinstance(level, bool) and level >= FORMAL_LEVEL


def personality_alignment(response: str, traits: dict[str, float], preferences: dict[str, Any]) -> float:
    """
    Score how well a response fits the user's personality.

    Starts at 0.5 and adds fixed bonuses, capped at 1.0. Traits are on 0–1.
    """
    alignment = BASE_ALIGNMENT
    if traits.get("conscientiousness", 0.0) > 0.7 and "organize" in response:
        alignment += 0.2
    if traits.get("extraversion", 0.0) > 0.7 and "collaborate" in response:
        alignment += 0.2
    if is_formal(preferences.get("communication") or {}) and "hey" not in response and "cool" not in response:
        alignment += 0.1
    return min(alignment, 1.0)


def canned_response(started: float) -> DigitalTwinResponse:
    return DigitalTwinResponse(
        response=CANNED_RESPONSE,
        confidence=CANNED_CONFIDENCE,
        reasoning=CANNED_REASONING,
        personality_alignment=BASE_ALIGNMENT,
        metadata={
            "context_used": [],
            "modules_focused": [],
            "pattern_matches": [],
            "processing_time": _elapsed_ms(started),
            "provider": "fallback",
            "stage": PipelineStage.FAILED_FALLBACK.value,
        },
    )


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _advance(user_id: str, stage: PipelineStage) -> PipelineStage:
    _log.debug("STAGE | user=%s | stage=%s", user_id, stage.value)
    return stage


# ===========================================================================
# Core
# ===========================================================================


class DigitalTwinCore:
    """
    Answers queries as the user's digital twin and feeds every exchange back
    into the learning engine.

    Args:
        learning: Learning engine receiving the interaction feedback.
        personality_store: Source of the user's trait vector.
        autonomy_store: Source of the user's autonomy scores.
        context_provider: Cross-module context. None uses the default context.
        orchestrator: Engine routing. Defaults to the three configured engines.
        classifier: Query classifier. Defaults to keyword rules.
        actions: Action builder. Defaults to one over the packaged autonomy table.
        action_sink: Optional async callable receiving emitted actions.

    Example:
        twin = DigitalTwinCore(engine, personality_store, autonomy_store, provider)
        result = await twin.process_as_digital_twin(LifeTwinQuery("schedule a meeting", "owner"))
        result.actions[0].requires_approval
    """

    def __init__(
        self,
        learning: LearningEngine,
        personality_store: PersonalityStore,
        autonomy_store: AutonomySettingsStore,
        context_provider: Optional[ContextProvider] = None,
        orchestrator: Optional[EngineOrchestrator] = None,
        classifier: Optional[QueryClassifier] = None,
        actions: Optional[ActionBuilder] = None,
        action_sink: Optional[ActionSink] = None,
    ) -> None:
        self.learning = learning
        self.personality_store = personality_store
        self.autonomy_store = autonomy_store
        self.context_provider = context_provider
        self.orchestrator = orchestrator or EngineOrchestrator()
        self.classifier = classifier or KeywordQueryClassifier()
        self.actions = actions or ActionBuilder()
        self.action_sink = action_sink

    async def process_as_digital_twin(self, query: LifeTwinQuery) -> DigitalTwinResponse:
        """
        Run the full per-query pipeline.

        Returns:
            The twin's response. On invalid input or an unexpected failure,
            the canned apology with confidence 0.3.
        """
        started = time.perf_counter()
        try:
            return await self._run(query, started)
        except ValidationError as exc:
            _log.warning("QUERY_INVALID | missing=%s", exc.details.get("missing"))
        except Exception:
            _log.exception("QUERY_FAILED | user=%s", getattr(query, "user_id", None))
        return canned_response(started)

    async def _run(self, query: LifeTwinQuery, started: float) -> DigitalTwinResponse:
        missing = [name for name in ("query", "user_id") if not getattr(query, name, None)]
        if missing:
            raise ValidationError(missing)

        stage = PipelineStage.RECEIVED_QUERY
        _log.info("QUERY | user=%s | module=%s | stage=%s", query.user_id, query.current_module, stage.value)

        context, smart = await assemble_context(self.context_provider, query.user_id, query.query)
        traits = await self._personality(query.user_id)
        stage = _advance(query.user_id, PipelineStage.CONTEXT_ASSEMBLED)

        analysis = self._analyze(query, context)
        stage = _advance(query.user_id, PipelineStage.QUERY_ANALYZED)

        semantics = await self._semantics(query)
        generation = await self._generate(query, context, traits, analysis, semantics)
        stage = _advance(query.user_id, PipelineStage.RESPONSE_GENERATED)

        actions = await self._actions(query, context)
        stage = _advance(query.user_id, PipelineStage.ACTIONS_DETERMINED)

        connections = self._guarded("connections", [], identify_connections, query.query, context)
        insights = self._guarded(
            "insights", [], extract_relevant_insights, context, query.query, query.current_module
        )
        alignment = self._guarded(
            "alignment", BASE_ALIGNMENT, personality_alignment, generation.response, traits, context.preferences
        )

        learned = await self._learn(query, context, analysis, generation, actions)
        stage = _advance(query.user_id, PipelineStage.FINALIZED)

        metadata: dict[str, Any] = {
            "context_used": context.populated_fields(),
            "modules_focused": list(analysis.modules),
            "pattern_matches": [p.id for p in analysis.relevant_patterns],
            "processing_time": _elapsed_ms(started),
            "provider": generation.provider,
            "query_type": analysis.query_type,
            "urgency": analysis.urgency,
            "complexity": analysis.complexity,
            "learning_recorded": learned,
            "stage": stage.value,
        }
        if smart is not None:
            metadata["smart_context"] = smart.metadata()

        _log.info(
            "QUERY_DONE | user=%s | type=%s | provider=%s | actions=%d | connections=%d | ms=%d",
            query.user_id, analysis.query_type, generation.provider,
            len(actions), len(connections), metadata["processing_time"],
        )
        return DigitalTwinResponse(
            response=generation.response,
            confidence=generation.confidence,
            reasoning=generation.reasoning,
            personality_alignment=alignment,
            actions=actions,
            insights=insights,
            cross_module_connections=connections,
            metadata=metadata,
        )

    # ------------------------------------------------------------------
    # Guarded steps
    # ------------------------------------------------------------------

    def _guarded(self, step: str, default: Any, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except Exception as exc:
            _log.warning("STEP_FAILED | step=%s | error=%s", step, exc)
            return default

    async def _personality(self, user_id: str) -> dict[str, float]:
        try:
            return await self.personality_store.get(user_id) or {}
        except Exception as exc:
            _log.warning("PERSONALITY_FAILED | user=%s | error=%s", user_id, exc)
            return {}

    def _analyze(self, query: LifeTwinQuery, context: UserContext) -> QueryAnalysis:
        try:
            return self.classifier.classify(query.query, context, query.current_module, query.urgency)
        except Exception as exc:
            _log.warning("CLASSIFY_FAILED | user=%s | error=%s", query.user_id, exc)
            return QueryAnalysis(
                query_type="general",
                scope_type="single_module",
                modules=[context.current_focus.module],
                urgency=query.urgency or "low",
                complexity="medium",
                module_context=query.current_module,
            )

    async def _semantics(self, query: LifeTwinQuery) -> SemanticHints:
        try:
            return await semantic_hints(self.learning, query.user_id, query.query)
        except Exception as exc:
            _log.warning("SEMANTIC_HINTS_FAILED | user=%s | error=%s", query.user_id, exc)
            return SemanticHints()

    async def _generate(
        self,
        query: LifeTwinQuery,
        context: UserContext,
        traits: dict[str, float],
        analysis: QueryAnalysis,
        semantics: Optional[SemanticHints] = None,
    ) -> GenerationResult:
        role = select_role(analysis.complexity, query.query)
        prompt = self._guarded(
            "prompt", query.query, build_prompt,
            query.query, context, traits, analysis, query.current_module, query.dashboard_type, semantics,
        )
        history = [
            {"role": turn.get("role", "user"), "content": turn.get("content", "")}
            for turn in query.conversation_history
            if isinstance(turn, dict)
        ]
        return await self.orchestrator.generate(role, prompt, history)

    async def _actions(self, query: LifeTwinQuery, context: UserContext) -> list[LifeTwinAction]:
        try:
            settings = await self.autonomy_store.get(query.user_id)
        except Exception as exc:
            _log.warning("AUTONOMY_SETTINGS_FAILED | user=%s | error=%s", query.user_id, exc)
            settings = AutonomySettings()

        actions = self._guarded("actions", [], self.actions.determine_actions, query.query, context, settings)
        if actions and self.action_sink is not None:
            try:
                await self.action_sink(actions)
            except Exception as exc:
                _log.warning("ACTION_SINK_FAILED | user=%s | error=%s", query.user_id, exc)
        return actions

    async def _learn(
        self,
        query: LifeTwinQuery,
        context: UserContext,
        analysis: QueryAnalysis,
        generation: GenerationResult,
        actions: list[LifeTwinAction],
    ) -> bool:
        try:
            await self.learning.process_interaction(
                user_id=query.user_id,
                module=query.current_module or context.current_focus.module,
                query=query.query,
                response=generation.response,
                confidence=generation.confidence,
                action_type=analysis.query_type,
                extra={
                    "urgency": analysis.urgency,
                    "provider": generation.provider,
                    "actions": [a.type.value for a in actions],
                },
            )
            return True
        except Exception as exc:
            _log.warning("LEARNING_FEEDBACK_FAILED | user=%s | error=%s", query.user_id, exc)
            return False
