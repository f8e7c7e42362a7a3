"""
engine.py

Learning Engine.
Runs the full derivation pipeline for every triggering event:

    append event
      → analyze patterns (and refresh the pattern cache)
      → adapt personality
      → queue fact extraction (background, interaction events only)
      → generate predictions from the user's current patterns
      → detect insights, behavior modifications, recommendations
      → forward to the centralized learning sink (best-effort)
      → mark the event applied

A failure in any mandatory stage raises LearningPipelineError and leaves the
event with applied=False. Fact extraction and the centralized sink never fail
the pipeline.

Also answers read-side questions: current patterns, stored predictions,
recent insights, past queries similar to a new one, and a learning
analytics summary.
Part of LifeTwin — Adaptive Personalization Core.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from typing import Any, Awaitable, Callable, Optional

import numpy as np

from lifetwin import config
from lifetwin.database.stores import EventFilter, EventStore, PersonalityStore
from lifetwin.exceptions import LearningPipelineError
from lifetwin.learning.cache import PatternCache
from lifetwin.learning.facts import FactExtractionQueue, FactJob
from lifetwin.learning.insights import (
    InsightDetector,
    behavior_modifications,
    recommendations,
    replay_insights,
)
from lifetwin.learning.patterns import PatternAnalyzer
from lifetwin.learning.personality import PersonalityAdapter
from lifetwin.learning.predictions import PredictionGenerator, replay_predictions
from lifetwin.learning.types import (
    AdaptiveResponse,
    EventType,
    Impact,
    Insight,
    LearningEvent,
    LearningPattern,
    Prediction,
    read_str,
)

_log = logging.getLogger("lifetwin.learning")
if not _log.handlers:
    _handler = logging.FileHandler(config.LOGS_DIR / "learning.log", encoding="utf-8")
    _handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
    _log.addHandler(_handler)
    _log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

# Receives (user_id, summary) for cross-user pattern recognition
GlobalLearningSink = Callable[[str, dict[str, Any]], Awaitable[None]]

ANALYTICS_EVENT_LIMIT = 100
PREDICTION_LOAD_LIMIT = 50
INSIGHT_LOAD_LIMIT = 10
PROGRESS_RECENT_EVENTS = 10
SIMILAR_QUERY_LIMIT = 2
SIMILARITY_FLOOR = 0.25


def _mean(values: list[float]) -> float:
    return float(np.mean(values)) if values else 0.0


def _words(text: str) -> set[str]:
    return set(re.findall(r"[a-z0-9']+", (text or "").lower()))


class LearningEngine:
    """
    Adaptive learning over a user's event stream.

    Args:
        event_store: Append/query store for source and derived events.
        personality_store: Trait-vector store.
        cache: Pattern cache owned by this engine. A new one is created if omitted.
        fact_queue: Background fact extraction. None disables it.
        global_sink: Optional centralized learning sink.

    Example:
        engine = LearningEngine(InMemoryEventStore(), InMemoryPersonalityStore())
        result = await engine.process_learning_event(event)
        result.new_predictions
    """

    def __init__(
        self,
        event_store: EventStore,
        personality_store: PersonalityStore,
        cache: Optional[PatternCache] = None,
        fact_queue: Optional[FactExtractionQueue] = None,
        global_sink: Optional[GlobalLearningSink] = None,
    ) -> None:
        self.event_store = event_store
        self.cache = cache if cache is not None else PatternCache()
        self.analyzer = PatternAnalyzer(event_store)
        self.personality = PersonalityAdapter(personality_store)
        self.predictions = PredictionGenerator(event_store)
        self.insights = InsightDetector(event_store)
        self.fact_queue = fact_queue
        self.global_sink = global_sink

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    async def process_learning_event(self, event: LearningEvent) -> AdaptiveResponse:
        """
        Run the full derivation pipeline for one event.

        Raises:
            LearningPipelineError: If a mandatory stage fails.
        """
        _log.info(
            "PROCESS_EVENT | user=%s | type=%s | module=%s | id=%s",
            event.user_id, event.event_type.value, event.module, event.id,
        )
        stage = "append"
        try:
            await self.event_store.append(event)

            stage = "patterns"
            patterns = await self.analyzer.analyze_user(event.user_id)
            if patterns:
                self.cache.put(event.user_id, patterns)

            stage = "personality"
            adjustments = await self.personality.adapt(event)

            await self._queue_fact_extraction(event)

            stage = "predictions"
            current = await self.get_user_patterns(event.user_id)
            predictions = await self.predictions.generate(event, current)

            stage = "insights"
            insights = await self.insights.detect(event, patterns)
            modifications = behavior_modifications(patterns)
            recs = recommendations(event, insights)

            await self._forward_to_global(event)

            stage = "mark_applied"
            await self.event_store.mark_applied(event.id)
        except Exception as exc:
            _log.error(
                "PROCESS_EVENT_FAILED | user=%s | id=%s | stage=%s | error=%s",
                event.user_id, event.id, stage, exc,
            )
            raise LearningPipelineError(stage, event.id, exc) from exc

        _log.info(
            "PROCESS_EVENT_DONE | user=%s | id=%s | patterns=%d | adjustments=%d | predictions=%d | insights=%d",
            event.user_id, event.id, len(patterns), len(adjustments), len(predictions), len(insights),
        )
        return AdaptiveResponse(
            event=event.mark_applied(),
            patterns=patterns,
            personality_adjustments=adjustments,
            behavior_modifications=modifications,
            new_predictions=predictions,
            insights=insights,
            recommendations=recs,
        )

    async def process_interaction(
        self,
        user_id: str,
        module: str,
        query: str,
        response: str,
        confidence: float = 0.5,
        action_type: Optional[str] = None,
        extra: Optional[dict[str, Any]] = None,
    ) -> AdaptiveResponse:
        """
        Record a completed query/response exchange as an interaction event.

        Example:
            await engine.process_interaction("u1", "chat", "hi", "hello", 0.8, action_type="question")
        """
        payload: dict[str, Any] = {"query": query, "response": response}
        if action_type:
            payload["action_type"] = action_type
        if extra:
            payload.update(extra)
        event = LearningEvent(
            user_id=user_id,
            event_type=EventType.INTERACTION,
            module=module or "unknown",
            payload=payload,
            confidence=confidence,
            impact=Impact.MEDIUM,
        )
        return await self.process_learning_event(event)

    async def _queue_fact_extraction(self, event: LearningEvent) -> None:
        if self.fact_queue is None or not config.FACT_EXTRACTION_ENABLED:
            return
        if event.event_type is not EventType.INTERACTION:
            return
        query = event.payload.get("query")
        response = event.payload.get("response")
        if not isinstance(query, str) or not query or not isinstance(response, str) or not response:
            return
        try:
            await self.fact_queue.submit(
                FactJob(user_id=event.user_id, query=query, response=response, module=event.module)
            )
        except Exception as exc:
            _log.warning("FACT_QUEUE_FAILED | user=%s | error=%s", event.user_id, exc)

    async def _forward_to_global(self, event: LearningEvent) -> None:
        if self.global_sink is None:
            return
        try:
            await self.global_sink(
                event.user_id,
                {
                    "event_type": event.event_type.value,
                    "context": event.module,
                    "pattern_data": {"data": event.payload},
                    "confidence": event.confidence,
                    "impact": event.impact.value,
                },
            )
        except Exception as exc:
            _log.warning("GLOBAL_LEARNING_FAILED | user=%s | id=%s | error=%s", event.user_id, event.id, exc)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    async def get_user_patterns(self, user_id: str) -> list[LearningPattern]:
        """Current patterns for a user, read through the cache."""
        return await self.cache.get_or_load(user_id, self._load_patterns)

    async def _load_patterns(self, user_id: str) -> list[LearningPattern]:
        # Recomputed from the source window; stored pattern events span many generations
        patterns = self.analyzer.analyze(await self.analyzer.load_window(user_id))
        _log.debug("PATTERNS_RECOMPUTED | user=%s | patterns=%d", user_id, len(patterns))
        return patterns

    async def similar_queries(
        self, user_id: str, query: str, limit: int = SIMILAR_QUERY_LIMIT
    ) -> list[tuple[str, float]]:
        """
        Past interaction queries sharing words with *query*, most similar first.

        Similarity is the Jaccard overlap of the lower-cased word sets. Exact
        repeats of *query* and matches below SIMILARITY_FLOOR are left out.

        Example:
            await engine.similar_queries("u1", "schedule the team meeting")
            # [("schedule a meeting", 0.4)]
        """
        words = _words(query)
        if not words:
            return []
        events = await self.event_store.query(
            user_id, EventFilter.of(EventType.INTERACTION), limit=ANALYTICS_EVENT_LIMIT
        )
        scored: dict[str, float] = {}
        for event in events:
            past = read_str(event.payload, "query")
            if not past or past in scored or past.strip().lower() == query.strip().lower():
                continue
            other = _words(past)
            similarity = len(words & other) / len(words | other) if other else 0.0
            if similarity >= SIMILARITY_FLOOR:
                scored[past] = round(similarity, 2)
        ranked = sorted(scored.items(), key=lambda item: item[1], reverse=True)
        return ranked[:limit]

    async def get_user_predictions(self, user_id: str, limit: int = PREDICTION_LOAD_LIMIT) -> list[Prediction]:
        events = await self.event_store.query(
            user_id, EventFilter.of(EventType.PREDICTION, applied=True), limit=limit
        )
        return replay_predictions(events)

    async def get_recent_insights(self, user_id: str, limit: int = INSIGHT_LOAD_LIMIT) -> list[Insight]:
        events = await self.event_store.query(
            user_id, EventFilter.of(EventType.INSIGHT, applied=True), limit=limit
        )
        return replay_insights(events)

    async def get_learning_analytics(self, user_id: str) -> dict[str, Any]:
        """
        Summarize what has been learned about a user.

        Returns:
            A dict with keys:
                total_events, event_types, patterns, predictions, confidence,
                learning_progress, recent_insights

        Example:
            analytics = await engine.get_learning_analytics("u1")
            analytics["learning_progress"]  # 0.0 – 1.0
        """
        events = await self.event_store.query(user_id, limit=ANALYTICS_EVENT_LIMIT)
        patterns = await self.get_user_patterns(user_id)
        predictions = await self.get_user_predictions(user_id)
        insights = await self.get_recent_insights(user_id)

        recent_confidence = _mean([e.confidence for e in events[:PROGRESS_RECENT_EVENTS]])
        pattern_strength = _mean([p.strength for p in patterns])

        return {
            "total_events": len(events),
            "event_types": dict(Counter(e.event_type.value for e in events)),
            "patterns": len(patterns),
            "predictions": len(predictions),
            "confidence": _mean([e.confidence for e in events]),
            "learning_progress": (recent_confidence + pattern_strength) / 2,
            "recent_insights": [i.to_dict() for i in insights],
        }
