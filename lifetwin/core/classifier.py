"""
classifier.py

Query classification for the digital twin.
QueryClassifier is the pluggable interface; KeywordQueryClassifier is the
default rule-based implementation. The twin only depends on the
QueryAnalysis it returns, so a different classifier can be swapped in
without touching the pipeline.
Part of LifeTwin — Adaptive Personalization Core.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from lifetwin.core.context import ContextPattern, Relationship, UserContext, modules_mentioned

URGENCY_LEVELS = ("low", "medium", "high")

# Checked in order; the first matching rule wins
QUERY_TYPE_RULES: list[tuple[str, tuple[str, ...]]] = [
    ("scheduling", ("schedule", "calendar")),
    ("communication", ("message", "send", "email")),
    ("organization", ("organize", "file", "folder")),
    ("analysis", ("analyze", "report", "summary")),
    ("task_management", ("task", "todo", "remind")),
    ("question", ("?", "how", "what", "why")),
]

ACTION_WORDS = ("schedule", "create", "send", "organize", "delete", "update", "remind", "notify")

_HIGH_URGENCY = re.compile(r"urgent|asap|\bnow\b")
_MEDIUM_URGENCY = re.compile(r"soon|today")

LONG_QUERY_WORDS = 10
MANY_PATTERNS = 3


@dataclass
class QueryAnalysis:
    """
    What the twin understood about a query.

    Attributes:
        query_type: scheduling | communication | organization | analysis |
                    task_management | question | general
        scope_type: single_module | cross_module
        modules: Modules in scope. Falls back to the current focus module.
        urgency: low | medium | high
        complexity: low | medium | high
    """

    query_type: str
    scope_type: str
    modules: list[str]
    urgency: str
    complexity: str
    requires_action: bool = False
    module_context: Optional[str] = None
    relevant_patterns: list[ContextPattern] = field(default_factory=list)
    relevant_relationships: list[Relationship] = field(default_factory=list)

    @property
    def cross_module(self) -> bool:
        return self.scope_type == "cross_module"


class QueryClassifier(ABC):
    """Turns raw query text plus context into a QueryAnalysis."""

    @abstractmethod
    def classify(
        self,
        query: str,
        context: UserContext,
        current_module: Optional[str] = None,
        urgency: Optional[str] = None,
    ) -> QueryAnalysis:
        ...


def query_type(query_lower: str) -> str:
    for name, keywords in QUERY_TYPE_RULES:
        if any(keyword in query_lower for keyword in keywords):
            return name
    return "general"


def query_scope(query_lower: str, context: UserContext) -> tuple[str, list[str]]:
    modules = modules_mentioned(query_lower)
    scope_type = "cross_module" if len(modules) > 1 else "single_module"
    return scope_type, modules or [context.current_focus.module]


def infer_urgency(query_lower: str, explicit: Optional[str] = None) -> str:
    """
    Explicit urgency from the caller wins; otherwise infer from keywords.
    Unknown explicit values are ignored.

    Example:
        infer_urgency("do it now", "low")   # "low"
        infer_urgency("urgent: call mum")  # "high"
    """
    if explicit in URGENCY_LEVELS:
        return explicit
    if _HIGH_URGENCY.search(query_lower):
        return "high"
    if _MEDIUM_URGENCY.search(query_lower):
        return "medium"
    return "low"


def requires_action(query_lower: str) -> bool:
    return any(word in query_lower for word in ACTION_WORDS)


def complexity(query_lower: str, scope_type: str, pattern_count: int) -> str:
    """Sum of three signals, each 2 when present and 1 when absent."""
    score = 2 if len(query_lower.split()) > LONG_QUERY_WORDS else 1
    score += 2 if scope_type == "cross_module" else 1
    score += 2 if pattern_count > MANY_PATTERNS else 1
    if score >= 5:
        return "high"
    if score >= 3:
        return "medium"
    return "low"


def is_pattern_relevant(pattern: ContextPattern, query_lower: str, kind: str) -> bool:
    return (
        any(module in query_lower for module in pattern.modules)
        or pattern.type == kind
        or (bool(pattern.pattern) and pattern.pattern.lower() in query_lower)
    )


def is_relationship_relevant(relationship: Relationship, query_lower: str, kind: str) -> bool:
    return (bool(relationship.name) and relationship.name.lower() in query_lower) or (
        kind == "communication" and "chat" in relationship.modules
    )


class KeywordQueryClassifier(QueryClassifier):
    """
    Keyword rules over the lower-cased query.

    Example:
        analysis = KeywordQueryClassifier().classify("schedule a meeting tomorrow", ctx)
        analysis.query_type  # "scheduling"
        analysis.modules     # ["household"]
    """

    def classify(
        self,
        query: str,
        context: UserContext,
        current_module: Optional[str] = None,
        urgency: Optional[str] = None,
    ) -> QueryAnalysis:
        query_lower = (query or "").lower()
        kind = query_type(query_lower)
        scope_type, modules = query_scope(query_lower, context)
        patterns = [p for p in context.patterns if is_pattern_relevant(p, query_lower, kind)]
        relationships = [r for r in context.relationships if is_relationship_relevant(r, query_lower, kind)]

        return QueryAnalysis(
            query_type=kind,
            scope_type=scope_type,
            modules=modules,
            urgency=infer_urgency(query_lower, urgency),
            complexity=complexity(query_lower, scope_type, len(patterns)),
            requires_action=requires_action(query_lower),
            module_context=current_module,
            relevant_patterns=patterns,
            relevant_relationships=relationships,
        )
