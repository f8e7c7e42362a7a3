"""
actions.py

Autonomy-gated action builders.
Each builder is triggered by keywords in the query, asks the autonomy gate
whether the user allows it, and, if so, returns a LifeTwinAction for the
downstream module (calendar, chat, drive, to-do) to execute or put up for
approval.
Part of LifeTwin — Adaptive Personalization Core.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from datetime import date, timedelta
from enum import Enum, unique
from typing import Any, Callable, Optional

from lifetwin.autonomy.gate import AutonomyGate
from lifetwin.autonomy.types import AutonomySettings, GatedAction, GateResult
from lifetwin.core.context import UserContext
from lifetwin.learning.types import new_id, utcnow

KNOWN_PEOPLE = ("sarah", "john", "mike", "jane", "alex", "chris", "sam")

_DURATION = re.compile(r"(\d+)\s*(hour|minute|hr|min)", re.IGNORECASE)


@unique
class ActionType(Enum):
    SCHEDULE = "schedule"
    COMMUNICATE = "communicate"
    ORGANIZE = "organize"
    ANALYZE = "analyze"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class LifeTwinAction:
    """
    An action proposed by the twin.

    Attributes:
        type: What the action does.
        module: Downstream module that executes it.
        requires_approval: True when the user must approve before execution.
        estimated_time: Minutes.
        gate: The autonomy check that admitted the action.
    """

    type: ActionType
    module: str
    description: str
    data: dict[str, Any]
    requires_approval: bool
    confidence: float
    priority: str
    estimated_time: int
    people_affected: list[str] = field(default_factory=list)
    consequences: list[str] = field(default_factory=list)
    approval_reason: Optional[str] = None
    gate: Optional[GateResult] = None
    id: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            self.id = new_id(self.type.value)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        data["gate"] = str(self.gate) if self.gate else None
        return data


# ===========================================================================
# Extraction helpers
# ===========================================================================


def extract_event_title(query: str) -> str:
    words = query.split(" ")
    for idx, word in enumerate(words):
        if "schedule" in word.lower() or "meeting" in word.lower():
            return " ".join(words[idx + 1:idx + 4])
    return "New Event"


def extract_duration(query: str) -> Optional[int]:
    """Minutes mentioned in the query, e.g. "2 hours" → 120."""
    match = _DURATION.search(query)
    if not match:
        return None
    value = int(match.group(1))
    unit = match.group(2).lower()
    return value * 60 if unit in ("hour", "hr") else value


def extract_people(query: str) -> list[str]:
    return [word for word in query.lower().split(" ") if word in KNOWN_PEOPLE]


def extract_message_content(query: str) -> str:
    words = query.split(" ")
    for indicator in ("message", "tell", "send", "notify"):
        for idx, word in enumerate(words):
            if indicator in word.lower():
                return " ".join(words[idx + 1:])
    return query


def extract_organization_criteria(query: str) -> str:
    query = query.lower()
    if "date" in query:
        return "by_date"
    if "type" in query or "extension" in query:
        return "by_type"
    if "project" in query:
        return "by_project"
    return "by_type"


def extract_task_title(query: str) -> str:
    words = query.split(" ")
    for indicator in ("task", "todo", "remind"):
        for idx, word in enumerate(words):
            if indicator in word.lower():
                return " ".join(words[idx + 1:idx + 5])
    return "New Task"


def extract_priority(query: str) -> str:
    query = query.lower()
    if "urgent" in query or "high" in query:
        return "HIGH"
    if "low" in query:
        return "LOW"
    return "MEDIUM"


def extract_due_date(query: str, today: Optional[date] = None) -> Optional[str]:
    """ISO date for "today" or "tomorrow", else None."""
    today = today or utcnow().date()
    query = query.lower()
    if "today" in query:
        return today.isoformat()
    if "tomorrow" in query:
        return (today + timedelta(days=1)).isoformat()
    return None


def extract_analysis_scope(query: str) -> str:
    query = query.lower()
    if "productivity" in query:
        return "productivity"
    if "relationship" in query:
        return "relationships"
    if "file" in query or "organization" in query:
        return "organization"
    if "communication" in query:
        return "communication"
    return "general"


# ===========================================================================
# Builders
# ===========================================================================

# Approval reasons shown to the user when a gated action needs sign-off
APPROVAL_REASONS: dict[GatedAction, str] = {
    GatedAction.SCHEDULE: "User prefers approval for scheduling",
    GatedAction.COMMUNICATE: "User prefers approval before messages are sent",
    GatedAction.ORGANIZE: "User prefers approval for file changes",
    GatedAction.TASK: "User prefers approval for new tasks",
    GatedAction.PRIORITIZE: "User prefers approval for priority changes",
    GatedAction.ANALYZE: "User prefers approval for analysis",
}


class ActionBuilder:
    """
    Builds gated actions for a query.

    Example:
        builder = ActionBuilder(AutonomyGate())
        actions = builder.determine_actions("schedule a meeting with sarah", ctx, settings)
    """

    def __init__(self, gate: Optional[AutonomyGate] = None) -> None:
        self.gate = gate or AutonomyGate()

    def _admit(
        self, action: GatedAction, settings: AutonomySettings, query: str
    ) -> Optional[GateResult]:
        result = self.gate.check(action, settings, {"query": query[:60]})
        return result if result.allowed else None

    def _approval(self, result: GateResult) -> tuple[bool, Optional[str]]:
        if result.requires_approval:
            return True, APPROVAL_REASONS[result.action]
        return False, None

    def schedule(self, query: str, context: UserContext, settings: AutonomySettings) -> Optional[LifeTwinAction]:
        result = self._admit(GatedAction.SCHEDULE, settings, query)
        if result is None:
            return None
        approval, reason = self._approval(result)
        people = extract_people(query)
        return LifeTwinAction(
            type=ActionType.SCHEDULE,
            module="household",
            description="Create calendar event based on request",
            data={
                "title": extract_event_title(query),
                "duration": extract_duration(query) or 60,
                "participants": people,
            },
            requires_approval=approval,
            approval_reason=reason,
            confidence=0.8,
            priority="medium",
            estimated_time=5,
            people_affected=people,
            consequences=["Calendar will be updated", "Participants will be notified"],
            gate=result,
        )

    def communicate(self, query: str, context: UserContext, settings: AutonomySettings) -> Optional[LifeTwinAction]:
        result = self._admit(GatedAction.COMMUNICATE, settings, query)
        if result is None:
            return None
        approval, reason = self._approval(result)
        people = extract_people(query)
        return LifeTwinAction(
            type=ActionType.COMMUNICATE,
            module="chat",
            description="Send message or notification",
            data={
                "recipients": people,
                "message": extract_message_content(query),
                "channel": "chat",
            },
            requires_approval=approval,
            approval_reason=reason,
            confidence=0.7,
            priority="medium",
            estimated_time=2,
            people_affected=people,
            consequences=["Message will be sent", "Recipients will be notified"],
            gate=result,
        )

    def organize(self, query: str, context: UserContext, settings: AutonomySettings) -> Optional[LifeTwinAction]:
        result = self._admit(GatedAction.ORGANIZE, settings, query)
        if result is None:
            return None
        approval, reason = self._approval(result)
        return LifeTwinAction(
            type=ActionType.ORGANIZE,
            module="drive",
            description="Organize files based on patterns",
            data={"action": "organize", "criteria": extract_organization_criteria(query)},
            requires_approval=approval,
            approval_reason=reason,
            confidence=0.75,
            priority="low",
            estimated_time=15,
            consequences=["Files will be reorganized", "Folder structure may change"],
            gate=result,
        )

    def task(self, query: str, context: UserContext, settings: AutonomySettings) -> Optional[LifeTwinAction]:
        result = self._admit(GatedAction.TASK, settings, query)
        if result is None:
            return None
        approval, reason = self._approval(result)
        return LifeTwinAction(
            type=ActionType.CREATE,
            module="todo",
            description="Create task based on request",
            data={
                "title": extract_task_title(query),
                "priority": extract_priority(query),
                "due_date": extract_due_date(query),
            },
            requires_approval=approval,
            approval_reason=reason,
            confidence=0.8,
            priority="medium",
            estimated_time=3,
            consequences=["New task will be created", "Task will appear in To-Do module"],
            gate=result,
        )

    def prioritize(self, query: str, context: UserContext, settings: AutonomySettings) -> Optional[LifeTwinAction]:
        result = self._admit(GatedAction.PRIORITIZE, settings, query)
        if result is None:
            return None
        approval, reason = self._approval(result)
        bulk = "all" in query.lower() or "tasks" in query.lower()
        return LifeTwinAction(
            type=ActionType.ORGANIZE,
            module="todo",
            description="Analyze and prioritize all tasks" if bulk else "Analyze and suggest task priorities",
            data={
                "action": "bulk_prioritize" if bulk else "analyze_priorities",
                "dashboard_id": context.current_focus.dashboard_id,
                "business_id": context.current_focus.business_id,
            },
            requires_approval=approval,
            approval_reason=reason,
            confidence=0.75,
            priority="medium",
            estimated_time=5,
            consequences=["Task priorities will be analyzed", "Priority suggestions will be generated"],
            gate=result,
        )

    def analyze(self, query: str, context: UserContext, settings: AutonomySettings) -> Optional[LifeTwinAction]:
        result = self._admit(GatedAction.ANALYZE, settings, query)
        if result is None:
            return None
        approval, reason = self._approval(result)
        return LifeTwinAction(
            type=ActionType.ANALYZE,
            module="ai",
            description="Generate analysis or insights",
            data={"type": "insight_generation", "scope": extract_analysis_scope(query)},
            requires_approval=approval,
            approval_reason=reason,
            confidence=0.9,
            priority="medium",
            estimated_time=10,
            consequences=["Analysis will be generated", "Insights will be provided"],
            gate=result,
        )

    def _task_or_priority(self, query, context, settings) -> Optional[LifeTwinAction]:
        if any(word in query.lower() for word in ("priorit", "focus", "what should i", "optimize")):
            return self.prioritize(query, context, settings)
        return self.task(query, context, settings)

    def determine_actions(
        self, query: str, context: UserContext, settings: AutonomySettings
    ) -> list[LifeTwinAction]:
        """
        Run every builder whose trigger words occur in the query.

        Returns:
            Admitted actions in trigger order. Withheld builders contribute nothing.
        """
        query_lower = (query or "").lower()
        triggers: list[tuple[tuple[str, ...], Callable[..., Optional[LifeTwinAction]]]] = [
            (("schedule", "meeting", "calendar"), self.schedule),
            (("message", "email", "notify"), self.communicate),
            (("organize", "file", "folder"), self.organize),
            (("task", "todo", "remind"), self._task_or_priority),
            (("analyze", "report", "summary"), self.analyze),
        ]
        actions: list[LifeTwinAction] = []
        for keywords, build in triggers:
            if any(keyword in query_lower for keyword in keywords):
                action = build(query, context, settings)
                if action is not None:
                    actions.append(action)
        return actions
