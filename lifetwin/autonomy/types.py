"""
types.py

Defines the autonomy categories a user scores, the gated action kinds the
twin can propose, the per-user AutonomySettings table, and the GateResult
returned by every autonomy check.
Part of LifeTwin — Adaptive Personalization Core.
"""

from dataclasses import dataclass, fields
from enum import Enum, unique
from typing import Any


@unique
class AutonomyCategory(Enum):
    """
    Per-user autonomy dimensions, each scored 0–100.

    Usage:
        score = settings.score(AutonomyCategory.SCHEDULING)
    """

    SCHEDULING = "scheduling"
    COMMUNICATION = "communication"
    FILE_MANAGEMENT = "file_management"
    TASK_CREATION = "task_creation"
    DATA_ANALYSIS = "data_analysis"
    CROSS_MODULE_ACTIONS = "cross_module_actions"


@unique
class GatedAction(Enum):
    """Action builders that must pass the autonomy gate. Each has one row in autonomy.yaml."""

    SCHEDULE = "schedule"
    COMMUNICATE = "communicate"
    ORGANIZE = "organize"
    TASK = "task"
    PRIORITIZE = "prioritize"
    ANALYZE = "analyze"


@unique
class GateDecision(Enum):
    WITHHELD = "withheld"
    APPROVAL = "approval"
    AUTONOMOUS = "autonomous"


@dataclass
class AutonomySettings:
    """
    Per-category autonomy scores in [0, 100]. Values outside the range are clamped.

    Example:
        settings = AutonomySettings(scheduling=20)
        settings.score(AutonomyCategory.SCHEDULING)  # 20
    """

    scheduling: int = 50
    communication: int = 30
    file_management: int = 60
    task_creation: int = 50
    data_analysis: int = 80
    cross_module_actions: int = 40

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            try:
                number = int(value)
            except (TypeError, ValueError):
                number = f.default
            setattr(self, f.name, max(0, min(100, number)))

    def score(self, category: AutonomyCategory) -> int:
        return getattr(self, category.value)

    def to_dict(self) -> dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "AutonomySettings":
        """Build settings from a partial mapping; unknown keys are ignored, missing keys defaulted."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known and v is not None})


@dataclass(frozen=True)
class GateResult:
    """
    Result of an autonomy gate check.

    Attributes:
        action: The gated action that was checked.
        category: The autonomy category the action is scored under.
        score: The user's score for that category.
        floor: Below this score the action is withheld.
        ceiling: At or above this score the action runs without approval.
        decision: The resulting GateDecision.
        reason: Human-readable explanation.

    Example:
        result = gate.check(GatedAction.SCHEDULE, settings)
        if result.allowed and result.requires_approval:
            ...
    """

    action: GatedAction
    category: AutonomyCategory
    score: int
    floor: int
    ceiling: int
    decision: GateDecision
    reason: str

    @property
    def allowed(self) -> bool:
        return self.decision is not GateDecision.WITHHELD

    @property
    def requires_approval(self) -> bool:
        return self.decision is GateDecision.APPROVAL

    def __str__(self) -> str:
        return (
            f"[{self.decision.value.upper()}] {self.action.value} "
            f"({self.category.value}={self.score}, floor={self.floor}, ceiling={self.ceiling}): {self.reason}"
        )
