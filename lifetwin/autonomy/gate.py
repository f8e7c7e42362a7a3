"""
gate.py

Autonomy policy gate.
Every action the twin proposes must pass through check() first. The user's
score for the action's category is compared against the floor / ceiling from
autonomy.yaml:

    score <  floor            → WITHHELD   (no action produced)
    floor <= score < ceiling  → APPROVAL   (action produced, requires_approval=True)
    score >= ceiling          → AUTONOMOUS (action produced, requires_approval=False)

All checks and results are logged to logs/autonomy.log.
Part of LifeTwin — Adaptive Personalization Core.
"""

import logging
from typing import Any

from lifetwin import config
from lifetwin.autonomy import config_loader
from lifetwin.autonomy.config_loader import AutonomyConfigLoader
from lifetwin.autonomy.types import AutonomySettings, GateDecision, GatedAction, GateResult

_log = logging.getLogger("lifetwin.autonomy")
if not _log.handlers:
    _handler = logging.FileHandler(config.LOGS_DIR / "autonomy.log", encoding="utf-8")
    _handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
    _log.addHandler(_handler)
    _log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))


class AutonomyGate:
    """
    Two-tier autonomy gate over a threshold table.

    Args:
        loader: Threshold loader. Defaults to the module-level loader, which
                reads config.AUTONOMY_CONFIG_PATH on first use.

    Example:
        gate = AutonomyGate()
        result = gate.check(GatedAction.SCHEDULE, AutonomySettings(scheduling=50))
        result.requires_approval  # True
    """

    def __init__(self, loader: AutonomyConfigLoader | None = None) -> None:
        self._loader = loader or config_loader.get_loader()

    def _ensure_loaded(self) -> None:
        if not self._loader.loaded:
            self._loader.load(config.AUTONOMY_CONFIG_PATH)

    def check(
        self,
        action: GatedAction,
        settings: AutonomySettings,
        details: dict[str, Any] | None = None,
    ) -> GateResult:
        """
        Decide whether *action* may be proposed for a user with *settings*.

        Args:
            action: The gated action the builder wants to emit.
            settings: The user's autonomy scores.
            details: Optional context for the audit log (query type, module, ...).

        Returns:
            A GateResult carrying the decision and the thresholds applied.
        """
        self._ensure_loaded()
        rule = self._loader.rule(action)
        score = settings.score(rule.category)

        if score < rule.floor:
            decision = GateDecision.WITHHELD
            reason = f"{rule.category.value} autonomy {score} is below floor {rule.floor}"
        elif score < rule.ceiling:
            decision = GateDecision.APPROVAL
            reason = f"{rule.category.value} autonomy {score} is below ceiling {rule.ceiling}; approval required"
        else:
            decision = GateDecision.AUTONOMOUS
            reason = f"{rule.category.value} autonomy {score} meets ceiling {rule.ceiling}"

        result = GateResult(
            action=action,
            category=rule.category,
            score=score,
            floor=rule.floor,
            ceiling=rule.ceiling,
            decision=decision,
            reason=reason,
        )
        _log_check(result, details or {})
        return result


def _log_check(result: GateResult, details: dict[str, Any]) -> None:
    """Audit-log every gate check and its outcome."""
    detail_str = ", ".join(f"{k}={v}" for k, v in details.items()) if details else "(none)"
    _log.info(
        "CHECK %s | %s | details: %s | reason: %s",
        result.decision.value.upper(), result.action.value, detail_str, result.reason,
    )


_default_gate: AutonomyGate | None = None


def check(action: GatedAction, settings: AutonomySettings, details: dict[str, Any] | None = None) -> GateResult:
    """
    Check an action against the packaged threshold table (module-level convenience).

    Example:
        from lifetwin.autonomy import gate
        gate.check(GatedAction.ANALYZE, AutonomySettings())
    """
    global _default_gate
    if _default_gate is None:
        _default_gate = AutonomyGate()
    return _default_gate.check(action, settings, details)
