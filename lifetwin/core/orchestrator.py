"""
orchestrator.py

Routes each twin query to one of three named engines by a static policy:

    sensitive keywords (password, ssn, ...)  → private          (local Ollama)
    high complexity                          → high_capability  (Anthropic)
    everything else                          → default          (OpenAI)

Engine failures never propagate: generate() degrades to a fixed fallback
response with confidence 0.6.
Part of LifeTwin — Adaptive Personalization Core.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, unique
from typing import Any, Optional

from lifetwin import config
from lifetwin.engines.base import BaseEngine
from lifetwin.engines.claude_engine import ClaudeEngine
from lifetwin.engines.local_engine import LocalEngine
from lifetwin.engines.openai_engine import OpenAIEngine

_log = logging.getLogger("lifetwin.twin")
if not _log.handlers:
    _handler = logging.FileHandler(config.LOGS_DIR / "twin.log", encoding="utf-8")
    _handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
    _log.addHandler(_handler)
    _log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))


@unique
class ProviderRole(Enum):
    DEFAULT = "default"
    HIGH_CAPABILITY = "high_capability"
    PRIVATE = "private"


SENSITIVE_KEYWORDS = ("password", "ssn", "credit card", "bank", "medical", "health")

# role → provider key reported in response metadata
PROVIDER_KEYS: dict[ProviderRole, str] = {
    ProviderRole.PRIVATE: "local",
    ProviderRole.HIGH_CAPABILITY: "anthropic",
    ProviderRole.DEFAULT: "openai",
}

_ENGINE_CLASS_MAP: dict[str, type[BaseEngine]] = {
    "local": LocalEngine,
    "anthropic": ClaudeEngine,
    "openai": OpenAIEngine,
}

FALLBACK_RESPONSE = (
    "I understand your request and I'm working to provide the best response. "
    "(AI provider temporarily unavailable)"
)
FALLBACK_CONFIDENCE = 0.6
FALLBACK_REASONING = "Fallback response due to AI provider connection issue"

DEFAULT_OPTIONS: dict[str, Any] = {"temperature": 0.7, "max_tokens": 1000}


def contains_sensitive_content(query: str) -> bool:
    query_lower = (query or "").lower()
    return any(keyword in query_lower for keyword in SENSITIVE_KEYWORDS)


def select_role(complexity: str, query: str) -> ProviderRole:
    """
    Pick the provider role for a query.

    Sensitive content always wins over complexity.

    Example:
        select_role("high", "what is my bank password")  # ProviderRole.PRIVATE
        select_role("high", "plan my quarter")           # ProviderRole.HIGH_CAPABILITY
    """
    if contains_sensitive_content(query):
        return ProviderRole.PRIVATE
    if complexity == "high":
        return ProviderRole.HIGH_CAPABILITY
    return ProviderRole.DEFAULT


@dataclass(frozen=True)
class GenerationResult:
    response: str
    confidence: float
    reasoning: str
    provider: str
    fallback: bool = False


class EngineOrchestrator:
    """
    Holds one engine per role and calls it with a guarded fallback.

    Args:
        engines: Optional role → engine overrides. Roles not given are
                 created lazily from the engine class map.

    Example:
        orchestrator = EngineOrchestrator()
        result = await orchestrator.generate(ProviderRole.DEFAULT, prompt)
    """

    def __init__(self, engines: Optional[dict[ProviderRole, BaseEngine]] = None) -> None:
        self._engines: dict[ProviderRole, BaseEngine] = dict(engines or {})

    def engine_for(self, role: ProviderRole) -> Optional[BaseEngine]:
        """Get or create the engine serving *role*. Returns None if it cannot be created."""
        if role in self._engines:
            return self._engines[role]

        key = PROVIDER_KEYS[role]
        try:
            instance = _ENGINE_CLASS_MAP[key]()
        except Exception as exc:
            _log.error("Failed to create engine '%s': %s", key, exc)
            return None
        self._engines[role] = instance
        return instance

    def available(self) -> dict[str, bool]:
        """Provider key → availability, for status displays."""
        status: dict[str, bool] = {}
        for role, key in PROVIDER_KEYS.items():
            engine = self.engine_for(role)
            status[key] = bool(engine and engine.is_available())
        return status

    async def generate(
        self,
        role: ProviderRole,
        prompt: str,
        context: Optional[list[dict]] = None,
        options: Optional[dict[str, Any]] = None,
    ) -> GenerationResult:
        provider = PROVIDER_KEYS[role]
        engine = self.engine_for(role)
        try:
            if engine is None:
                raise RuntimeError(f"no engine for provider '{provider}'")
            result = await engine.process(prompt, context or [], {**DEFAULT_OPTIONS, **(options or {})})
        except Exception as exc:
            _log.warning("ENGINE_FALLBACK | provider=%s | error=%s", provider, exc)
            return GenerationResult(
                response=FALLBACK_RESPONSE,
                confidence=FALLBACK_CONFIDENCE,
                reasoning=FALLBACK_REASONING,
                provider=provider,
                fallback=True,
            )

        _log.info(
            "ENGINE_CALL | provider=%s | engine=%s | chars=%d",
            provider, result.engine, len(result.response),
        )
        return GenerationResult(
            response=result.response,
            confidence=result.confidence,
            reasoning=result.reasoning or "Generated based on your digital life patterns and personality",
            provider=provider,
        )
