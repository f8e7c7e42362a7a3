"""
base.py

Abstract base class that all text-generation engines must implement.
Defines the standard interface for generating responses and health checks
across all providers, plus the async process() call the twin uses.
Part of LifeTwin — Adaptive Personalization Core.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from lifetwin.learning.types import normalize_confidence


@dataclass(frozen=True)
class EngineResult:
    """
    Output of one engine call.

    Attributes:
        response: Generated text.
        confidence: Confidence on the 0–1 scale.
        reasoning: Short note on how the response was produced.
        engine: Name of the engine that produced it.
    """

    response: str
    confidence: float
    reasoning: str
    engine: str


class BaseEngine(ABC):
    """
    Abstract base class for all text-generation engines.

    Every engine (OpenAI, Claude, Ollama) must subclass this and implement
    all abstract methods so the orchestrator can route between them.
    generate() raises EngineError on failure; callers decide the fallback.

    Example:
        class MyEngine(BaseEngine):
            def generate(self, prompt, context, options=None):
                return "response"
            def is_available(self):
                return True
            def get_name(self):
                return "mine"
    """

    # Confidence reported for a successful generation. Engines reporting
    # 0–100 are normalized at this boundary.
    confidence: float = 0.8

    @abstractmethod
    def generate(self, prompt: str, context: list[dict], options: Optional[dict[str, Any]] = None) -> str:
        """
        Generate a complete response.

        Args:
            prompt: The instruction or user message.
            context: A list of prior message dicts (role, content).
            options: Provider options; "temperature" and "max_tokens" are honoured.

        Returns:
            The full response string.

        Raises:
            EngineError: If the provider is unreachable or returns an error.
        """
        ...

    @abstractmethod
    def is_available(self) -> bool:
        """Return True if this engine can currently accept requests."""
        ...

    @abstractmethod
    def get_name(self) -> str:
        """Return the name identifier, e.g. "openai", "claude", or "local"."""
        ...

    async def process(
        self,
        request: str,
        context: Optional[list[dict]] = None,
        options: Optional[dict[str, Any]] = None,
    ) -> EngineResult:
        """
        Run generate() off the event loop and wrap the result.

        No deadline is imposed here; the HTTP client timeout bounds each call.

        Example:
            result = await engine.process(prompt, [], {"temperature": 0.7})
            result.response, result.confidence
        """
        text = await asyncio.to_thread(self.generate, request, context or [], options or {})
        return EngineResult(
            response=text,
            confidence=normalize_confidence(self.confidence),
            reasoning=f"Generated by the {self.get_name()} engine",
            engine=self.get_name(),
        )

    def format_messages(self, prompt: str, context: list[dict]) -> list[dict]:
        """
        Convert context into standard OpenAI message format and append the prompt.

        Example:
            messages = engine.format_messages(
                "What is on my calendar?",
                [{"role": "system", "content": "You are my digital twin."}]
            )
            # [{"role": "system", "content": "You are my digital twin."},
            #  {"role": "user", "content": "What is on my calendar?"}]
        """
        messages = []
        for msg in context:
            role = msg.get("role", "user")
            content = msg.get("content", "")
            if role in ("system", "user", "assistant") and content:
                messages.append({"role": role, "content": content})
        messages.append({"role": "user", "content": prompt})
        return messages
