"""
claude_engine.py

Anthropic Claude engine using API key authentication.
The twin's high-capability engine, used for high-complexity queries.
Part of LifeTwin — Adaptive Personalization Core.
"""

import logging
from typing import Any, Optional

from lifetwin import config
from lifetwin.engines.base import BaseEngine
from lifetwin.exceptions import EngineError

_log = logging.getLogger("lifetwin.engines")
if not _log.handlers:
    _handler = logging.FileHandler(config.LOGS_DIR / "engines.log", encoding="utf-8")
    _handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
    _log.addHandler(_handler)
    _log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))


def split_system(messages: list[dict]) -> tuple[Optional[str], list[dict]]:
    """
    Separate system turns from the conversation.

    The Messages API takes the system prompt as its own parameter, so system
    turns are joined into one string and removed from the turn list.
    """
    system = [m["content"] for m in messages if m["role"] == "system"]
    turns = [m for m in messages if m["role"] != "system"]
    return ("\n\n".join(system) or None), turns


class ClaudeEngine(BaseEngine):
    """
    High-capability engine backed by the Anthropic Messages API.
    Chosen for cross-module reasoning and long multi-part requests.
    """

    confidence = 0.85

    def __init__(self, model: str | None = None, api_key: str | None = None) -> None:
        self.model = model or config.ANTHROPIC_MODEL
        self._api_key = api_key if api_key is not None else config.ANTHROPIC_API_KEY
        self._client = None

    def get_name(self) -> str:
        return "claude"

    def _anthropic(self):
        """SDK client, built on first use. Raises EngineError without a key."""
        if self._client is None:
            if not self._api_key:
                raise EngineError(self.get_name(), "ANTHROPIC_API_KEY is not configured")
            from anthropic import Anthropic

            self._client = Anthropic(api_key=self._api_key, timeout=config.ENGINE_TIMEOUT)
            _log.info("CLAUDE_CLIENT | model=%s", self.model)
        return self._client

    def generate(self, prompt: str, context: list[dict], options: Optional[dict[str, Any]] = None) -> str:
        options = options or {}
        system, turns = split_system(self.format_messages(prompt, context))
        request: dict[str, Any] = {
            "model": self.model,
            "messages": turns,
            "max_tokens": options.get("max_tokens", 1000),
            "temperature": options.get("temperature", 0.7),
        }
        if system:
            request["system"] = system

        client = self._anthropic()
        try:
            reply = client.messages.create(**request)
        except Exception as exc:
            _log.error("CLAUDE_FAILED | model=%s | error=%s", self.model, exc)
            raise EngineError(self.get_name(), str(exc)) from exc

        text = "".join(getattr(block, "text", "") for block in reply.content or [] if block.type == "text")
        _log.info("CLAUDE_OK | chars=%d", len(text))
        return text

    def is_available(self) -> bool:
        return bool(self._api_key)
