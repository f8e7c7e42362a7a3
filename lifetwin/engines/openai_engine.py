"""
openai_engine.py

OpenAI chat-completions engine. The twin's default engine.
Uses the official OpenAI SDK, authenticated by OPENAI_API_KEY.
Part of LifeTwin — Adaptive Personalization Core.
"""

from __future__ import annotations

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


class OpenAIEngine(BaseEngine):
    """
    Engine for OpenAI chat models.
    Best suited for: everyday queries of low and medium complexity.
    """

    confidence = 0.8

    def __init__(self, model: str | None = None, api_key: str | None = None) -> None:
        """
        Args:
            model: OpenAI model name. Defaults to config.OPENAI_MODEL.
            api_key: API key. Defaults to config.OPENAI_API_KEY.
        """
        self.model = model or config.OPENAI_MODEL
        self._api_key = api_key if api_key is not None else config.OPENAI_API_KEY
        self._client = None

    def get_name(self) -> str:
        return "openai"

    def _get_client(self):
        """Create or reuse the SDK client."""
        if self._client is not None:
            return self._client
        if not self._api_key:
            raise EngineError(self.get_name(), "OPENAI_API_KEY is not configured")

        from openai import OpenAI

        self._client = OpenAI(api_key=self._api_key, timeout=config.ENGINE_TIMEOUT)
        return self._client

    def generate(self, prompt: str, context: list[dict], options: Optional[dict[str, Any]] = None) -> str:
        client = self._get_client()
        options = options or {}
        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=self.format_messages(prompt, context),
                temperature=options.get("temperature", 0.7),
                max_tokens=options.get("max_tokens", 1000),
            )
        except Exception as exc:
            _log.error("OpenAI generate error: %s", exc)
            raise EngineError(self.get_name(), str(exc)) from exc

        if not response.choices:
            raise EngineError(self.get_name(), "response contained no choices")
        result = response.choices[0].message.content or ""
        _log.info("OpenAI generate: %d chars returned", len(result))
        return result

    def is_available(self) -> bool:
        if not self._api_key:
            return False
        try:
            self._get_client().models.list()
            return True
        except Exception as exc:
            _log.debug("OpenAI engine unavailable: %s", exc)
            return False
