"""
local_engine.py

Ollama local model engine.
Runs entirely on localhost, so queries touching sensitive data
(passwords, banking, health) are routed here and never leave the machine.
Part of LifeTwin — Adaptive Personalization Core.
"""

import logging
from typing import Any, Optional

import requests

from lifetwin import config
from lifetwin.engines.base import BaseEngine
from lifetwin.exceptions import EngineError

_log = logging.getLogger("lifetwin.engines")
if not _log.handlers:
    _handler = logging.FileHandler(config.LOGS_DIR / "engines.log", encoding="utf-8")
    _handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
    _log.addHandler(_handler)
    _log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

# Seconds allowed for the /api/tags health probe
HEALTH_TIMEOUT = 5


class LocalEngine(BaseEngine):
    """
    Private engine served by a local Ollama daemon. No credentials.

    Example:
        engine = LocalEngine(model="llama3.2")
        engine.generate("where did I store my tax papers?", [])
    """

    confidence = 0.7

    def __init__(self, model: str | None = None, base_url: str | None = None) -> None:
        self.model = model or config.OLLAMA_MODEL
        self.base_url = (base_url or config.OLLAMA_BASE_URL).rstrip("/")

    def get_name(self) -> str:
        return "local"

    def _chat_body(self, prompt: str, context: list[dict], options: dict[str, Any]) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": self.format_messages(prompt, context),
            "stream": False,
            "options": {
                "temperature": options.get("temperature", 0.7),
                "num_predict": options.get("max_tokens", 1000),
            },
        }

    def generate(self, prompt: str, context: list[dict], options: Optional[dict[str, Any]] = None) -> str:
        url = f"{self.base_url}/api/chat"
        try:
            response = requests.post(url, json=self._chat_body(prompt, context, options or {}), timeout=config.ENGINE_TIMEOUT)
            response.raise_for_status()
            body = response.json()
        except requests.exceptions.Timeout as exc:
            _log.error("OLLAMA_TIMEOUT | url=%s", url)
            raise EngineError(self.get_name(), "request timed out") from exc
        except requests.exceptions.RequestException as exc:
            _log.error("OLLAMA_FAILED | url=%s | error=%s", url, exc)
            raise EngineError(self.get_name(), f"Ollama error: {exc}") from exc
        except ValueError as exc:
            raise EngineError(self.get_name(), "response was not valid JSON") from exc

        text = (body.get("message") or {}).get("content") or ""
        _log.info("OLLAMA_OK | model=%s | chars=%d", self.model, len(text))
        return text

    def is_available(self) -> bool:
        try:
            return requests.get(f"{self.base_url}/api/tags", timeout=HEALTH_TIMEOUT).status_code == 200
        except requests.exceptions.RequestException as exc:
            _log.debug("OLLAMA_UNAVAILABLE | error=%s", exc)
            return False
