"""
config.py

Typed settings for LifeTwin, read once from the environment (and a .env file
in the working directory, if present). Grouped by concern: engines, storage,
learning, general. Engine credentials are only checked when an engine is
actually about to be used.
Part of LifeTwin — Adaptive Personalization Core.
"""

import os
import sys
from pathlib import Path
from typing import Callable, TypeVar

from dotenv import load_dotenv

load_dotenv(Path.cwd() / ".env")

_T = TypeVar("_T")


def _get_optional(key: str, default: str = "") -> str:
    """Stripped string value of *key*; blank counts as unset."""
    return os.getenv(key, default).strip() or default


def _get_bool(key: str, default: bool = False) -> bool:
    """Boolean flag. Accepts true/1/yes/on in any case."""
    raw = _get_optional(key).lower()
    return raw in ("true", "1", "yes", "on") if raw else default


def _get_number(key: str, default: _T, cast: Callable[[str], _T]) -> _T:
    """
    Numeric value of *key* parsed with *cast*.

    Unparseable values fall back to *default* instead of failing at import.

    Example:
        _get_number("ENGINE_TIMEOUT", 120, int)
    """
    raw = _get_optional(key)
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        print(f"[LifeTwin Config] Ignoring invalid {key}={raw!r}, using {default}.", file=sys.stderr)
        return default


# ===========================================================================
# Section 1: Text-generation engines
# ===========================================================================

# Default engine: OpenAI chat completions
OPENAI_API_KEY: str = _get_optional("OPENAI_API_KEY")
OPENAI_MODEL: str = _get_optional("OPENAI_MODEL", "gpt-4o-mini")

# High-capability engine: Anthropic Claude
ANTHROPIC_API_KEY: str = _get_optional("ANTHROPIC_API_KEY")
ANTHROPIC_MODEL: str = _get_optional("ANTHROPIC_MODEL", "claude-sonnet-4-20250514")

# Private engine: Ollama, local, never leaves the machine
OLLAMA_BASE_URL: str = _get_optional("OLLAMA_BASE_URL", "http://localhost:11434")
OLLAMA_MODEL: str = _get_optional("OLLAMA_MODEL", "llama3.2")

# HTTP client timeout only; the twin pipeline itself sets no deadline
ENGINE_TIMEOUT: int = _get_number("ENGINE_TIMEOUT", 120, int)

# ===========================================================================
# Section 2: Storage
# ===========================================================================

DATABASE_URL: str = _get_optional("DATABASE_URL", "sqlite:///lifetwin.db")

# ===========================================================================
# Section 3: Learning
# ===========================================================================

PATTERN_WINDOW_DAYS: int = _get_number("PATTERN_WINDOW_DAYS", 30, int)
PATTERN_WINDOW_LIMIT: int = _get_number("PATTERN_WINDOW_LIMIT", 100, int)
PATTERN_CACHE_MAX_USERS: int = _get_number("PATTERN_CACHE_MAX_USERS", 1000, int)

FACT_EXTRACTION_ENABLED: bool = _get_bool("FACT_EXTRACTION_ENABLED", default=True)
FACT_EXTRACTION_MAX_RETRIES: int = _get_number("FACT_EXTRACTION_MAX_RETRIES", 3, int)
FACT_EXTRACTION_BACKOFF: float = _get_number("FACT_EXTRACTION_BACKOFF", 0.5, float)

# ===========================================================================
# Section 4: General Config
# ===========================================================================

DEFAULT_USER_ID: str = _get_optional("DEFAULT_USER_ID", "owner")
LOG_LEVEL: str = _get_optional("LOG_LEVEL", "INFO")

# ===========================================================================
# Project paths (derived)
# ===========================================================================

PACKAGE_ROOT: Path = Path(__file__).resolve().parent
LOGS_DIR: Path = Path(_get_optional("LOGS_DIR", str(Path.cwd() / "logs")))
AUTONOMY_CONFIG_PATH: Path = Path(
    _get_optional("AUTONOMY_CONFIG", str(PACKAGE_ROOT / "autonomy" / "autonomy.yaml"))
)

LOGS_DIR.mkdir(parents=True, exist_ok=True)


# ===========================================================================
# Credential checks and debug dump
# ===========================================================================

# Engine key → names of the settings it cannot run without
ENGINE_CREDENTIALS: dict[str, tuple[str, ...]] = {
    "openai": ("OPENAI_API_KEY",),
    "anthropic": ("ANTHROPIC_API_KEY",),
    "local": (),
}

_SECRET_KEYS = frozenset(name for names in ENGINE_CREDENTIALS.values() for name in names)


def validate_required_for_engine(engine: str) -> None:
    """
    Exit with a readable message if *engine* is missing a credential.

    Args:
        engine: "openai", "anthropic", or "local". Unknown names pass.

    Raises:
        SystemExit: If a required setting is empty.
    """
    missing = [name for name in ENGINE_CREDENTIALS.get(engine, ()) if not globals().get(name)]
    if missing:
        print(
            f"[LifeTwin Config Error] Engine '{engine}' needs {', '.join(missing)}.\n"
            f"  → Set it in the environment or in .env.",
            file=sys.stderr,
        )
        raise SystemExit(1)


def as_dict() -> dict[str, str | int | float | bool]:
    """
    Every setting by its environment name, with secrets reduced to presence.

    Example:
        as_dict()["OPENAI_API_KEY"]  # "***set***" or ""
    """
    values: dict[str, str | int | float | bool] = {
        name: globals()[name]
        for name in (
            "OPENAI_API_KEY", "OPENAI_MODEL", "ANTHROPIC_API_KEY", "ANTHROPIC_MODEL",
            "OLLAMA_BASE_URL", "OLLAMA_MODEL", "ENGINE_TIMEOUT", "DATABASE_URL",
            "PATTERN_WINDOW_DAYS", "PATTERN_WINDOW_LIMIT",
            "PATTERN_CACHE_MAX_USERS", "FACT_EXTRACTION_ENABLED",
            "FACT_EXTRACTION_MAX_RETRIES", "FACT_EXTRACTION_BACKOFF",
            "DEFAULT_USER_ID", "LOG_LEVEL",
        )
    }
    for name in _SECRET_KEYS:
        values[name] = "***set***" if values[name] else ""
    values["LOGS_DIR"] = str(LOGS_DIR)
    values["AUTONOMY_CONFIG"] = str(AUTONOMY_CONFIG_PATH)
    return values
