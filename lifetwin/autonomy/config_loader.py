"""
config_loader.py

Loads and validates autonomy.yaml using PyYAML.
Returns one threshold rule per gated action.
Supports hot reload via reload(), which re-reads the file without restarting.
Part of LifeTwin — Adaptive Personalization Core.
"""

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from lifetwin.autonomy.types import AutonomyCategory, GatedAction


@dataclass(frozen=True)
class ThresholdRule:
    """Floor / ceiling pair for one gated action, scored under one category."""

    action: GatedAction
    category: AutonomyCategory
    floor: int
    ceiling: int


class AutonomyConfigLoader:
    """
    Loader for autonomy.yaml.

    Provides:
        - load(path): initial load with validation
        - reload(): hot-reload from disk without restarting
        - rule(action): the threshold rule for one gated action
        - rules(): every rule

    Thread-safe via a reentrant lock.

    Example:
        loader = AutonomyConfigLoader()
        loader.load(config.AUTONOMY_CONFIG_PATH)
        rule = loader.rule(GatedAction.SCHEDULE)
    """

    def __init__(self) -> None:
        self._rules: dict[GatedAction, ThresholdRule] = {}
        self._path: Path | None = None
        self._lock = threading.RLock()

    def load(self, path: str | Path) -> dict[GatedAction, ThresholdRule]:
        """
        Load autonomy.yaml from disk, validate, and cache the result.

        Raises:
            FileNotFoundError: If the YAML file does not exist.
            ValueError: If an action is missing or a threshold is out of range.
            yaml.YAMLError: If the file contains invalid YAML.
        """
        resolved = Path(path).resolve()
        if not resolved.is_file():
            raise FileNotFoundError(
                f"[LifeTwin Autonomy] Config file not found: {resolved}\n"
                f"  → Set AUTONOMY_CONFIG or restore the packaged autonomy.yaml."
            )

        with self._lock:
            self._path = resolved
            self._rules = self._validate(self._read_yaml(resolved))
            return dict(self._rules)

    def reload(self) -> dict[GatedAction, ThresholdRule]:
        """
        Re-read and re-validate the file last passed to load().

        Raises:
            RuntimeError: If load() was never called first.
        """
        with self._lock:
            if self._path is None:
                raise RuntimeError(
                    "[LifeTwin Autonomy] Cannot reload: load() has not been called yet."
                )
            self._rules = self._validate(self._read_yaml(self._path))
            return dict(self._rules)

    def rule(self, action: GatedAction) -> ThresholdRule:
        with self._lock:
            if action not in self._rules:
                raise KeyError(f"[LifeTwin Autonomy] No threshold rule for '{action.value}'.")
            return self._rules[action]

    def rules(self) -> dict[GatedAction, ThresholdRule]:
        with self._lock:
            return dict(self._rules)

    @property
    def loaded(self) -> bool:
        return bool(self._rules)

    @property
    def path(self) -> Path | None:
        return self._path

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _read_yaml(path: Path) -> dict[str, Any]:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if not isinstance(data, dict):
            raise ValueError(
                f"[LifeTwin Autonomy] Expected a YAML mapping at top level, got {type(data).__name__}."
            )
        return data

    @staticmethod
    def _validate(raw: dict[str, Any]) -> dict[GatedAction, ThresholdRule]:
        """
        Validate the parsed YAML and build one ThresholdRule per GatedAction.

        Raises:
            ValueError: If any action is missing or any rule is malformed.
        """
        section = raw.get("autonomy")
        if not isinstance(section, dict):
            raise ValueError("[LifeTwin Autonomy] YAML must have a top-level 'autonomy' mapping.")

        missing = [a.value for a in GatedAction if a.value not in section]
        if missing:
            raise ValueError(f"[LifeTwin Autonomy] Missing rules for actions: {missing}")

        rules: dict[GatedAction, ThresholdRule] = {}
        errors: list[str] = []
        for action in GatedAction:
            entry = section[action.value]
            if not isinstance(entry, dict):
                errors.append(f"  Rule '{action.value}' must be a mapping.")
                continue
            try:
                category = AutonomyCategory(entry.get("category"))
            except ValueError:
                errors.append(f"  Rule '{action.value}' has unknown category {entry.get('category')!r}.")
                continue
            floor, ceiling = entry.get("floor"), entry.get("ceiling")
            if not isinstance(floor, int) or not isinstance(ceiling, int):
                errors.append(f"  Rule '{action.value}' needs integer 'floor' and 'ceiling'.")
                continue
            if not 0 <= floor <= ceiling <= 100:
                errors.append(
                    f"  Rule '{action.value}' needs 0 <= floor <= ceiling <= 100 (got {floor}/{ceiling})."
                )
                continue
            rules[action] = ThresholdRule(action=action, category=category, floor=floor, ceiling=ceiling)

        if errors:
            joined = "\n".join(errors)
            raise ValueError(f"[LifeTwin Autonomy] Validation errors in autonomy.yaml:\n{joined}")

        return rules


# ---------------------------------------------------------------------------
# Module-level singleton instance
# ---------------------------------------------------------------------------
_loader = AutonomyConfigLoader()


def load(path: str | Path) -> dict[GatedAction, ThresholdRule]:
    return _loader.load(path)


def reload() -> dict[GatedAction, ThresholdRule]:
    return _loader.reload()


def get_loader() -> AutonomyConfigLoader:
    """Return the module-level loader shared by the default gate."""
    return _loader
