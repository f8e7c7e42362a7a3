import pytest
import yaml

from lifetwin import config
from lifetwin.autonomy.config_loader import AutonomyConfigLoader
from lifetwin.autonomy.gate import AutonomyGate
from lifetwin.autonomy.types import (
    AutonomyCategory,
    AutonomySettings,
    GateDecision,
    GatedAction,
)

pytestmark = pytest.mark.asyncio


def _write_rules(path, **overrides):
    with open(config.AUTONOMY_CONFIG_PATH, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    for action, values in overrides.items():
        data["autonomy"][action].update(values)
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


async def test_packaged_table_has_a_rule_per_action():
    loader = AutonomyConfigLoader()
    rules = loader.load(config.AUTONOMY_CONFIG_PATH)

    assert set(rules) == set(GatedAction)
    schedule = rules[GatedAction.SCHEDULE]
    assert (schedule.category, schedule.floor, schedule.ceiling) == (AutonomyCategory.SCHEDULING, 30, 70)


@pytest.mark.parametrize(
    "score, decision",
    [
        (20, GateDecision.WITHHELD),
        (30, GateDecision.APPROVAL),
        (50, GateDecision.APPROVAL),
        (70, GateDecision.AUTONOMOUS),
    ],
)
async def test_two_tier_scheduling_gate(gate, score, decision):
    result = gate.check(GatedAction.SCHEDULE, AutonomySettings(scheduling=score))
    assert result.decision is decision
    assert result.allowed is (decision is not GateDecision.WITHHELD)
    assert result.requires_approval is (decision is GateDecision.APPROVAL)


async def test_prioritize_shares_category_with_lower_thresholds(gate):
    settings = AutonomySettings(task_creation=35)
    assert gate.check(GatedAction.TASK, settings).decision is GateDecision.WITHHELD
    assert gate.check(GatedAction.PRIORITIZE, settings).decision is GateDecision.APPROVAL


async def test_default_settings_allow_autonomous_analysis(gate):
    assert gate.check(GatedAction.ANALYZE, AutonomySettings()).decision is GateDecision.AUTONOMOUS


async def test_settings_are_clamped_and_defaulted():
    settings = AutonomySettings.from_dict({"scheduling": 150, "communication": -5, "unknown": 1})
    assert settings.scheduling == 100
    assert settings.communication == 0
    assert settings.file_management == 60


async def test_reload_applies_edited_thresholds(tmp_path):
    path = _write_rules(tmp_path / "autonomy.yaml")
    loader = AutonomyConfigLoader()
    loader.load(path)
    gate = AutonomyGate(loader)
    settings = AutonomySettings(scheduling=50)
    assert gate.check(GatedAction.SCHEDULE, settings).requires_approval

    _write_rules(path, schedule={"ceiling": 40})
    loader.reload()
    assert gate.check(GatedAction.SCHEDULE, settings).decision is GateDecision.AUTONOMOUS


async def test_invalid_thresholds_are_rejected(tmp_path):
    path = _write_rules(tmp_path / "autonomy.yaml", organize={"floor": 90, "ceiling": 10})
    with pytest.raises(ValueError, match="organize"):
        AutonomyConfigLoader().load(path)


async def test_missing_action_is_rejected(tmp_path):
    path = tmp_path / "autonomy.yaml"
    path.write_text(yaml.safe_dump({"autonomy": {"schedule": {"category": "scheduling", "floor": 1, "ceiling": 2}}}))
    with pytest.raises(ValueError, match="Missing rules"):
        AutonomyConfigLoader().load(path)


async def test_reload_before_load_fails():
    with pytest.raises(RuntimeError):
        AutonomyConfigLoader().reload()
