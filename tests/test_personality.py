import pytest

from lifetwin.database.stores import InMemoryPersonalityStore
from lifetwin.learning.personality import (
    EVENT_TYPE_RULES,
    PersonalityAdapter,
    compute_adjustments,
    trait_deltas,
)
from lifetwin.learning.types import EventType, Impact
from tests.conftest import make_event

pytestmark = pytest.mark.asyncio


async def test_critical_correction_scales_deltas_by_confidence_and_impact():
    # 0.9 confidence on the 0–1 scale × critical (2.0) = 1.8
    event = make_event(event_type=EventType.CORRECTION, module="drive", confidence=0.9, impact=Impact.CRITICAL)
    deltas = trait_deltas(event)

    assert deltas["precision"] == pytest.approx(0.072)
    assert deltas["attention_to_detail"] == pytest.approx(0.054)
    assert deltas["organization"] == pytest.approx(0.036)
    assert deltas["efficiency"] == pytest.approx(0.018)


async def test_only_moves_above_threshold_are_adjusted():
    event = make_event(event_type=EventType.CORRECTION, module="drive", confidence=0.9, impact=Impact.CRITICAL)
    adjustments = compute_adjustments(event, {})

    assert {a.trait for a in adjustments} == {"precision", "attention_to_detail"}
    precision = next(a for a in adjustments if a.trait == "precision")
    assert precision.current_value == 0.5
    assert precision.new_value == pytest.approx(0.572)
    assert precision.confidence == 0.7


async def test_event_without_rules_yields_no_adjustments():
    event = make_event(event_type=EventType.PREDICTION, module="learning", confidence=1.0, impact=Impact.CRITICAL)
    assert EVENT_TYPE_RULES[EventType.PREDICTION] == {}
    assert compute_adjustments(event, {}) == []


async def test_clamped_trait_is_not_adjusted():
    event = make_event(event_type=EventType.CORRECTION, module="drive", confidence=1.0, impact=Impact.CRITICAL)
    adjustments = compute_adjustments(event, {"precision": 0.99, "attention_to_detail": 0.5})
    assert [a.trait for a in adjustments] == ["attention_to_detail"]


async def test_adapter_persists_adjusted_traits():
    store = InMemoryPersonalityStore({"u1": {"openness": 0.6}})
    event = make_event(event_type=EventType.CORRECTION, module="drive", confidence=0.9, impact=Impact.CRITICAL)

    adjustments = await PersonalityAdapter(store).adapt(event)

    traits = await store.get("u1")
    assert len(adjustments) == 2
    assert traits["precision"] == pytest.approx(0.572)
    assert traits["openness"] == 0.6
    assert store.last_updated("u1") is not None


async def test_adapter_skips_users_without_profile():
    store = InMemoryPersonalityStore()
    event = make_event(event_type=EventType.CORRECTION, module="drive", confidence=0.9, impact=Impact.CRITICAL)

    assert await PersonalityAdapter(store).adapt(event) == []
    assert await store.get("u1") is None


async def test_small_moves_do_not_write_the_profile():
    store = InMemoryPersonalityStore({"u1": {}})
    event = make_event(event_type=EventType.INTERACTION, module="chat", confidence=0.5, impact=Impact.LOW)

    assert await PersonalityAdapter(store).adapt(event) == []
    assert store.last_updated("u1") is None
