import pytest

from lifetwin.core.orchestrator import (
    FALLBACK_CONFIDENCE,
    FALLBACK_RESPONSE,
    EngineOrchestrator,
    ProviderRole,
    contains_sensitive_content,
    select_role,
)
from tests.conftest import FailingEngine, RecordingEngine

pytestmark = pytest.mark.asyncio


async def test_sensitive_content_always_routes_private():
    assert select_role("high", "what is my bank password") is ProviderRole.PRIVATE
    assert select_role("low", "book my medical checkup") is ProviderRole.PRIVATE


async def test_complexity_picks_between_default_and_high_capability():
    assert select_role("high", "plan my quarter") is ProviderRole.HIGH_CAPABILITY
    assert select_role("medium", "plan my quarter") is ProviderRole.DEFAULT


async def test_sensitive_keywords_are_case_insensitive():
    assert contains_sensitive_content("My SSN is on file")
    assert not contains_sensitive_content("")


async def test_generate_uses_the_role_engine(engines):
    orchestrator = EngineOrchestrator(engines)
    history = [{"role": "user", "content": "earlier"}]

    result = await orchestrator.generate(ProviderRole.PRIVATE, "prompt", history)

    assert result.response == "Private reply."
    assert result.provider == "local"
    assert not result.fallback
    assert engines[ProviderRole.PRIVATE].prompts == ["prompt"]
    assert engines[ProviderRole.PRIVATE].contexts == [history]
    assert engines[ProviderRole.DEFAULT].prompts == []


async def test_percentage_confidence_is_normalized():
    orchestrator = EngineOrchestrator({ProviderRole.DEFAULT: RecordingEngine("openai", confidence=85)})
    result = await orchestrator.generate(ProviderRole.DEFAULT, "prompt")
    assert result.confidence == pytest.approx(0.85)


async def test_engine_failure_degrades_to_fallback():
    orchestrator = EngineOrchestrator({ProviderRole.HIGH_CAPABILITY: FailingEngine()})

    result = await orchestrator.generate(ProviderRole.HIGH_CAPABILITY, "prompt")

    assert result.fallback
    assert result.response == FALLBACK_RESPONSE
    assert result.confidence == FALLBACK_CONFIDENCE
    assert result.provider == "anthropic"


async def test_available_reports_each_provider(engines):
    engines[ProviderRole.HIGH_CAPABILITY] = FailingEngine()
    status = EngineOrchestrator(engines).available()
    assert status == {"local": True, "anthropic": False, "openai": True}
