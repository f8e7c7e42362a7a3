import pytest

from lifetwin.learning import facts as facts_module
from lifetwin.learning.facts import Fact, FactExtractionQueue, FactJob, extract_facts

pytestmark = pytest.mark.asyncio


async def test_extracts_first_person_facts():
    facts = extract_facts(FactJob("u1", "My name is Sam and I live in Lisbon. I work at Acme Corp, mostly remote."))
    assert {(f.category, f.value) for f in facts} == {
        ("name", "Sam"),
        ("location", "Lisbon"),
        ("workplace", "Acme Corp"),
    }


async def test_preferences_stop_at_conjunctions():
    facts = extract_facts(FactJob("u1", "I prefer morning meetings but not on Fridays"))
    assert facts == [Fact("u1", "preference", "morning meetings")]


async def test_queue_processes_jobs_in_background():
    queue = FactExtractionQueue(backoff=0)
    await queue.submit(FactJob("u1", "I live in Porto", module="chat"))
    await queue.drain()

    assert queue.facts_for("u1") == [Fact("u1", "location", "Porto", "chat")]
    await queue.stop()


async def test_failing_extractor_is_retried_then_succeeds():
    attempts = []

    def flaky(job):
        attempts.append(job.attempts)
        if len(attempts) < 3:
            raise RuntimeError("extractor offline")
        return [Fact(job.user_id, "name", "Ana")]

    queue = FactExtractionQueue(extractor=flaky, max_retries=3, backoff=0)
    await queue.submit(FactJob("u1", "hi"))
    await queue.drain()

    assert attempts == [1, 2, 3]
    assert queue.facts_for("u1") == [Fact("u1", "name", "Ana")]
    assert queue.failed_jobs == 0
    await queue.stop()


async def test_job_is_dropped_after_max_retries():
    def broken(job):
        raise RuntimeError("always fails")

    queue = FactExtractionQueue(extractor=broken, max_retries=2, backoff=0)
    await queue.submit(FactJob("u1", "hi"))
    await queue.drain()

    assert queue.failed_jobs == 1
    assert queue.facts_for("u1") == []
    await queue.stop()


async def test_sink_receives_facts():
    received = []

    async def sink(facts):
        received.extend(facts)

    queue = FactExtractionQueue(sink=sink, backoff=0)
    await queue.submit(FactJob("u1", "I love hiking"))
    await queue.drain()

    assert received == [Fact("u1", "preference", "hiking")]
    await queue.stop()


async def test_memory_fallback_is_bounded(monkeypatch):
    monkeypatch.setattr(facts_module, "MEMORY_FACTS_PER_USER", 2)
    monkeypatch.setattr(facts_module, "MEMORY_FACT_USERS", 2)
    queue = FactExtractionQueue(backoff=0)

    for place in ("Porto", "Lisbon", "Braga"):
        await queue.submit(FactJob("u1", f"I live in {place}"))
    await queue.submit(FactJob("u2", "I live in Faro"))
    await queue.submit(FactJob("u3", "I live in Evora"))
    await queue.drain()

    assert queue.facts_for("u1") == []
    assert [f.value for f in queue.facts_for("u2")] == ["Faro"]
    assert [f.value for f in queue.facts_for("u3")] == ["Evora"]
    await queue.stop()


async def test_memory_fallback_keeps_newest_facts(monkeypatch):
    monkeypatch.setattr(facts_module, "MEMORY_FACTS_PER_USER", 2)
    queue = FactExtractionQueue(backoff=0)

    for place in ("Porto", "Lisbon", "Braga"):
        await queue.submit(FactJob("u1", f"I live in {place}"))
    await queue.drain()

    assert [f.value for f in queue.facts_for("u1")] == ["Lisbon", "Braga"]
    await queue.stop()
