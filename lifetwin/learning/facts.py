"""
facts.py

Background fact extraction.
Interaction events carrying a user query are queued here after the learning
engine has updated patterns and personality. A single asyncio worker pulls
jobs off the queue and runs the extractor with bounded retries and
exponential backoff. Nothing here ever raises into the learning pipeline or
the query response path.
Part of LifeTwin — Adaptive Personalization Core.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections import OrderedDict, deque
from contextlib import suppress
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from lifetwin import config

_log = logging.getLogger("lifetwin.learning")
if not _log.handlers:
    _handler = logging.FileHandler(config.LOGS_DIR / "learning.log", encoding="utf-8")
    _handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
    _log.addHandler(_handler)
    _log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))


@dataclass(frozen=True)
class Fact:
    user_id: str
    category: str  # "name" | "workplace" | "location" | "preference"
    value: str
    module: Optional[str] = None


@dataclass
class FactJob:
    user_id: str
    query: str
    response: str = ""
    module: Optional[str] = None
    attempts: int = 0


FactExtractor = Callable[[FactJob], list[Fact]]
FactSink = Callable[[list[Fact]], Awaitable[None]]

# In-memory fallback bounds when no sink is configured
MEMORY_FACTS_PER_USER = 50
MEMORY_FACT_USERS = 1000

_END = r"(?=[.,!?;]|\s+(?:and|but)\s|$)"
_FACT_PATTERNS: list[tuple[str, re.Pattern]] = [
    ("name", re.compile(r"\b(?i:my name is)\s+([A-Za-z][a-z'\-]*(?:\s+[A-Z][a-z'\-]*)?)")),
    ("workplace", re.compile(r"\bi work (?:at|for)\s+(.+?)" + _END, re.IGNORECASE)),
    ("location", re.compile(r"\bi live in\s+(.+?)" + _END, re.IGNORECASE)),
    ("preference", re.compile(r"\bi (?:prefer|like|love)\s+(.+?)" + _END, re.IGNORECASE)),
]


def extract_facts(job: FactJob) -> list[Fact]:
    """
    Pull first-person facts out of a user query.

    Example:
        extract_facts(FactJob("u1", "My name is Sam and I live in Lisbon."))
        # [Fact("u1", "name", "Sam"), Fact("u1", "location", "Lisbon")]
    """
    facts: list[Fact] = []
    for category, pattern in _FACT_PATTERNS:
        for match in pattern.finditer(job.query or ""):
            value = match.group(1).strip()
            if value:
                facts.append(Fact(user_id=job.user_id, category=category, value=value, module=job.module))
    return facts


class FactExtractionQueue:
    """
    Decoupled fact-extraction worker.

    Args:
        extractor: Callable turning a job into facts. May raise; failures are retried.
        sink: Async callable receiving extracted facts. Without one, the newest
            MEMORY_FACTS_PER_USER facts of the MEMORY_FACT_USERS most recent users
            are kept in memory.
        max_retries: Attempts per job before it is dropped.
        backoff: Base delay in seconds; attempt n waits backoff × 2^(n-1).

    Example:
        queue = FactExtractionQueue()
        await queue.submit(FactJob("u1", "I work at Acme"))
        await queue.drain()
        queue.facts_for("u1")
    """

    def __init__(
        self,
        extractor: FactExtractor = extract_facts,
        sink: Optional[FactSink] = None,
        max_retries: int = config.FACT_EXTRACTION_MAX_RETRIES,
        backoff: float = config.FACT_EXTRACTION_BACKOFF,
    ) -> None:
        self._extractor = extractor
        self._sink = sink
        self._max_retries = max(1, max_retries)
        self._backoff = max(0.0, backoff)
        self._queue: asyncio.Queue[FactJob] = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._facts: OrderedDict[str, deque[Fact]] = OrderedDict()
        self.failed_jobs = 0

    async def submit(self, job: FactJob) -> None:
        """Queue a job and return immediately; the worker starts on first use."""
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run())
        self._queue.put_nowait(job)
        _log.debug("FACT_JOB_QUEUED | user=%s | pending=%d", job.user_id, self._queue.qsize())

    async def drain(self) -> None:
        """Wait until every queued job has been processed or dropped."""
        await self._queue.join()

    async def stop(self) -> None:
        if self._worker is not None:
            self._worker.cancel()
            with suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None

    def facts_for(self, user_id: str) -> list[Fact]:
        return list(self._facts.get(user_id, []))

    def _remember(self, user_id: str, facts: list[Fact]) -> None:
        kept = self._facts.pop(user_id, None) or deque(maxlen=MEMORY_FACTS_PER_USER)
        kept.extend(facts)
        self._facts[user_id] = kept
        while len(self._facts) > MEMORY_FACT_USERS:
            self._facts.popitem(last=False)

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._process(job)
            finally:
                self._queue.task_done()

    async def _process(self, job: FactJob) -> None:
        while job.attempts < self._max_retries:
            job.attempts += 1
            try:
                facts = self._extractor(job)
                if self._sink is not None:
                    await self._sink(facts)
                else:
                    self._remember(job.user_id, facts)
                _log.info(
                    "FACT_EXTRACTION | user=%s | facts=%d | attempt=%d",
                    job.user_id, len(facts), job.attempts,
                )
                return
            except Exception as exc:
                _log.warning(
                    "FACT_EXTRACTION_RETRY | user=%s | attempt=%d/%d | error=%s",
                    job.user_id, job.attempts, self._max_retries, exc,
                )
                if job.attempts < self._max_retries:
                    await asyncio.sleep(self._backoff * (2 ** (job.attempts - 1)))

        self.failed_jobs += 1
        _log.error("FACT_EXTRACTION_DROPPED | user=%s | attempts=%d", job.user_id, job.attempts)
