"""
cache.py

Per-user pattern cache.
Read-through: get_or_load() computes on miss. Bounded LRU over users, with
explicit put() / invalidate() hooks that the learning engine calls whenever
it writes new patterns. One cache belongs to one LearningEngine; there is no
process-wide instance.

Concurrent queries for the same user may both miss and both load. The last
writer wins; no lock is taken.
Part of LifeTwin — Adaptive Personalization Core.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Awaitable, Callable, Optional

from lifetwin import config
from lifetwin.learning.types import LearningPattern

PatternLoader = Callable[[str], Awaitable[list[LearningPattern]]]


class PatternCache:
    """
    Example:
        cache = PatternCache(max_users=100)
        patterns = await cache.get_or_load("u1", load_from_store)
        cache.put("u1", fresh_patterns)
    """

    def __init__(self, max_users: int = config.PATTERN_CACHE_MAX_USERS) -> None:
        if max_users < 1:
            raise ValueError("max_users must be at least 1")
        self._max_users = max_users
        self._entries: OrderedDict[str, list[LearningPattern]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, user_id: str) -> Optional[list[LearningPattern]]:
        patterns = self._entries.get(user_id)
        if patterns is not None:
            self._entries.move_to_end(user_id)
        return patterns

    async def get_or_load(self, user_id: str, loader: PatternLoader) -> list[LearningPattern]:
        cached = self.get(user_id)
        if cached is not None:
            self.hits += 1
            return list(cached)
        self.misses += 1
        patterns = await loader(user_id)
        self.put(user_id, patterns)
        return list(patterns)

    def put(self, user_id: str, patterns: list[LearningPattern]) -> None:
        self._entries[user_id] = list(patterns)
        self._entries.move_to_end(user_id)
        while len(self._entries) > self._max_users:
            self._entries.popitem(last=False)

    def invalidate(self, user_id: str) -> None:
        self._entries.pop(user_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
