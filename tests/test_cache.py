import pytest

from lifetwin.learning.cache import PatternCache
from lifetwin.learning.types import LearningPattern, PatternType

pytestmark = pytest.mark.asyncio


def _pattern(user_id):
    return LearningPattern(user_id, PatternType.TEMPORAL, 0.8, 0.5, 2)


async def test_read_through_loads_once():
    calls = []

    async def loader(user_id):
        calls.append(user_id)
        return [_pattern(user_id)]

    cache = PatternCache()
    first = await cache.get_or_load("u1", loader)
    second = await cache.get_or_load("u1", loader)

    assert calls == ["u1"]
    assert [p.id for p in first] == [p.id for p in second]
    assert (cache.hits, cache.misses) == (1, 1)


async def test_least_recently_used_user_is_evicted():
    cache = PatternCache(max_users=2)
    cache.put("a", [_pattern("a")])
    cache.put("b", [_pattern("b")])
    cache.get("a")
    cache.put("c", [_pattern("c")])

    assert "a" in cache and "c" in cache
    assert "b" not in cache
    assert len(cache) == 2


async def test_invalidate_forces_reload():
    loads = 0

    async def loader(user_id):
        nonlocal loads
        loads += 1
        return []

    cache = PatternCache()
    await cache.get_or_load("u1", loader)
    cache.invalidate("u1")
    await cache.get_or_load("u1", loader)
    assert loads == 2


async def test_caches_are_independent():
    one, two = PatternCache(), PatternCache()
    one.put("u1", [_pattern("u1")])
    assert "u1" not in two


async def test_rejects_empty_capacity():
    with pytest.raises(ValueError):
        PatternCache(max_users=0)
