# tests/base/test_cache.py

import pytest

from async_search_query.base.cache import ResultCache
from async_search_query.base.settings import SearchSettings


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> ResultCache:
    return ResultCache(max_entries=3, ttl_seconds=60, clock=clock)


def test_get_returns_stored_value(cache):
    cache.set("a", [1, 2])
    assert cache.get("a") == [1, 2]
    assert "a" in cache
    assert len(cache) == 1


def test_missing_key_returns_none(cache):
    assert cache.get("missing") is None
    assert "missing" not in cache


def test_entries_expire_on_read(cache, clock):
    cache.set("a", 1)
    clock.now += 59
    assert cache.get("a") == 1
    clock.now += 1
    assert cache.get("a") is None
    assert len(cache) == 0


def test_full_cache_evicts_oldest(cache):
    for key in "abcd":
        cache.set(key, key.upper())
    assert len(cache) == 3
    assert cache.get("a") is None
    assert [cache.get(k) for k in "bcd"] == ["B", "C", "D"]


def test_overwriting_a_key_refreshes_it(cache, clock):
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("c", 3)
    clock.now += 30
    cache.set("a", 10)
    cache.set("d", 4)
    assert cache.get("b") is None
    assert cache.get("a") == 10
    clock.now += 45
    # "a" was stored 45s ago, "c" 75s ago
    assert cache.get("a") == 10
    assert cache.get("c") is None


def test_evict_and_clear(cache):
    cache.set("a", 1)
    cache.set("b", 2)
    assert cache.evict("a") is True
    assert cache.evict("a") is False
    cache.clear()
    assert len(cache) == 0


@pytest.mark.parametrize("kwargs", [{"max_entries": 0}, {"ttl_seconds": 0}, {"ttl_seconds": -5}])
def test_invalid_configuration(kwargs):
    with pytest.raises(ValueError):
        ResultCache(**kwargs)


def test_from_settings_uses_configured_limits(clock):
    settings = SearchSettings(cache_max_entries=2, cache_ttl_seconds=10)
    cache = ResultCache.from_settings(settings, clock=clock)
    for key in "abc":
        cache.set(key, key)
    assert len(cache) == 2
    clock.now += 10
    assert cache.get("c") is None
