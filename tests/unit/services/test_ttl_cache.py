"""Unit tests for the TTL cache and value memo."""

import pytest

from product_hub.services.cache import TTLCache, ValueMemo


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class TestTTLCache:
    def test_expires_after_ttl(self, clock):
        cache = TTLCache(ttl=300, clock=clock)
        cache.set("products", ["a"])

        clock.advance(299)
        assert cache.get("products") == ["a"]
        clock.advance(1)
        assert cache.get("products") is None

    def test_max_age_serves_older_entries(self, clock):
        cache = TTLCache(ttl=60, clock=clock)
        cache.set("news", ["story"])
        clock.advance(120)

        assert cache.get("news") is None
        assert cache.get("news", max_age=180) == ["story"]
        assert cache.age("news") == 120

    def test_lru_eviction(self, clock):
        cache = TTLCache(ttl=60, max_size=2, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)

        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert cache.get("c") == 3
        assert cache.get_stats()["evictions"] == 1

    @pytest.mark.asyncio
    async def test_get_or_load_loads_once(self, clock):
        cache = TTLCache(ttl=60, clock=clock)
        calls = []

        async def loader():
            calls.append(1)
            return ["row"]

        assert await cache.get_or_load("k", loader) == ["row"]
        assert await cache.get_or_load("k", loader) == ["row"]
        assert len(calls) == 1

        clock.advance(60)
        await cache.get_or_load("k", loader)
        assert len(calls) == 2

    def test_invalidate(self, clock):
        cache = TTLCache(ttl=60, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)

        cache.invalidate("a")
        assert cache.get("a") is None
        assert len(cache) == 1

        cache.clear()
        assert len(cache) == 0

    def test_purge(self, clock):
        cache = TTLCache(ttl=60, clock=clock)
        cache.set("old", 1)
        clock.advance(100)
        cache.set("new", 2)

        assert cache.purge(max_age=90) == 1
        assert cache.get("old", max_age=1000) is None
        assert cache.get("new") == 2

    def test_stats(self, clock):
        cache = TTLCache(ttl=60, clock=clock, name="products")
        cache.set("a", 1)
        cache.get("a")
        cache.get("missing")

        stats = cache.get_stats()
        assert stats["name"] == "products"
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5

    def test_rejects_non_positive_ttl(self):
        with pytest.raises(ValueError):
            TTLCache(ttl=0)


class TestValueMemo:
    def test_recomputes_only_on_value_change(self):
        memo = ValueMemo(lambda items: sum(items))

        assert memo([1, 2]) == 3
        assert memo([1, 2]) == 3
        assert memo.computations == 1

        assert memo([1, 2, 3]) == 6
        assert memo.computations == 2

    def test_remembers_only_last_call(self):
        memo = ValueMemo(lambda x: x * 2)
        memo(1)
        memo(2)
        memo(1)
        assert memo.computations == 3

    def test_reset(self):
        memo = ValueMemo(lambda x: x)
        memo("a")
        memo.reset()
        memo("a")
        assert memo.computations == 2
