"""Unit tests for the query cache."""

from common.cache import QueryCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestQueryCache:
    """Test expiry, eviction and invalidation."""

    def test_key_includes_parameters(self):
        a = QueryCache.make_key("SELECT * FROM aihs WHERE id = :id", {"id": 1})
        b = QueryCache.make_key("SELECT * FROM aihs WHERE id = :id", {"id": 2})
        assert a != b
        assert a.startswith("SELECT * FROM aihs")

    def test_key_ignores_parameter_order(self):
        assert QueryCache.make_key("q", {"a": 1, "b": 2}) == QueryCache.make_key("q", {"b": 2, "a": 1})

    def test_entry_served_until_ttl(self):
        """An entry is served before its TTL and never at or after it."""
        clock = FakeClock()
        cache = QueryCache(ttl_seconds=900, clock=clock)
        cache.set("k", {"total": 1})

        clock.now += 899
        assert cache.get("k") == {"total": 1}

        clock.now += 1
        assert cache.get("k") is None
        assert cache.size == 0

    def test_eviction_in_insertion_order(self):
        cache = QueryCache(max_entries=2, clock=FakeClock())
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")  # reads do not refresh position
        cache.set("c", 3)

        assert cache.get("a") is None
        assert cache.get("b") == 2
        assert cache.get("c") == 3

    def test_invalidate_by_pattern(self):
        cache = QueryCache(clock=FakeClock())
        cache.set(QueryCache.make_key("SELECT * FROM aihs"), [])
        cache.set(QueryCache.make_key("SELECT * FROM glosas"), [])

        removed = cache.invalidate("glosas")

        assert removed == 1
        assert cache.get(QueryCache.make_key("SELECT * FROM aihs")) == []
        assert cache.get(QueryCache.make_key("SELECT * FROM glosas")) is None

    def test_invalidate_all(self):
        cache = QueryCache(clock=FakeClock())
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.invalidate() == 2
        assert cache.size == 0

    def test_sweep_drops_only_expired(self):
        clock = FakeClock()
        cache = QueryCache(ttl_seconds=10, clock=clock)
        cache.set("old", 1)
        clock.now += 5
        cache.set("new", 2)
        clock.now += 5

        assert cache.sweep() == 1
        assert cache.get("new") == 2
