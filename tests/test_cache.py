from capability_adapter.infra.cache import DiscoveryCache


def test_hit_within_ttl_and_miss_after(clock):
    cache = DiscoveryCache(60, clock=clock)
    cache.set("sandbox", ["a"])
    clock.advance(59)
    assert cache.get("sandbox") == ["a"]
    clock.advance(1)
    assert cache.get("sandbox") is None
    assert len(cache) == 0


def test_keys_are_isolated(clock):
    cache = DiscoveryCache(60, clock=clock)
    cache.set("sandbox", [])
    assert "sandbox" in cache
    assert "production" not in cache
    assert cache.get("production") is None


def test_set_replaces_wholesale_and_restarts_ttl(clock):
    cache = DiscoveryCache(60, clock=clock)
    cache.set("sandbox", ["a", "b"])
    clock.advance(50)
    cache.set("sandbox", ["c"])
    clock.advance(50)
    assert cache.get("sandbox") == ["c"]


def test_invalidate_one_or_all(clock):
    cache = DiscoveryCache(60, clock=clock)
    cache.set("sandbox", 1)
    cache.set("production", 2)
    assert cache.invalidate("sandbox") == 1
    assert cache.invalidate("sandbox") == 0
    assert cache.get("production") == 2
    assert cache.invalidate() == 1
    assert len(cache) == 0
