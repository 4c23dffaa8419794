"""Tests for the in-process TTL cache."""
from parkingdirekt.utils.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = TTLCache(10, clock=clock)
    cache.set("k", "v")

    clock.now += 9.9
    assert cache.get("k") == "v"

    clock.now += 0.1
    assert cache.get("k") is None
    assert len(cache) == 0


def test_falsy_values_are_cached():
    cache = TTLCache(60)
    cache.set(("flag", "x"), False)

    value = cache.lookup(("flag", "x"))
    assert not TTLCache.is_miss(value)
    assert value is False
    assert TTLCache.is_miss(cache.lookup(("flag", "y")))


def test_invalidate_prefix():
    cache = TTLCache(60)
    cache.set(("flag", "a", "u1"), True)
    cache.set(("flag", "a", "u2"), True)
    cache.set(("flag", "b", "u1"), True)
    cache.set("plain", True)

    assert cache.invalidate_prefix("flag", "a") == 2
    assert cache.get(("flag", "b", "u1")) is True
    assert cache.get("plain") is True


def test_delete_and_clear():
    cache = TTLCache(60)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.delete("a")
    cache.delete("missing")
    assert cache.get("a") is None

    cache.clear()
    assert len(cache) == 0
