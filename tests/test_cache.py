import math
import threading
from datetime import timedelta

import pytest

from core.cache import NEVER, CacheItem, InMemoryCache, new_cache, to_nanos
from core.errors import KeyNotFoundError

SECOND = 1_000_000_000


class FakeClock:
    def __init__(self, initial: int = 1_000 * SECOND):
        self._value = initial

    def now(self) -> int:
        return self._value

    def advance(self, seconds: float) -> None:
        self._value += int(seconds * SECOND)


def test_get_missing_key_returns_not_found():
    cache = InMemoryCache()

    assert cache.get("never-written") == (None, False)
    assert cache.get("") == (None, False)


def test_entry_is_visible_until_strictly_after_expiration():
    clock = FakeClock()
    cache = InMemoryCache(time_func=clock.now)

    cache.set("k", "v", ttl=10)
    assert cache.get("k") == ("v", True)

    clock.advance(10)
    assert cache.get("k") == ("v", True)

    clock._value += 1
    assert cache.get("k") == (None, False)


def test_get_does_not_remove_expired_entries():
    clock = FakeClock()
    cache = InMemoryCache(time_func=clock.now)

    cache.set("k", "v", ttl=1)
    clock.advance(2)

    assert cache.get("k") == (None, False)
    assert "k" in cache
    assert len(cache) == 1


def test_zero_ttl_uses_default_ttl():
    clock = FakeClock()
    cache = InMemoryCache(default_ttl=5, time_func=clock.now)

    cache.set("k", "v", ttl=0)
    clock.advance(4)
    assert cache.get("k") == ("v", True)

    clock.advance(2)
    assert cache.get("k") == (None, False)


def test_zero_ttl_with_zero_default_never_expires():
    clock = FakeClock()
    cache = InMemoryCache(default_ttl=0, cleanup_interval=0, time_func=clock.now)

    cache.set("a", "x", 0)
    clock.advance(10 * 365 * 24 * 3600)

    assert cache.get("a") == ("x", True)
    assert cache.sweeper_running is False


def test_negative_ttl_never_expires_even_with_default():
    clock = FakeClock()
    cache = InMemoryCache(default_ttl=5, time_func=clock.now)

    cache.set("k", "v", ttl=-1)
    clock.advance(3600)

    assert cache.get("k") == ("v", True)
    assert cache.expired_keys() == {}


def test_timedelta_durations_are_accepted():
    clock = FakeClock()
    cache = InMemoryCache(default_ttl=timedelta(milliseconds=50), time_func=clock.now)

    assert cache.default_ttl == pytest.approx(0.05)
    cache.set("k", "v", ttl=timedelta(seconds=2))
    clock.advance(1.5)
    assert cache.get("k") == ("v", True)
    clock.advance(1)
    assert cache.get("k") == (None, False)


def test_to_nanos():
    assert to_nanos(0) == 0
    assert to_nanos(1) == SECOND
    assert to_nanos(timedelta(milliseconds=50)) == 50_000_000
    assert to_nanos(-2) == -2 * SECOND


@pytest.mark.parametrize("ttl", [math.inf, -math.inf, math.nan, 1e300, 10**30])
def test_unrepresentable_ttl_never_expires(ttl):
    clock = FakeClock()
    cache = InMemoryCache(default_ttl=5, time_func=clock.now)

    cache.set("k", "v", ttl=ttl)
    clock.advance(10 * 365 * 24 * 3600)

    assert cache.get("k") == ("v", True)
    assert cache.sweep() == 0


def test_to_nanos_maps_non_finite_values_to_never():
    assert to_nanos(math.inf) == NEVER
    assert to_nanos(math.nan) == NEVER
    assert to_nanos(1e300) == NEVER
    assert to_nanos(10**30) == 10**30 * SECOND


def test_infinite_cleanup_interval_disables_sweeper():
    cache = InMemoryCache(cleanup_interval=math.inf)

    assert cache.sweeper_running is False


def test_set_overwrites_whole_entry():
    clock = FakeClock()
    cache = InMemoryCache(time_func=clock.now)

    cache.set("k", "old", ttl=1)
    clock.advance(2)
    assert cache.get("k") == (None, False)

    cache.set("k", "new", ttl=10)
    assert cache.get("k") == ("new", True)

    snapshot = cache._store["k"]
    assert snapshot.created_at == clock.now()
    assert snapshot.expiration == clock.now() + 10 * SECOND


def test_values_are_opaque():
    cache = InMemoryCache()
    payload = {"nested": [1, 2, 3]}

    cache.set("dict", payload)
    cache.set("none", None)

    assert cache.get("dict")[0] is payload
    assert cache.get("none") == (None, True)


def test_delete_present_key():
    cache = InMemoryCache()
    cache.set("k", "v")

    assert cache.delete("k") is None
    assert cache.get("k") == (None, False)
    assert "k" not in cache


def test_delete_missing_key_raises_not_found_without_side_effects():
    cache = InMemoryCache()
    cache.set("other", 1)

    with pytest.raises(KeyNotFoundError) as excinfo:
        cache.delete("missing")

    assert excinfo.value.key == "missing"
    assert str(excinfo.value) == "key: 'missing' not found"
    assert isinstance(excinfo.value, KeyError)
    assert cache.keys() == ["other"]


def test_empty_string_is_a_valid_key():
    cache = InMemoryCache()

    cache.set("", "empty")
    assert cache.get("") == ("empty", True)
    cache.delete("")
    assert cache.get("") == (None, False)


def test_flush_discards_everything():
    cache = InMemoryCache()
    for i in range(10):
        cache.set(f"k{i}", i)

    cache.flush()

    assert len(cache) == 0
    for i in range(10):
        assert cache.get(f"k{i}") == (None, False)


def test_sweep_removes_only_expired_entries():
    clock = FakeClock()
    cache = InMemoryCache(time_func=clock.now)

    cache.set("expired", "x", ttl=1)
    cache.set("alive", "y", ttl=10)
    cache.set("forever", "z", ttl=-1)

    clock.advance(3)

    assert set(cache.expired_keys()) == {"expired"}
    assert cache.sweep() == 1
    assert set(cache.keys()) == {"alive", "forever"}
    assert cache.sweep() == 0


def test_clear_items_keeps_entries_rewritten_after_scan():
    clock = FakeClock()
    cache = InMemoryCache(time_func=clock.now)

    cache.set("k", "stale", ttl=1)
    clock.advance(2)
    snapshot = cache.expired_keys()
    assert list(snapshot) == ["k"]

    cache.set("k", "fresh", ttl=10)

    assert cache.clear_items(snapshot) == []
    assert cache.get("k") == ("fresh", True)


def test_clear_items_ignores_keys_deleted_after_scan():
    clock = FakeClock()
    cache = InMemoryCache(time_func=clock.now)

    cache.set("k", "stale", ttl=1)
    clock.advance(2)
    snapshot = cache.expired_keys()
    cache.delete("k")

    assert cache.clear_items(snapshot) == []
    assert cache.clear_items({}) == []


def test_cache_item_expiration_rule():
    item = CacheItem(value="v", created_at=0, expiration=100)

    assert item.is_expired(100) is False
    assert item.is_expired(101) is True
    assert CacheItem(value="v", created_at=0).is_expired(10**30) is False


def test_new_cache_returns_stop_handle():
    cache, stop = new_cache(default_ttl=0, cleanup_interval=0)

    cache.set("k", "v")
    stop()
    stop()

    assert cache.get("k") == ("v", True)


def test_cache_concurrent_get_set_is_thread_safe():
    cache = InMemoryCache(default_ttl=30)
    start = threading.Barrier(9)

    def writer(prefix: str):
        start.wait()
        for i in range(500):
            cache.set(f"{prefix}-{i}", (prefix, i))

    def reader(prefix: str):
        start.wait()
        for i in range(500):
            value, found = cache.get(f"{prefix}-{i}")
            if found:
                assert value == (prefix, i)

    threads = [threading.Thread(target=writer, args=(p,)) for p in "abcd"]
    threads += [threading.Thread(target=reader, args=(p,)) for p in "abcd"]

    for thread in threads:
        thread.start()

    start.wait()

    for thread in threads:
        thread.join()

    assert len(cache) == 2000
    assert cache.get("a-499") == (("a", 499), True)
    assert cache.get("d-499") == (("d", 499), True)


def test_concurrent_writers_to_same_key_never_tear_entries():
    cache = InMemoryCache()
    start = threading.Barrier(4)
    errors = []

    def writer(n: int):
        start.wait()
        for i in range(300):
            cache.set("shared", (n, i, n * i))

    def reader():
        start.wait()
        for _ in range(900):
            value, found = cache.get("shared")
            if found and value[0] * value[1] != value[2]:
                errors.append(value)

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(3)]
    threads.append(threading.Thread(target=reader))
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert cache.get("shared")[1] is True
