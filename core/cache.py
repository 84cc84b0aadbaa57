"""In-memory TTL cache with a background sweeper.

The cache is process-local. Reads and writes from any thread in the same
process are safe; nothing is shared across workers/instances.

Expiration is checked lazily on every read, but an expired item is never
removed by ``get``. Physical removal happens through ``delete``, ``flush``,
an overwrite, or the sweeper thread, which scans the table every
``cleanup_interval`` and evicts whatever has expired.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar, Union

from core.errors import KeyNotFoundError
from core.rwlock import ReadWriteLock

T = TypeVar("T")

Duration = Union[int, float, timedelta]

NANOS_PER_SECOND = 1_000_000_000

# any negative duration means "never expires"
NEVER = -1

cache_logger = logging.getLogger("ttl-cache.cache")


def to_nanos(duration: Duration) -> int:
    """Normalize seconds (int/float) or a timedelta to integer nanoseconds.

    Durations that cannot be represented as a point in time (``inf``,
    ``nan``, or floats that overflow once scaled) map to ``NEVER``.
    """
    if isinstance(duration, timedelta):
        # integer arithmetic keeps microsecond precision exact
        return (duration // timedelta(microseconds=1)) * 1_000
    if isinstance(duration, int):
        return duration * NANOS_PER_SECOND
    nanos = duration * NANOS_PER_SECOND
    if not math.isfinite(nanos):
        return NEVER
    return int(nanos)


@dataclass(frozen=True)
class CacheItem(Generic[T]):
    value: T
    created_at: int
    expiration: int = 0  # 0 means the item never expires

    def is_expired(self, now_ns: int) -> bool:
        return self.expiration > 0 and now_ns > self.expiration


class InMemoryCache(Generic[T]):
    def __init__(
        self,
        default_ttl: Duration = 0,
        cleanup_interval: Duration = 0,
        *,
        time_func: Callable[[], int] = time.time_ns,
        logger: Optional[logging.Logger] = None,
    ):
        self._store: Dict[str, CacheItem[T]] = {}
        self._lock = ReadWriteLock()
        self._time_func = time_func
        self._logger = logger or cache_logger
        self._default_ttl = to_nanos(default_ttl)
        self._cleanup_interval = to_nanos(cleanup_interval)

        self._stop_event = threading.Event()
        self._sweeper: Optional[threading.Thread] = None
        if self._cleanup_interval > 0:
            self._start_sweeper()

    # -----------------------------
    # Public contract
    # -----------------------------
    def get(self, key: str) -> Tuple[Optional[T], bool]:
        with self._lock.read():
            item = self._store.get(key)
            if item is None:
                return None, False
            if item.is_expired(self._time_func()):
                return None, False
            return item.value, True

    def set(self, key: str, value: T, ttl: Duration = 0) -> None:
        duration = to_nanos(ttl)
        if duration == 0:
            duration = self._default_ttl

        now = self._time_func()
        expiration = now + duration if duration > 0 else 0
        item = CacheItem(value=value, created_at=now, expiration=expiration)

        with self._lock.write():
            self._store[key] = item

        self._logger.debug("cache_set", extra={"key": key, "expiration": expiration})

    def delete(self, key: str) -> None:
        with self._lock.write():
            if key not in self._store:
                raise KeyNotFoundError(key)
            del self._store[key]

    def flush(self) -> None:
        with self._lock.write():
            self._store = {}

    # -----------------------------
    # Sweeping
    # -----------------------------
    def expired_keys(self) -> Dict[str, CacheItem[T]]:
        """Snapshot of every stored item that has expired as of now."""
        with self._lock.read():
            now = self._time_func()
            return {key: item for key, item in self._store.items() if item.is_expired(now)}

    def clear_items(self, snapshot: Dict[str, CacheItem[T]]) -> List[str]:
        """Remove the given expired items and return the keys actually removed.

        A key is only removed when it still maps to the very item from the
        snapshot and that item is still expired; a key rewritten after the
        scan keeps its new item.
        """
        if not snapshot:
            return []

        removed = []
        with self._lock.write():
            now = self._time_func()
            for key, item in snapshot.items():
                current = self._store.get(key)
                if current is item and current.is_expired(now):
                    del self._store[key]
                    removed.append(key)

        if removed:
            self._logger.info("cache_evicted", extra={"evicted": len(removed), "keys": removed})
        return removed

    def sweep(self) -> int:
        """Run one scan + evict cycle and return the number of removed items."""
        return len(self.clear_items(self.expired_keys()))

    def _start_sweeper(self) -> None:
        self._sweeper = threading.Thread(
            target=self._sweep_loop,
            name="ttl-cache-sweeper",
            daemon=True,
        )
        self._sweeper.start()

    def _sweep_loop(self) -> None:
        interval = self._cleanup_interval / NANOS_PER_SECOND
        # wait() returns True only once close() has set the event
        while not self._stop_event.wait(interval):
            try:
                self.sweep()
            except Exception:
                self._logger.exception("cache_sweep_failed")

    def close(self) -> None:
        """Stop the sweeper thread. Safe to call more than once."""
        self._stop_event.set()
        sweeper = self._sweeper
        if sweeper is not None and sweeper is not threading.current_thread():
            sweeper.join()

    def __enter__(self) -> "InMemoryCache[T]":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # -----------------------------
    # Introspection
    # -----------------------------
    @property
    def default_ttl(self) -> float:
        return self._default_ttl / NANOS_PER_SECOND

    @property
    def cleanup_interval(self) -> float:
        return self._cleanup_interval / NANOS_PER_SECOND

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def contains(self, key: str) -> bool:
        """Whether ``key`` is physically stored, expired or not."""
        with self._lock.read():
            return key in self._store

    __contains__ = contains

    def keys(self) -> List[str]:
        with self._lock.read():
            return list(self._store)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._store)


def new_cache(
    default_ttl: Duration,
    cleanup_interval: Duration,
    **kwargs: Any,
) -> Tuple[InMemoryCache, Callable[[], None]]:
    """Create a cache and return it together with the handle that stops its sweeper."""
    cache: InMemoryCache = InMemoryCache(default_ttl, cleanup_interval, **kwargs)
    return cache, cache.close
