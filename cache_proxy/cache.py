import asyncio
import itertools
import threading
import time
from typing import Any, Callable, Dict, Optional

from .schemas import CacheEntry


class CacheStore:
    """In-memory key-value cache with independent per-key expiry.

    Parameters
    ----------
    ttl_seconds : float
        Time-to-live in seconds. Entries are absent from `expires_at = now + ttl` on.
    clock : Callable[[], float]
        Monotonic time source. Defaults to `time.monotonic`, which is also what
        the asyncio loop uses, so lazy and eager expiry agree on the instant.

    Notes
    -----
    - Expiration is lazy on `get`, and eager through one loop timer per entry
      when `put` runs inside an event loop.
    - Each write carries a new generation; a timer only removes the entry it
      was scheduled for, never a newer write of the same key.
    - All operations hold a lock, so they are safe from concurrent requests,
      timer callbacks and other threads.
    """

    def __init__(self, ttl_seconds: float = 30.0, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl_seconds
        self._clock = clock
        self._store: Dict[str, CacheEntry] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._generations = itertools.count(1)
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value for `key` if present and not expired.

        Parameters
        ----------
        key : str
            Cache key.
        default : Any
            Returned when the key is missing or expired. Pass a sentinel to tell
            a miss apart from a cached JSON `null`.

        Returns
        -------
        Any
            The stored value, or `default`.
        """

        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return default
            if self._clock() >= entry.expires_at:
                self._drop(key)
                return default
            return entry.value

    def put(self, key: str, value: Any) -> CacheEntry:
        """Insert or replace `value` under `key` with a fresh expiry.

        Parameters
        ----------
        key : str
            Cache key.
        value : Any
            Decoded JSON document to store.

        Returns
        -------
        CacheEntry
            The entry now held for `key`.
        """

        with self._lock:
            entry = CacheEntry(
                key=key,
                value=value,
                expires_at=self._clock() + self.ttl,
                generation=next(self._generations),
            )
            self._drop(key)
            self._store[key] = entry
            loop = _running_loop()
            if loop is not None:
                if self._clock is time.monotonic:
                    # loop.time() runs on the same clock, so the timer fires at expires_at exactly
                    timer = loop.call_at(entry.expires_at, self._expire, key, entry.generation)
                else:
                    timer = loop.call_later(self.ttl, self._expire, key, entry.generation)
                self._timers[key] = timer
            return entry

    def invalidate(self, key: str) -> None:
        """Remove `key` and cancel its pending expiry, if any."""

        with self._lock:
            self._drop(key)

    def clear(self) -> None:
        """Remove all entries from the cache.

        Useful for tests or to force a full refresh of cached data.
        """

        with self._lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            self._store.clear()

    def _expire(self, key: str, generation: int) -> None:
        with self._lock:
            entry = self._store.get(key)
            if entry is not None and entry.generation == generation:
                self._drop(key)

    def _drop(self, key: str) -> None:
        # caller holds the lock
        self._store.pop(key, None)
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()

    def __contains__(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for entry in self._store.values() if now < entry.expires_at)


_MISSING = object()


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
