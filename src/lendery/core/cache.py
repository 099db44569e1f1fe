# ABOUTME: Short-TTL in-memory read cache for catalog listings and recommendations.
# ABOUTME: Owned by the service runtime; any write clears it.

import threading
import time
from collections.abc import Callable, Hashable
from typing import Any

DEFAULT_MAX_ENTRIES = 512


class ReadCache:
    """A thread-safe TTL map with a bounded entry count.

    Expired entries are dropped on read and swept out on every write. When the
    map is full, the oldest entry is evicted first.
    """

    def __init__(
        self,
        ttl_seconds: float,
        *,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    def set(self, key: Hashable, value: Any) -> None:
        if self._ttl <= 0 or self._max_entries <= 0:
            return
        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            self._entries.pop(key, None)
            while len(self._entries) >= self._max_entries:
                del self._entries[next(iter(self._entries))]
            self._entries[key] = (now + self._ttl, value)

    def invalidate(self) -> None:
        with self._lock:
            self._entries.clear()

    def _purge_expired(self, now: float) -> None:
        # Entries share one TTL, so insertion order is expiry order.
        while self._entries:
            oldest = next(iter(self._entries))
            if self._entries[oldest][0] > now:
                break
            del self._entries[oldest]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
