"""
In-process, bounded-memory throttling of form submissions per client IP.

Both classes are plain synchronous objects: every read-compare-write runs
without an ``await`` in between, so on a single asyncio event loop two
overlapping requests cannot both pass the gate for the same identity.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Callable, Generic, Hashable, Optional, Tuple, TypeVar

logger = logging.getLogger("formrelay.intake.rate_limit")

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

Clock = Callable[[], float]


def now_ms() -> float:
    """Wall-clock milliseconds since the epoch."""
    return time.time() * 1000.0


class TTLLRUCache(Generic[K, V]):
    """
    Fixed-capacity mapping with least-recently-used eviction and per-entry expiry.

    Expired entries are never returned; they behave exactly like missing keys.
    """

    def __init__(self, max_entries: int, ttl_ms: float, clock: Clock = now_ms) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        if ttl_ms <= 0:
            raise ValueError("ttl_ms must be > 0")
        self.max_entries = max_entries
        self.ttl_ms = ttl_ms
        self._clock = clock
        self._entries: "OrderedDict[K, Tuple[V, float]]" = OrderedDict()

    def get(self, key: K) -> Optional[V]:
        item = self._entries.get(key)
        if item is None:
            return None
        value, expires_at = item
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    def set(self, key: K, value: V) -> None:
        if key in self._entries:
            self._entries.move_to_end(key)
        self._entries[key] = (value, self._clock() + self.ttl_ms)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Rate limit cache full; evicted %s", evicted)

    def __len__(self) -> int:
        return len(self._entries)


class RateLimiter:
    """
    Minimum-gap throttle: one accepted request per ``window_ms / max_requests``.

    Only the timestamp of the last accepted request is kept per identity, and a
    rejected request does not move it.
    """

    def __init__(
        self,
        cache: TTLLRUCache[str, float],
        *,
        window_ms: float = 60_000,
        max_requests: int = 5,
        clock: Clock = now_ms,
    ) -> None:
        if max_requests <= 0:
            raise ValueError("max_requests must be > 0")
        self._cache = cache
        self._clock = clock
        self.window_ms = window_ms
        self.max_requests = max_requests

    @classmethod
    def in_memory(
        cls,
        *,
        max_entries: int = 5000,
        window_ms: float = 60_000,
        max_requests: int = 5,
        clock: Clock = now_ms,
    ) -> "RateLimiter":
        cache: TTLLRUCache[str, float] = TTLLRUCache(max_entries, window_ms, clock=clock)
        return cls(cache, window_ms=window_ms, max_requests=max_requests, clock=clock)

    @property
    def min_gap_ms(self) -> float:
        return self.window_ms / self.max_requests

    def check(self, identity: str) -> bool:
        """Return True and record the request if it is slow enough, else False."""
        now = self._clock()
        last = self._cache.get(identity) or 0.0

        if now - last < self.min_gap_ms:
            logger.info("Rate limit hit for %s (%.0fms since last)", identity, now - last)
            return False

        self._cache.set(identity, now)
        return True
