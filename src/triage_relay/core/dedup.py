"""Time-bounded deduplication of admitted work.

An admission records the current time under a (repository, issue, action
class) key. The same key is refused until the TTL has elapsed. Expired
entries are treated as absent on admission; ``sweep`` only reclaims memory.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from threading import Lock
from typing import Protocol

import structlog
from cachetools import TTLCache

from triage_relay.models.decision import DedupKey

log = structlog.get_logger()

# 24 hours
DEFAULT_TTL = 24 * 60 * 60


class DedupStore(Protocol):
    """Idempotence guard consulted before any work is started."""

    def admit(self, key: DedupKey) -> bool:
        """Record ``key`` and return True, or return False if it is still fresh."""
        ...

    def sweep(self, now: float | None = None) -> int:
        """Remove expired entries and return how many were removed."""
        ...

    def __len__(self) -> int: ...


class TTLDedupCache:
    """In-memory DedupStore backed by ``cachetools.TTLCache``.

    An entry is fresh while ``now - admitted_at < ttl``. ``admit`` is atomic
    under a lock, so of any number of concurrent callers racing on one key
    at most one sees True per TTL window.

    Example:
        cache = TTLDedupCache(ttl=60, clock=fake_clock)
        cache.admit(key)  # True
        cache.admit(key)  # False
        fake_clock.advance(61)
        cache.admit(key)  # True
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
        maxsize: float = math.inf,
    ) -> None:
        """Initialize the cache.

        Args:
            ttl: Dedup window in seconds
            clock: Time source; tests inject a controllable clock
            maxsize: Entry limit. Unbounded by default so that no fresh
                entry is ever evicted early.
        """
        self._ttl = ttl
        self._clock = clock
        self._cache: TTLCache[DedupKey, float] = TTLCache(maxsize=maxsize, ttl=ttl, timer=clock)
        self._lock = Lock()

    @property
    def ttl(self) -> float:
        return self._ttl

    def admit(self, key: DedupKey) -> bool:
        with self._lock:
            if key in self._cache:
                log.debug("dedup_rejected", key=str(key))
                return False
            self._cache[key] = self._clock()
            return True

    def sweep(self, now: float | None = None) -> int:
        with self._lock:
            before = len(self._cache)
            self._cache.expire(self._clock() if now is None else now)
            removed = before - len(self._cache)

        if removed:
            log.info("dedup_swept", removed=removed, remaining=before - removed)
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)
