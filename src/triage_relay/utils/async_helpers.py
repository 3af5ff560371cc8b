"""Async utility functions for bounded external calls.

This module provides:
- The exception hierarchy shared by the relay and its adapters
- Timeout wrappers for async operations
- Rate limiting with a token bucket algorithm

External calls are attempted once. A timeout is reported as a failure of
the collaborator that timed out; nothing here retries.
"""

from __future__ import annotations

import asyncio
import builtins
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from cachetools import TTLCache

log = structlog.get_logger()

T = TypeVar("T")

# Per-client buckets held at once by ClientRateLimiter
DEFAULT_MAX_CLIENTS = 10_000


# =============================================================================
# Custom Exceptions
# =============================================================================


class TriageError(Exception):
    """Base exception for all relay errors."""


class ProviderError(TriageError):
    """The analysis provider is unreachable, timed out, or returned unparseable text."""


class SchemaError(TriageError):
    """The analysis provider returned JSON that violates the classification schema."""


class NotifyError(TriageError):
    """The notification channel rejected or failed to deliver a message."""


class CommentError(TriageError):
    """Posting an issue comment failed."""


class SpawnError(TriageError):
    """The autonomous fix agent could not be started."""


class TimeoutError(TriageError):
    """Operation timed out."""


# =============================================================================
# Timeout Utilities
# =============================================================================


async def with_timeout(
    coro: Awaitable[T],
    timeout: float,
    error_message: str | None = None,
    error_type: type[TriageError] = TimeoutError,
) -> T:
    """Execute an awaitable with a timeout.

    Args:
        coro: The coroutine to execute.
        timeout: Timeout in seconds.
        error_message: Custom error message for timeout.
        error_type: Exception type raised on timeout, so callers can report
            the timeout as their own collaborator's failure.

    Returns:
        The result of the coroutine.

    Raises:
        TriageError: ``error_type`` if the operation times out.
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except builtins.TimeoutError as e:
        msg = error_message or f"Operation timed out after {timeout}s"
        log.warning("operation_timeout", timeout=timeout, error_type=error_type.__name__)
        raise error_type(msg) from e


# =============================================================================
# Rate Limiter
# =============================================================================


class RateLimiter:
    """Token bucket rate limiter.

    Tokens are added to the bucket at a fixed rate, and each operation
    consumes one token.

    Example:
        limiter = RateLimiter(rate=10 / 60, capacity=10)
        if not limiter.try_acquire():
            reject()
    """

    def __init__(
        self,
        rate: float,
        capacity: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the rate limiter.

        Args:
            rate: Number of operations allowed per second.
            capacity: Maximum number of tokens in the bucket (burst capacity).
                Defaults to rate.
            clock: Monotonic time source.
        """
        self._rate = rate
        self._capacity = capacity if capacity is not None else rate
        self._tokens = self._capacity
        self._clock = clock
        self._last_update = clock()

    @property
    def rate(self) -> float:
        """Return the configured rate limit (operations per second)."""
        return self._rate

    @property
    def capacity(self) -> float:
        """Return the bucket capacity (maximum burst size)."""
        return self._capacity

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_update
        self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
        self._last_update = now

    def try_acquire(self, tokens: float = 1.0) -> bool:
        """Try to acquire tokens without waiting.

        Runs without awaiting, so it is atomic on the event loop.

        Args:
            tokens: Number of tokens to acquire.

        Returns:
            True if tokens were acquired, False otherwise.
        """
        self._refill()

        if self._tokens >= tokens:
            self._tokens -= tokens
            return True
        return False


class ClientRateLimiter:
    """Rate limiter keyed by client identifier.

    Each client gets its own bucket; an empty bucket means the request
    should be rejected rather than queued.

    Buckets live in a ``TTLCache`` whose TTL is one window, refreshed on
    every request. A client idle for a full window would have a full bucket
    again, so dropping its entry changes nothing. ``max_clients`` bounds the
    map when many clients are active at once.

    Example:
        limiter = ClientRateLimiter(max_requests=10, window_seconds=60)
        if not limiter.allow(request.client.host):
            return 429
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        max_clients: int = DEFAULT_MAX_CLIENTS,
    ) -> None:
        """Initialize the client rate limiter.

        Args:
            max_requests: Requests allowed per window (also the burst size).
            window_seconds: Window length in seconds.
            clock: Monotonic time source.
            max_clients: Most buckets held at once; the least recently
                used is dropped beyond this.
        """
        self._rate = max_requests / window_seconds
        self._capacity = float(max_requests)
        self._clock = clock
        self._buckets: TTLCache[str, RateLimiter] = TTLCache(
            maxsize=max_clients, ttl=window_seconds, timer=clock
        )

    def allow(self, client: str) -> bool:
        """Return True if the client may make another request now."""
        bucket = self._buckets.get(client)
        if bucket is None:
            bucket = RateLimiter(self._rate, self._capacity, clock=self._clock)
        # Re-inserting restarts the entry's TTL
        self._buckets[client] = bucket

        allowed = bucket.try_acquire()
        if not allowed:
            log.warning("rate_limit_hit", client=client)
        return allowed


def describe_exception(exc: BaseException) -> dict[str, Any]:
    """Return log fields describing an exception."""
    return {"error": str(exc), "error_type": type(exc).__name__}
