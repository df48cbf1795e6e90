"""
Data Adapters - Token Bucket Rate Limiter.

============================================================
ALGORITHM
============================================================

- Tokens accrue continuously at tokens_per_second
- The bucket never holds more than capacity tokens
- acquire(n) suspends only the calling coroutine until n
  tokens exist, then deducts them
- is_ready(n) answers the same question without waiting

One limiter per adapter instance; limiters are never shared.

============================================================
"""

import asyncio
import logging
from typing import Optional

from data_adapters.clock import ClockProtocol, get_clock


logger = logging.getLogger(__name__)


class TokenBucketLimiter:
    """
    Token bucket limiter for outbound provider requests.

    Usage:
        limiter = TokenBucketLimiter(tokens_per_second=10)
        await limiter.acquire()
        response = await client.get_json(...)
    """

    def __init__(
        self,
        tokens_per_second: float = 10.0,
        capacity: Optional[float] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        """
        Initialize limiter.

        Args:
            tokens_per_second: Refill rate, also the default capacity
            capacity: Maximum burst size
            clock: Time source (defaults to the global clock)
        """
        if tokens_per_second <= 0:
            raise ValueError("tokens_per_second must be positive")
        capacity = tokens_per_second if capacity is None else capacity
        if capacity <= 0:
            raise ValueError("capacity must be positive")

        self._tokens_per_second = float(tokens_per_second)
        self._capacity = float(capacity)
        self._clock = clock or get_clock()
        self._tokens = self._capacity
        self._last_refill = self._clock.monotonic()
        self._waiters: set[asyncio.Future] = set()

    @property
    def tokens_per_second(self) -> float:
        return self._tokens_per_second

    @property
    def capacity(self) -> float:
        return self._capacity

    @property
    def available_tokens(self) -> float:
        """Tokens available right now (after refilling)."""
        self._refill()
        return self._tokens

    async def acquire(self, tokens: float = 1) -> None:
        """
        Wait until enough tokens exist, then take them.

        Args:
            tokens: Number of tokens needed

        Raises:
            ValueError: If tokens is not positive or exceeds capacity
        """
        if tokens <= 0:
            raise ValueError("tokens must be positive")
        if tokens > self._capacity:
            raise ValueError(f"Cannot acquire {tokens} tokens from a bucket of capacity {self._capacity}")

        while True:
            self._refill()
            if self._tokens >= tokens:
                self._tokens -= tokens
                return

            wait_seconds = (tokens - self._tokens) / self._tokens_per_second
            logger.debug(f"Rate limiting: waiting {wait_seconds * 1000:.1f}ms for {tokens} token(s)")
            await self._wait(wait_seconds)

    def is_ready(self, tokens: float = 1) -> bool:
        """Check whether acquire(tokens) would return without waiting."""
        self._refill()
        return self._tokens >= tokens

    def reset(self) -> None:
        """Restore full capacity and release any pending waits."""
        self._tokens = self._capacity
        self._last_refill = self._clock.monotonic()
        for waiter in list(self._waiters):
            if not waiter.done():
                waiter.set_result(None)
        self._waiters.clear()

    def _refill(self) -> None:
        now = self._clock.monotonic()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self._capacity, self._tokens + elapsed * self._tokens_per_second)
        self._last_refill = now

    async def _wait(self, seconds: float) -> None:
        loop = asyncio.get_running_loop()
        waiter = loop.create_future()
        handle = loop.call_later(seconds, _release, waiter)
        self._waiters.add(waiter)
        try:
            await waiter
        finally:
            handle.cancel()
            self._waiters.discard(waiter)

    def __repr__(self) -> str:
        return (
            f"<TokenBucketLimiter(tokens_per_second={self._tokens_per_second}, "
            f"capacity={self._capacity})>"
        )


def _release(waiter: asyncio.Future) -> None:
    if not waiter.done():
        waiter.set_result(None)
