"""
Data Adapters - Clock.

============================================================
RESPONSIBILITY
============================================================
Single time source for the adapter layer.

- Wall-clock UTC time for health record timestamps
- Monotonic seconds for token refill and cache expiry
- A mock clock so freshness and expiry can be tested
  without sleeping

============================================================
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional
import threading
import time


class ClockProtocol(ABC):
    """Time source injected into limiters, caches, probes and the registry."""

    @abstractmethod
    def now(self) -> datetime:
        """Current aware UTC datetime."""

    @abstractmethod
    def monotonic(self) -> float:
        """Monotonic seconds from an arbitrary origin."""


class SystemClock(ClockProtocol):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()


class MockClock(ClockProtocol):
    """
    Manually advanced clock for tests.

    Usage:
        clock = MockClock(datetime(2024, 6, 1, tzinfo=timezone.utc))
        cache = MemoryCache(default_ttl=60, clock=clock)
        clock.advance(61)
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        initial_time = initial_time or datetime.now(timezone.utc)
        if initial_time.tzinfo is None:
            initial_time = initial_time.replace(tzinfo=timezone.utc)
        self._now = initial_time
        self._elapsed = 0.0
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def monotonic(self) -> float:
        with self._lock:
            return self._elapsed

    def advance(self, seconds: float = 0, **kwargs) -> None:
        """Move both readings forward; kwargs go to timedelta (minutes=, hours=, days=)."""
        step = timedelta(seconds=seconds, **kwargs)
        if step < timedelta(0):
            raise ValueError("MockClock cannot move backwards")
        with self._lock:
            self._now += step
            self._elapsed += step.total_seconds()


# ============================================================
# DEFAULT CLOCK
# ============================================================

_default_clock: Optional[ClockProtocol] = None


def get_clock() -> ClockProtocol:
    """Process-wide clock used when none is injected."""
    global _default_clock
    if _default_clock is None:
        _default_clock = SystemClock()
    return _default_clock


def set_clock(clock: Optional[ClockProtocol]) -> None:
    """Replace the process-wide clock; None restores the system clock."""
    global _default_clock
    _default_clock = clock
