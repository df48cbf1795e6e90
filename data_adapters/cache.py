"""
Data Adapters - In-memory TTL cache.

Entries expire lazily: get() and has() refuse expired entries and
evict them on the spot. cleanup() only reclaims memory.
"""

import logging
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from data_adapters.clock import ClockProtocol, get_clock


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """Cached value with its expiry (monotonic seconds)."""
    value: T
    expires_at: float


class MemoryCache(Generic[T]):
    """
    Key/value store with per-entry expiry.

    Usage:
        cache = MemoryCache(default_ttl=300)
        cache.set("quote:AAPL", quote, ttl=15)
        quote = cache.get("quote:AAPL")
    """

    def __init__(
        self,
        default_ttl: float = 300.0,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        """
        Initialize cache.

        Args:
            default_ttl: Time to live in seconds when set() gets none
            clock: Time source (defaults to the global clock)
        """
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        self._default_ttl = default_ttl
        self._clock = clock or get_clock()
        self._entries: dict[str, CacheEntry[T]] = {}

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    def get(self, key: str, default: Optional[T] = None) -> Optional[T]:
        """Return the cached value, or default if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return default

        if self._is_expired(entry):
            del self._entries[key]
            return default

        return entry.value

    def set(self, key: str, value: T, ttl: Optional[float] = None) -> None:
        """Insert or overwrite a value; ttl in seconds."""
        ttl = self._default_ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock.monotonic() + ttl)

    def has(self, key: str) -> bool:
        """Check that a key exists and has not expired."""
        entry = self._entries.get(key)
        if entry is None:
            return False

        if self._is_expired(entry):
            del self._entries[key]
            return False

        return True

    def delete(self, key: str) -> bool:
        """Remove a key. Returns False if it was not present."""
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def size(self) -> int:
        """Number of stored entries, including expired ones not yet touched."""
        return len(self._entries)

    def cleanup(self) -> int:
        """Remove every expired entry. Returns the number removed."""
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Cache cleanup removed {len(expired)} expired entries")
        return len(expired)

    def _is_expired(self, entry: CacheEntry[T]) -> bool:
        return self._clock.monotonic() > entry.expires_at

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)
