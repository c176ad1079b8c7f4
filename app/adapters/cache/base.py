"""Cache store interface.

Rate limiting, brute-force protection and session validation all sit on one
shared, TTL-capable key-value store. Components depend on this abstraction so
Redis can be swapped for an in-process store in development and tests.

Every method raises CacheStoreUnavailableError when the store cannot be
reached; callers decide whether that means fail-open or fail-closed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

# TTL sentinels, same meaning as Redis TTL replies
TTL_MISSING = -2
TTL_PERSISTENT = -1


@dataclass(frozen=True)
class CounterState:
    """Result of an atomic increment-with-first-expire.

    Attributes:
        count: Counter value after the increment.
        ttl_seconds: Remaining lifetime of the counter in seconds.
    """

    count: int
    ttl_seconds: int


class AbstractCacheStore(ABC):
    """Interface for the shared TTL key-value store."""

    async def connect(self) -> None:
        """Open connections. Stores without a connection step do nothing."""

    async def close(self) -> None:
        """Release connections. Stores without a connection step do nothing."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return True when the store answers; raise when it is unreachable."""
        raise NotImplementedError

    @abstractmethod
    async def incr_with_expire(self, key: str, ttl_seconds: int) -> CounterState:
        """Atomically increment ``key`` and set its expiry on first increment.

        The expiry is also (re)applied when the key exists without one, so a
        crash between increment and expire can never leave an immortal counter.

        Args:
            key: Counter key.
            ttl_seconds: Window length applied when the counter is created.

        Returns:
            CounterState with the post-increment count and remaining TTL.
        """
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store ``value`` under ``key`` with an expiry (SET key value EX ttl)."""
        raise NotImplementedError

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value under ``key`` or None when absent/expired."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys and return how many existed."""
        raise NotImplementedError

    @abstractmethod
    async def ttl(self, key: str) -> int:
        """Return remaining seconds, TTL_PERSISTENT, or TTL_MISSING."""
        raise NotImplementedError

    @abstractmethod
    async def expire(self, key: str, ttl_seconds: int) -> bool:
        """Set an expiry on an existing key; False when the key is absent."""
        raise NotImplementedError
