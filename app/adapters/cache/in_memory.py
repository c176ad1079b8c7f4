"""In-process cache store (development and tests).

Notes:
- Per-process only: running multiple workers gives each worker its own
  counters and session entries. Use Redis for any shared deployment.
- Expiry is evaluated lazily against an injectable clock, which lets tests
  move time forward without sleeping.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Callable

from app.adapters.cache.base import (
    TTL_MISSING,
    TTL_PERSISTENT,
    AbstractCacheStore,
    CounterState,
)


@dataclass
class _Entry:
    value: str
    expires_at: float | None


class InMemoryCacheStore(AbstractCacheStore):
    """Dictionary-backed store with Redis-like TTL semantics."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, _Entry] = {}

    def _live_entry(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry

    def _remaining(self, entry: _Entry) -> int:
        if entry.expires_at is None:
            return TTL_PERSISTENT
        return max(0, math.ceil(entry.expires_at - self._clock()))

    async def ping(self) -> bool:
        return True

    async def incr_with_expire(self, key: str, ttl_seconds: int) -> CounterState:
        entry = self._live_entry(key)
        if entry is None:
            entry = _Entry(value="0", expires_at=None)
            self._entries[key] = entry

        count = int(entry.value) + 1
        entry.value = str(count)
        if count == 1 or entry.expires_at is None:
            entry.expires_at = self._clock() + ttl_seconds

        return CounterState(count=count, ttl_seconds=self._remaining(entry))

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._entries[key] = _Entry(value=value, expires_at=self._clock() + ttl_seconds)

    async def get(self, key: str) -> str | None:
        entry = self._live_entry(key)
        return entry.value if entry else None

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._live_entry(key) is not None:
                del self._entries[key]
                removed += 1
        return removed

    async def ttl(self, key: str) -> int:
        entry = self._live_entry(key)
        if entry is None:
            return TTL_MISSING
        return self._remaining(entry)

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        entry = self._live_entry(key)
        if entry is None:
            return False
        entry.expires_at = self._clock() + ttl_seconds
        return True

    def keys(self) -> list[str]:
        """Return live keys (test/debug helper)."""
        return [key for key in list(self._entries) if self._live_entry(key) is not None]
