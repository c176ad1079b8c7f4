"""Failed-login tracking with temporary blocks.

Two independent keys per identity:
- ``login-attempts:<key>``: failure counter, window = block duration
- ``login-block:<key>``: block flag, present while the identity is blocked

Once the counter reaches ``max_attempts`` inside its window the block flag is
set for the block duration. A successful login resets both.

The guard fails open: when the cache store is unreachable nobody is reported
blocked and failures are counted as the first attempt.
"""

from __future__ import annotations

import logging

from app.adapters.cache.base import AbstractCacheStore
from app.core.errors import CacheStoreUnavailableError
from app.core.logging import hash_identifier
from app.services.degradation import DegradationController, FailurePolicy, GuardedComponent

logger = logging.getLogger(__name__)

ATTEMPTS_PREFIX = "login-attempts:"
BLOCK_PREFIX = "login-block:"


def normalize_identity(value: str) -> str:
    """Canonical form of an email/IP used as the guard key."""
    return value.strip().lower()


class BruteForceGuard:
    def __init__(
        self,
        store: AbstractCacheStore,
        degradation: DegradationController,
        *,
        max_attempts: int = 15,
        block_duration_seconds: int = 900,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if block_duration_seconds < 1:
            raise ValueError("block_duration_seconds must be >= 1")

        self._store = store
        self._degradation = degradation
        self.max_attempts = max_attempts
        self.block_duration_seconds = block_duration_seconds

    @property
    def _fails_open(self) -> bool:
        return (
            self._degradation.policy_for(GuardedComponent.BRUTE_FORCE_GUARD)
            is FailurePolicy.FAIL_OPEN
        )

    def _outage(self, exc: BaseException) -> None:
        self._degradation.record_outage(GuardedComponent.BRUTE_FORCE_GUARD, exc)

    async def record_failure(self, key: str) -> int:
        """Count a failed attempt and block once the limit is reached.

        Returns:
            Attempt count inside the current window (1 when degraded).
        """
        key = normalize_identity(key)
        if not await self._degradation.cache_available():
            return 1 if self._fails_open else self.max_attempts

        try:
            counter = await self._store.incr_with_expire(
                ATTEMPTS_PREFIX + key, self.block_duration_seconds
            )
            if counter.count >= self.max_attempts:
                await self._store.set(BLOCK_PREFIX + key, "1", self.block_duration_seconds)
                logger.warning(
                    "brute_force.blocked",
                    extra={
                        "key_hash": hash_identifier(key),
                        "attempts": counter.count,
                        "block_s": self.block_duration_seconds,
                    },
                )
            else:
                logger.info(
                    "brute_force.failure_recorded",
                    extra={"key_hash": hash_identifier(key), "attempts": counter.count},
                )
            return counter.count
        except CacheStoreUnavailableError as exc:
            self._outage(exc)
            return 1 if self._fails_open else self.max_attempts

    async def is_blocked(self, key: str) -> bool:
        key = normalize_identity(key)
        if not await self._degradation.cache_available():
            return not self._fails_open

        try:
            return await self._store.get(BLOCK_PREFIX + key) is not None
        except CacheStoreUnavailableError as exc:
            self._outage(exc)
            return not self._fails_open

    async def get_remaining_block_seconds(self, key: str) -> int:
        """Seconds until the block lifts; 0 when not blocked."""
        key = normalize_identity(key)
        if not await self._degradation.cache_available():
            return 0 if self._fails_open else self.block_duration_seconds

        try:
            ttl = await self._store.ttl(BLOCK_PREFIX + key)
        except CacheStoreUnavailableError as exc:
            self._outage(exc)
            return 0 if self._fails_open else self.block_duration_seconds
        return max(0, ttl)

    async def get_remaining_attempts(self, key: str) -> int:
        """Failures still allowed before a block; ``max_attempts`` when degraded."""
        key = normalize_identity(key)
        if not await self._degradation.cache_available():
            return self.max_attempts

        try:
            raw = await self._store.get(ATTEMPTS_PREFIX + key)
        except CacheStoreUnavailableError as exc:
            self._outage(exc)
            return self.max_attempts
        attempts = int(raw) if raw else 0
        return max(0, self.max_attempts - attempts)

    async def reset(self, key: str) -> None:
        """Forget failures and lift any block (after a successful login)."""
        key = normalize_identity(key)
        if not await self._degradation.cache_available():
            return

        try:
            await self._store.delete(ATTEMPTS_PREFIX + key, BLOCK_PREFIX + key)
        except CacheStoreUnavailableError as exc:
            self._outage(exc)
            return
        logger.info("brute_force.reset", extra={"key_hash": hash_identifier(key)})
