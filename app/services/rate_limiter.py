"""Distributed fixed-window rate limiter with punitive lockout.

Counters live in the shared cache store so every server process enforces the
same quota. Per (tier, client key):

1. A live penalty marker denies immediately.
2. The window counter ``rl_<tier>:<key>`` is incremented atomically; the
   first increment starts the window (expiry = tier duration).
3. Going over the tier's points sets a penalty marker for the tier's block
   duration and denies. The penalty can outlast the window, so a client that
   bursts keeps waiting even after its counter would have reset.

This is deliberately not a token bucket: quotas refill all at once when the
window ends.

When the cache store is unreachable the limiter fails closed and raises
ServiceUnavailableAppError.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Mapping

from app.adapters.cache.base import AbstractCacheStore
from app.core.config import RateLimitSettings
from app.core.errors import CacheStoreUnavailableError, ServiceUnavailableAppError
from app.core.logging import hash_identifier
from app.services.degradation import DegradationController, FailurePolicy, GuardedComponent

logger = logging.getLogger(__name__)


class RateLimitTier(str, Enum):
    """Closed set of rate limit configurations."""

    DEFAULT = "default"
    STRICT = "strict"
    RELAXED = "relaxed"
    LOGIN = "login"
    SIGNUP = "signup"

    @property
    def key_prefix(self) -> str:
        return f"rl_{self.value}:"


@dataclass(frozen=True)
class TierConfig:
    """Quota for one tier.

    Attributes:
        points: Requests allowed per window.
        duration_seconds: Window length.
        block_duration_seconds: Penalty length once the quota is exceeded.
    """

    points: int
    duration_seconds: int
    block_duration_seconds: int

    def __post_init__(self) -> None:
        if self.points < 1:
            raise ValueError("points must be >= 1")
        if self.duration_seconds < 1:
            raise ValueError("duration_seconds must be >= 1")
        if self.block_duration_seconds < 1:
            raise ValueError("block_duration_seconds must be >= 1")


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a consume operation.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when denied).
        reset_at: UNIX epoch seconds when the active guard expires.
        retry_after_seconds: Suggested wait in seconds when denied.
        tier: Tier the request was counted against.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None
    tier: RateLimitTier


def build_tier_table(rate_limit_settings: RateLimitSettings) -> dict[RateLimitTier, TierConfig]:
    """Resolve every tier to its configuration.

    Each tier reads ``<tier>_points``, ``<tier>_duration_seconds`` and
    ``<tier>_block_seconds`` from settings, so adding an enum member without
    the matching settings fails at startup rather than at request time.
    """

    table: dict[RateLimitTier, TierConfig] = {}
    for tier in RateLimitTier:
        prefix = tier.value
        table[tier] = TierConfig(
            points=getattr(rate_limit_settings, f"{prefix}_points"),
            duration_seconds=getattr(rate_limit_settings, f"{prefix}_duration_seconds"),
            block_duration_seconds=getattr(rate_limit_settings, f"{prefix}_block_seconds"),
        )
    return table


def _penalty_key(tier: RateLimitTier, client_key: str) -> str:
    return f"{tier.key_prefix}block:{client_key}"


def _counter_key(tier: RateLimitTier, client_key: str) -> str:
    return f"{tier.key_prefix}{client_key}"


class RateLimiter:
    """Tiered limiter over the shared cache store."""

    def __init__(
        self,
        store: AbstractCacheStore,
        degradation: DegradationController,
        tiers: Mapping[RateLimitTier, TierConfig],
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        missing = set(RateLimitTier) - set(tiers)
        if missing:
            raise ValueError(f"missing tier configuration: {sorted(t.value for t in missing)}")

        self._store = store
        self._degradation = degradation
        self._tiers = dict(tiers)
        self._clock = clock

    def config_for(self, tier: RateLimitTier) -> TierConfig:
        return self._tiers[tier]

    def _degraded(self, tier: RateLimitTier, client_key: str) -> RateLimitResult:
        config = self._tiers[tier]
        policy = self._degradation.policy_for(GuardedComponent.RATE_LIMITER)
        if policy is FailurePolicy.FAIL_OPEN:
            logger.warning(
                "rate_limit.degraded_allow",
                extra={"tier": tier.value, "key_hash": hash_identifier(client_key)},
            )
            return RateLimitResult(
                allowed=True,
                limit=config.points,
                remaining=config.points,
                reset_at=int(self._clock()) + config.duration_seconds,
                retry_after_seconds=None,
                tier=tier,
            )

        logger.warning(
            "rate_limit.degraded_reject",
            extra={"tier": tier.value, "key_hash": hash_identifier(client_key)},
        )
        raise ServiceUnavailableAppError(
            code="rate_limit_unavailable",
            message="Request throttling is temporarily unavailable. Please retry shortly.",
            details={"component": GuardedComponent.RATE_LIMITER.value, "tier": tier.value},
        )

    def _denied(self, tier: RateLimitTier, retry_after: int) -> RateLimitResult:
        config = self._tiers[tier]
        retry_after = max(1, min(retry_after, config.block_duration_seconds))
        return RateLimitResult(
            allowed=False,
            limit=config.points,
            remaining=0,
            reset_at=int(self._clock()) + retry_after,
            retry_after_seconds=retry_after,
            tier=tier,
        )

    async def consume(self, tier: RateLimitTier, client_key: str) -> RateLimitResult:
        """Count one request for ``client_key`` against ``tier``.

        Args:
            tier: Rate limit tier.
            client_key: Requester identity (e.g. ``ip:203.0.113.7``).

        Returns:
            RateLimitResult; ``allowed`` is False once the quota is spent.

        Raises:
            ValueError: If client_key is empty.
            ServiceUnavailableAppError: If the cache store is unreachable.
        """
        if not client_key:
            raise ValueError("client_key must be a non-empty string")

        config = self._tiers[tier]

        if not await self._degradation.cache_available():
            return self._degraded(tier, client_key)

        try:
            penalty_ttl = await self._store.ttl(_penalty_key(tier, client_key))
            if penalty_ttl > 0:
                return self._denied(tier, penalty_ttl)

            counter = await self._store.incr_with_expire(
                _counter_key(tier, client_key), config.duration_seconds
            )
            if counter.count > config.points:
                await self._store.set(
                    _penalty_key(tier, client_key), "1", config.block_duration_seconds
                )
                logger.warning(
                    "rate_limit.penalty_set",
                    extra={
                        "tier": tier.value,
                        "key_hash": hash_identifier(client_key),
                        "count": counter.count,
                        "limit": config.points,
                        "block_s": config.block_duration_seconds,
                    },
                )
                return self._denied(tier, config.block_duration_seconds)
        except CacheStoreUnavailableError as exc:
            self._degradation.record_outage(GuardedComponent.RATE_LIMITER, exc)
            return self._degraded(tier, client_key)

        window_left = counter.ttl_seconds if counter.ttl_seconds > 0 else config.duration_seconds
        return RateLimitResult(
            allowed=True,
            limit=config.points,
            remaining=max(0, config.points - counter.count),
            reset_at=int(self._clock()) + window_left,
            retry_after_seconds=None,
            tier=tier,
        )
