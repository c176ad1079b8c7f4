"""Degradation policy for cache-store outages.

Each component that depends on the cache store asks the controller two
questions: is the store believed reachable right now, and what should I do
if it is not. The answer to the second is a fixed policy table:

- rate limiter: fail-closed (throttling must not switch off under stress)
- brute-force guard: fail-open (an infra outage must not lock users out)
- session manager: fail-closed (a session the cache cannot vouch for is dead)

Reachability comes from a PING probe whose result is trusted for a short
time, refreshed on demand once stale, and also refreshed by a scheduled job
so recovery is noticed even when nothing asks.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Callable, Mapping

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.adapters.cache.base import AbstractCacheStore
from app.core.errors import CacheStoreUnavailableError

logger = logging.getLogger(__name__)

PROBE_JOB_ID = "cache_health_probe"


class FailurePolicy(str, Enum):
    FAIL_OPEN = "fail_open"
    FAIL_CLOSED = "fail_closed"


class GuardedComponent(str, Enum):
    RATE_LIMITER = "rate_limiter"
    BRUTE_FORCE_GUARD = "brute_force_guard"
    SESSION_MANAGER = "session_manager"


DEFAULT_POLICIES: Mapping[GuardedComponent, FailurePolicy] = {
    GuardedComponent.RATE_LIMITER: FailurePolicy.FAIL_CLOSED,
    GuardedComponent.BRUTE_FORCE_GUARD: FailurePolicy.FAIL_OPEN,
    GuardedComponent.SESSION_MANAGER: FailurePolicy.FAIL_CLOSED,
}


class CacheHealthMonitor:
    """Cached liveness probe of the cache store.

    Attributes:
        probe_ttl_seconds: How long a probe result is trusted.
        probe_interval_seconds: Background re-probe period.
    """

    def __init__(
        self,
        store: AbstractCacheStore,
        *,
        probe_ttl_seconds: float = 5.0,
        probe_interval_seconds: float = 15.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if probe_ttl_seconds <= 0:
            raise ValueError("probe_ttl_seconds must be > 0")
        if probe_interval_seconds <= 0:
            raise ValueError("probe_interval_seconds must be > 0")

        self._store = store
        self.probe_ttl_seconds = probe_ttl_seconds
        self.probe_interval_seconds = probe_interval_seconds
        self._clock = clock
        self._available = True
        self._checked_at: float | None = None
        self._last_error: str | None = None
        self._lock = asyncio.Lock()

    @property
    def last_known_available(self) -> bool:
        return self._available

    def _is_fresh(self) -> bool:
        return (
            self._checked_at is not None
            and self._clock() - self._checked_at < self.probe_ttl_seconds
        )

    async def probe(self) -> bool:
        """PING the store now and record the outcome."""
        try:
            ok = await self._store.ping()
            error = None if ok else "ping returned false"
        except CacheStoreUnavailableError as exc:
            ok, error = False, str(exc)

        was_available = self._available
        self._available = ok
        self._last_error = error
        self._checked_at = self._clock()

        if ok and not was_available:
            logger.info("degradation.cache_recovered")
        elif not ok and was_available:
            logger.error("degradation.cache_unavailable", extra={"reason": error})
        return ok

    async def is_available(self) -> bool:
        """Return the cached verdict, re-probing once it has gone stale."""
        if self._is_fresh():
            return self._available
        async with self._lock:
            # Another waiter may have probed while we queued on the lock
            if self._is_fresh():
                return self._available
            return await self.probe()

    def mark_unavailable(self, reason: str) -> None:
        """Record a failed cache call so callers short-circuit until re-probe."""
        if self._available:
            logger.error("degradation.cache_unavailable", extra={"reason": reason})
        self._available = False
        self._last_error = reason
        self._checked_at = self._clock()

    async def refresh(self) -> None:
        """Scheduled re-probe. Errors are logged so the next run still happens."""
        try:
            await self.probe()
        except Exception:
            logger.exception("degradation.probe_failed")

    async def start(self, scheduler: AsyncIOScheduler) -> None:
        """Probe once, then re-probe every ``probe_interval_seconds`` on ``scheduler``."""
        await self.probe()
        scheduler.add_job(
            self.refresh,
            trigger=IntervalTrigger(seconds=self.probe_interval_seconds),
            id=PROBE_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(
            "degradation.monitor_started",
            extra={"probe_interval_s": self.probe_interval_seconds},
        )

    def stop(self, scheduler: AsyncIOScheduler) -> None:
        if scheduler.get_job(PROBE_JOB_ID) is None:
            return
        scheduler.remove_job(PROBE_JOB_ID)
        logger.info("degradation.monitor_stopped")

    def snapshot(self) -> dict[str, object]:
        return {
            "available": self._available,
            "last_error": self._last_error,
            "probe_ttl_s": self.probe_ttl_seconds,
            "probe_interval_s": self.probe_interval_seconds,
        }


class DegradationController:
    """Policy table plus the shared liveness verdict."""

    def __init__(
        self,
        monitor: CacheHealthMonitor,
        policies: Mapping[GuardedComponent, FailurePolicy] | None = None,
    ) -> None:
        resolved = dict(DEFAULT_POLICIES)
        resolved.update(policies or {})
        missing = set(GuardedComponent) - set(resolved)
        if missing:
            raise ValueError(f"no failure policy for: {sorted(c.value for c in missing)}")

        self.monitor = monitor
        self._policies = resolved

    def policy_for(self, component: GuardedComponent) -> FailurePolicy:
        return self._policies[component]

    async def cache_available(self) -> bool:
        return await self.monitor.is_available()

    def record_outage(self, component: GuardedComponent, exc: BaseException) -> FailurePolicy:
        """Note a failed cache call and return the component's policy.

        The underlying cause is logged here and never returned to clients.
        """
        policy = self.policy_for(component)
        self.monitor.mark_unavailable(str(exc))
        logger.warning(
            "degradation.applied",
            extra={
                "component": component.value,
                "policy": policy.value,
                "error_type": type(exc).__name__,
            },
        )
        return policy

    def status(self) -> dict[str, object]:
        return {
            "cache": self.monitor.snapshot(),
            "policies": {c.value: p.value for c, p in self._policies.items()},
        }
