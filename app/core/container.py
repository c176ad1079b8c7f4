"""Explicitly constructed service graph.

Adapters and components are built once per application from settings and
attached to ``app.state.services``; routes receive them through the
``get_services`` dependency. Nothing here is a module-level singleton, so
tests can build a container around in-memory adapters and a fake clock.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import Request

from app.adapters.cache import AbstractCacheStore, create_cache_store
from app.adapters.credentials import AbstractCredentialVerifier, create_credential_verifier
from app.adapters.sessions import AbstractSessionRepository, create_session_repository
from app.core.config import Settings
from app.core.errors import DurableStoreUnavailableError
from app.services.brute_force import BruteForceGuard
from app.services.degradation import CacheHealthMonitor, DegradationController
from app.services.rate_limiter import RateLimiter, build_tier_table
from app.services.session_cleanup import SessionCleanupScheduler
from app.services.session_manager import SessionManager

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    cache: AbstractCacheStore
    repository: AbstractSessionRepository
    credentials: AbstractCredentialVerifier
    monitor: CacheHealthMonitor
    degradation: DegradationController
    rate_limiter: RateLimiter
    brute_force: BruteForceGuard
    sessions: SessionManager
    cleanup: SessionCleanupScheduler
    scheduler: AsyncIOScheduler = field(default_factory=AsyncIOScheduler)

    async def start(self) -> None:
        """Connect adapters and start the periodic jobs."""
        await self.cache.connect()
        await self.repository.connect()
        await self.monitor.start(self.scheduler)
        if self.settings.session.cleanup_enabled:
            self.cleanup.start(self.scheduler)
        self.scheduler.start()
        logger.info(
            "services.started",
            extra={
                "cache_backend": self.settings.cache.backend,
                "durable_backend": self.settings.durable.backend,
                "cache_available": self.monitor.last_known_available,
            },
        )

    async def stop(self) -> None:
        self.cleanup.stop(self.scheduler)
        self.monitor.stop(self.scheduler)
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        await self.repository.close()
        await self.cache.close()
        logger.info("services.stopped")

    async def durable_available(self) -> bool:
        try:
            return await self.repository.ping()
        except DurableStoreUnavailableError as exc:
            logger.warning("services.durable_unavailable", extra={"error": str(exc)})
            return False


def build_services(
    settings: Settings,
    *,
    cache: AbstractCacheStore | None = None,
    repository: AbstractSessionRepository | None = None,
    credentials: AbstractCredentialVerifier | None = None,
    clock: Callable[[], float] = time.time,
    monotonic: Callable[[], float] = time.monotonic,
) -> ServiceContainer:
    """Wire adapters and components from settings.

    Any adapter can be passed in to replace the configured backend.
    """
    cache = cache or create_cache_store(settings.cache)
    repository = repository or create_session_repository(settings.durable)
    credentials = credentials or create_credential_verifier(settings.app)

    monitor = CacheHealthMonitor(
        cache,
        probe_ttl_seconds=settings.degradation.probe_ttl_seconds,
        probe_interval_seconds=settings.degradation.probe_interval_seconds,
        clock=monotonic,
    )
    degradation = DegradationController(monitor)
    sessions = SessionManager(cache, repository, degradation, settings.session, clock=clock)

    return ServiceContainer(
        settings=settings,
        cache=cache,
        repository=repository,
        credentials=credentials,
        monitor=monitor,
        degradation=degradation,
        rate_limiter=RateLimiter(
            cache, degradation, build_tier_table(settings.rate_limit), clock=clock
        ),
        brute_force=BruteForceGuard(
            cache,
            degradation,
            max_attempts=settings.brute_force.max_attempts,
            block_duration_seconds=settings.brute_force.block_duration_seconds,
        ),
        sessions=sessions,
        cleanup=SessionCleanupScheduler(
            sessions, interval_seconds=settings.session.cleanup_interval_seconds
        ),
    )


def get_services(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the container attached to the app."""
    return request.app.state.services
