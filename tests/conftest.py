"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment variables are set before anything imports settings so the app
runs on in-process stores instead of Redis/MongoDB.
"""

import os
import time
from typing import NoReturn

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("DURABLE_BACKEND", "memory")
os.environ.setdefault("SESSION_CLEANUP_ENABLED", "false")
os.environ.setdefault("APP_SEED_USERS", "ana@example.com:user-ana:correct-horse")

import pytest
from fastapi.testclient import TestClient

from app.adapters.cache.base import AbstractCacheStore, CounterState
from app.adapters.cache.in_memory import InMemoryCacheStore
from app.adapters.credentials import InMemoryCredentialVerifier
from app.adapters.sessions.in_memory import InMemorySessionRepository
from app.core.app_factory import create_app
from app.core.config import SessionSettings, Settings
from app.core.container import ServiceContainer, build_services
from app.core.errors import CacheStoreUnavailableError
from app.models.session import DeviceInfo, DeviceType, Platform
from app.services.degradation import CacheHealthMonitor, DegradationController

SEED_EMAIL = "ana@example.com"
SEED_USER_ID = "user-ana"
SEED_PASSWORD = "correct-horse"


class FakeClock:
    """Manually advanced clock usable as both wall and monotonic time."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class UnreachableCacheStore(AbstractCacheStore):
    """Cache store whose every call fails like a dead Redis."""

    def __init__(self) -> None:
        self.calls = 0

    def _fail(self, operation: str) -> NoReturn:
        self.calls += 1
        raise CacheStoreUnavailableError(operation, ConnectionError("connection refused"))

    async def ping(self) -> bool:
        self._fail("PING")

    async def incr_with_expire(self, key: str, ttl_seconds: int) -> CounterState:
        self._fail("INCR")

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._fail("SET")

    async def get(self, key: str) -> str | None:
        self._fail("GET")

    async def delete(self, *keys: str) -> int:
        self._fail("DEL")

    async def ttl(self, key: str) -> int:
        self._fail("TTL")

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        self._fail("EXPIRE")


class FlakyCacheStore(InMemoryCacheStore):
    """In-memory store that can be switched off mid-test."""

    def __init__(self, *, clock=time.time) -> None:
        super().__init__(clock=clock)
        self.down = False

    def _check(self, operation: str) -> None:
        if self.down:
            raise CacheStoreUnavailableError(operation, ConnectionError("connection reset"))

    async def ping(self) -> bool:
        self._check("PING")
        return True

    async def incr_with_expire(self, key: str, ttl_seconds: int) -> CounterState:
        self._check("INCR")
        return await super().incr_with_expire(key, ttl_seconds)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._check("SET")
        await super().set(key, value, ttl_seconds)

    async def get(self, key: str) -> str | None:
        self._check("GET")
        return await super().get(key)

    async def delete(self, *keys: str) -> int:
        self._check("DEL")
        return await super().delete(*keys)

    async def ttl(self, key: str) -> int:
        self._check("TTL")
        return await super().ttl(key)


def make_degradation(store: AbstractCacheStore, clock: FakeClock) -> DegradationController:
    return DegradationController(CacheHealthMonitor(store, clock=clock))


def web_device(name: str = "Chrome on Windows 10") -> DeviceInfo:
    return DeviceInfo(
        name=name,
        type=DeviceType.WEB,
        platform=Platform.WEB,
        user_agent="Mozilla/5.0",
        ip_address="203.0.113.7",
    )


def app_device(name: str = "iPhone (iOS 17.2)") -> DeviceInfo:
    return DeviceInfo(
        name=name,
        type=DeviceType.MOBILE,
        platform=Platform.APP,
        user_agent="MyApp/1.0 (iPhone; iOS 17.2)",
        ip_address="198.51.100.4",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache_store(clock: FakeClock) -> FlakyCacheStore:
    return FlakyCacheStore(clock=clock)


@pytest.fixture
def repository() -> InMemorySessionRepository:
    return InMemorySessionRepository()


@pytest.fixture
def degradation(cache_store: FlakyCacheStore, clock: FakeClock) -> DegradationController:
    return make_degradation(cache_store, clock)


@pytest.fixture
def session_settings() -> SessionSettings:
    return SessionSettings()


@pytest.fixture
def services(
    cache_store: FlakyCacheStore,
    repository: InMemorySessionRepository,
    clock: FakeClock,
) -> ServiceContainer:
    return build_services(
        Settings(),
        cache=cache_store,
        repository=repository,
        credentials=InMemoryCredentialVerifier({SEED_EMAIL: (SEED_USER_ID, SEED_PASSWORD)}),
        clock=clock,
        monotonic=clock,
    )


@pytest.fixture
def client(services: ServiceContainer):
    with TestClient(create_app(services)) as test_client:
        yield test_client
