"""Factory for the configured cache store."""

from app.adapters.cache.base import AbstractCacheStore
from app.adapters.cache.in_memory import InMemoryCacheStore
from app.adapters.cache.redis_store import RedisCacheStore
from app.core.config import CacheSettings
from app.core.errors import ValidationAppError


def create_cache_store(cache_settings: CacheSettings) -> AbstractCacheStore:
    """Instantiate the cache store named by ``CACHE_BACKEND``.

    Args:
        cache_settings: Resolved cache settings.

    Returns:
        AbstractCacheStore: Unconnected store instance.

    Raises:
        ValidationAppError: If the backend is unknown or misconfigured.
    """
    backend = cache_settings.backend.lower()

    if backend == "redis":
        if not cache_settings.url:
            raise ValidationAppError(
                code="cache_missing_url",
                message="Redis cache backend requires CACHE_URL",
            )
        return RedisCacheStore(
            url=cache_settings.url,
            timeout_seconds=cache_settings.timeout_seconds,
        )

    if backend == "memory":
        return InMemoryCacheStore()

    raise ValidationAppError(
        code="cache_unknown_backend",
        message=f"Unknown cache backend: '{backend}'. Supported backends: redis, memory",
    )
