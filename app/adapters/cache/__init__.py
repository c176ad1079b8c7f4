"""Cache store adapter layer - shared TTL key-value store (Redis or in-process)."""

from app.adapters.cache.base import AbstractCacheStore, CounterState
from app.adapters.cache.factory import create_cache_store
from app.adapters.cache.in_memory import InMemoryCacheStore
from app.adapters.cache.redis_store import RedisCacheStore

__all__ = [
    "AbstractCacheStore",
    "CounterState",
    "InMemoryCacheStore",
    "RedisCacheStore",
    "create_cache_store",
]
