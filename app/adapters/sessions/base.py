"""Durable session store interface.

The durable store is an enumeration index: it lets a user list and revoke
their sessions. It is not the authority on whether a session is alive (the
cache entry's TTL is), so implementations need no uniqueness constraint on
(user_id, platform); the session manager enforces that by eviction.

Every method raises DurableStoreUnavailableError when the store cannot be
reached.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable

from app.models.session import Platform, SessionRecord


class AbstractSessionRepository(ABC):
    """Interface for the per-user session collection."""

    async def connect(self) -> None:
        """Open connections and ensure indexes. No-op by default."""

    async def close(self) -> None:
        """Release connections. No-op by default."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return True when the store answers; raise when it is unreachable."""
        raise NotImplementedError

    @abstractmethod
    async def insert(self, record: SessionRecord) -> None:
        raise NotImplementedError

    @abstractmethod
    async def find_by_session_id(self, session_id: str) -> SessionRecord | None:
        raise NotImplementedError

    @abstractmethod
    async def find_by_user(
        self,
        user_id: str,
        *,
        platform: Platform | None = None,
        active_at: datetime | None = None,
    ) -> list[SessionRecord]:
        """Return a user's records, most recently active first.

        Args:
            user_id: Owner of the sessions.
            platform: Restrict to one platform when given.
            active_at: When given, only records expiring after this instant.
        """
        raise NotImplementedError

    @abstractmethod
    async def delete(self, session_id: str) -> bool:
        """Delete one record; False when it did not exist."""
        raise NotImplementedError

    @abstractmethod
    async def delete_many(self, session_ids: Iterable[str]) -> int:
        raise NotImplementedError

    @abstractmethod
    async def touch(self, session_id: str, at: datetime) -> bool:
        """Update ``last_activity_at``; False when the record is gone."""
        raise NotImplementedError

    @abstractmethod
    async def delete_expired(self, now: datetime) -> int:
        raise NotImplementedError

    @abstractmethod
    async def count_by_user(self, user_id: str, *, active_at: datetime) -> int:
        raise NotImplementedError
