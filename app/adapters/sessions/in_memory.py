"""In-process session repository (development and tests).

Per-process only, like the in-memory cache store.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from app.adapters.sessions.base import AbstractSessionRepository
from app.models.session import Platform, SessionRecord


class InMemorySessionRepository(AbstractSessionRepository):
    """Session records kept in a dict keyed by session id."""

    def __init__(self) -> None:
        self._records: dict[str, SessionRecord] = {}

    async def ping(self) -> bool:
        return True

    async def insert(self, record: SessionRecord) -> None:
        if record.session_id in self._records:
            raise ValueError(f"duplicate session_id: {record.session_id}")
        self._records[record.session_id] = record.model_copy()

    async def find_by_session_id(self, session_id: str) -> SessionRecord | None:
        record = self._records.get(session_id)
        return record.model_copy() if record else None

    async def find_by_user(
        self,
        user_id: str,
        *,
        platform: Platform | None = None,
        active_at: datetime | None = None,
    ) -> list[SessionRecord]:
        matches = [
            record.model_copy()
            for record in self._records.values()
            if record.user_id == user_id
            and (platform is None or record.platform == platform)
            and (active_at is None or record.expires_at > active_at)
        ]
        return sorted(matches, key=lambda r: r.last_activity_at, reverse=True)

    async def delete(self, session_id: str) -> bool:
        return self._records.pop(session_id, None) is not None

    async def delete_many(self, session_ids: Iterable[str]) -> int:
        return sum(1 for sid in list(session_ids) if self._records.pop(sid, None) is not None)

    async def touch(self, session_id: str, at: datetime) -> bool:
        record = self._records.get(session_id)
        if record is None:
            return False
        record.last_activity_at = at
        return True

    async def delete_expired(self, now: datetime) -> int:
        expired = [sid for sid, record in self._records.items() if record.expires_at < now]
        return await self.delete_many(expired)

    async def count_by_user(self, user_id: str, *, active_at: datetime) -> int:
        return len(await self.find_by_user(user_id, active_at=active_at))
