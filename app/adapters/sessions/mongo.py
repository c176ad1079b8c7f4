"""MongoDB-backed session index.

Documents live in the ``user_sessions`` collection, one per active session.
Indexes:
- session_id (unique) for revocation by id
- (user_id, platform) for the eviction lookup on login
- (user_id, last_activity_at) for listing
- expires_at as a TTL index so MongoDB purges dead records on its own
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable

from pymongo import ASCENDING, DESCENDING, AsyncMongoClient
from pymongo.errors import PyMongoError

from app.adapters.sessions.base import AbstractSessionRepository
from app.core.errors import DurableStoreUnavailableError
from app.models.session import Platform, SessionRecord

logger = logging.getLogger(__name__)


class MongoSessionRepository(AbstractSessionRepository):
    """Session repository on top of PyMongo's asyncio client."""

    def __init__(
        self,
        *,
        uri: str,
        database: str,
        collection: str = "user_sessions",
        timeout_seconds: float = 10.0,
        client: AsyncMongoClient | None = None,
    ) -> None:
        timeout_ms = int(timeout_seconds * 1000)
        self._client = client or AsyncMongoClient(
            uri,
            tz_aware=True,
            serverSelectionTimeoutMS=timeout_ms,
            connectTimeoutMS=timeout_ms,
            socketTimeoutMS=timeout_ms,
        )
        self._collection = self._client[database][collection]

    async def connect(self) -> None:
        """Create indexes. Failure is logged; the app starts degraded."""
        try:
            await self._collection.create_index([("session_id", ASCENDING)], unique=True)
            await self._collection.create_index([("user_id", ASCENDING), ("platform", ASCENDING)])
            await self._collection.create_index(
                [("user_id", ASCENDING), ("last_activity_at", DESCENDING)]
            )
            await self._collection.create_index([("expires_at", ASCENDING)], expireAfterSeconds=0)
            logger.info("durable_store.indexes_ready", extra={"collection": self._collection.name})
        except PyMongoError as exc:
            logger.error(
                "durable_store.index_setup_failed",
                extra={"collection": self._collection.name, "error_type": type(exc).__name__},
            )

    async def close(self) -> None:
        await self._client.close()
        logger.info("durable_store.closed", extra={"collection": self._collection.name})

    async def ping(self) -> bool:
        try:
            await self._client.admin.command("ping")
        except PyMongoError as exc:
            raise DurableStoreUnavailableError("ping", exc) from exc
        return True

    async def insert(self, record: SessionRecord) -> None:
        try:
            await self._collection.insert_one(record.to_doc())
        except PyMongoError as exc:
            raise DurableStoreUnavailableError("insert_one", exc) from exc

    async def find_by_session_id(self, session_id: str) -> SessionRecord | None:
        try:
            doc = await self._collection.find_one({"session_id": session_id})
        except PyMongoError as exc:
            raise DurableStoreUnavailableError("find_one", exc) from exc
        return SessionRecord.from_doc(doc) if doc else None

    async def find_by_user(
        self,
        user_id: str,
        *,
        platform: Platform | None = None,
        active_at: datetime | None = None,
    ) -> list[SessionRecord]:
        query: dict[str, Any] = {"user_id": user_id}
        if platform is not None:
            query["platform"] = platform.value
        if active_at is not None:
            query["expires_at"] = {"$gt": active_at}

        try:
            cursor = self._collection.find(query).sort("last_activity_at", DESCENDING)
            docs = await cursor.to_list(length=None)
        except PyMongoError as exc:
            raise DurableStoreUnavailableError("find", exc) from exc
        return [SessionRecord.from_doc(doc) for doc in docs]

    async def delete(self, session_id: str) -> bool:
        try:
            result = await self._collection.delete_one({"session_id": session_id})
        except PyMongoError as exc:
            raise DurableStoreUnavailableError("delete_one", exc) from exc
        return result.deleted_count > 0

    async def delete_many(self, session_ids: Iterable[str]) -> int:
        ids = list(session_ids)
        if not ids:
            return 0
        try:
            result = await self._collection.delete_many({"session_id": {"$in": ids}})
        except PyMongoError as exc:
            raise DurableStoreUnavailableError("delete_many", exc) from exc
        return result.deleted_count

    async def touch(self, session_id: str, at: datetime) -> bool:
        try:
            result = await self._collection.update_one(
                {"session_id": session_id},
                {"$set": {"last_activity_at": at}},
            )
        except PyMongoError as exc:
            raise DurableStoreUnavailableError("update_one", exc) from exc
        return result.matched_count > 0

    async def delete_expired(self, now: datetime) -> int:
        try:
            result = await self._collection.delete_many({"expires_at": {"$lt": now}})
        except PyMongoError as exc:
            raise DurableStoreUnavailableError("delete_many", exc) from exc
        return result.deleted_count

    async def count_by_user(self, user_id: str, *, active_at: datetime) -> int:
        try:
            return await self._collection.count_documents(
                {"user_id": user_id, "expires_at": {"$gt": active_at}}
            )
        except PyMongoError as exc:
            raise DurableStoreUnavailableError("count_documents", exc) from exc
