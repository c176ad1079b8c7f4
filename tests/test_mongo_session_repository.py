"""Unit tests for the MongoDB session repository with a mocked client."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from app.adapters.sessions.mongo import MongoSessionRepository
from app.core.errors import DurableStoreUnavailableError
from app.models.session import DeviceType, Platform, SessionRecord

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _record(session_id: str = "s1") -> SessionRecord:
    return SessionRecord(
        session_id=session_id,
        user_id="user-ana",
        platform=Platform.APP,
        device_name="iPhone (iOS 17.2)",
        device_type=DeviceType.MOBILE,
        created_at=NOW,
        last_activity_at=NOW,
        expires_at=NOW + timedelta(days=30),
    )


@pytest.fixture
def collection() -> MagicMock:
    return MagicMock()


@pytest.fixture
def repository(collection: MagicMock) -> MongoSessionRepository:
    client = MagicMock()
    client.__getitem__.return_value.__getitem__.return_value = collection
    client.admin.command = AsyncMock(return_value={"ok": 1})
    client.close = AsyncMock()
    return MongoSessionRepository(uri="mongodb://db:27017", database="app", client=client)


@pytest.mark.asyncio
async def test_insert_stores_plain_document(repository, collection) -> None:
    collection.insert_one = AsyncMock()

    await repository.insert(_record())

    doc = collection.insert_one.await_args.args[0]
    assert doc["platform"] == "app"
    assert doc["device_type"] == "mobile"
    assert doc["expires_at"] == NOW + timedelta(days=30)


@pytest.mark.asyncio
async def test_find_by_user_filters_and_sorts(repository, collection) -> None:
    doc = {"_id": "oid", **_record().to_doc()}
    collection.find = Mock()
    collection.find.return_value.sort.return_value.to_list = AsyncMock(return_value=[doc])

    records = await repository.find_by_user("user-ana", platform=Platform.APP, active_at=NOW)

    collection.find.assert_called_once_with(
        {"user_id": "user-ana", "platform": "app", "expires_at": {"$gt": NOW}}
    )
    collection.find.return_value.sort.assert_called_once_with("last_activity_at", -1)
    assert records == [_record()]


@pytest.mark.asyncio
async def test_delete_many_without_ids_skips_query(repository, collection) -> None:
    collection.delete_many = AsyncMock()

    assert await repository.delete_many([]) == 0
    collection.delete_many.assert_not_awaited()


@pytest.mark.asyncio
async def test_driver_errors_become_store_unavailable(repository, collection) -> None:
    collection.find_one = AsyncMock(side_effect=ServerSelectionTimeoutError("no servers"))

    with pytest.raises(DurableStoreUnavailableError) as exc_info:
        await repository.find_by_session_id("s1")
    assert exc_info.value.operation == "find_one"


@pytest.mark.asyncio
async def test_connect_creates_ttl_index(repository, collection) -> None:
    collection.create_index = AsyncMock()

    await repository.connect()

    collection.create_index.assert_any_await([("expires_at", 1)], expireAfterSeconds=0)
    collection.create_index.assert_any_await([("session_id", 1)], unique=True)


@pytest.mark.asyncio
async def test_connect_failure_is_logged_not_raised(repository, collection) -> None:
    collection.create_index = AsyncMock(side_effect=ServerSelectionTimeoutError("no servers"))

    await repository.connect()


@pytest.mark.asyncio
async def test_ping(repository) -> None:
    assert await repository.ping() is True


@pytest.mark.asyncio
async def test_delete_many_targets_given_ids(repository, collection) -> None:
    collection.delete_many = AsyncMock(return_value=Mock(deleted_count=2))

    assert await repository.delete_many(["s1", "s2"]) == 2
    collection.delete_many.assert_awaited_once_with({"session_id": {"$in": ["s1", "s2"]}})
