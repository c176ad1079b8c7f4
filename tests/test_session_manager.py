"""Tests for the multi-device session manager."""

from datetime import timedelta

import pytest

from conftest import (
    FakeClock,
    FlakyCacheStore,
    UnreachableCacheStore,
    app_device,
    make_degradation,
    web_device,
)

from app.adapters.sessions.in_memory import InMemorySessionRepository
from app.core.config import SessionSettings
from app.core.errors import (
    BadRequestAppError,
    CacheStoreUnavailableError,
    DurableStoreUnavailableError,
    ForbiddenAppError,
    NotFoundAppError,
    ServiceUnavailableAppError,
    UnauthorizedAppError,
)
from app.models.session import DeviceInfo, DeviceType, Platform, session_cache_key
from app.services.degradation import (
    CacheHealthMonitor,
    DegradationController,
    FailurePolicy,
    GuardedComponent,
)
from app.services.session_manager import SessionManager


@pytest.fixture
def manager(cache_store, repository, degradation, session_settings, clock) -> SessionManager:
    return SessionManager(cache_store, repository, degradation, session_settings, clock=clock)


class BrokenRepository(InMemorySessionRepository):
    """Repository that starts failing once ``down`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.down = False

    async def find_by_user(self, user_id, *, platform=None, active_at=None):
        if self.down:
            raise DurableStoreUnavailableError("find", ConnectionError("no primary"))
        return await super().find_by_user(user_id, platform=platform, active_at=active_at)

    async def touch(self, session_id, at):
        if self.down:
            raise DurableStoreUnavailableError("update_one", ConnectionError("no primary"))
        return await super().touch(session_id, at)

    async def delete_many(self, session_ids):
        if self.down:
            raise DurableStoreUnavailableError("delete_many", ConnectionError("no primary"))
        return await super().delete_many(session_ids)


class LoginDuringReadRepository(InMemorySessionRepository):
    """Runs ``on_read`` once, right after the next per-user read returns."""

    def __init__(self) -> None:
        super().__init__()
        self.on_read = None

    async def find_by_user(self, user_id, *, platform=None, active_at=None):
        records = await super().find_by_user(user_id, platform=platform, active_at=active_at)
        hook, self.on_read = self.on_read, None
        if hook is not None:
            await hook()
        return records


class TestCreateSession:
    @pytest.mark.asyncio
    async def test_writes_durable_record_and_cache_entry(
        self, manager: SessionManager, cache_store, repository, clock: FakeClock
    ) -> None:
        result = await manager.create_session("u1", web_device())
        session = result.session

        assert result.previous_session_evicted is False
        assert session.platform is Platform.WEB
        assert session.expires_at - session.created_at == timedelta(days=1)
        assert await repository.find_by_session_id(session.session_id) is not None
        assert await cache_store.ttl(session_cache_key(session.session_id)) == 86400

    @pytest.mark.asyncio
    async def test_app_platform_lives_thirty_days(self, manager: SessionManager, cache_store) -> None:
        session = (await manager.create_session("u1", app_device())).session

        assert session.platform is Platform.APP
        assert session.expires_at - session.created_at == timedelta(days=30)
        assert await cache_store.ttl(session_cache_key(session.session_id)) == 30 * 86400

    @pytest.mark.asyncio
    async def test_same_platform_login_evicts_previous(
        self, manager: SessionManager, cache_store, repository
    ) -> None:
        first = (await manager.create_session("u1", web_device("Chrome on Windows 10"))).session
        second = await manager.create_session("u1", web_device("Firefox on Linux"))

        assert second.previous_session_evicted is True
        assert second.evicted_device_name == "Chrome on Windows 10"
        assert second.evicted_platform is Platform.WEB
        assert await cache_store.get(session_cache_key(first.session_id)) is None

        with pytest.raises(UnauthorizedAppError):
            await manager.resolve_session(first.session_id)

        listed = await manager.list_sessions("u1", second.session.session_id)
        assert [s.session_id for s in listed] == [second.session.session_id]

    @pytest.mark.asyncio
    async def test_other_platform_is_kept(self, manager: SessionManager) -> None:
        web = (await manager.create_session("u1", web_device())).session
        app = await manager.create_session("u1", app_device())

        assert app.previous_session_evicted is False
        listed = await manager.list_sessions("u1", web.session_id)
        assert {s.platform for s in listed} == {Platform.WEB, Platform.APP}

    @pytest.mark.asyncio
    async def test_at_most_one_record_per_platform(self, manager: SessionManager, repository) -> None:
        for index in range(4):
            await manager.create_session("u1", web_device(f"Browser {index}"))
            await manager.create_session("u1", app_device(f"Phone {index}"))

        for platform in Platform:
            assert len(await repository.find_by_user("u1", platform=platform)) == 1

    @pytest.mark.asyncio
    async def test_evicts_every_duplicate_record(self, manager: SessionManager, repository) -> None:
        # Two concurrent logins can leave duplicates behind; the next login clears them
        first = (await manager.create_session("u1", web_device("A"))).session
        duplicate = first.model_copy(update={"session_id": "dup", "device_name": "B"})
        await repository.insert(duplicate)

        await manager.create_session("u1", web_device("C"))

        records = await repository.find_by_user("u1", platform=Platform.WEB)
        assert [r.device_name for r in records] == ["C"]

    @pytest.mark.asyncio
    async def test_eviction_survives_cache_delete_failure(
        self, manager: SessionManager, cache_store: FlakyCacheStore, repository
    ) -> None:
        await manager.create_session("u1", web_device("A"))
        original_delete = cache_store.delete

        async def failing_delete(*keys):
            raise CacheStoreUnavailableError("DEL")

        cache_store.delete = failing_delete
        try:
            result = await manager.create_session("u1", web_device("B"))
        finally:
            cache_store.delete = original_delete

        assert result.previous_session_evicted is True
        assert [r.device_name for r in await repository.find_by_user("u1")] == ["B"]

    @pytest.mark.asyncio
    async def test_missing_platform_uses_device_type_lifetime(self, manager: SessionManager) -> None:
        tablet = DeviceInfo(name="iPad", type=DeviceType.TABLET, platform=None)
        desktop = DeviceInfo(name="Chrome on Linux", type=DeviceType.DESKTOP, platform=None)
        unknown = DeviceInfo(name="curl", type=DeviceType.UNKNOWN, platform=None)

        assert manager.ttl_for(tablet) == 30 * 86400
        assert manager.ttl_for(desktop) == 86400
        assert manager.ttl_for(unknown) == 86400

        session = (await manager.create_session("u1", tablet)).session
        assert session.platform is Platform.WEB
        assert session.expires_at - session.created_at == timedelta(days=30)

    def test_platform_lifetimes_follow_settings(
        self, cache_store, repository, degradation, clock
    ) -> None:
        settings = SessionSettings(max_age_web_seconds=600, max_age_app_seconds=7200)
        manager = SessionManager(cache_store, repository, degradation, settings, clock=clock)

        assert manager.ttl_for(web_device()) == 600
        assert manager.ttl_for(app_device()) == 7200

    @pytest.mark.asyncio
    async def test_cache_outage_fails_closed(
        self, manager: SessionManager, cache_store: FlakyCacheStore, repository
    ) -> None:
        cache_store.down = True

        with pytest.raises(ServiceUnavailableAppError):
            await manager.create_session("u1", web_device())

        assert await repository.find_by_user("u1") == []

    @pytest.mark.asyncio
    async def test_failed_cache_write_removes_durable_record(
        self, manager: SessionManager, cache_store: FlakyCacheStore, repository
    ) -> None:
        await manager.create_session("u1", web_device())
        # Health verdict is still fresh, so the outage is only seen on the write
        cache_store.down = True

        with pytest.raises(ServiceUnavailableAppError):
            await manager.create_session("u2", web_device())

        assert await repository.find_by_user("u2") == []


class TestResolveSession:
    @pytest.mark.asyncio
    async def test_returns_cached_session_and_touches_record(
        self, manager: SessionManager, repository, clock: FakeClock
    ) -> None:
        session = (await manager.create_session("u1", web_device())).session
        clock.advance(120)

        cached = await manager.resolve_session(session.session_id)

        assert cached.user_id == "u1"
        assert cached.device_name == session.device_name
        record = await repository.find_by_session_id(session.session_id)
        assert record.last_activity_at - session.last_activity_at == timedelta(seconds=120)

    @pytest.mark.asyncio
    async def test_expired_cache_entry_is_unauthorized(self, manager: SessionManager, clock: FakeClock) -> None:
        session = (await manager.create_session("u1", web_device())).session
        clock.advance(86400)

        with pytest.raises(UnauthorizedAppError):
            await manager.resolve_session(session.session_id)

    @pytest.mark.asyncio
    async def test_unknown_or_empty_id_is_unauthorized(self, manager: SessionManager) -> None:
        with pytest.raises(UnauthorizedAppError):
            await manager.resolve_session("nope")
        with pytest.raises(UnauthorizedAppError):
            await manager.resolve_session("")

    @pytest.mark.asyncio
    async def test_touch_failure_is_tolerated(self, cache_store, degradation, session_settings, clock) -> None:
        repository = BrokenRepository()
        manager = SessionManager(cache_store, repository, degradation, session_settings, clock=clock)
        session = (await manager.create_session("u1", web_device())).session
        repository.down = True

        cached = await manager.resolve_session(session.session_id)
        assert cached.session_id == session.session_id

    @pytest.mark.asyncio
    async def test_cache_outage_is_service_unavailable(
        self, manager: SessionManager, cache_store: FlakyCacheStore
    ) -> None:
        session = (await manager.create_session("u1", web_device())).session
        cache_store.down = True

        with pytest.raises(ServiceUnavailableAppError):
            await manager.resolve_session(session.session_id)

    @pytest.mark.asyncio
    async def test_corrupt_cache_entry_is_dropped(self, manager: SessionManager, cache_store) -> None:
        key = session_cache_key("garbled")
        await cache_store.set(key, "not-json", 60)

        with pytest.raises(UnauthorizedAppError) as exc_info:
            await manager.resolve_session("garbled")

        assert exc_info.value.code == "session_expired"
        assert await cache_store.get(key) is None


class TestListSessions:
    @pytest.mark.asyncio
    async def test_marks_current_and_orders_by_activity(
        self, manager: SessionManager, clock: FakeClock
    ) -> None:
        web = (await manager.create_session("u1", web_device())).session
        clock.advance(10)
        app = (await manager.create_session("u1", app_device())).session
        await manager.create_session("u2", web_device())

        listed = await manager.list_sessions("u1", web.session_id)

        assert [s.session_id for s in listed] == [app.session_id, web.session_id]
        assert [s.is_current for s in listed] == [False, True]
        assert await manager.count_sessions("u1") == 2

    @pytest.mark.asyncio
    async def test_hides_expired_records(self, manager: SessionManager, clock: FakeClock) -> None:
        await manager.create_session("u1", web_device())
        await manager.create_session("u1", app_device())
        clock.advance(2 * 86400)

        listed = await manager.list_sessions("u1", None)

        assert [s.platform for s in listed] == [Platform.APP]

    @pytest.mark.asyncio
    async def test_durable_outage_is_service_unavailable(
        self, cache_store, degradation, session_settings, clock
    ) -> None:
        repository = BrokenRepository()
        repository.down = True
        manager = SessionManager(cache_store, repository, degradation, session_settings, clock=clock)

        with pytest.raises(ServiceUnavailableAppError):
            await manager.list_sessions("u1", None)


class TestDeleteSession:
    @pytest.mark.asyncio
    async def test_deletes_other_session_from_both_stores(
        self, manager: SessionManager, cache_store, repository
    ) -> None:
        web = (await manager.create_session("u1", web_device())).session
        app = (await manager.create_session("u1", app_device())).session

        deleted = await manager.delete_session(app.session_id, "u1", web.session_id)

        assert deleted.session_id == app.session_id
        assert await repository.find_by_session_id(app.session_id) is None
        assert await cache_store.get(session_cache_key(app.session_id)) is None

    @pytest.mark.asyncio
    async def test_current_session_is_bad_request(self, manager: SessionManager) -> None:
        web = (await manager.create_session("u1", web_device())).session

        with pytest.raises(BadRequestAppError):
            await manager.delete_session(web.session_id, "u1", web.session_id)

    @pytest.mark.asyncio
    async def test_unknown_session_is_not_found(self, manager: SessionManager) -> None:
        with pytest.raises(NotFoundAppError):
            await manager.delete_session("missing", "u1", "current")

    @pytest.mark.asyncio
    async def test_other_users_session_is_forbidden(self, manager: SessionManager, repository) -> None:
        theirs = (await manager.create_session("u2", web_device())).session

        with pytest.raises(ForbiddenAppError):
            await manager.delete_session(theirs.session_id, "u1", "current")

        assert await repository.find_by_session_id(theirs.session_id) is not None

    @pytest.mark.asyncio
    async def test_cache_outage_keeps_index_intact(
        self, manager: SessionManager, cache_store: FlakyCacheStore, repository
    ) -> None:
        web = (await manager.create_session("u1", web_device())).session
        app = (await manager.create_session("u1", app_device())).session
        cache_store.down = True

        with pytest.raises(ServiceUnavailableAppError):
            await manager.delete_session(app.session_id, "u1", web.session_id)

        assert await repository.find_by_session_id(app.session_id) is not None


class TestDeleteAllOtherSessions:
    @pytest.mark.asyncio
    async def test_keeps_only_current(self, manager: SessionManager, cache_store, repository) -> None:
        web = (await manager.create_session("u1", web_device())).session
        app = (await manager.create_session("u1", app_device())).session

        deleted = await manager.delete_all_other_sessions("u1", web.session_id)

        assert deleted == 1
        assert [r.session_id for r in await repository.find_by_user("u1")] == [web.session_id]
        assert await cache_store.get(session_cache_key(app.session_id)) is None
        assert await cache_store.get(session_cache_key(web.session_id)) is not None

    @pytest.mark.asyncio
    async def test_nothing_to_delete(self, manager: SessionManager) -> None:
        web = (await manager.create_session("u1", web_device())).session

        assert await manager.delete_all_other_sessions("u1", web.session_id) == 0

    @pytest.mark.asyncio
    async def test_login_during_bulk_delete_survives(
        self, cache_store, degradation, session_settings, clock
    ) -> None:
        repository = LoginDuringReadRepository()
        manager = SessionManager(cache_store, repository, degradation, session_settings, clock=clock)
        web = (await manager.create_session("u1", web_device())).session
        await manager.create_session("u1", app_device())
        logins = []

        async def login_from_phone() -> None:
            logins.append((await manager.create_session("u1", app_device())).session)

        repository.on_read = login_from_phone
        await manager.delete_all_other_sessions("u1", web.session_id)

        fresh = logins[0]
        assert (await manager.resolve_session(fresh.session_id)).session_id == fresh.session_id
        listed = await manager.list_sessions("u1", web.session_id)
        assert sorted(s.session_id for s in listed) == sorted([web.session_id, fresh.session_id])


class TestLogoutAndCleanup:
    @pytest.mark.asyncio
    async def test_logout_removes_session(self, manager: SessionManager, repository) -> None:
        web = (await manager.create_session("u1", web_device())).session

        await manager.logout(web.session_id)

        assert await repository.find_by_session_id(web.session_id) is None
        with pytest.raises(UnauthorizedAppError):
            await manager.resolve_session(web.session_id)

    @pytest.mark.asyncio
    async def test_logout_tolerates_index_outage(
        self, cache_store, degradation, session_settings, clock
    ) -> None:
        repository = BrokenRepository()
        manager = SessionManager(cache_store, repository, degradation, session_settings, clock=clock)
        web = (await manager.create_session("u1", web_device())).session
        repository.down = True

        await manager.logout(web.session_id)

        with pytest.raises(UnauthorizedAppError):
            await manager.resolve_session(web.session_id)

    @pytest.mark.asyncio
    async def test_cleanup_removes_only_expired(self, manager: SessionManager, repository, clock: FakeClock) -> None:
        await manager.create_session("u1", web_device())
        await manager.create_session("u1", app_device())
        clock.advance(86400 + 1)

        assert await manager.cleanup_expired() == 1
        assert [r.platform for r in await repository.find_by_user("u1")] == [Platform.APP]


def test_rejects_fail_open_policy(repository, session_settings, clock) -> None:
    store = UnreachableCacheStore()
    degradation = DegradationController(
        CacheHealthMonitor(store, clock=clock),
        {GuardedComponent.SESSION_MANAGER: FailurePolicy.FAIL_OPEN},
    )

    with pytest.raises(ValueError):
        SessionManager(store, repository, degradation, session_settings)


@pytest.mark.asyncio
async def test_unreachable_cache_rejects_everything(repository, session_settings, clock) -> None:
    store = UnreachableCacheStore()
    manager = SessionManager(store, repository, make_degradation(store, clock), session_settings, clock=clock)

    with pytest.raises(ServiceUnavailableAppError):
        await manager.create_session("u1", web_device())
    with pytest.raises(ServiceUnavailableAppError):
        await manager.resolve_session("any")
    with pytest.raises(ServiceUnavailableAppError):
        await manager.logout("any")
