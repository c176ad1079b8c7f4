"""Multi-device session lifecycle.

Two stores hold a session:
- the cache entry ``app:sess:<id>`` whose TTL is the real lifetime and which
  alone authenticates requests;
- the durable record, an index used to list and revoke a user's sessions.

A user keeps at most one session per platform: logging in again on the same
platform evicts the previous session. Eviction is not atomic across the two
stores. For a few milliseconds the evicted device may still authenticate
through its cache entry, and two concurrent same-platform logins may both
survive. Both cases are tolerated; the cache TTL stays the final authority.

The session manager fails closed: if the cache store is down nothing can be
authenticated, created or revoked and callers get ServiceUnavailableAppError.
"""

from __future__ import annotations

import logging
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import Callable

from pydantic import ValidationError

from app.adapters.cache.base import AbstractCacheStore
from app.adapters.sessions.base import AbstractSessionRepository
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
from app.core.logging import hash_identifier
from app.models.session import (
    CachedSession,
    DeviceInfo,
    DeviceType,
    Platform,
    SessionCreateResult,
    SessionRecord,
    SessionView,
    session_cache_key,
)
from app.services.degradation import DegradationController, FailurePolicy, GuardedComponent

logger = logging.getLogger(__name__)

_DAY_SECONDS = 24 * 60 * 60

# Lifetimes used only when a login carries no platform signal
LEGACY_DEVICE_TTL_SECONDS: dict[DeviceType, int] = {
    DeviceType.MOBILE: 30 * _DAY_SECONDS,
    DeviceType.TABLET: 30 * _DAY_SECONDS,
    DeviceType.DESKTOP: _DAY_SECONDS,
    DeviceType.WEB: _DAY_SECONDS,
}
LEGACY_DEFAULT_TTL_SECONDS = _DAY_SECONDS


def generate_session_id() -> str:
    return secrets.token_urlsafe(32)


class SessionManager:
    """Creates, resolves, lists and revokes user sessions."""

    def __init__(
        self,
        cache: AbstractCacheStore,
        repository: AbstractSessionRepository,
        degradation: DegradationController,
        session_settings: SessionSettings,
        *,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] = generate_session_id,
    ) -> None:
        policy = degradation.policy_for(GuardedComponent.SESSION_MANAGER)
        if policy is not FailurePolicy.FAIL_CLOSED:
            raise ValueError("session manager only supports the fail_closed policy")

        self._cache = cache
        self._repository = repository
        self._degradation = degradation
        self._platform_ttl = {
            Platform.WEB: session_settings.max_age_web_seconds,
            Platform.APP: session_settings.max_age_app_seconds,
        }
        self._clock = clock
        self._id_factory = id_factory

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    def ttl_for(self, device: DeviceInfo) -> int:
        """Session lifetime in seconds for a device."""
        if device.platform is not None:
            return self._platform_ttl[device.platform]
        return LEGACY_DEVICE_TTL_SECONDS.get(device.type, LEGACY_DEFAULT_TTL_SECONDS)

    def _unavailable(self, operation: str, exc: BaseException | None = None) -> ServiceUnavailableAppError:
        if isinstance(exc, CacheStoreUnavailableError):
            self._degradation.record_outage(GuardedComponent.SESSION_MANAGER, exc)
        elif exc is not None:
            logger.error(
                "session.store_unavailable",
                extra={"operation": operation, "error_type": type(exc).__name__, "error": str(exc)},
            )
        return ServiceUnavailableAppError(
            code="session_store_unavailable",
            message="Sessions are temporarily unavailable. Please retry shortly.",
            details={"component": GuardedComponent.SESSION_MANAGER.value},
        )

    async def _require_cache(self, operation: str) -> None:
        if not await self._degradation.cache_available():
            logger.warning("session.degraded_reject", extra={"operation": operation})
            raise self._unavailable(operation)

    async def _best_effort_delete_cache(self, session_ids: list[str]) -> None:
        """Drop cache entries; failures are logged and left to expire."""
        if not session_ids:
            return
        try:
            await self._cache.delete(*(session_cache_key(sid) for sid in session_ids))
        except CacheStoreUnavailableError as exc:
            self._degradation.record_outage(GuardedComponent.SESSION_MANAGER, exc)
            logger.warning(
                "session.cache_delete_skipped",
                extra={"count": len(session_ids), "error": str(exc)},
            )

    async def create_session(self, user_id: str, device: DeviceInfo) -> SessionCreateResult:
        """Start a session, evicting the user's previous one on the same platform.

        Raises:
            ServiceUnavailableAppError: If either store is unreachable.
        """
        await self._require_cache("create")

        platform = device.platform or Platform.WEB
        ttl_seconds = self.ttl_for(device)
        now = self._now()

        try:
            previous = await self._repository.find_by_user(user_id, platform=platform)
            evicted_ids = [record.session_id for record in previous]
            if evicted_ids:
                await self._repository.delete_many(evicted_ids)
        except DurableStoreUnavailableError as exc:
            raise self._unavailable("create", exc) from exc

        await self._best_effort_delete_cache(evicted_ids)

        record = SessionRecord(
            session_id=self._id_factory(),
            user_id=user_id,
            platform=platform,
            device_name=device.name,
            device_type=device.type,
            user_agent=device.user_agent,
            ip_address=device.ip_address,
            created_at=now,
            last_activity_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )
        cached = CachedSession(
            session_id=record.session_id,
            user_id=user_id,
            platform=platform,
            device_name=record.device_name,
            created_at=record.created_at,
            expires_at=record.expires_at,
        )

        try:
            await self._repository.insert(record)
        except DurableStoreUnavailableError as exc:
            raise self._unavailable("create", exc) from exc

        try:
            await self._cache.set(
                session_cache_key(record.session_id), cached.model_dump_json(), ttl_seconds
            )
        except CacheStoreUnavailableError as exc:
            try:
                await self._repository.delete(record.session_id)
            except DurableStoreUnavailableError as cleanup_exc:
                logger.warning(
                    "session.orphan_record",
                    extra={"session_ref": hash_identifier(record.session_id), "error": str(cleanup_exc)},
                )
            raise self._unavailable("create", exc) from exc

        evicted = previous[0] if previous else None
        logger.info(
            "session.created",
            extra={
                "user_ref": hash_identifier(user_id),
                "session_ref": hash_identifier(record.session_id),
                "platform": platform.value,
                "ttl_s": ttl_seconds,
                "evicted": len(evicted_ids),
            },
        )
        return SessionCreateResult(
            session=record,
            previous_session_evicted=evicted is not None,
            evicted_device_name=evicted.device_name if evicted else None,
            evicted_platform=evicted.platform if evicted else None,
        )

    async def resolve_session(self, session_id: str) -> CachedSession:
        """Authenticate a request from the cache entry alone.

        Raises:
            UnauthorizedAppError: If the session is unknown or expired.
            ServiceUnavailableAppError: If the cache store is unreachable.
        """
        if not session_id:
            raise UnauthorizedAppError(code="session_missing", message="Login required")

        await self._require_cache("resolve")
        try:
            raw = await self._cache.get(session_cache_key(session_id))
        except CacheStoreUnavailableError as exc:
            raise self._unavailable("resolve", exc) from exc

        if raw is None:
            raise UnauthorizedAppError(
                code="session_expired",
                message="Session expired or was signed out on another device. Please log in again.",
            )

        try:
            cached = CachedSession.model_validate_json(raw)
        except ValidationError:
            logger.warning(
                "session.cache_entry_invalid",
                extra={"session_ref": hash_identifier(session_id)},
            )
            await self._best_effort_delete_cache([session_id])
            raise UnauthorizedAppError(
                code="session_expired",
                message="Session expired or was signed out on another device. Please log in again.",
            ) from None

        try:
            await self._repository.touch(session_id, self._now())
        except DurableStoreUnavailableError as exc:
            logger.warning(
                "session.touch_skipped",
                extra={"session_ref": hash_identifier(session_id), "error": str(exc)},
            )
        return cached

    async def list_sessions(self, user_id: str, current_session_id: str | None) -> list[SessionView]:
        """Non-expired sessions of a user, most recently active first."""
        try:
            records = await self._repository.find_by_user(user_id, active_at=self._now())
        except DurableStoreUnavailableError as exc:
            raise self._unavailable("list", exc) from exc
        return [SessionView.from_record(record, current_session_id) for record in records]

    async def count_sessions(self, user_id: str) -> int:
        try:
            return await self._repository.count_by_user(user_id, active_at=self._now())
        except DurableStoreUnavailableError as exc:
            raise self._unavailable("count", exc) from exc

    async def delete_session(
        self,
        session_id: str,
        requester_user_id: str,
        current_session_id: str | None,
    ) -> SessionRecord:
        """Revoke one of the requester's other sessions.

        Raises:
            BadRequestAppError: If ``session_id`` is the caller's own session.
            NotFoundAppError: If no such session exists.
            ForbiddenAppError: If the session belongs to another user.
            ServiceUnavailableAppError: If a store is unreachable.
        """
        if session_id == current_session_id:
            raise BadRequestAppError(
                code="session_is_current",
                message="The current session cannot be deleted here. Use logout instead.",
            )

        try:
            record = await self._repository.find_by_session_id(session_id)
        except DurableStoreUnavailableError as exc:
            raise self._unavailable("delete", exc) from exc

        if record is None:
            raise NotFoundAppError(code="session_not_found", message="Session not found")
        if record.user_id != requester_user_id:
            logger.warning(
                "session.delete_forbidden",
                extra={
                    "user_ref": hash_identifier(requester_user_id),
                    "session_ref": hash_identifier(session_id),
                },
            )
            raise ForbiddenAppError(
                code="session_forbidden",
                message="You can only delete your own sessions",
            )

        await self._revoke([session_id], "delete")
        logger.info(
            "session.deleted",
            extra={
                "user_ref": hash_identifier(requester_user_id),
                "session_ref": hash_identifier(session_id),
                "platform": record.platform.value,
            },
        )
        return record

    async def delete_all_other_sessions(self, user_id: str, current_session_id: str) -> int:
        """Revoke every session of ``user_id`` except the current one.

        Returns:
            Number of sessions removed.
        """
        try:
            records = await self._repository.find_by_user(user_id)
        except DurableStoreUnavailableError as exc:
            raise self._unavailable("delete_others", exc) from exc

        doomed = [record.session_id for record in records if record.session_id != current_session_id]
        if not doomed:
            return 0

        # Both stores act on the ids read above; sessions created since are left alone
        deleted = await self._revoke(doomed, "delete_others")

        logger.info(
            "session.others_deleted",
            extra={"user_ref": hash_identifier(user_id), "count": deleted},
        )
        return deleted

    async def logout(self, session_id: str) -> None:
        """Revoke the caller's own session."""
        await self._revoke([session_id], "logout")
        logger.info("session.logout", extra={"session_ref": hash_identifier(session_id)})

    async def _delete_cache_entries(self, session_ids: list[str], operation: str) -> None:
        # Cache first: once the entry is gone the session no longer authenticates
        await self._require_cache(operation)
        try:
            await self._cache.delete(*(session_cache_key(sid) for sid in session_ids))
        except CacheStoreUnavailableError as exc:
            raise self._unavailable(operation, exc) from exc

    async def _revoke(self, session_ids: list[str], operation: str) -> int:
        await self._delete_cache_entries(session_ids, operation)
        try:
            return await self._repository.delete_many(session_ids)
        except DurableStoreUnavailableError as exc:
            # Cache entries are already gone; the stale index rows expire on their own
            logger.warning(
                "session.index_delete_skipped",
                extra={"operation": operation, "count": len(session_ids), "error": str(exc)},
            )
            return len(session_ids)

    async def cleanup_expired(self) -> int:
        """Purge durable records whose expiry has passed."""
        try:
            deleted = await self._repository.delete_expired(self._now())
        except DurableStoreUnavailableError as exc:
            raise self._unavailable("cleanup", exc) from exc
        return deleted
