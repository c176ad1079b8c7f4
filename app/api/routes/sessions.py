"""Routes for listing and revoking a user's sessions across devices."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from app.core.auth import CurrentSession, require_session
from app.core.container import ServiceContainer, get_services
from app.core.rate_limit import enforce_rate_limit
from app.schemas.sessions import (
    OtherSessionsDeletedResponse,
    SessionDeletedResponse,
    SessionListResponse,
)
from app.services.rate_limiter import RateLimitTier

router = APIRouter(prefix="/auth/sessions", tags=["Sessions"])


@router.get(
    "",
    response_model=SessionListResponse,
    dependencies=[Depends(enforce_rate_limit(RateLimitTier.DEFAULT))],
)
async def list_sessions(
    current: Annotated[CurrentSession, Depends(require_session)],
    services: Annotated[ServiceContainer, Depends(get_services)],
) -> SessionListResponse:
    """List the caller's active sessions; the caller's own is flagged ``is_current``."""
    sessions = await services.sessions.list_sessions(current.user_id, current.session_id)
    return SessionListResponse(sessions=sessions, total=len(sessions))


# Declared before "/{session_id}" so "all" is not captured as an id
@router.delete(
    "/all",
    response_model=OtherSessionsDeletedResponse,
    dependencies=[Depends(enforce_rate_limit(RateLimitTier.STRICT))],
)
async def delete_other_sessions(
    current: Annotated[CurrentSession, Depends(require_session)],
    services: Annotated[ServiceContainer, Depends(get_services)],
) -> OtherSessionsDeletedResponse:
    """Sign out every device except the caller's."""
    deleted = await services.sessions.delete_all_other_sessions(
        current.user_id, current.session_id
    )
    return OtherSessionsDeletedResponse(
        deleted_count=deleted,
        message=f"Signed out {deleted} other session(s)",
    )


@router.delete(
    "/{session_id}",
    response_model=SessionDeletedResponse,
    dependencies=[Depends(enforce_rate_limit(RateLimitTier.STRICT))],
)
async def delete_session(
    session_id: str,
    current: Annotated[CurrentSession, Depends(require_session)],
    services: Annotated[ServiceContainer, Depends(get_services)],
) -> SessionDeletedResponse:
    """Sign out one of the caller's other devices.

    The caller's own session is rejected with 400; use logout for that.
    """
    record = await services.sessions.delete_session(
        session_id, current.user_id, current.session_id
    )
    return SessionDeletedResponse(
        session_id=record.session_id,
        device_name=record.device_name,
        message=f"Signed out {record.device_name}",
    )
