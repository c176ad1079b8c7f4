"""Session authentication for FastAPI routes.

The session id travels either in the session cookie (browsers) or in the
``X-Session-ID`` header (native apps and API clients). Only the cache entry
is consulted to authenticate; see ``SessionManager.resolve_session``.

Usage:
    @router.get("/me")
    async def me(current: Annotated[CurrentSession, Depends(require_session)]):
        ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request

from app.core.container import ServiceContainer, get_services
from app.core.errors import UnauthorizedAppError
from app.core.logging import hash_identifier, set_user_ref
from app.models.session import CachedSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CurrentSession:
    """The authenticated caller of a request."""

    session_id: str
    user_id: str
    session: CachedSession


def extract_session_id(request: Request, services: ServiceContainer) -> str | None:
    """Read the session id from the header, falling back to the cookie.

    Args:
        request: Incoming request.
        services: Container holding the session transport settings.

    Returns:
        The trimmed session id, or None when the request carries none.
    """
    session_settings = services.settings.session
    raw = request.headers.get(session_settings.header_name) or request.cookies.get(
        session_settings.cookie_name
    )
    if raw is None:
        return None
    return raw.strip() or None


async def require_session(
    request: Request,
    services: Annotated[ServiceContainer, Depends(get_services)],
) -> CurrentSession:
    """FastAPI dependency resolving the caller's session.

    Raises:
        UnauthorizedAppError: 401 when no live session backs the request.
        ServiceUnavailableAppError: 503 when the cache store is down.
    """
    session_id = extract_session_id(request, services)
    if not session_id:
        logger.info("auth.missing_session")
        raise UnauthorizedAppError(code="session_missing", message="Login required")

    try:
        cached = await services.sessions.resolve_session(session_id)
    except UnauthorizedAppError:
        logger.info("auth.invalid_session", extra={"session_ref": hash_identifier(session_id)})
        raise

    set_user_ref(cached.user_id)
    logger.debug("auth.success", extra={"session_ref": hash_identifier(session_id)})
    return CurrentSession(session_id=session_id, user_id=cached.user_id, session=cached)
