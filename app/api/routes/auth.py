"""Login, logout and current-session routes."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response

from app.core.auth import CurrentSession, require_session
from app.core.container import ServiceContainer, get_services
from app.core.errors import TooManyRequestsAppError, UnauthorizedAppError
from app.core.logging import hash_identifier, set_user_ref
from app.core.rate_limit import enforce_rate_limit
from app.schemas.auth import CurrentSessionResponse, LoginRequest, LoginResponse, LogoutResponse
from app.services.brute_force import normalize_identity
from app.services.rate_limiter import RateLimitTier
from app.utils.device_detector import detect_request_device

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


async def _raise_blocked(services: ServiceContainer, email: str) -> None:
    retry_after = await services.brute_force.get_remaining_block_seconds(email)
    retry_after = max(1, retry_after)
    minutes = max(1, -(-retry_after // 60))
    raise TooManyRequestsAppError(
        code="login_blocked",
        message=f"Too many failed login attempts. Try again in {minutes} minute(s).",
        details={"retry_after": retry_after, "remaining_attempts": 0},
    )


@router.post(
    "/login",
    response_model=LoginResponse,
    dependencies=[Depends(enforce_rate_limit(RateLimitTier.LOGIN))],
)
async def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    services: Annotated[ServiceContainer, Depends(get_services)],
) -> LoginResponse:
    """Check credentials and open a session for the calling device.

    A previous session of the same user on the same platform (web or app) is
    signed out; the response names that device so the client can warn the
    user.
    """
    email = normalize_identity(payload.email)
    guard = services.brute_force

    if await guard.is_blocked(email):
        logger.warning("auth.login_blocked", extra={"key_hash": hash_identifier(email)})
        await _raise_blocked(services, email)

    user = await services.credentials.verify(email, payload.password)
    if user is None:
        attempts = await guard.record_failure(email)
        if attempts >= guard.max_attempts:
            await _raise_blocked(services, email)
        remaining = max(0, guard.max_attempts - attempts)
        logger.info(
            "auth.login_failed",
            extra={"key_hash": hash_identifier(email), "remaining_attempts": remaining},
        )
        raise UnauthorizedAppError(
            code="invalid_credentials",
            message=f"Invalid email or password. {remaining} attempt(s) remaining.",
            details={"remaining_attempts": remaining},
        )

    await guard.reset(email)
    set_user_ref(user.user_id)

    device = detect_request_device(request)
    result = await services.sessions.create_session(user.user_id, device)
    session = result.session

    session_settings = services.settings.session
    response.set_cookie(
        key=session_settings.cookie_name,
        value=session.session_id,
        max_age=services.sessions.ttl_for(device),
        httponly=True,
        secure=session_settings.cookie_secure,
        samesite=session_settings.cookie_samesite,
    )

    message = "Logged in"
    if result.previous_session_evicted:
        message = (
            f"Logged in. Your previous {result.evicted_platform.value} session on "
            f"{result.evicted_device_name} was signed out."
        )

    return LoginResponse(
        session_id=session.session_id,
        user_id=session.user_id,
        platform=session.platform,
        device_name=session.device_name,
        expires_at=session.expires_at,
        previous_session_terminated=result.previous_session_evicted,
        terminated_device_name=result.evicted_device_name,
        terminated_platform=result.evicted_platform,
        message=message,
    )


@router.post(
    "/logout",
    response_model=LogoutResponse,
    dependencies=[Depends(enforce_rate_limit(RateLimitTier.DEFAULT))],
)
async def logout(
    response: Response,
    current: Annotated[CurrentSession, Depends(require_session)],
    services: Annotated[ServiceContainer, Depends(get_services)],
) -> LogoutResponse:
    await services.sessions.logout(current.session_id)
    response.delete_cookie(services.settings.session.cookie_name)
    return LogoutResponse()


@router.get(
    "/session",
    response_model=CurrentSessionResponse,
    dependencies=[Depends(enforce_rate_limit(RateLimitTier.RELAXED))],
)
async def current_session(
    current: Annotated[CurrentSession, Depends(require_session)],
) -> CurrentSessionResponse:
    session = current.session
    return CurrentSessionResponse(
        session_id=current.session_id,
        user_id=session.user_id,
        platform=session.platform,
        device_name=session.device_name,
        created_at=session.created_at,
        expires_at=session.expires_at,
    )
