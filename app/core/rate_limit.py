"""Rate limiting dependency for FastAPI routes.

Wires the tiered ``RateLimiter`` into the HTTP layer. Each route picks a
tier by depending on ``enforce_rate_limit(tier)``; the requester is keyed by
the socket peer, or by the address a trusted proxy reports when
``RATE_LIMIT_TRUST_PROXY_HEADERS`` is on.

Usage:
    @router.post("/login", dependencies=[Depends(enforce_rate_limit(RateLimitTier.LOGIN))])
"""

from __future__ import annotations

import logging
from typing import Annotated, Awaitable, Callable

from fastapi import Depends, Request, Response

from app.core.container import ServiceContainer, get_services
from app.core.errors import TooManyRequestsAppError
from app.core.logging import hash_identifier
from app.services.rate_limiter import RateLimitResult, RateLimitTier
from app.utils.device_detector import UNKNOWN

logger = logging.getLogger(__name__)


def _proxy_appended_ip(request: Request) -> str | None:
    # The rightmost X-Forwarded-For hop is the one our own proxy appended;
    # anything left of it is client supplied
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        last = forwarded_for.split(",")[-1].strip()
        if last:
            return last
    return (request.headers.get("x-real-ip") or "").strip() or None


def build_rate_limit_key(request: Request, *, trust_proxy_headers: bool = False) -> str:
    """Namespaced limiter key for the requester of ``request``.

    The socket peer is used unless ``trust_proxy_headers`` is set, in which
    case the address reported by the trusted proxy wins.
    """
    peer = request.client.host if request.client else None
    client_ip = _proxy_appended_ip(request) if trust_proxy_headers else None
    return f"ip:{client_ip or peer or UNKNOWN}"


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset_at),
    }
    if result.retry_after_seconds is not None:
        headers["Retry-After"] = str(result.retry_after_seconds)
    return headers


def enforce_rate_limit(tier: RateLimitTier) -> Callable[..., Awaitable[None]]:
    """Build a dependency that consumes one unit of ``tier`` per request.

    Args:
        tier: Rate limit tier guarding the route.

    Returns:
        FastAPI dependency. It raises TooManyRequestsAppError (429) when the
        quota is spent and lets ServiceUnavailableAppError (503) through when
        the limiter cannot reach the cache store.
    """

    async def dependency(
        request: Request,
        response: Response,
        services: Annotated[ServiceContainer, Depends(get_services)],
    ) -> None:
        rate_limit_settings = services.settings.rate_limit
        if not rate_limit_settings.enabled:
            return

        key = build_rate_limit_key(
            request, trust_proxy_headers=rate_limit_settings.trust_proxy_headers
        )
        result = await services.rate_limiter.consume(tier, key)

        if result.allowed:
            logger.debug(
                "rate_limit.allowed",
                extra={
                    "tier": tier.value,
                    "key_hash": hash_identifier(key),
                    "remaining": result.remaining,
                },
            )
            if rate_limit_settings.include_headers:
                response.headers.update(rate_limit_headers(result))
            return

        retry_after = result.retry_after_seconds or 1
        logger.warning(
            "rate_limit.exceeded",
            extra={
                "tier": tier.value,
                "key_hash": hash_identifier(key),
                "limit": result.limit,
                "retry_after_s": retry_after,
                "path": request.url.path,
            },
        )

        details = {"retry_after": retry_after, "tier": tier.value}
        if rate_limit_settings.include_headers:
            details.update(limit=result.limit, remaining=result.remaining, reset_at=result.reset_at)
        raise TooManyRequestsAppError(
            code="rate_limit_exceeded",
            message=f"Too many requests. Try again in {retry_after} seconds.",
            details=details,
        )

    dependency.__name__ = f"enforce_rate_limit_{tier.value}"
    return dependency
