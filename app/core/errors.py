"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.

Two families live here:
- AppError subclasses: outcomes the HTTP layer renders for clients.
- Store unavailability errors: raised by adapters when the network store
  cannot be reached. Components translate them into an AppError (or a
  degraded answer) and never let them reach the client raw.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    http_status: int
    retry_after: int
    limit: int
    remaining: int
    reset_at: int
    tier: str
    remaining_attempts: int
    component: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class BadRequestAppError(AppError):
    """Raised when a request is well-formed but not allowed in this form."""


class UnauthorizedAppError(AppError):
    """Raised when no valid session backs the request."""


class ForbiddenAppError(AppError):
    """Raised when the caller is authenticated but acts on another user's data."""


class NotFoundAppError(AppError):
    """Raised when the referenced resource does not exist."""


class TooManyRequestsAppError(AppError):
    """Raised when a rate limit or login block denies the request.

    ``details["retry_after"]`` always carries the wait in whole seconds.
    """

    @property
    def retry_after(self) -> int:
        return int((self.details or {}).get("retry_after", 0))


class ServiceUnavailableAppError(AppError):
    """Raised when a fail-closed component cannot reach its backing store."""


class StoreUnavailableError(Exception):
    """Base for adapter connectivity failures."""

    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        self.operation = operation
        self.cause = cause
        reason = f"{type(cause).__name__}: {cause}" if cause else "unavailable"
        super().__init__(f"{operation} failed ({reason})")


class CacheStoreUnavailableError(StoreUnavailableError):
    """Raised by cache adapters when the key-value store is unreachable."""


class DurableStoreUnavailableError(StoreUnavailableError):
    """Raised by durable store adapters when the document store is unreachable."""
