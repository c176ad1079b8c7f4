"""Pydantic schemas for login/logout and current-session responses."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from app.models.session import Platform


class LoginRequest(BaseModel):
    """Credentials submitted to the login route."""

    email: str = Field(..., min_length=3, max_length=320, description="Account email.")
    password: str = Field(..., min_length=1, max_length=1024, description="Account password.")


class LoginResponse(BaseModel):
    """A freshly created session and what it displaced."""

    session_id: str = Field(
        ...,
        description="Opaque session token; also set as the session cookie.",
    )
    user_id: str
    platform: Platform
    device_name: str
    expires_at: datetime
    previous_session_terminated: bool = Field(
        False,
        description="True when a session on the same platform was signed out by this login.",
    )
    terminated_device_name: str | None = Field(
        None,
        description="Display name of the device that was signed out, if any.",
    )
    terminated_platform: Platform | None = None
    message: str = Field(..., description="Human-readable outcome, including eviction warnings.")


class LogoutResponse(BaseModel):
    message: str = "Logged out"


class CurrentSessionResponse(BaseModel):
    """The session that authenticated this request."""

    session_id: str
    user_id: str
    platform: Platform
    device_name: str
    created_at: datetime
    expires_at: datetime
