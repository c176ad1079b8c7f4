"""Pydantic schemas for session listing and revocation."""

from __future__ import annotations

from pydantic import BaseModel, Field

from app.models.session import SessionView


class SessionListResponse(BaseModel):
    sessions: list[SessionView] = Field(
        default_factory=list,
        description="Active sessions, most recently active first.",
    )
    total: int = Field(..., ge=0)


class SessionDeletedResponse(BaseModel):
    session_id: str
    device_name: str
    message: str


class OtherSessionsDeletedResponse(BaseModel):
    deleted_count: int = Field(..., ge=0, description="Number of sessions signed out.")
    message: str
