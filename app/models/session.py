"""Session domain types shared by the session manager and its stores."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

SESSION_CACHE_PREFIX = "app:sess:"


def session_cache_key(session_id: str) -> str:
    """Cache key of the TTL-authoritative entry for a session."""
    return f"{SESSION_CACHE_PREFIX}{session_id}"


class Platform(str, Enum):
    """Login origin class; one live session is kept per platform."""

    WEB = "web"
    APP = "app"


class DeviceType(str, Enum):
    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"
    WEB = "web"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class DeviceInfo:
    """What the HTTP layer could tell about the device logging in.

    ``platform`` is None when the caller had no platform signal; the session
    manager then falls back to the device-type lifetime table.
    """

    name: str
    type: DeviceType = DeviceType.UNKNOWN
    platform: Platform | None = Platform.WEB
    user_agent: str = "Unknown"
    ip_address: str = "Unknown"


class SessionRecord(BaseModel):
    """Durable index entry for one active session.

    Mirrored by a cache entry keyed ``app:sess:<session_id>`` whose TTL is the
    real lifetime; a record without that entry is logically dead.
    """

    session_id: str
    user_id: str
    platform: Platform
    device_name: str
    device_type: DeviceType = DeviceType.UNKNOWN
    user_agent: str = "Unknown"
    ip_address: str = "Unknown"
    created_at: datetime
    last_activity_at: datetime
    expires_at: datetime

    def to_doc(self) -> dict[str, Any]:
        """Convert to a document for the durable store.

        Datetimes stay native so the store can index ``expires_at`` for TTL.
        """
        doc = self.model_dump()
        doc["platform"] = self.platform.value
        doc["device_type"] = self.device_type.value
        return doc

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "SessionRecord":
        """Build from a stored document, ignoring store-specific fields."""
        return cls.model_validate({k: v for k, v in doc.items() if k != "_id"})


class CachedSession(BaseModel):
    """Payload of the ``app:sess:`` cache entry; enough to authenticate a request."""

    session_id: str
    user_id: str
    platform: Platform
    device_name: str
    created_at: datetime
    expires_at: datetime


class SessionView(BaseModel):
    """A session as listed to its owner."""

    session_id: str
    device_name: str
    device_type: DeviceType
    platform: Platform
    created_at: datetime
    last_activity_at: datetime
    expires_at: datetime
    is_current: bool = Field(False, description="Whether this is the caller's own session")

    @classmethod
    def from_record(cls, record: SessionRecord, current_session_id: str | None) -> "SessionView":
        return cls(
            session_id=record.session_id,
            device_name=record.device_name,
            device_type=record.device_type,
            platform=record.platform,
            created_at=record.created_at,
            last_activity_at=record.last_activity_at,
            expires_at=record.expires_at,
            is_current=record.session_id == current_session_id,
        )


@dataclass(frozen=True)
class SessionCreateResult:
    """Outcome of a login: the new session plus what it displaced.

    The evicted device is not notified; the caller is expected to warn the
    user who just logged in.
    """

    session: SessionRecord
    previous_session_evicted: bool = False
    evicted_device_name: str | None = None
    evicted_platform: Platform | None = None
