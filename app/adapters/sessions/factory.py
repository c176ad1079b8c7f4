"""Factory for the configured durable session store."""

from app.adapters.sessions.base import AbstractSessionRepository
from app.adapters.sessions.in_memory import InMemorySessionRepository
from app.adapters.sessions.mongo import MongoSessionRepository
from app.core.config import DurableStoreSettings
from app.core.errors import ValidationAppError


def create_session_repository(durable_settings: DurableStoreSettings) -> AbstractSessionRepository:
    """Instantiate the session repository named by ``DURABLE_BACKEND``.

    Raises:
        ValidationAppError: If the backend is unknown or misconfigured.
    """
    backend = durable_settings.backend.lower()

    if backend == "mongo":
        if not durable_settings.uri:
            raise ValidationAppError(
                code="durable_missing_uri",
                message="MongoDB durable backend requires DURABLE_URI",
            )
        return MongoSessionRepository(
            uri=durable_settings.uri,
            database=durable_settings.database,
            collection=durable_settings.sessions_collection,
            timeout_seconds=durable_settings.timeout_seconds,
        )

    if backend == "memory":
        return InMemorySessionRepository()

    raise ValidationAppError(
        code="durable_unknown_backend",
        message=f"Unknown durable store backend: '{backend}'. Supported backends: mongo, memory",
    )
