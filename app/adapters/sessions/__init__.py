"""Durable session store adapters (MongoDB or in-process)."""

from app.adapters.sessions.base import AbstractSessionRepository
from app.adapters.sessions.factory import create_session_repository
from app.adapters.sessions.in_memory import InMemorySessionRepository
from app.adapters.sessions.mongo import MongoSessionRepository

__all__ = [
    "AbstractSessionRepository",
    "InMemorySessionRepository",
    "MongoSessionRepository",
    "create_session_repository",
]
