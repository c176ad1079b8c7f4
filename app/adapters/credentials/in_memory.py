"""Credential verifier seeded from configuration (development and tests)."""

from __future__ import annotations

import hashlib
import hmac

from app.adapters.credentials.base import AbstractCredentialVerifier, VerifiedUser


def parse_seed_users(users_string: str | None) -> dict[str, tuple[str, str]]:
    """Parse comma-separated ``email:user_id:password`` triples.

    Args:
        users_string: Raw setting value, or None.

    Returns:
        Mapping of lower-cased email to ``(user_id, password)``. Malformed
        entries are skipped.

    Examples:
        >>> parse_seed_users("ana@example.com:u1:secret")
        {'ana@example.com': ('u1', 'secret')}
        >>> parse_seed_users(None)
        {}
    """
    if not users_string:
        return {}

    users: dict[str, tuple[str, str]] = {}
    for entry in users_string.split(","):
        parts = entry.strip().split(":", 2)
        if len(parts) != 3 or not all(part.strip() for part in parts):
            continue
        email, user_id, password = (part.strip() for part in parts)
        users[email.lower()] = (user_id, password)
    return users


class InMemoryCredentialVerifier(AbstractCredentialVerifier):
    def __init__(self, users: dict[str, tuple[str, str]] | None = None) -> None:
        self._users = {email.lower(): entry for email, entry in (users or {}).items()}

    async def verify(self, email: str, password: str) -> VerifiedUser | None:
        normalized = email.strip().lower()
        user_id, expected = self._users.get(normalized, ("", ""))
        # Fixed-length digests: unknown emails cost the same comparison as known ones
        matches = hmac.compare_digest(
            hashlib.sha256(password.encode()).digest(),
            hashlib.sha256(expected.encode()).digest(),
        )
        if not user_id or not matches:
            return None
        return VerifiedUser(user_id=user_id, email=normalized)
