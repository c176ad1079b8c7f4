"""Credential verifier interface.

Password storage and hashing belong to the user service; the login flow only
needs a yes/no answer plus the user id to open a session for.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class VerifiedUser:
    user_id: str
    email: str


class AbstractCredentialVerifier(ABC):
    """Interface for checking login credentials."""

    @abstractmethod
    async def verify(self, email: str, password: str) -> VerifiedUser | None:
        """Return the user when the credentials match, otherwise None.

        Implementations must not reveal whether the email exists.
        """
        raise NotImplementedError
