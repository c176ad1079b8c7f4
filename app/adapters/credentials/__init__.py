"""Credential verification adapters (external user service boundary)."""

from app.adapters.credentials.base import AbstractCredentialVerifier, VerifiedUser
from app.adapters.credentials.factory import create_credential_verifier
from app.adapters.credentials.in_memory import InMemoryCredentialVerifier, parse_seed_users

__all__ = [
    "AbstractCredentialVerifier",
    "InMemoryCredentialVerifier",
    "VerifiedUser",
    "create_credential_verifier",
    "parse_seed_users",
]
