"""Factory for the credential verifier."""

from app.adapters.credentials.base import AbstractCredentialVerifier
from app.adapters.credentials.in_memory import InMemoryCredentialVerifier, parse_seed_users
from app.core.config import AppSettings


def create_credential_verifier(app_settings: AppSettings) -> AbstractCredentialVerifier:
    """Build the development verifier from ``APP_SEED_USERS``.

    Deployments with a real user service pass their own verifier to
    ``build_services`` instead.
    """
    return InMemoryCredentialVerifier(parse_seed_users(app_settings.seed_users))
