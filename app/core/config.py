"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


def _build_cache_settings() -> "CacheSettings":
    return CacheSettings()  # type: ignore[call-arg]


def _build_durable_settings() -> "DurableStoreSettings":
    return DurableStoreSettings()  # type: ignore[call-arg]


def _build_session_settings() -> "SessionSettings":
    return SessionSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> "RateLimitSettings":
    return RateLimitSettings()  # type: ignore[call-arg]


def _build_brute_force_settings() -> "BruteForceSettings":
    return BruteForceSettings()  # type: ignore[call-arg]


def _build_degradation_settings() -> "DegradationSettings":
    return DegradationSettings()  # type: ignore[call-arg]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    seed_users: str | None = Field(
        None,
        description=(
            "Comma-separated email:user_id:password triples for the development "
            "credential verifier. Production deployments inject their own verifier."
        ),
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field(
        "json",
        description="Log format: 'json' for machine-readable, 'plain' for humans",
    )
    output: str = Field("stdout", description="Log destination: 'stdout' or 'file'")
    file_path: str | None = Field(
        None,
        description="Log file path when output=file (default logs/app.log)",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated log files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read/propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class CacheSettings(BaseSettings):
    """Shared TTL key-value store (Redis) configuration."""

    backend: str = Field(
        "redis",
        description="Cache backend name: 'redis' or 'memory' (single process only)",
    )
    url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL",
    )
    timeout_seconds: float = Field(
        10.0,
        description="Connect and socket timeout for every cache call",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        case_sensitive=False,
    )


class DurableStoreSettings(BaseSettings):
    """Document store (MongoDB) holding the enumerable session index."""

    backend: str = Field(
        "mongo",
        description="Durable store backend name: 'mongo' or 'memory'",
    )
    uri: str = Field(
        "mongodb://localhost:27017",
        description="MongoDB connection URI",
    )
    database: str = Field("app", description="Database name")
    sessions_collection: str = Field(
        "user_sessions",
        description="Collection holding one document per active session",
    )
    timeout_seconds: float = Field(
        10.0,
        description="Server selection / connect / socket timeout",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="DURABLE_",
        case_sensitive=False,
    )


class SessionSettings(BaseSettings):
    """Session lifetime and transport configuration."""

    max_age_web_seconds: int = Field(
        86400,
        description="Session lifetime for the web platform (1 day)",
        ge=1,
    )
    max_age_app_seconds: int = Field(
        30 * 86400,
        description="Session lifetime for the app platform (30 days)",
        ge=1,
    )
    cookie_name: str = Field("app.sid", description="Session cookie name")
    cookie_secure: bool = Field(False, description="Mark the session cookie Secure")
    cookie_samesite: str = Field("lax", description="SameSite policy: lax, strict, none")
    header_name: str = Field(
        "X-Session-ID",
        description="Header clients without cookies use to send the session id",
    )
    cleanup_interval_seconds: int = Field(
        3600,
        description="How often expired durable session records are purged",
        ge=1,
    )
    cleanup_enabled: bool = Field(True, description="Run the expired-session purge task")

    model_config = SettingsConfigDict(
        env_prefix="SESSION_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Per-tier rate limit quotas (points per window, penalty on overflow)."""

    enabled: bool = Field(True, description="Enable request rate limiting")
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers",
    )
    trust_proxy_headers: bool = Field(
        False,
        description=(
            "Key clients by the hop a trusted reverse proxy appended to "
            "X-Forwarded-For (or X-Real-IP) instead of the socket peer"
        ),
    )

    default_points: int = Field(100, ge=1)
    default_duration_seconds: int = Field(60, ge=1)
    default_block_seconds: int = Field(60, ge=1)

    strict_points: int = Field(20, ge=1)
    strict_duration_seconds: int = Field(60, ge=1)
    strict_block_seconds: int = Field(300, ge=1)

    relaxed_points: int = Field(200, ge=1)
    relaxed_duration_seconds: int = Field(60, ge=1)
    relaxed_block_seconds: int = Field(60, ge=1)

    login_points: int = Field(10, ge=1)
    login_duration_seconds: int = Field(15 * 60, ge=1)
    login_block_seconds: int = Field(15 * 60, ge=1)

    signup_points: int = Field(10, ge=1)
    signup_duration_seconds: int = Field(60 * 60, ge=1)
    signup_block_seconds: int = Field(60 * 60, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class BruteForceSettings(BaseSettings):
    """Failed-login tracking configuration."""

    max_attempts: int = Field(
        15,
        description="Failures within the window that trigger a block",
        ge=1,
    )
    block_duration_seconds: int = Field(
        900,
        description="Failure window and block length in seconds",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="BRUTE_FORCE_",
        case_sensitive=False,
    )


class DegradationSettings(BaseSettings):
    """Cache liveness probing used to pick fail-open/fail-closed behaviour."""

    probe_ttl_seconds: float = Field(
        5.0,
        description="How long a probe result is trusted before re-probing on demand",
        gt=0,
    )
    probe_interval_seconds: float = Field(
        15.0,
        description="Background re-probe period so recovery is detected",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="DEGRADATION_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if required settings are missing.

    Environments:
    - development: Local development (DEBUG=true)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    cache: CacheSettings = Field(default_factory=_build_cache_settings)
    durable: DurableStoreSettings = Field(default_factory=_build_durable_settings)
    session: SessionSettings = Field(default_factory=_build_session_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    brute_force: BruteForceSettings = Field(default_factory=_build_brute_force_settings)
    degradation: DegradationSettings = Field(default_factory=_build_degradation_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
