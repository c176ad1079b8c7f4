"""OpenAPI customization utilities.

Enriches the generated OpenAPI schema with:
- Tags metadata
- Session security schemes (``X-Session-ID`` header or session cookie)
- Per-path exemptions for routes that need no session

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from app.core.config import settings

_PUBLIC_PATHS = ("/health", "/health/ready", "/v1/auth/login")

_TAGS = [
    {"name": "Auth", "description": "Login, logout and the current session."},
    {"name": "Sessions", "description": "List and sign out sessions on other devices."},
    {"name": "Health", "description": "Liveness and readiness checks."},
]


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add tags and session security.

    Every operation requires a session by default; public paths are exempted
    with ``security: []``.
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        security_schemes = schema.setdefault("components", {}).setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "SessionHeader",
            {
                "type": "apiKey",
                "in": "header",
                "name": settings.session.header_name,
                "description": "Session id returned by login (native apps, API clients).",
            },
        )
        security_schemes.setdefault(
            "SessionCookie",
            {
                "type": "apiKey",
                "in": "cookie",
                "name": settings.session.cookie_name,
                "description": "Session cookie set by login (browsers).",
            },
        )
        schema.setdefault("security", [{"SessionHeader": []}, {"SessionCookie": []}])

        tags = schema.setdefault("tags", [])
        existing = {t.get("name") for t in tags}
        tags.extend(tag for tag in _TAGS if tag["name"] not in existing)

        for path, methods in schema.get("paths", {}).items():
            if path in _PUBLIC_PATHS:
                for method_obj in methods.values():
                    if isinstance(method_obj, dict):
                        method_obj["security"] = []

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
