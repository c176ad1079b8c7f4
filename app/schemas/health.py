"""Pydantic schemas for health and readiness checks."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"


class ReadinessResponse(BaseModel):
    """Dependency status used by load balancers and operators."""

    status: Literal["ready", "degraded"] = Field(
        ...,
        description="'degraded' when a store is unreachable; fail-closed features will answer 503.",
    )
    cache_available: bool
    durable_available: bool
    policies: dict[str, str] = Field(
        default_factory=dict,
        description="Failure policy per component while the cache store is down.",
    )
