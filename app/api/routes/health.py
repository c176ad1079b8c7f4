from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.core.container import ServiceContainer, get_services
from app.schemas.health import HealthResponse, ReadinessResponse

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
def health_check() -> HealthResponse:
    """Liveness check.

    Returns a simple status response to verify the process is serving
    requests. Does not touch the cache or durable store.
    """

    return HealthResponse()


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(
    services: Annotated[ServiceContainer, Depends(get_services)],
) -> JSONResponse:
    """Readiness check.

    Probes the cache store (through the health monitor) and the durable
    store. Answers 503 while either is unreachable so load balancers stop
    routing to this instance.
    """

    cache_ok = await services.monitor.probe()
    durable_ok = await services.durable_available()
    body = ReadinessResponse(
        status="ready" if cache_ok and durable_ok else "degraded",
        cache_available=cache_ok,
        durable_available=durable_ok,
        policies=services.degradation.status()["policies"],
    )
    return JSONResponse(status_code=200 if body.status == "ready" else 503, content=body.model_dump())
