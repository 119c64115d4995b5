"""
Health checks - for load balancers, Kubernetes, and monitoring.
Challenge: Serve probes before dependencies are connected; report true status meanwhile.
"""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from koronet.core.dependencies import HealthDep, utc_timestamp
from koronet.schemas.health import HealthResponse, ReadyResponse

router = APIRouter()

_UNAVAILABLE = {status.HTTP_503_SERVICE_UNAVAILABLE: {"description": "A dependency is down"}}


@router.get("/health", response_model=HealthResponse, responses=_UNAVAILABLE)
async def health(state: HealthDep):
    """Liveness (here: server, database and cache all up). 503 otherwise."""
    services = state.snapshot()
    healthy = state.is_healthy()
    body = HealthResponse(
        status="healthy" if healthy else "unhealthy",
        timestamp=utc_timestamp(),
        services={name: "up" if up else "down" for name, up in services.items()},
        uptime=state.uptime(),
    )
    code = status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=code, content=body.model_dump())


@router.get("/ready", response_model=ReadyResponse, responses=_UNAVAILABLE)
async def ready(state: HealthDep):
    """Readiness: database and cache both up."""
    is_ready = state.is_ready()
    body = ReadyResponse(ready=is_ready, timestamp=utc_timestamp())
    code = status.HTTP_200_OK if is_ready else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=code, content=body.model_dump())
