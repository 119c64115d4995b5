"""
FastAPI application entry point.
Challenge: Accept traffic before dependencies are ready; JSON 404/500 for everything unmatched.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from starlette.exceptions import HTTPException as StarletteHTTPException

from koronet.api.router import api_router
from koronet.cache.redis_client import CacheConnector
from koronet.config import Settings, get_settings
from koronet.core.health import HealthState
from koronet.core.logging import configure_logging
from koronet.db.session import DatabaseConnector
from koronet.lifecycle import Lifecycle

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: kick off DB/Redis connects in the background. Shutdown: close both."""
    settings: Settings = app.state.settings
    logger.info("Environment: %s", settings.environment)
    lifecycle: Lifecycle = app.state.lifecycle
    lifecycle.start()
    yield
    await lifecycle.close()


def build_lifecycle(settings: Settings, health: HealthState) -> Lifecycle:
    return Lifecycle(
        DatabaseConnector.from_settings(settings, health.set_status),
        CacheConnector.from_settings(settings, health.set_status),
        max_retries=settings.connect_max_retries,
        retry_delay=settings.connect_retry_delay,
    )


async def not_found_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return JSONResponse(status_code=404, content={"error": "Not Found", "path": request.url.path})
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail, "path": request.url.path},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=422, content={"error": "Unprocessable Entity", "path": request.url.path})


async def internal_error_handler(request: Request, exc: Exception):
    logger.error("Error: %s", exc, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


def create_app(
    settings: Settings | None = None,
    health: HealthState | None = None,
    lifecycle: Lifecycle | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    health = health or HealthState()
    app = FastAPI(
        title=settings.app_name,
        description="Liveness/readiness service backed by PostgreSQL and Redis.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.health = health
    app.state.lifecycle = lifecycle or build_lifecycle(settings, health)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, not_found_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    # Prometheus metrics at /metrics
    app.mount("/metrics", make_asgi_app())

    app.include_router(api_router)
    return app


configure_logging(get_settings().log_level)
app = create_app()
