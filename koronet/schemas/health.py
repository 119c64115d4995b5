"""
Response schemas for root, probes and error handlers.
"""

from typing import Literal

from pydantic import BaseModel

Status = Literal["up", "down"]


class RootResponse(BaseModel):
    message: str
    timestamp: str
    environment: str


class ServicesStatus(BaseModel):
    server: Status
    database: Status
    cache: Status


class HealthResponse(BaseModel):
    status: Literal["healthy", "unhealthy"]
    timestamp: str
    services: ServicesStatus
    uptime: float


class ReadyResponse(BaseModel):
    ready: bool
    timestamp: str


class ErrorResponse(BaseModel):
    error: str
    path: str | None = None
