"""
FastAPI dependencies - injection for app-owned state (SOLID: Dependency Inversion).
"""

from datetime import datetime, timezone
from typing import Annotated

from fastapi import Depends, Request

from koronet.config import Settings
from koronet.core.health import HealthState


def get_health(request: Request) -> HealthState:
    """Health state created by create_app; one per application instance."""
    return request.app.state.health


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def utc_timestamp() -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


HealthDep = Annotated[HealthState, Depends(get_health)]
SettingsDep = Annotated[Settings, Depends(get_app_settings)]
