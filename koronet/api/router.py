"""
API router - aggregates all endpoint modules.
"""

from fastapi import APIRouter

from koronet.api.endpoints import health, root

api_router = APIRouter()

api_router.include_router(root.router, tags=["root"])
api_router.include_router(health.router, tags=["health"])
