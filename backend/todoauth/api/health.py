"""Health and info endpoints.

Accessible without authentication; the gateway allow-lists them.
"""

import time
from typing import Any

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel

from todoauth.core import check_db_connection, check_redis_connection, get_redis, settings

SERVICE_NAME = "auth-service"

router = APIRouter(prefix="/api/auth", tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str
    version: str
    timestamp: int
    database: str
    redis: str


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={
        status.HTTP_200_OK: {"description": "Service is healthy"},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"description": "Service is unhealthy"},
    },
)
async def health_check(
    response: Response,
    redis: aioredis.Redis = Depends(get_redis),
) -> HealthResponse:
    """
    Health check endpoint.

    Returns 503 if either the database or the token store is unavailable.
    """
    db_healthy = await check_db_connection()
    redis_healthy = await check_redis_connection(redis)

    # Set appropriate status code for container orchestration
    if not (db_healthy and redis_healthy):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(
        status="UP" if db_healthy and redis_healthy else "DOWN",
        service=SERVICE_NAME,
        version=settings.app_version,
        timestamp=int(time.time() * 1000),
        database="connected" if db_healthy else "disconnected",
        redis="connected" if redis_healthy else "disconnected",
    )


@router.get("/info")
async def info() -> dict[str, Any]:
    """Service description and main endpoints."""
    return {
        "service": SERVICE_NAME,
        "version": settings.app_version,
        "description": "Authentication and Authorization Service",
        "endpoints": {
            "register": "POST /api/auth/register",
            "login": "POST /api/auth/login",
            "refresh": "POST /api/auth/refresh",
            "logout": "POST /api/auth/logout",
            "profile": "GET /api/auth/profile",
            "change-password": "POST /api/auth/change-password",
            "validate": "POST /api/auth/validate",
        },
    }
