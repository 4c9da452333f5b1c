"""Health check endpoints."""

from datetime import datetime

from fastapi import APIRouter, status
from pydantic import BaseModel

from clinic_booking.config import settings
from clinic_booking.core.redis_client import check_redis_connection
from clinic_booking.database import check_database_connection
from clinic_booking.dependencies import ClinicClock

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str
    clinic_timezone: str
    clinic_time: datetime


class DetailedHealthResponse(HealthResponse):
    """Health check including storage dependencies."""

    database: str
    redis: str


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
)
async def health_check(clock: ClinicClock) -> HealthResponse:
    """
    Basic health check endpoint.

    Also reports the clinic wall-clock time every slot is compared against.
    """
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
        clinic_timezone=settings.clinic_timezone,
        clinic_time=clock(),
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Detailed health check",
)
async def detailed_health_check(clock: ClinicClock) -> DetailedHealthResponse:
    """
    Health check with database and Redis status.

    Redis only backs caching and rate limiting, so losing it degrades the
    service without stopping bookings.
    """
    db_healthy = await check_database_connection()
    redis_healthy = await check_redis_connection()

    if not db_healthy:
        overall = "unhealthy"
    elif not redis_healthy:
        overall = "degraded"
    else:
        overall = "healthy"

    return DetailedHealthResponse(
        status=overall,
        version=settings.app_version,
        environment=settings.environment,
        clinic_timezone=settings.clinic_timezone,
        clinic_time=clock(),
        database="healthy" if db_healthy else "unhealthy",
        redis="healthy" if redis_healthy else "unhealthy",
    )
