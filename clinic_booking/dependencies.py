"""FastAPI dependencies."""

from typing import Annotated
from uuid import UUID

import redis
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_booking.config import settings
from clinic_booking.core.clock import Clock, clinic_now
from clinic_booking.core.exceptions import (
    ForbiddenException,
    RateLimitException,
    UnauthorizedException,
)
from clinic_booking.core.redis_client import CacheManager, RateLimiter, get_redis_client
from clinic_booking.core.security import Actor, decode_access_token
from clinic_booking.database import get_db

# Security
security = HTTPBearer(auto_error=False)


def get_clock() -> Clock:
    """Clock used by services; overridden in tests to simulate time."""
    return clinic_now


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> Actor:
    """
    Build the actor context from the bearer token.

    Args:
        credentials: Bearer token credentials

    Returns:
        Actor id and role from the token claims

    Raises:
        UnauthorizedException: If the token is missing, invalid or expired
    """
    if credentials is None:
        raise UnauthorizedException("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise UnauthorizedException("Could not validate credentials")

    try:
        return Actor(id=UUID(str(payload.get("sub"))), role=payload.get("role"))
    except (ValueError, ValidationError) as e:
        raise UnauthorizedException("Invalid token claims") from e


async def require_staff(
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> Actor:
    """
    Restrict an endpoint to clinic staff.

    Raises:
        ForbiddenException: If the actor is not staff
    """
    if not actor.is_staff:
        raise ForbiddenException("Clinic staff role required")
    return actor


def get_cache_manager(
    redis_client: Annotated[redis.Redis, Depends(get_redis_client)],
) -> CacheManager:
    """Get cache manager instance."""
    return CacheManager(redis_client)


def get_rate_limiter(
    redis_client: Annotated[redis.Redis, Depends(get_redis_client)],
) -> RateLimiter:
    """Get rate limiter instance."""
    return RateLimiter(redis_client)


async def limit_public_booking(
    request: Request,
    limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
) -> None:
    """
    Throttle hold creation per client host.

    Raises:
        RateLimitException: If the client exceeded its per-minute budget
    """
    client = request.client.host if request.client else "unknown"
    if not limiter.hit("holds", client, limit=settings.public_booking_rate_limit, window=60):
        raise RateLimitException("Too many reservation attempts, please wait a minute")


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
ClinicClock = Annotated[Clock, Depends(get_clock)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
StaffActor = Annotated[Actor, Depends(require_staff)]
CacheManagerDep = Annotated[CacheManager, Depends(get_cache_manager)]
