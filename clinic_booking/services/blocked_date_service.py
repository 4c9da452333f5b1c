"""Blocked-date overlay and its staff management."""

from datetime import date
from uuid import UUID

import structlog
from sqlalchemy import and_, delete, exists, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_booking.config import settings
from clinic_booking.core.exceptions import ConflictException, NotFoundException
from clinic_booking.core.redis_client import CacheManager
from clinic_booking.models.blocked_dates import blocked_dates
from clinic_booking.schemas.availability import BlockedDateEntry
from clinic_booking.schemas.blocked_dates import BlockedDateCreate, BlockedDateResponse

logger = structlog.get_logger()


class BlockedDateService:
    """Service for clinic-wide calendar exceptions."""

    CACHE_PREFIX = "blocked_dates"
    ACTIVE_CACHE_KEY = f"{CACHE_PREFIX}:active"

    def __init__(self, db: AsyncSession, cache_manager: CacheManager | None = None):
        """Initialize service with database session and optional cache manager."""
        self.db = db
        self.cache = cache_manager

    async def is_blocked(self, target: date) -> bool:
        """Check if an active blocked date vetoes the given day."""
        stmt = select(
            exists().where(
                and_(
                    blocked_dates.c.blocked_date == target,
                    blocked_dates.c.is_active.is_(True),
                )
            )
        )
        result = await self.db.execute(stmt)
        return bool(result.scalar())

    async def get_reason(self, target: date) -> str | None:
        """Get the reason recorded for an active blocked date."""
        stmt = select(blocked_dates.c.reason).where(
            and_(
                blocked_dates.c.blocked_date == target,
                blocked_dates.c.is_active.is_(True),
            )
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_active(self) -> list[BlockedDateEntry]:
        """List active blocked dates for the public calendar, cached."""
        if self.cache:
            cached = self.cache.get_json(self.ACTIVE_CACHE_KEY)
            if cached is not None:
                return [BlockedDateEntry.model_validate(item) for item in cached]

        stmt = (
            select(blocked_dates.c.blocked_date, blocked_dates.c.reason)
            .where(blocked_dates.c.is_active.is_(True))
            .order_by(blocked_dates.c.blocked_date)
        )
        result = await self.db.execute(stmt)
        entries = [BlockedDateEntry.model_validate(dict(row)) for row in result.mappings().all()]

        if self.cache:
            self.cache.set_json(
                self.ACTIVE_CACHE_KEY,
                [entry.model_dump(mode="json") for entry in entries],
                ttl=settings.availability_cache_ttl,
            )

        return entries

    async def list_all(self) -> list[BlockedDateResponse]:
        """List every blocked date, active or not."""
        stmt = select(blocked_dates).order_by(blocked_dates.c.blocked_date)
        result = await self.db.execute(stmt)
        return [BlockedDateResponse.model_validate(dict(row)) for row in result.mappings().all()]

    async def create(self, data: BlockedDateCreate) -> BlockedDateResponse:
        """
        Block a calendar date.

        Raises:
            ConflictException: If the date is already blocked
        """
        stmt = (
            insert(blocked_dates)
            .values(blocked_date=data.blocked_date, reason=data.reason, is_active=True)
            .returning(blocked_dates)
        )

        try:
            result = await self.db.execute(stmt)
            row = result.mappings().one()
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictException(
                f"Date {data.blocked_date.isoformat()} is already blocked",
                code="duplicate",
            ) from e

        self._invalidate()
        logger.info("blocked_date_created", blocked_date=data.blocked_date.isoformat())
        return BlockedDateResponse.model_validate(dict(row))

    async def delete(self, blocked_date_id: UUID) -> None:
        """
        Remove a blocked date.

        Raises:
            NotFoundException: If the entry does not exist
        """
        stmt = (
            delete(blocked_dates)
            .where(blocked_dates.c.id == blocked_date_id)
            .returning(blocked_dates.c.id)
        )
        result = await self.db.execute(stmt)
        if result.scalar_one_or_none() is None:
            await self.db.rollback()
            raise NotFoundException("Blocked date not found")

        await self.db.commit()
        self._invalidate()
        logger.info("blocked_date_deleted", blocked_date_id=str(blocked_date_id))

    def _invalidate(self) -> None:
        if self.cache:
            self.cache.invalidate(self.CACHE_PREFIX)
