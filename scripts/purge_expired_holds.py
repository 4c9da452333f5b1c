"""Delete expired reservation holds.

Expired holds are already ignored by every reader; this only keeps the table
small. Safe to run from cron at any frequency.
"""

import asyncio

import structlog

from clinic_booking.database import AsyncSessionLocal, engine
from clinic_booking.middleware.logging import configure_logging
from clinic_booking.services.hold_service import HoldService


async def purge() -> int:
    """Run one purge pass."""
    async with AsyncSessionLocal() as session:
        purged = await HoldService(session).purge_expired_holds()

    await engine.dispose()
    return purged


if __name__ == "__main__":
    configure_logging()
    count = asyncio.run(purge())
    structlog.get_logger().info("purge_finished", count=count)
