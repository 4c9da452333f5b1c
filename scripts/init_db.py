"""Script to initialize the database, optionally with demo scheduling data."""

import asyncio
import sys
from datetime import time
from decimal import Decimal

from sqlalchemy import insert

from clinic_booking.database import engine
from clinic_booking.models import metadata, provider_services, providers, schedule_rules, services


async def seed_demo_data() -> None:
    """Insert one provider offering one service, Monday to Friday mornings and afternoons."""
    async with engine.begin() as conn:
        provider = await conn.execute(
            insert(providers)
            .values(full_name="Dra. Ana Torres Medina", specialty="Dermatology")
            .returning(providers.c.id)
        )
        provider_id = provider.scalar_one()

        service = await conn.execute(
            insert(services)
            .values(
                name="Dermatology consultation",
                price=Decimal("800.00"),
                deposit_percentage=50,
                duration_minutes=30,
            )
            .returning(services.c.id)
        )
        service_id = service.scalar_one()

        await conn.execute(
            insert(provider_services).values(provider_id=provider_id, service_id=service_id)
        )

        # Provider-wide rules, Monday (1) to Friday (5)
        windows = [(time(9, 0), time(14, 0)), (time(16, 0), time(20, 0))]
        await conn.execute(
            insert(schedule_rules),
            [
                {
                    "provider_id": provider_id,
                    "service_id": None,
                    "day_of_week": day,
                    "start_time": start,
                    "end_time": end,
                    "slot_duration_minutes": 30,
                }
                for day in range(1, 6)
                for start, end in windows
            ],
        )

    print(f"✓ Demo provider {provider_id} and service {service_id} created")


async def init_db(seed: bool = False) -> None:
    """Initialize the database by creating all tables."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    print("✓ Database initialized successfully!")

    if seed:
        await seed_demo_data()

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(init_db(seed="--seed" in sys.argv[1:]))
