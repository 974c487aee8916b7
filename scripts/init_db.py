"""Script to initialize the database without running migrations."""

import asyncio

from sqlalchemy import text

from practice_scheduler.config import settings
from practice_scheduler.database import engine
from practice_scheduler.models import metadata


async def init_db() -> None:
    """Initialize the database by creating all tables."""
    async with engine.begin() as conn:
        if not settings.uses_sqlite:
            await conn.execute(text('CREATE EXTENSION IF NOT EXISTS "pgcrypto"'))

        await conn.run_sync(metadata.create_all)

    await engine.dispose()
    print("✓ Database initialized successfully!")


if __name__ == "__main__":
    asyncio.run(init_db())
