import os
import logging
from datetime import time

from sqlmodel import SQLModel, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from dotenv import load_dotenv

from models import DayAvailability

logger = logging.getLogger(__name__)

load_dotenv()

# PostgreSQL (asyncpg) in production, SQLite (aiosqlite) for local runs
DATABASE_URL = os.environ.get("DATABASE_URL")

if not DATABASE_URL:
    raise ValueError("DATABASE_URL is not set. Please check your .env file.")

engine = create_async_engine(DATABASE_URL, echo=False, future=True)

async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

# Weekdays open for visits on a fresh install (0 = Sunday)
DEFAULT_OPEN_DAYS = {1, 2, 3, 4, 5}
DEFAULT_START = time(9, 0)
DEFAULT_END = time(18, 0)


async def seed_availability(session: AsyncSession) -> None:
    result = await session.execute(select(DayAvailability))
    if result.scalars().first() is not None:
        return

    for day in range(7):
        session.add(
            DayAvailability(
                day_of_week=day,
                start_time=DEFAULT_START,
                end_time=DEFAULT_END,
                is_available=day in DEFAULT_OPEN_DAYS,
            )
        )
    await session.commit()
    logger.info("Seeded default weekly availability")


async def init_db(bind: AsyncEngine = engine):
    async with bind.begin() as conn:
        # This creates the tables if they don't exist
        await conn.run_sync(SQLModel.metadata.create_all)

    factory = sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        await seed_availability(session)


async def get_session() -> AsyncSession:
    async with async_session() as session:
        yield session
