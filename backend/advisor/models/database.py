"""SQLite storage for onboarding preferences and feedback votes.

The app runs one process-wide engine. Tests and tools build their own with
``make_engine`` and bootstrap it through ``init_db(engine)``.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from advisor.config import DATABASE_URL, DB_BUSY_TIMEOUT

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def make_engine(url: str = DATABASE_URL) -> AsyncEngine:
    # SQLite connections wait on a locked file instead of failing at once
    connect_args = {"timeout": DB_BUSY_TIMEOUT} if url.startswith("sqlite") else {}
    return create_async_engine(url, echo=False, connect_args=connect_args)


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = make_engine()
async_session_factory = make_session_factory(engine)


async def get_db():
    """Request-scoped session for the preference and feedback routes."""
    async with async_session_factory() as session:
        yield session


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create the preference and feedback tables that are missing."""
    from advisor.models import preferences  # noqa: F401

    target = bind or engine
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database ready: {', '.join(sorted(Base.metadata.tables))}")


async def close_db() -> None:
    await engine.dispose()
