"""
Database Connection Module
Handles PostgreSQL connection using SQLAlchemy async engine.

Every inventory operation opens its own session from a session factory,
so the factory (not a shared session) is what services receive.
"""

import logging
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from stockroom.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    pool_size=5,  # Connection pool size
    max_overflow=10,  # Extra connections when pool is full
    pool_pre_ping=True,
)

# Session factory - creates new database sessions
async_session_maker = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False  # Objects remain accessible after commit
)


# Base class for all our models
class Base(DeclarativeBase):
    pass


def create_worker_session_maker(database_url: Optional[str] = None) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """
    Build an engine/session factory pair for a single event loop.

    Celery tasks run each job under a fresh ``asyncio.run`` loop, and pooled
    asyncpg/psycopg connections cannot cross loops, so workers use NullPool
    and dispose the engine when the job finishes.
    """
    worker_engine = create_async_engine(
        database_url or settings.database_url,
        echo=settings.database_echo,
        poolclass=NullPool,
    )
    return worker_engine, async_sessionmaker(
        bind=worker_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    Dependency injection for FastAPI routes.
    Yields a database session and ensures cleanup.
    """
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db() -> None:
    """
    Create all tables in database.
    Called once at application startup.
    """
    # Register mappers on Base.metadata
    import stockroom.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created successfully")
