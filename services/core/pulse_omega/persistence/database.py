"""
Database Configuration Module

Async engine and session factory. Created once at process start and handed
to ``SQLAlchemyRecordStore``; never re-created per run.
"""
import os
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

# Base for models
Base = declarative_base()


def create_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """Async engine for ``database_url`` (defaults to $DATABASE_URL)."""
    url = database_url or os.getenv("DATABASE_URL")
    if not url:
        raise ValueError("DATABASE_URL environment variable is not set")

    options = {"echo": False}
    if not url.startswith("sqlite"):
        options.update(
            pool_pre_ping=True,     # Verify connections before use
            pool_recycle=3600,      # Recycle connections after 1 hour
        )
    return create_async_engine(url, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create all pulse tables (development and tests)."""
    from pulse_omega.persistence import models  # noqa: F401  registers tables

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db_connections(engine: AsyncEngine) -> None:
    """Call on application shutdown."""
    await engine.dispose()
