"""
Async SQLAlchemy engine, session factory and declarative base.

Postgres (psycopg) in deployments, SQLite (aiosqlite) in tests.
"""

import logging
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from gestro.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


def engine_options(url: str) -> dict:
    options = {"echo": settings.database_echo}
    # SQLite has no connection pool to size
    if not url.startswith("sqlite"):
        options.update(pool_size=5, max_overflow=10, pool_pre_ping=True)
    return options


engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))

# Rows stay readable after commit; services return them to the API layer
async_session_maker = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency: one session per request."""
    async with async_session_maker() as session:
        yield session


async def init_db() -> None:
    """Create missing tables. Existing tables are left untouched."""
    from gestro import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Schema ready ({len(Base.metadata.tables)} tables)")
