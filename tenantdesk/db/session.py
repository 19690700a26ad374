# tenantdesk/db/session.py
from __future__ import annotations

from collections.abc import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from tenantdesk.core.config import settings
from tenantdesk.db.base import Base


def _build_engine():
    if settings.database_url.startswith("sqlite"):
        # no pooling: each checkout gets a fresh aiosqlite connection
        return create_async_engine(
            settings.database_url,
            connect_args={"check_same_thread": False},
            poolclass=NullPool,
        )
    return create_async_engine(settings.database_url, pool_pre_ping=True)


engine = _build_engine()
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)


async def init_db() -> None:
    """Create tables in environments without migrations."""
    # models must be imported so that their tables are registered
    from tenantdesk.db import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as session:
        yield session
