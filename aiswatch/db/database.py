"""
Async SQLAlchemy engine and session factory for the SQL position store.

PostgreSQL (asyncpg) in deployment; SQLite (aiosqlite) works for local runs and tests.
"""
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from aiswatch.db.models import Base


def create_engine(url: str) -> AsyncEngine:
    return create_async_engine(url, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


async def init_models(engine: AsyncEngine) -> None:
    """Create the positions table and its indexes if missing."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
