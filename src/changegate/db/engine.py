"""Async SQLAlchemy engine, session and schema creation."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from changegate.config import settings
from changegate.db.base import Base


def create_db_engine(url: str | None = None, **kwargs) -> AsyncEngine:
    """Create an async SQLAlchemy engine."""
    url = url or settings.database_url
    engine_kwargs: dict = {"echo": False}
    # SQLite does not support pool_size / max_overflow
    if "sqlite" not in url:
        engine_kwargs.update(pool_size=10, max_overflow=20)
    engine_kwargs.update(kwargs)
    return create_async_engine(url, **engine_kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory.

    ``expire_on_commit`` is off so records stay readable after the
    reconciliation engine commits without an implicit lazy reload.
    """
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(engine: AsyncEngine, metadata=None) -> None:
    """Create the pending_approvals table and any host tables on the metadata."""
    import changegate.db.models  # noqa: F401 - register ORM models

    async with engine.begin() as conn:
        await conn.run_sync((metadata or Base.metadata).create_all)
