"""Database engine and helpers.

This module builds the SQLAlchemy asyncio engine backing the statistics
store and provides small helpers used by the store and tests. The
default database is a local SQLite file driven through aiosqlite; the
location comes from `settings.DATABASE_URL`.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

# imported for table registration on SQLModel.metadata
from . import models  # noqa: F401


def make_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for `url`.

    SQLite connections are shared across tasks of one event loop, so the
    same-thread check is disabled as the sync backend does.
    """
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_async_engine(url, echo=echo, connect_args=connect_args)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Return a session factory whose objects stay usable after commit."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_db_and_tables(engine: AsyncEngine) -> None:
    """Create the store tables and indexes if they do not exist yet.

    `create_all` checks for existing tables first, so calling this on an
    already initialised database is a no-op.
    """
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
