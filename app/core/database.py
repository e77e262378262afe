"""
Database engine and session factory.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

SessionFactory = async_sessionmaker[AsyncSession]


def create_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Create the async engine for the configured database."""
    return create_async_engine(database_url, echo=echo, future=True)


def create_session_factory(engine: AsyncEngine) -> SessionFactory:
    """Session factory handed to the services.

    Each unit of work opens its own session and wraps it in
    ``session.begin()`` so commit/rollback and connection release happen
    when the block exits.
    """
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables (development and tests only — use migrations in production)."""
    import app.models  # noqa: F401  populate metadata

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
