"""
PayFlow Database Module
Async SQLAlchemy with SQLite (dev) / PostgreSQL (prod) support.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


def create_engine(database_url: str, production: bool = False, echo: bool = False) -> AsyncEngine:
    """
    Build the async engine.

    SQLite needs cross-thread access for aiosqlite; PostgreSQL connections
    require TLS in production.
    """
    connect_args: dict = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    elif production and "asyncpg" in database_url:
        connect_args["ssl"] = "require"

    return create_async_engine(database_url, echo=echo, connect_args=connect_args)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to ``engine``."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """
    Initialize the database - create all tables.
    Call this on startup.
    """
    # Registers the mapped tables on Base.metadata
    from payflow.models import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
