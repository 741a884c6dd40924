"""
Database session configuration.

This module builds the SQLAlchemy async engine and session factory used by
the SQL document store. Nothing is created at import time; the application
lifespan (or a test fixture) constructs the engine explicitly.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

# Create declarative base for models
Base = declarative_base()


def is_sqlite_url(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
) -> AsyncEngine:
    """
    Create the async engine.

    SQLite drivers do not take pool sizing arguments, so those are only
    passed for server databases.
    """
    if is_sqlite_url(database_url):
        return create_async_engine(database_url, echo=echo, future=True)

    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        future=True,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Create async session factory bound to the engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
