"""
PersonalPage Backend — Database Engine & Session Management
=============================================================

What:  Async SQLAlchemy engine factory, session factory, declarative base,
       and the per-request session dependency.
How:   `build_engine()` creates an engine from Settings; the AppContext owns
       it for the process lifetime. `get_db_session` hands each request its
       own session that commits on success and rolls back on error.
Who:   `personalpage.context` builds the engine; route handlers receive
       sessions via FastAPI's Depends().

Connection Pooling Strategy (PostgreSQL):
    pool_size=10:      Persistent connections for normal load
    max_overflow=5:    Temporary connections for traffic spikes
    pool_pre_ping:     Validates connections before use
    pool_recycle=3600: Recycles connections every hour

    SQLite URLs (tests, local experiments) skip the pool arguments because
    aiosqlite uses a single-connection pool.
"""

from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from personalpage.config import Settings


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    All models inherit from this class so they share one metadata object,
    which Alembic and `create_schema()` both read.
    """
    pass


# ── Engine Construction ───────────────────────────────────────────────────
def build_engine(settings: Settings) -> AsyncEngine:
    """
    Create the async engine described by `settings.database_url`.

    Returns:
        An AsyncEngine. The caller owns it and must call `dispose()`.
    """
    if settings.database_url.startswith("sqlite"):
        return create_async_engine(
            settings.database_url,
            echo=settings.log_level == "DEBUG",
        )

    return create_async_engine(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=settings.db_pool_pre_ping,
        pool_recycle=3600,
        echo=settings.log_level == "DEBUG",
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Session factory bound to `engine`.

    expire_on_commit=False keeps ORM attributes readable after the
    dependency commits, when the response is being serialized.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables known to Base.metadata (development and tests only)."""
    # Models must be imported so their tables are registered on Base.metadata
    from personalpage.models import account, comment  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    How it works:
        1. Creates a new session from the context's factory
        2. Yields it to the route handler
        3. On success: commits the transaction
        4. On error: rolls back the transaction
        5. Always: closes the session (returns connection to pool)

    Example usage in a route:
        @router.get("/comments")
        async def list_comments(db: AsyncSession = Depends(get_db_session)):
            ...
    """
    session_factory = request.app.state.context.session_factory
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
