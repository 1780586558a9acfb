"""
Natours Backend: Database Session Management
=============================================

What:  The async engine, the session factory, the per-request session
       dependency and the UTC helpers every model uses.
How:   get_db_session() wraps one request in one transaction: commit when
       the handler returns, rollback when anything raises.

Pools:
    PostgreSQL (asyncpg)     pool_size / max_overflow from settings,
                             pre-ping, connections recycled hourly
    SQLite (aiosqlite)       StaticPool, so an in-memory database is shared
                             by every session (the test suite relies on it)
"""

from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from natours.config import settings


def _engine_options() -> Dict[str, Any]:
    """Pool options differ between the production driver and SQLite."""
    options: Dict[str, Any] = {"echo": settings.log_level == "DEBUG"}
    if settings.is_sqlite:
        options["poolclass"] = StaticPool
        options["connect_args"] = {"check_same_thread": False}
    else:
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return options


# ── Engine Configuration ──────────────────────────────────────────────────
engine = create_async_engine(settings.database_url, **_engine_options())

if settings.is_sqlite:
    # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# ── Session Factory ───────────────────────────────────────────────────────
# expire_on_commit=False: attributes stay readable after commit, which the
# routes rely on when serializing the objects a service returned
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """
    Declarative base for users, tours and reviews.

    Shares one metadata object, which Alembic reads for autogenerate and
    the test suite uses for create_all().
    """
    pass


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    One session, one transaction per request.

    Services may commit earlier themselves (forgot-password persists the
    reset token before attempting delivery); the final commit then has
    nothing left to write.
    """
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        else:
            await session.commit()


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def dispose_engine() -> None:
    """Close pooled connections at shutdown."""
    await engine.dispose()


# ── Timestamp Helpers ─────────────────────────────────────────────────────
def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime read back from the database to aware UTC.

    SQLite hands back naive datetimes even for DateTime(timezone=True)
    columns; PostgreSQL returns aware ones. Comparing the two raises, so
    every comparison against "now" goes through this helper.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
