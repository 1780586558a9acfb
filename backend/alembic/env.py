"""
Alembic Migration Environment
==============================

What:  Runs migrations against DATABASE_URL from natours.config; the URL in
       alembic.ini is never used.
How:   Online mode opens a throwaway async engine (NullPool) and hands the
       connection to Alembic through run_sync(). SQLite gets batch mode so
       ALTER TABLE migrations work there too.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

from natours import models  # noqa: F401  (users, tours, tour_guides, reviews)
from natours.config import settings
from natours.database import Base

if context.config.config_file_name is not None:
    fileConfig(context.config.config_file_name)

METADATA = Base.metadata
OPTIONS = {"compare_type": True}


def migrate_offline() -> None:
    """alembic upgrade --sql: print the DDL instead of running it."""
    context.configure(
        url=settings.database_url,
        target_metadata=METADATA,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=settings.is_sqlite,
        **OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def _migrate(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=METADATA,
        render_as_batch=connection.dialect.name == "sqlite",
        **OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


async def migrate_online() -> None:
    engine = create_async_engine(settings.database_url, poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_migrate)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    migrate_offline()
else:
    asyncio.run(migrate_online())
