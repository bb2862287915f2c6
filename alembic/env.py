"""
Alembic environment configuration for the ``prs`` table migrations.

Handles both online and offline migration modes with async support, reading
the connection settings from :class:`prmetrics.database.config.DatabaseConfig`.
"""

import asyncio
import contextlib
import os
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context
from prmetrics.database.config import DatabaseConfig
from prmetrics.models import Base

config = context.config

if config.config_file_name is not None:
    with contextlib.suppress(KeyError):
        fileConfig(config.config_file_name)

target_metadata = Base.metadata


def get_database_url() -> str:
    """
    Get the sync database URL for migrations.

    ``DATABASE_*`` settings win; ``sqlalchemy.url`` in alembic.ini is the
    fallback when they do not describe a database.
    """
    app_config = DatabaseConfig()
    if app_config.is_configured:
        return app_config.get_alembic_url()

    fallback_url = config.get_main_option("sqlalchemy.url")
    if not fallback_url:
        raise RuntimeError(
            "No database configured: set DATABASE_URL or DATABASE_PASSWORD"
        )
    return fallback_url


def run_migrations_offline() -> None:
    """Emit the migration SQL without connecting."""
    context.configure(
        url=get_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    """Run migrations with the provided connection."""
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Run migrations through an asyncpg engine."""
    configuration = config.get_section(config.config_ini_section, {})
    configuration["sqlalchemy.url"] = get_database_url().replace(
        "postgresql://", "postgresql+asyncpg://", 1
    )

    connectable = async_engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def run_sync_migrations() -> None:
    """Run migrations through a synchronous engine."""
    configuration = config.get_section(config.config_ini_section, {})
    configuration["sqlalchemy.url"] = get_database_url()

    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        do_run_migrations(connection)


def run_migrations_online() -> None:
    """Run migrations against a live database, async unless ALEMBIC_ASYNC=false."""
    if os.getenv("ALEMBIC_ASYNC", "true").lower() == "true":
        asyncio.run(run_async_migrations())
    else:
        run_sync_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
