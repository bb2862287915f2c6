"""Async engine and sessions backing the metrics sink.

The CLI builds one :class:`DatabaseConnectionManager` per run, calls
:meth:`~DatabaseConnectionManager.connect` before any pull request is
processed and disposes it on exit.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool

from .config import DatabaseConfig
from .schema import ensure_schema

logger = logging.getLogger(__name__)


def engine_options(config: DatabaseConfig) -> dict[str, Any]:
    """Keyword arguments for :func:`create_async_engine`."""
    pool = config.pool
    return {
        "poolclass": AsyncAdaptedQueuePool,
        "pool_size": pool.pool_size,
        "max_overflow": pool.max_overflow,
        "pool_pre_ping": pool.pool_pre_ping,
        "pool_recycle": pool.pool_recycle,
        "pool_timeout": pool.pool_timeout,
        # asyncpg connect() keywords
        "connect_args": {
            "timeout": config.connect_timeout,
            "command_timeout": config.command_timeout,
        },
        "echo": config.echo_sql,
    }


def _log_invalidated(
    dbapi_connection: Any, connection_record: Any, exception: BaseException | None
) -> None:
    logger.warning(
        "Pooled database connection invalidated",
        extra={"error": str(exception) if exception else None},
    )


class DatabaseConnectionManager:
    """Owns the engine and session factory for one run."""

    def __init__(self, config: DatabaseConfig | None = None):
        self.config = config or DatabaseConfig()
        self._engine: AsyncEngine | None = None
        self._sessions: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        """Engine created on first use.

        Raises:
            ValueError: If no database URL can be built from the settings
        """
        if self._engine is None:
            self._engine = create_async_engine(
                self.config.get_sqlalchemy_url(), **engine_options(self.config)
            )
            event.listen(self._engine.sync_engine, "invalidate", _log_invalidated)
            logger.debug(
                f"Created engine for {self.config.host}/{self.config.database}",
                extra={"pool_size": self.config.pool.pool_size},
            )
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._sessions is None:
            self._sessions = async_sessionmaker(
                bind=self.engine, class_=AsyncSession, expire_on_commit=False
            )
        return self._sessions

    async def connect(self) -> list[str]:
        """Check the server answers, then create or evolve the ``prs`` table.

        Returns:
            Columns added to an existing table

        Raises:
            SQLAlchemyError: If the server rejects the connection or the DDL
            OSError: If the server cannot be reached
        """
        async with self.engine.connect() as connection:
            await connection.execute(text("SELECT 1"))
        logger.info(
            f"Connected to PostgreSQL at {self.config.host}:{self.config.port}"
        )
        return await ensure_schema(self.engine)

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """One transaction: committed on success, rolled back on error."""
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def close(self) -> None:
        """Dispose the engine and its pooled connections."""
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessions = None
        logger.debug("Database engine disposed")
