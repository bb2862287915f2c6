"""Persistence of metric rows.

Rows are written with PostgreSQL ``INSERT ... ON CONFLICT (id) DO UPDATE``
so that processing the same pull request twice overwrites the earlier row.
"""

import logging
from typing import Any, Protocol

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.connection import DatabaseConnectionManager
from ..models.metric import PullRequestMetric
from ..workers.models import MetricRow

logger = logging.getLogger(__name__)

UPDATED_COLUMNS = (
    "number",
    "owner",
    "repo",
    "comment_count",
    "bot_comments",
    "lines_changed",
    "created_at",
)


class MetricSink(Protocol):
    """Anything that can persist a metric row idempotently by its key."""

    async def upsert(self, row: MetricRow) -> None: ...


def metric_values(row: MetricRow) -> dict[str, Any]:
    """Map a row onto ``prs`` column values."""
    return {
        "id": row.key,
        "number": row.number,
        "owner": row.owner,
        "repo": row.repo,
        "comment_count": row.total_comments,
        "bot_comments": row.bot_comments,
        "lines_changed": row.lines_changed,
        "created_at": row.created_at,
    }


def build_upsert(row: MetricRow) -> Any:
    """Build the ``INSERT ... ON CONFLICT (id) DO UPDATE`` statement."""
    stmt = postgresql_insert(PullRequestMetric).values(**metric_values(row))
    update_dict: dict[str, Any] = {
        column: stmt.excluded[column] for column in UPDATED_COLUMNS
    }
    update_dict["scraped_at"] = func.now()
    return stmt.on_conflict_do_update(index_elements=["id"], set_=update_dict)


class MetricRowRepository:
    """Writes ``prs`` rows on one session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(self, row: MetricRow) -> None:
        """Insert the row or overwrite the existing one with the same key."""
        await self.session.execute(build_upsert(row))
        await self.session.flush()
        logger.debug(f"Upserted metric row {row.key}")


class PostgresMetricSink:
    """Sink opening one short transaction per upserted row.

    Rows are independent: a failed write rolls back only its own row and
    surfaces to the caller as that job's error.
    """

    def __init__(self, connection_manager: DatabaseConnectionManager):
        self.connection_manager = connection_manager

    async def upsert(self, row: MetricRow) -> None:
        async with self.connection_manager.get_session() as session:
            await MetricRowRepository(session).upsert(row)
