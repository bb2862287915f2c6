"""Create-if-missing and additive evolution of the metrics table.

Existing deployments may carry an older ``prs`` table. Columns the model
declares but the table lacks are added with their server defaults; nothing
is ever dropped or altered.
"""

import logging

from sqlalchemy import Column, Connection, inspect
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.schema import CreateColumn

from ..models.base import Base
from ..models.metric import PullRequestMetric

logger = logging.getLogger(__name__)


def missing_columns(connection: Connection) -> list[Column]:
    """Model columns absent from the live ``prs`` table."""
    table = PullRequestMetric.__table__
    existing = {column["name"] for column in inspect(connection).get_columns(table.name)}
    return [column for column in table.columns if column.name not in existing]


def add_column_sql(connection: Connection, column: Column) -> str:
    """Render ``ALTER TABLE prs ADD COLUMN ...`` for the connection's dialect."""
    table = connection.dialect.identifier_preparer.format_table(column.table)
    definition = CreateColumn(column).compile(dialect=connection.dialect)
    return f"ALTER TABLE {table} ADD COLUMN {definition}"


def _sync_schema(connection: Connection) -> list[str]:
    table = PullRequestMetric.__table__
    if not inspect(connection).has_table(table.name):
        Base.metadata.create_all(connection, tables=[table])
        logger.info(f"Created table {table.name}")
        return []

    added = []
    for column in missing_columns(connection):
        connection.exec_driver_sql(add_column_sql(connection, column))
        added.append(column.name)
    return added


async def ensure_schema(engine: AsyncEngine) -> list[str]:
    """Make sure ``prs`` exists with every model column.

    Returns:
        Names of the columns added to an existing table
    """
    async with engine.begin() as connection:
        added = await connection.run_sync(_sync_schema)

    if added:
        logger.info(
            f"Added {len(added)} column(s) to prs", extra={"columns": added}
        )
    return added
