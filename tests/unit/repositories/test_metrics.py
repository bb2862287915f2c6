"""
Unit tests for metric row persistence.

Why: Reprocessing a pull request must overwrite its row, never duplicate
     it, and a failed write must only affect its own row.

What: Tests column mapping, the ON CONFLICT statement, MetricRowRepository
      and PostgresMetricSink.

How: Compiles statements with the PostgreSQL dialect and drives the
     repository with an AsyncMock session.
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from prmetrics.repositories.metrics import (
    UPDATED_COLUMNS,
    MetricRowRepository,
    PostgresMetricSink,
    build_upsert,
    metric_values,
)
from prmetrics.workers.models import MetricRow

CREATED = datetime(2026, 1, 3, 10, tzinfo=UTC)


def make_row(number: int = 1, total: int = 2, bots: int = 1) -> MetricRow:
    return MetricRow(
        owner="octo",
        repo="widgets",
        number=number,
        total_comments=total,
        bot_comments=bots,
        lines_changed=12,
        created_at=CREATED,
    )


def compile_sql(statement) -> str:
    return str(statement.compile(dialect=postgresql.dialect()))


@pytest.fixture
def mock_session() -> AsyncMock:
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    return session


class TestStatement:
    def test_metric_values(self) -> None:
        assert metric_values(make_row()) == {
            "id": "1:octo:widgets",
            "number": 1,
            "owner": "octo",
            "repo": "widgets",
            "comment_count": 2,
            "bot_comments": 1,
            "lines_changed": 12,
            "created_at": CREATED,
        }

    def test_on_conflict_updates_every_metric_column(self) -> None:
        """
        Why: A rerun must refresh counts rather than fail on the primary key
        What: Tests the rendered INSERT ... ON CONFLICT (id) DO UPDATE
        How: Compiles the statement with the PostgreSQL dialect
        """
        sql = compile_sql(build_upsert(make_row()))

        assert sql.startswith("INSERT INTO prs")
        assert "ON CONFLICT (id) DO UPDATE SET" in sql
        for column in UPDATED_COLUMNS:
            assert f"{column} = excluded.{column}" in sql
        assert "scraped_at = now()" in sql

    def test_row_key_is_bound_as_id(self) -> None:
        statement = build_upsert(make_row(2))

        params = statement.compile(dialect=postgresql.dialect()).params
        assert params["id"] == "2:octo:widgets"
        assert params["comment_count"] == 2


class TestMetricRowRepository:
    """Test MetricRowRepository with a mocked session."""

    @pytest.mark.asyncio
    async def test_upsert_executes_and_flushes(self, mock_session: AsyncMock) -> None:
        await MetricRowRepository(mock_session).upsert(make_row())

        mock_session.execute.assert_awaited_once()
        statement = mock_session.execute.await_args.args[0]
        assert "ON CONFLICT (id) DO UPDATE" in compile_sql(statement)
        mock_session.flush.assert_awaited_once()


class TestPostgresMetricSink:
    @pytest.mark.asyncio
    async def test_one_session_per_row(self, mock_session: AsyncMock) -> None:
        sessions = []

        @asynccontextmanager
        async def get_session():
            sessions.append(mock_session)
            yield mock_session

        manager = MagicMock()
        manager.get_session = get_session
        sink = PostgresMetricSink(manager)

        await sink.upsert(make_row(1))
        await sink.upsert(make_row(2))

        assert len(sessions) == 2
        assert mock_session.execute.await_count == 2

    @pytest.mark.asyncio
    async def test_write_error_propagates(self, mock_session: AsyncMock) -> None:
        mock_session.execute.side_effect = RuntimeError("connection lost")

        @asynccontextmanager
        async def get_session():
            yield mock_session

        manager = MagicMock()
        manager.get_session = get_session

        with pytest.raises(RuntimeError, match="connection lost"):
            await PostgresMetricSink(manager).upsert(make_row())
