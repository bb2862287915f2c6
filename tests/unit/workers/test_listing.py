"""
Unit tests for the bulk pull request lister.

Why: Every later stage works off this list; a missed or duplicated pull
     request means a missing or double-counted row.

What: Tests both listing strategies, deduplication, detail fetches for
      REST items lacking line deltas and failure propagation.

How: Runs PullRequestLister against the in-memory fake client.
"""

import asyncio
from datetime import UTC, datetime
from typing import Any

import pytest

from prmetrics.github import (
    APIGateway,
    GitHubError,
    GitHubNotFoundError,
    GitHubServerError,
)
from prmetrics.workers.listing import (
    ListingStrategy,
    PullRequestLister,
    lite_from_payload,
    parse_timestamp,
)
from prmetrics.workers.models import PullRequestLite
from tests.fixtures.fakes import (
    OWNER,
    REPO,
    FakeGitHubClient,
    RecordingSleep,
    ts,
)

EXPECTED = [
    PullRequestLite(1, 10, 2, ts("2026-01-03T10:00:00Z")),
    PullRequestLite(2, 0, 0, ts("2026-01-02T10:00:00Z")),
    PullRequestLite(3, 5, 5, ts("2026-01-01T10:00:00Z")),
]


class SlowDetailClient(FakeGitHubClient):
    """Answers detail requests after a short delay, except for #1."""

    def __init__(self, **kwargs: Any):
        super().__init__(**kwargs)
        self.completed: list[str] = []

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        if not path.endswith("/pulls/1"):
            await asyncio.sleep(0.02)
        result = await super().get(path, params)
        self.completed.append(path)
        return result


class TestParsing:
    def test_parse_timestamp_with_z_suffix(self) -> None:
        assert parse_timestamp("2026-01-03T10:00:00Z") == datetime(
            2026, 1, 3, 10, tzinfo=UTC
        )

    def test_parse_timestamp_naive_assumed_utc(self) -> None:
        assert parse_timestamp("2026-01-03T10:00:00").tzinfo is UTC

    def test_parse_timestamp_missing_is_now(self) -> None:
        before = datetime.now(UTC)
        assert parse_timestamp(None) >= before

    def test_lite_from_rest_and_graphql_payloads(self) -> None:
        rest = {"number": 5, "additions": 1, "deletions": 2, "created_at": "2026-01-01T00:00:00Z"}
        graphql = {"number": 5, "additions": 1, "deletions": 2, "createdAt": "2026-01-01T00:00:00Z"}

        assert lite_from_payload(rest) == lite_from_payload(graphql)

    def test_lite_missing_deltas_are_zero(self) -> None:
        lite = lite_from_payload({"number": 9, "additions": None})
        assert (lite.additions, lite.deletions) == (0, 0)


class TestGraphQLStrategy:
    @pytest.mark.asyncio
    async def test_lists_every_page(
        self, gateway: APIGateway, fake_client: FakeGitHubClient
    ) -> None:
        lister = PullRequestLister(gateway, ListingStrategy.GRAPHQL, per_page=2)

        lites = await lister.list_all(OWNER, REPO)

        assert lites == EXPECTED
        assert fake_client.calls.count("graphql") == 2

    @pytest.mark.asyncio
    async def test_duplicates_across_pages_dropped(self) -> None:
        node = {"number": 4, "additions": 1, "deletions": 1, "createdAt": "2026-01-01T00:00:00Z"}
        client = FakeGitHubClient(graphql_pages=[[node], [node, None]])
        lister = PullRequestLister(APIGateway(client, sleep=RecordingSleep()))  # type: ignore[arg-type]

        lites = await lister.list_all(OWNER, REPO)

        assert [lite.number for lite in lites] == [4]

    @pytest.mark.asyncio
    async def test_missing_repository_is_fatal(self) -> None:
        client = FakeGitHubClient(graphql_pages=None)
        lister = PullRequestLister(APIGateway(client, sleep=RecordingSleep()))  # type: ignore[arg-type]

        with pytest.raises(GitHubError, match="not found"):
            await lister.list_all(OWNER, REPO)

    @pytest.mark.asyncio
    async def test_transient_failure_retried(
        self,
        gateway: APIGateway,
        fake_client: FakeGitHubClient,
        recording_sleep: RecordingSleep,
    ) -> None:
        fake_client.fail("graphql", GitHubServerError("bad gateway", status_code=502))
        lister = PullRequestLister(gateway)

        assert await lister.list_all(OWNER, REPO) == EXPECTED
        assert recording_sleep.waits == [0.5]


class TestRestStrategy:
    @pytest.mark.asyncio
    async def test_lists_and_completes_line_deltas(
        self, gateway: APIGateway, fake_client: FakeGitHubClient
    ) -> None:
        """
        REST listings omit additions/deletions; the lister fetches details.

        Why: lines_changed needs both deltas for every pull request
        What: Two listing pages plus one detail request per pull request
        How: Fake client serves listing items without deltas
        """
        lister = PullRequestLister(gateway, ListingStrategy.REST, detail_concurrency=2)

        lites = await lister.list_all(OWNER, REPO)

        assert sorted(lites, key=lambda lite: lite.number) == EXPECTED
        assert fake_client.calls_to(f"/repos/{OWNER}/{REPO}/pulls") == 2
        for number in (1, 2, 3):
            assert fake_client.calls_to(f"/repos/{OWNER}/{REPO}/pulls/{number}") == 1

    @pytest.mark.asyncio
    async def test_items_with_deltas_skip_detail_fetch(self) -> None:
        item = {"number": 8, "additions": 4, "deletions": 0, "created_at": "2026-01-01T00:00:00Z"}
        client = FakeGitHubClient(pages={f"/repos/{OWNER}/{REPO}/pulls": [[item]]})
        lister = PullRequestLister(
            APIGateway(client, sleep=RecordingSleep()),  # type: ignore[arg-type]
            ListingStrategy.REST,
        )

        lites = await lister.list_all(OWNER, REPO)

        assert lites == [PullRequestLite(8, 4, 0, ts("2026-01-01T00:00:00Z"))]
        assert client.calls == [f"/repos/{OWNER}/{REPO}/pulls"]

    @pytest.mark.asyncio
    async def test_fatal_listing_error_propagates(self) -> None:
        client = FakeGitHubClient()
        lister = PullRequestLister(
            APIGateway(client, sleep=RecordingSleep()),  # type: ignore[arg-type]
            ListingStrategy.REST,
        )

        with pytest.raises(GitHubError):
            await lister.list_all(OWNER, REPO)

    @pytest.mark.asyncio
    async def test_failed_detail_fetch_stops_the_others(self) -> None:
        """
        Why: Detail requests left running after the listing failed would keep
             calling GitHub on a client that is about to be closed
        What: Tests that a fatal detail error cancels the pending detail fetches
        How: Eight pull requests; #1 has no detail resource, the rest answer slowly
        """
        base = f"/repos/{OWNER}/{REPO}"
        listing = [
            {"number": n, "created_at": "2026-01-01T00:00:00Z"} for n in range(1, 9)
        ]
        details = {
            f"{base}/pulls/{n}": {"number": n, "additions": 1, "deletions": 1}
            for n in range(2, 9)
        }
        client = SlowDetailClient(pages={f"{base}/pulls": [listing]}, resources=details)
        lister = PullRequestLister(
            APIGateway(client, sleep=RecordingSleep()),  # type: ignore[arg-type]
            ListingStrategy.REST,
            detail_concurrency=4,
        )

        with pytest.raises(GitHubNotFoundError):
            await lister.list_all(OWNER, REPO)
        await asyncio.sleep(0.05)

        assert client.completed == []

    def test_strategy_accepts_plain_strings(self, gateway: APIGateway) -> None:
        assert PullRequestLister(gateway, "rest").strategy is ListingStrategy.REST  # type: ignore[arg-type]

    @pytest.mark.asyncio
    async def test_malformed_listing_page_fails(self) -> None:
        """
        Why: An error object instead of a page would otherwise end the run
             successfully with zero pull requests
        What: Tests that a JSON object on the listing endpoint raises
        How: Fake client serves {"message": ...} as the only listing page
        """
        client = FakeGitHubClient(
            pages={f"/repos/{OWNER}/{REPO}/pulls": [{"message": "Moved"}]}  # type: ignore[list-item]
        )
        lister = PullRequestLister(
            APIGateway(client, sleep=RecordingSleep()),  # type: ignore[arg-type]
            ListingStrategy.REST,
        )

        with pytest.raises(GitHubError, match="Malformed list response"):
            await lister.list_all(OWNER, REPO)
