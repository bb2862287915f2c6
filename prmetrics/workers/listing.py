"""Bulk listing of a repository's pull requests.

Produces one :class:`PullRequestLite` per pull request (open, closed and
merged), newest first. The GraphQL strategy gets line deltas in the listing
itself; the REST listing endpoint omits them, so the REST strategy fetches the
detail resource for every item that lacks them.
"""

import asyncio
import logging
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from ..github.exceptions import GitHubError
from ..github.gateway import APIGateway
from .models import PullRequestLite

logger = logging.getLogger(__name__)


PULL_REQUESTS_QUERY = """
query($owner: String!, $name: String!, $after: String, $first: Int!) {
  repository(owner: $owner, name: $name) {
    pullRequests(
      first: $first
      after: $after
      states: [OPEN, CLOSED, MERGED]
      orderBy: {field: CREATED_AT, direction: DESC}
    ) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        number
        additions
        deletions
        createdAt
      }
    }
  }
  rateLimit {
    remaining
    resetAt
  }
}
"""


class ListingStrategy(str, Enum):
    """How the lister talks to GitHub."""

    GRAPHQL = "graphql"
    REST = "rest"


def parse_timestamp(value: str | None) -> datetime:
    """Parse a GitHub ISO-8601 timestamp; missing values map to now (UTC)."""
    if not value:
        return datetime.now(UTC)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def lite_from_payload(payload: dict[str, Any]) -> PullRequestLite:
    """Build a lite record from a REST or GraphQL pull request object."""
    created = payload.get("created_at", payload.get("createdAt"))
    return PullRequestLite(
        number=int(payload["number"]),
        additions=int(payload.get("additions") or 0),
        deletions=int(payload.get("deletions") or 0),
        created_at=parse_timestamp(created),
    )


class PullRequestLister:
    """Lists every pull request of a repository once per run."""

    def __init__(
        self,
        gateway: APIGateway,
        strategy: ListingStrategy = ListingStrategy.GRAPHQL,
        per_page: int = 100,
        detail_concurrency: int = 4,
    ) -> None:
        """Initialize the lister.

        Args:
            gateway: Gateway used for every remote call
            strategy: GraphQL cursor query or REST listing
            per_page: Page size (GitHub caps it at 100)
            detail_concurrency: Parallel detail fetches in the REST strategy
        """
        self.gateway = gateway
        self.strategy = ListingStrategy(strategy)
        self.per_page = min(per_page, 100)
        self.detail_concurrency = max(detail_concurrency, 1)

    async def list_all(self, owner: str, repo: str) -> list[PullRequestLite]:
        """Return one lite record per pull request, newest first.

        Raises:
            GitHubError: If the listing fails fatally
        """
        logger.info(
            f"Begin fetching pull requests for {owner}/{repo}",
            extra={"strategy": self.strategy.value, "per_page": self.per_page},
        )

        if self.strategy is ListingStrategy.GRAPHQL:
            lites = await self._list_graphql(owner, repo)
        else:
            lites = await self._list_rest(owner, repo)

        logger.info(
            f"Completed fetching pull requests for {owner}/{repo}: {len(lites)} total"
        )
        return lites

    async def _list_graphql(self, owner: str, repo: str) -> list[PullRequestLite]:
        seen: dict[int, PullRequestLite] = {}
        cursor: str | None = None
        page = 0

        while True:
            data = await self.gateway.graphql(
                PULL_REQUESTS_QUERY,
                {"owner": owner, "name": repo, "after": cursor, "first": self.per_page},
            )
            repository = data.get("repository")
            if repository is None:
                raise GitHubError(f"Repository {owner}/{repo} not found")

            connection = repository["pullRequests"]
            for node in connection.get("nodes") or []:
                if node is None:
                    continue
                lite = lite_from_payload(node)
                seen.setdefault(lite.number, lite)

            page += 1
            rate = data.get("rateLimit") or {}
            logger.debug(
                f"Fetched pull request page {page} ({len(seen)} so far)",
                extra={"rate_remaining": rate.get("remaining")},
            )

            page_info = connection.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                break
            cursor = page_info.get("endCursor")
            if cursor is None:
                break

        return list(seen.values())

    async def _list_rest(self, owner: str, repo: str) -> list[PullRequestLite]:
        seen: dict[int, dict[str, Any]] = {}
        paginator = self.gateway.paginate(
            f"/repos/{owner}/{repo}/pulls",
            params={"state": "all", "sort": "created", "direction": "desc"},
            per_page=self.per_page,
        )

        async for page in paginator.pages():
            for item in page.items:
                seen.setdefault(int(item["number"]), item)
            logger.debug(
                f"Fetched pull request page {paginator.pages_fetched} "
                f"({len(seen)} so far)",
                extra={
                    "rate_remaining": page.rate_limit.remaining
                    if page.rate_limit
                    else None
                },
            )

        semaphore = asyncio.Semaphore(self.detail_concurrency)

        async def complete(item: dict[str, Any]) -> PullRequestLite:
            if "additions" in item and "deletions" in item:
                return lite_from_payload(item)
            async with semaphore:
                detail = await self.gateway.get(
                    f"/repos/{owner}/{repo}/pulls/{item['number']}"
                )
            return lite_from_payload(detail)

        tasks = [asyncio.create_task(complete(item)) for item in seen.values()]
        try:
            return list(await asyncio.gather(*tasks))
        finally:
            # One failed detail fetch fails the listing; stop the rest with it.
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
