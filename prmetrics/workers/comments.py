"""Comment aggregation per pull request.

Two strategies produce the same :class:`CommentBreakdown` counts:

* a bulk scan over the repository-wide conversation and review comment
  endpoints, whose request count depends on the number of comments in the
  repository rather than on the number of pull requests;
* a per pull request fallback that lists both comment kinds for one number.

A comment counts as a bot comment when its author's ``type`` is ``"Bot"``.
"""

import logging
from collections.abc import Collection
from typing import Any
from urllib.parse import urlsplit

from ..github.gateway import APIGateway
from .models import CommentBreakdown

logger = logging.getLogger(__name__)

BOT_ACCOUNT_TYPE = "Bot"


def is_bot_author(user: dict[str, Any] | None) -> bool:
    """Whether a comment author is flagged as an automated account."""
    if not user:
        return False
    return user.get("type") == BOT_ACCOUNT_TYPE


def trailing_number(url: str | None) -> int | None:
    """Return the trailing numeric path segment of a URL.

    ``https://api.github.com/repos/o/r/issues/42`` gives 42. Query strings,
    fragments and trailing slashes are ignored; anything non-numeric gives
    None.
    """
    if not url:
        return None

    path = urlsplit(url).path.rstrip("/")
    last = path.rsplit("/", 1)[-1]
    if not last.isdigit():
        return None
    return int(last)


def conversation_comment_number(comment: dict[str, Any]) -> int | None:
    """Pull request number owning a conversation (issue) comment."""
    return trailing_number(comment.get("issue_url"))


def review_comment_number(comment: dict[str, Any]) -> int | None:
    """Pull request number owning a diff review comment."""
    number = trailing_number(comment.get("pull_request_url"))
    if number is None:
        # html_url looks like .../pull/42#discussion_r123
        number = trailing_number(comment.get("html_url"))
    return number


class CommentAggregator:
    """Counts total and bot comments for pull requests."""

    def __init__(self, gateway: APIGateway, per_page: int = 100) -> None:
        """Initialize the aggregator.

        Args:
            gateway: Gateway used for every remote call
            per_page: Page size for comment listings
        """
        self.gateway = gateway
        self.per_page = per_page

    async def repository_breakdowns(
        self, owner: str, repo: str, wanted: Collection[int]
    ) -> dict[int, CommentBreakdown]:
        """Scan every comment of the repository once.

        Args:
            owner: Repository owner
            repo: Repository name
            wanted: Pull request numbers to record; comments on anything
                else (plain issues included) are discarded

        Returns:
            Breakdown for every wanted number; numbers without comments map
            to an empty breakdown since the scan covers the whole repository

        Raises:
            GitHubError: If either scan fails fatally
        """
        counts = {number: CommentBreakdown() for number in wanted}
        scanned = 0

        def record(number: int | None, comment: dict[str, Any]) -> None:
            if number is None or number not in counts:
                return
            counts[number] = counts[number].add(is_bot_author(comment.get("user")))

        conversation = self.gateway.paginate(
            f"/repos/{owner}/{repo}/issues/comments", per_page=self.per_page
        )
        async for comment in conversation:
            scanned += 1
            if comment.get("user"):
                record(conversation_comment_number(comment), comment)

        review = self.gateway.paginate(
            f"/repos/{owner}/{repo}/pulls/comments", per_page=self.per_page
        )
        async for comment in review:
            scanned += 1
            if comment.get("user"):
                record(review_comment_number(comment), comment)

        commented = sum(1 for breakdown in counts.values() if breakdown.total_comments)
        logger.info(
            f"Scanned {scanned} repository comments for {owner}/{repo}; "
            f"{commented} pull requests have comments",
            extra={
                "conversation_pages": conversation.pages_fetched,
                "review_pages": review.pages_fetched,
            },
        )
        return counts

    async def pull_request_breakdown(
        self, owner: str, repo: str, number: int
    ) -> CommentBreakdown:
        """Count both comment kinds of a single pull request."""
        breakdown = CommentBreakdown()

        for path in (
            f"/repos/{owner}/{repo}/issues/{number}/comments",
            f"/repos/{owner}/{repo}/pulls/{number}/comments",
        ):
            async for comment in self.gateway.paginate(path, per_page=self.per_page):
                breakdown = breakdown.add(is_bot_author(comment.get("user")))

        logger.debug(
            f"Counted comments for #{number}: {breakdown.total_comments} total, "
            f"{breakdown.bot_comments} from bots"
        )
        return breakdown
