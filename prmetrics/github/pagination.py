"""Link header pagination for GitHub list endpoints.

Every page of a REST listing names its successor in the ``Link`` header;
iteration stops on the first page without a ``rel="next"`` entry.
"""

import re
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from .backoff import RateLimitInfo
from .exceptions import GitHubError

GITHUB_MAX_PER_PAGE = 100

# <url>; rel="next", <url>; rel="last"
_LINK_PATTERN = re.compile(r'<([^>]+)>;\s*rel="([^"]+)"')


@dataclass(frozen=True)
class LinkHeader:
    """Relation to URL mapping of one ``Link`` header."""

    links: dict[str, str] = field(default_factory=dict)

    @classmethod
    def parse(cls, value: str | None) -> "LinkHeader":
        if not value:
            return cls()
        return cls({rel: url for url, rel in _LINK_PATTERN.findall(value)})

    @property
    def next_url(self) -> str | None:
        return self.links.get("next")


class PaginatedResponse:
    """One decoded page plus the headers needed to reach the next."""

    def __init__(self, data: Any, headers: dict[str, str], url: str):
        self.data = data
        self.headers = headers
        self.url = url
        link = next((v for k, v in headers.items() if k.lower() == "link"), None)
        self.link_header = LinkHeader.parse(link)
        self.rate_limit = RateLimitInfo.from_headers(headers)

    @property
    def next_page_url(self) -> str | None:
        return self.link_header.next_url

    @property
    def items(self) -> list[dict[str, Any]]:
        """List body of the page.

        Raises:
            GitHubError: If a list endpoint answered with anything but a list
        """
        if not isinstance(self.data, list):
            raise GitHubError(
                f"Malformed list response from {self.url}: "
                f"expected a JSON array, got {type(self.data).__name__}",
                response_data=self.data if isinstance(self.data, dict) else None,
            )
        return self.data


PageFetcher = Callable[[str, dict[str, Any] | None], Awaitable[PaginatedResponse]]


class AsyncPaginator:
    """Async iterator over the items of a paginated GitHub endpoint.

    Pages are requested through ``fetch_page`` so the caller decides how
    each request is retried. Query parameters are only sent with the first
    request; the Link header URLs that follow already carry them.
    """

    def __init__(
        self,
        fetch_page: PageFetcher,
        path: str,
        params: dict[str, Any] | None = None,
        max_pages: int | None = None,
        per_page: int = GITHUB_MAX_PER_PAGE,
    ):
        """Initialize the paginator.

        Args:
            fetch_page: Coroutine fetching one page by URL and params
            path: API path or absolute URL of the first page
            params: Query parameters of the first request
            max_pages: Stop after this many pages
            per_page: Page size, capped at GitHub's limit of 100
        """
        self.fetch_page = fetch_page
        self.path = path
        self.max_pages = max_pages
        self.per_page = min(per_page, GITHUB_MAX_PER_PAGE)
        self.params = {**(params or {}), "per_page": self.per_page}
        self.pages_fetched = 0
        self._next_url: str | None = path

    async def pages(self) -> AsyncIterator[PaginatedResponse]:
        while self._next_url:
            if self.max_pages and self.pages_fetched >= self.max_pages:
                return
            params = self.params if self.pages_fetched == 0 else None
            response = await self.fetch_page(self._next_url, params)
            self.pages_fetched += 1
            self._next_url = response.next_page_url
            yield response

    async def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        async for page in self.pages():
            for item in page.items:
                yield item

    async def collect_all(self) -> list[dict[str, Any]]:
        return [item async for item in self]
