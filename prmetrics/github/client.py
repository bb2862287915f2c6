"""GitHub API client with authentication and structured error mapping.

The client performs exactly one HTTP attempt per call and turns every
non-success response into a typed exception. Retrying is the job of
:class:`prmetrics.github.gateway.APIGateway`.
"""

import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any

import aiohttp

from .auth import AnonymousAuth, AuthProvider
from .exceptions import (
    GitHubAbuseRateLimitError,
    GitHubAuthenticationError,
    GitHubConnectionError,
    GitHubError,
    GitHubGraphQLError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubServerError,
    GitHubTimeoutError,
    GitHubValidationError,
)
from .pagination import PaginatedResponse

logger = logging.getLogger(__name__)


@dataclass
class GitHubClientConfig:
    """Configuration for GitHub client."""

    base_url: str = "https://api.github.com"
    graphql_url: str = "https://api.github.com/graphql"
    timeout: int = 30
    user_agent: str = "pr-comment-metrics/1.0"
    max_concurrent_requests: int = 10


class GitHubClient:
    """Async GitHub API client."""

    def __init__(
        self,
        auth: AuthProvider | None = None,
        config: GitHubClientConfig | None = None,
    ) -> None:
        """Initialize GitHub client.

        Args:
            auth: Authentication provider, anonymous when omitted
            config: Client configuration
        """
        self.auth = auth or AnonymousAuth()
        self.config = config or GitHubClientConfig()

        # HTTP session will be initialized on first use
        self._session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()
        self._request_semaphore = asyncio.Semaphore(self.config.max_concurrent_requests)

    async def __aenter__(self) -> "GitHubClient":
        """Async context manager entry."""
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def _ensure_session(self) -> None:
        """Ensure HTTP session is initialized."""
        if self._session is None or self._session.closed:
            async with self._session_lock:
                if self._session is None or self._session.closed:
                    timeout = aiohttp.ClientTimeout(total=self.config.timeout)
                    connector = aiohttp.TCPConnector(limit=100, limit_per_host=30)

                    self._session = aiohttp.ClientSession(
                        timeout=timeout,
                        connector=connector,
                        headers={
                            "User-Agent": self.config.user_agent,
                            "Accept": "application/vnd.github+json",
                            "X-GitHub-Api-Version": "2022-11-28",
                        },
                    )

    async def close(self) -> None:
        """Close HTTP session and cleanup resources."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    def _generate_correlation_id(self) -> str:
        """Generate correlation ID for request tracking."""
        return str(uuid.uuid4())[:8]

    def build_url(self, path: str) -> str:
        """Resolve an API path against the base URL; absolute URLs pass through."""
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.config.base_url.rstrip('/')}/{path.lstrip('/')}"

    async def _make_request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> PaginatedResponse:
        """Make a single HTTP request and decode its JSON body.

        Args:
            method: HTTP method
            url: Absolute request URL
            params: Query parameters
            data: JSON request body

        Returns:
            Decoded response with headers

        Raises:
            GitHubError: Typed error for any non-2xx or transport failure
        """
        correlation_id = self._generate_correlation_id()

        await self._ensure_session()
        if not self._session:
            raise GitHubConnectionError("Failed to initialize HTTP session")

        auth_token = await self.auth.get_token()
        request_kwargs: dict[str, Any] = {
            "params": params,
            "headers": auth_token.to_header(),
        }
        if data is not None:
            request_kwargs["json"] = data

        try:
            async with self._request_semaphore:
                start_time = time.time()
                logger.debug(f"GitHub API request [{correlation_id}] {method} {url}")

                async with self._session.request(
                    method, url, **request_kwargs
                ) as response:
                    request_time = time.time() - start_time
                    headers = dict(response.headers)

                    logger.debug(
                        f"GitHub API response [{correlation_id}] "
                        f"{response.status} in {request_time:.2f}s"
                    )

                    if response.status not in (200, 201, 204):
                        await self._handle_error_response(response, correlation_id)

                    body: Any = None
                    if response.status != 204:
                        try:
                            body = await response.json(content_type=None)
                        except (json.JSONDecodeError, ValueError) as e:
                            raise GitHubError(
                                f"Malformed JSON response for {method} {url}: {e}",
                                response.status,
                            ) from e

                    return PaginatedResponse(body, headers, str(response.url))

        except TimeoutError as e:
            raise GitHubTimeoutError(f"Request timeout for {method} {url}") from e
        except aiohttp.ClientError as e:
            raise GitHubConnectionError(
                f"Connection error for {method} {url}: {e}"
            ) from e

    async def _handle_error_response(
        self, response: aiohttp.ClientResponse, correlation_id: str
    ) -> None:
        """Handle error responses from GitHub API.

        Args:
            response: HTTP response
            correlation_id: Request correlation ID

        Raises:
            GitHubError: Appropriate error based on status code
        """
        try:
            error_data = await response.json(content_type=None)
        except (json.JSONDecodeError, ValueError, aiohttp.ContentTypeError):
            error_data = {"message": await response.text()}
        if not isinstance(error_data, dict):
            error_data = {"message": str(error_data)}

        error_message = str(error_data.get("message", f"HTTP {response.status}"))
        status = response.status

        logger.warning(
            f"GitHub API error [{correlation_id}] {status}: {error_message}"
        )

        if status in (403, 429):
            self._raise_for_limit(response, status, error_message, error_data)

        if status == 401:
            raise GitHubAuthenticationError(error_message, status, error_data)
        elif status == 404:
            raise GitHubNotFoundError(error_message, status, error_data)
        elif status == 422:
            raise GitHubValidationError(error_message, status, error_data)
        elif 500 <= status < 600:
            raise GitHubServerError(error_message, status, error_data)
        else:
            raise GitHubError(error_message, status, error_data)

    def _raise_for_limit(
        self,
        response: aiohttp.ClientResponse,
        status: int,
        error_message: str,
        error_data: dict[str, Any],
    ) -> None:
        """Raise the rate limit error a 403/429 response stands for."""
        headers = response.headers
        message = error_message.lower()
        remaining = headers.get("X-RateLimit-Remaining")
        retry_after = headers.get("Retry-After")

        throttled = "secondary rate limit" in message or "abuse" in message
        if retry_after is not None or throttled:
            raise GitHubAbuseRateLimitError(
                error_message,
                retry_after=float(retry_after) if retry_after else None,
                status_code=status,
            )

        if remaining == "0" or "rate limit" in message:
            reset_time = headers.get("X-RateLimit-Reset")
            raise GitHubRateLimitError(
                error_message,
                reset_time=int(reset_time) if reset_time else None,
                remaining=int(remaining or 0),
                limit=int(headers.get("X-RateLimit-Limit", "0")),
                status_code=status,
            )

        if status == 429:
            raise GitHubAbuseRateLimitError(error_message, status_code=status)

        raise GitHubAuthenticationError(error_message, status, error_data)

    async def get_page(
        self, path: str, params: dict[str, Any] | None = None
    ) -> PaginatedResponse:
        """Fetch one page of a list endpoint.

        Args:
            path: API path or absolute URL (as found in Link headers)
            params: Query parameters

        Returns:
            PaginatedResponse with data, headers and Link information
        """
        return await self._make_request("GET", self.build_url(path), params)

    async def get(
        self, path: str, params: dict[str, Any] | None = None
    ) -> Any:
        """Make GET request to GitHub API.

        Args:
            path: API path (e.g., '/repos/owner/repo/pulls/1')
            params: Query parameters

        Returns:
            JSON response data
        """
        response = await self._make_request("GET", self.build_url(path), params)
        return response.data

    async def graphql(
        self, query: str, variables: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Execute a GraphQL query.

        Args:
            query: GraphQL document
            variables: Query variables

        Returns:
            The ``data`` object of the response

        Raises:
            GitHubGraphQLError: If the response carries errors
        """
        response = await self._make_request(
            "POST",
            self.config.graphql_url,
            data={"query": query, "variables": variables or {}},
        )
        body = response.data
        if not isinstance(body, dict):
            raise GitHubError("Malformed GraphQL response body")

        if body.get("errors"):
            raise GitHubGraphQLError(body["errors"])

        data = body.get("data")
        if not isinstance(data, dict):
            raise GitHubError("GraphQL response has no data")
        return data
