"""API gateway: one remote call, classified and retried.

Every request the pipeline makes goes through :class:`APIGateway`. A failed
attempt is classified into an :class:`~prmetrics.github.backoff.ErrorKind`,
the pure backoff policy decides whether to retry, and the wait is slept in a
way that an external cancellation signal can interrupt.
"""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any, TypeVar

from .backoff import (
    DEFAULT_POLICY,
    BackoffDecision,
    BackoffPolicy,
    ErrorKind,
    classify_error,
    classify_error_message,
    compute_backoff,
    compute_bulk_backoff,
    describe_error,
    hint_from_error,
)
from .client import GitHubClient
from .exceptions import (
    GitHubError,
    GitHubGraphQLError,
    GitHubNotConfiguredError,
    OperationCancelledError,
)
from .pagination import AsyncPaginator, PaginatedResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[GitHubClient], Awaitable[T]]
SleepFunc = Callable[[float, asyncio.Event | None], Awaitable[None]]


async def cancellable_sleep(delay: float, cancel_event: asyncio.Event | None) -> None:
    """Sleep for ``delay`` seconds unless ``cancel_event`` fires first.

    Raises:
        OperationCancelledError: If the event is or becomes set
    """
    if cancel_event is None:
        await asyncio.sleep(max(delay, 0))
        return

    if cancel_event.is_set():
        raise OperationCancelledError("Cancelled before backoff wait")

    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=max(delay, 0))
    except TimeoutError:
        return

    raise OperationCancelledError(f"Cancelled during {delay:.1f}s backoff wait")


async def race_cancel(awaitable: Awaitable[T], cancel_event: asyncio.Event) -> T:
    """Await ``awaitable`` unless ``cancel_event`` fires first.

    Raises:
        OperationCancelledError: If the event is or becomes set first
    """
    if cancel_event.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise OperationCancelledError("Run cancelled")

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait(
            {task, waiter}, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    if task in done:
        return task.result()
    raise OperationCancelledError("Run cancelled")


class APIGateway:
    """Runs remote calls under the retry/backoff policy.

    Holds the client explicitly instead of reaching for a module global;
    a gateway built without a client fails every call with
    :class:`GitHubNotConfiguredError`.
    """

    def __init__(
        self,
        client: GitHubClient | None,
        policy: BackoffPolicy = DEFAULT_POLICY,
        cancel_event: asyncio.Event | None = None,
        sleep: SleepFunc = cancellable_sleep,
    ) -> None:
        """Initialize the gateway.

        Args:
            client: GitHub client used for every call
            policy: Backoff policy constants
            cancel_event: External cancellation signal
            sleep: Cancellable sleep implementation
        """
        self.client = client
        self.policy = policy
        self.cancel_event = cancel_event
        self._sleep = sleep

    def with_cancel_event(self, cancel_event: asyncio.Event | None) -> "APIGateway":
        """Return a gateway sharing this client but bound to ``cancel_event``."""
        return APIGateway(self.client, self.policy, cancel_event, self._sleep)

    def with_policy(self, **changes: Any) -> "APIGateway":
        """Return a gateway with some policy constants overridden."""
        return APIGateway(
            self.client, replace(self.policy, **changes), self.cancel_event, self._sleep
        )

    def _require_client(self) -> GitHubClient:
        if self.client is None:
            raise GitHubNotConfiguredError("GitHub client not initialized")
        return self.client

    def _check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise OperationCancelledError("Cancelled before remote call")

    async def _attempt(self, operation: Operation[T], client: GitHubClient) -> T:
        """One attempt; an in-flight request is abandoned when the signal fires."""
        if self.cancel_event is None:
            return await operation(client)
        return await race_cancel(operation(client), self.cancel_event)

    async def call(self, operation: Operation[T], description: str = "request") -> T:
        """Perform ``operation`` until it succeeds or fails fatally.

        Rate-limited and throttled responses are retried after the wait the
        server asked for; server errors after a fixed wait up to the policy's
        cap; anything else propagates immediately.

        Args:
            operation: Coroutine factory receiving the client
            description: Human readable label for logs

        Returns:
            Whatever ``operation`` returns

        Raises:
            GitHubNotConfiguredError: If the gateway has no client
            OperationCancelledError: If the cancel signal fires
            GitHubError: On fatal errors or exhausted retries
        """
        client = self._require_client()
        attempt = 0

        while True:
            self._check_cancelled()
            try:
                return await self._attempt(operation, client)
            except GitHubNotConfiguredError:
                raise
            except GitHubError as e:
                kind = classify_error(e)
                decision = compute_backoff(kind, attempt, hint_from_error(e), self.policy)
                await self._after_failure(e, kind, decision, attempt, description)
                attempt += 1

    async def call_bulk(
        self, operation: Operation[T], description: str = "bulk query"
    ) -> T:
        """Perform a bulk query with capped exponential backoff.

        Structured error kinds are used when available; plain errors (such as
        GraphQL ``errors`` arrays) are classified from their message text.
        """
        client = self._require_client()
        attempt = 0

        while True:
            self._check_cancelled()
            try:
                return await self._attempt(operation, client)
            except GitHubNotConfiguredError:
                raise
            except GitHubError as e:
                kind = classify_error(e)
                unstructured = type(e) in (GitHubError, GitHubGraphQLError)
                if kind is ErrorKind.FATAL and unstructured:
                    kind = classify_error_message(str(e))
                decision = compute_bulk_backoff(
                    kind, attempt, hint_from_error(e), self.policy
                )
                await self._after_failure(e, kind, decision, attempt, description)
                attempt += 1

    async def _after_failure(
        self,
        error: GitHubError,
        kind: ErrorKind,
        decision: BackoffDecision,
        attempt: int,
        description: str,
    ) -> None:
        """Re-raise ``error`` or sleep before the next attempt."""
        if not decision.retry:
            if kind.is_transient:
                logger.error(
                    f"Giving up on {description} after {attempt + 1} attempts",
                    extra={"kind": kind.value, **describe_error(error)},
                )
            raise error

        logger.warning(
            f"{kind.value} on {description}; retrying in "
            f"{decision.wait_seconds:.1f}s (attempt {attempt + 1})",
            extra={
                "kind": kind.value,
                "sleep_for": decision.wait_seconds,
                "attempt": attempt + 1,
                **describe_error(error),
            },
        )
        await self._sleep(decision.wait_seconds, self.cancel_event)

    # Convenience wrappers

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET a single resource through the retry loop."""
        return await self.call(lambda client: client.get(path, params), f"GET {path}")

    async def get_page(
        self, url: str, params: dict[str, Any] | None = None
    ) -> PaginatedResponse:
        """GET one page of a list endpoint through the retry loop."""
        return await self.call(
            lambda client: client.get_page(url, params), f"GET {url}"
        )

    async def graphql(
        self, query: str, variables: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Run a GraphQL query through the bulk retry loop."""
        return await self.call_bulk(
            lambda client: client.graphql(query, variables), "GraphQL query"
        )

    def paginate(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        per_page: int = 100,
        max_pages: int | None = None,
    ) -> AsyncPaginator:
        """Create async paginator whose page requests go through the gateway.

        Args:
            path: API path
            params: Query parameters
            per_page: Items per page (max 100)
            max_pages: Maximum pages to fetch

        Returns:
            AsyncPaginator for iterating through results
        """
        return AsyncPaginator(
            fetch_page=self.get_page,
            path=path,
            params=params,
            per_page=per_page,
            max_pages=max_pages,
        )
