"""
Unit tests for the API gateway retry loop.

Why: The gateway is the only place that retries; it must absorb transient
     failures, propagate fatal ones and stop promptly on cancellation.

What: Tests call/call_bulk retry behaviour, configuration errors, the
      cancellable sleep, race_cancel and pagination through the gateway.

How: Operations are AsyncMocks with scripted side effects; sleeps are
     recorded by RecordingSleep instead of waited.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from prmetrics.github import (
    APIGateway,
    BackoffPolicy,
    GitHubAbuseRateLimitError,
    GitHubError,
    GitHubGraphQLError,
    GitHubNotConfiguredError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubServerError,
    OperationCancelledError,
    cancellable_sleep,
    race_cancel,
)
from tests.fixtures.fakes import FakeGitHubClient, RecordingSleep


def make_gateway(
    client: object | None = None, sleep: RecordingSleep | None = None, **kwargs
) -> APIGateway:
    return APIGateway(
        client if client is not None else FakeGitHubClient(),  # type: ignore[arg-type]
        sleep=sleep or RecordingSleep(),
        **kwargs,
    )


class TestCall:
    """Test the structured retry loop."""

    @pytest.mark.asyncio
    async def test_success_first_try(self) -> None:
        sleep = RecordingSleep()
        gateway = make_gateway(sleep=sleep)
        operation = AsyncMock(return_value={"ok": True})

        assert await gateway.call(operation) == {"ok": True}
        operation.assert_awaited_once_with(gateway.client)
        assert sleep.waits == []

    @pytest.mark.asyncio
    async def test_rate_limit_then_success(self) -> None:
        """
        Rate-limited calls wait for the published reset and retry.

        Why: Primary rate limits must never fail a run
        What: One rate limit error, then success
        How: Reset time far in the past so the floor wait applies
        """
        sleep = RecordingSleep()
        gateway = make_gateway(sleep=sleep)
        operation = AsyncMock(
            side_effect=[GitHubRateLimitError("limit", reset_time=0), "done"]
        )

        assert await gateway.call(operation) == "done"
        assert sleep.waits == [5.0]

    @pytest.mark.asyncio
    async def test_throttle_uses_retry_after(self) -> None:
        sleep = RecordingSleep()
        gateway = make_gateway(sleep=sleep)
        operation = AsyncMock(
            side_effect=[
                GitHubAbuseRateLimitError("slow down", retry_after=7),
                GitHubAbuseRateLimitError("slow down"),
                "done",
            ]
        )

        assert await gateway.call(operation) == "done"
        assert sleep.waits == [7.0, 10.0]

    @pytest.mark.asyncio
    async def test_server_errors_retried_until_cap(self) -> None:
        sleep = RecordingSleep()
        gateway = make_gateway(sleep=sleep)
        error = GitHubServerError("bad gateway", status_code=502)
        operation = AsyncMock(side_effect=error)

        with pytest.raises(GitHubServerError):
            await gateway.call(operation)

        assert operation.await_count == 6
        assert sleep.waits == [3.0] * 5

    @pytest.mark.asyncio
    async def test_server_error_recovers(self) -> None:
        sleep = RecordingSleep()
        gateway = make_gateway(sleep=sleep)
        operation = AsyncMock(
            side_effect=[GitHubServerError("boom", status_code=503), "done"]
        )

        assert await gateway.call(operation) == "done"
        assert sleep.waits == [3.0]

    @pytest.mark.asyncio
    async def test_fatal_error_propagates_immediately(self) -> None:
        sleep = RecordingSleep()
        gateway = make_gateway(sleep=sleep)
        operation = AsyncMock(side_effect=GitHubNotFoundError("missing", 404))

        with pytest.raises(GitHubNotFoundError):
            await gateway.call(operation)

        operation.assert_awaited_once()
        assert sleep.waits == []

    @pytest.mark.asyncio
    async def test_not_configured(self) -> None:
        gateway = APIGateway(None)

        with pytest.raises(GitHubNotConfiguredError):
            await gateway.get("/repos/o/r")

    @pytest.mark.asyncio
    async def test_cancelled_before_call_skips_network(self) -> None:
        event = asyncio.Event()
        event.set()
        gateway = make_gateway(cancel_event=event)
        operation = AsyncMock()

        with pytest.raises(OperationCancelledError):
            await gateway.call(operation)

        operation.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_during_backoff(self) -> None:
        """A backoff sleep interrupted by the signal raises, without retrying."""
        event = asyncio.Event()
        gateway = APIGateway(
            FakeGitHubClient(),  # type: ignore[arg-type]
            cancel_event=event,
        ).with_policy(server_error_wait=30.0)
        operation = AsyncMock(side_effect=GitHubServerError("boom", status_code=500))

        asyncio.get_running_loop().call_later(0.01, event.set)
        with pytest.raises(OperationCancelledError):
            await gateway.call(operation)

        operation.assert_awaited_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["call", "call_bulk"])
    async def test_cancel_abandons_in_flight_request(self, method: str) -> None:
        """
        Why: A slow response must not hold a cancelled run until the client timeout
        What: Tests that a hanging request is abandoned once the signal fires
        How: The operation sleeps far longer than the test's own timeout
        """
        event = asyncio.Event()
        gateway = make_gateway(cancel_event=event)
        started = asyncio.Event()
        finished = False

        async def hanging(client: object) -> None:
            nonlocal finished
            started.set()
            await asyncio.sleep(30)
            finished = True

        call = asyncio.create_task(getattr(gateway, method)(hanging))
        await started.wait()
        event.set()

        with pytest.raises(OperationCancelledError):
            await asyncio.wait_for(call, timeout=1)
        assert not finished

    def test_with_cancel_event_shares_client(self) -> None:
        gateway = make_gateway()
        event = asyncio.Event()
        bound = gateway.with_cancel_event(event)

        assert bound.client is gateway.client
        assert bound.cancel_event is event
        assert bound.policy is gateway.policy

    def test_with_policy_overrides_constants(self) -> None:
        gateway = make_gateway(policy=BackoffPolicy())
        tuned = gateway.with_policy(max_server_error_retries=1)

        assert tuned.policy.max_server_error_retries == 1
        assert gateway.policy.max_server_error_retries == 5


class TestCallBulk:
    """Test the exponential retry loop used for GraphQL."""

    @pytest.mark.asyncio
    async def test_graphql_text_errors_are_reclassified(self) -> None:
        sleep = RecordingSleep()
        gateway = make_gateway(sleep=sleep)
        operation = AsyncMock(
            side_effect=[
                GitHubGraphQLError([{"message": "You have exceeded a secondary rate limit"}]),
                GitHubError("502 Bad Gateway"),
                {"repository": {}},
            ]
        )

        assert await gateway.call_bulk(operation) == {"repository": {}}
        assert sleep.waits == pytest.approx([0.5, 1.05])

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self) -> None:
        sleep = RecordingSleep()
        gateway = make_gateway(sleep=sleep)
        operation = AsyncMock(side_effect=GitHubServerError("boom", status_code=504))

        with pytest.raises(GitHubServerError):
            await gateway.call_bulk(operation)

        assert operation.await_count == 6
        assert len(sleep.waits) == 5

    @pytest.mark.asyncio
    async def test_non_transient_graphql_error_propagates(self) -> None:
        sleep = RecordingSleep()
        gateway = make_gateway(sleep=sleep)
        operation = AsyncMock(
            side_effect=GitHubGraphQLError([{"message": "Field 'x' doesn't exist"}])
        )

        with pytest.raises(GitHubGraphQLError):
            await gateway.call_bulk(operation)

        operation.assert_awaited_once()
        assert sleep.waits == []

    @pytest.mark.asyncio
    async def test_structured_not_found_is_not_reclassified(self) -> None:
        gateway = make_gateway()
        operation = AsyncMock(
            side_effect=GitHubNotFoundError("rate limit docs not found", 404)
        )

        with pytest.raises(GitHubNotFoundError):
            await gateway.call_bulk(operation)

        operation.assert_awaited_once()


class TestCancellableSleep:
    @pytest.mark.asyncio
    async def test_completes_without_event(self) -> None:
        await cancellable_sleep(0, None)

    @pytest.mark.asyncio
    async def test_completes_when_event_stays_clear(self) -> None:
        await cancellable_sleep(0.001, asyncio.Event())

    @pytest.mark.asyncio
    async def test_already_set_event_raises(self) -> None:
        event = asyncio.Event()
        event.set()

        with pytest.raises(OperationCancelledError):
            await cancellable_sleep(60, event)

    @pytest.mark.asyncio
    async def test_event_fired_during_wait_raises(self) -> None:
        event = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, event.set)

        with pytest.raises(OperationCancelledError):
            await cancellable_sleep(60, event)


class TestRaceCancel:
    @pytest.mark.asyncio
    async def test_returns_result(self) -> None:
        queue: asyncio.Queue[int] = asyncio.Queue()
        queue.put_nowait(7)

        assert await race_cancel(queue.get(), asyncio.Event()) == 7

    @pytest.mark.asyncio
    async def test_raises_when_signal_wins(self) -> None:
        queue: asyncio.Queue[int] = asyncio.Queue()
        event = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, event.set)

        with pytest.raises(OperationCancelledError):
            await race_cancel(queue.get(), event)

        queue.put_nowait(1)
        assert queue.qsize() == 1

    @pytest.mark.asyncio
    async def test_already_set(self) -> None:
        event = asyncio.Event()
        event.set()

        with pytest.raises(OperationCancelledError):
            await race_cancel(asyncio.sleep(10), event)


class TestPaginate:
    @pytest.mark.asyncio
    async def test_follows_link_header(self) -> None:
        client = FakeGitHubClient(pages={"/items": [[{"id": 1}, {"id": 2}], [{"id": 3}]]})
        gateway = make_gateway(client)

        paginator = gateway.paginate("/items", params={"state": "all"})
        items = await paginator.collect_all()

        assert [item["id"] for item in items] == [1, 2, 3]
        assert paginator.pages_fetched == 2
        assert client.calls == ["/items", "/items?page=2"]

    @pytest.mark.asyncio
    async def test_page_failures_are_retried(self) -> None:
        sleep = RecordingSleep()
        client = FakeGitHubClient(pages={"/items": [[{"id": 1}]]})
        client.fail("/items", GitHubServerError("boom", status_code=502))
        gateway = make_gateway(client, sleep)

        items = await gateway.paginate("/items").collect_all()

        assert items == [{"id": 1}]
        assert sleep.waits == [3.0]
