"""Bounded worker pool turning a repository's pull requests into rows.

One run is made of:

* a dispatch task feeding every pull request number into the job queue and
  then one stop sentinel per worker;
* ``concurrency`` worker tasks, each doing lookup, row build and upsert and
  publishing exactly one :class:`JobResult` per job;
* a reporter task logging a progress snapshot every ``progress_interval``;
* the consumer, running in the caller's task, which reads exactly as many
  results as there are jobs.

Every blocking wait races the run's cancel event. Once the event fires the
consumer raises :class:`OperationCancelledError`, the helper tasks are
cancelled and awaited, and no further sink call is made.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..github.exceptions import GitHubError, OperationCancelledError
from ..github.gateway import APIGateway, SleepFunc, cancellable_sleep, race_cancel
from .comments import CommentAggregator
from .listing import ListingStrategy, PullRequestLister
from .models import (
    CommentBreakdown,
    JobResult,
    PullRequestLite,
    RunCounters,
    RunSummary,
)
from .rows import build_metric_row

if TYPE_CHECKING:
    from ..repositories.metrics import MetricSink

logger = logging.getLogger(__name__)


@dataclass
class OrchestratorConfig:
    """Tunables of a run."""

    progress_interval: float = 5.0
    lister_strategy: ListingStrategy = ListingStrategy.GRAPHQL
    per_page: int = 100


@dataclass
class _RunState:
    owner: str
    repo: str
    lites: dict[int, PullRequestLite]
    breakdowns: dict[int, CommentBreakdown]
    aggregator: CommentAggregator
    cancel_event: asyncio.Event
    counters: RunCounters = field(default_factory=RunCounters)


class MetricsOrchestrator:
    """Runs the fetch, aggregate and persist pipeline for one repository."""

    def __init__(
        self,
        gateway: APIGateway,
        sink: "MetricSink | None",
        config: OrchestratorConfig | None = None,
        sleep: SleepFunc = cancellable_sleep,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            gateway: Gateway shared by the lister and the aggregator
            sink: Where rows are upserted; None computes rows without
                persisting them
            config: Run tunables
            sleep: Cancellable sleep used by the progress reporter
        """
        self.gateway = gateway
        self.sink = sink
        self.config = config or OrchestratorConfig()
        self._sleep = sleep

    async def run(
        self,
        owner: str,
        repo: str,
        concurrency: int = 4,
        cancel_event: asyncio.Event | None = None,
    ) -> RunSummary:
        """Process every pull request of ``owner/repo``.

        Args:
            owner: Repository owner
            repo: Repository name
            concurrency: Number of workers, clamped to at least 1
            cancel_event: External cancellation signal

        Returns:
            Summary with the final counters

        Raises:
            GitHubError: If listing the pull requests fails
            OperationCancelledError: If ``cancel_event`` fires
        """
        started = time.monotonic()
        concurrency = max(concurrency, 1)
        if cancel_event is None:
            cancel_event = asyncio.Event()
        gateway = self.gateway.with_cancel_event(cancel_event)

        lister = PullRequestLister(
            gateway,
            strategy=self.config.lister_strategy,
            per_page=self.config.per_page,
            detail_concurrency=concurrency,
        )
        lites = await lister.list_all(owner, repo)
        if not lites:
            logger.info(f"No pull requests found for {owner}/{repo}")
            return self._summary(owner, repo, RunCounters(), started)

        aggregator = CommentAggregator(gateway, per_page=self.config.per_page)
        state = _RunState(
            owner=owner,
            repo=repo,
            lites={lite.number: lite for lite in lites},
            breakdowns=await self._preload(aggregator, owner, repo, lites),
            aggregator=aggregator,
            cancel_event=cancel_event,
            counters=RunCounters(total=len(lites)),
        )

        jobs: asyncio.Queue[int | None] = asyncio.Queue(maxsize=concurrency)
        results: asyncio.Queue[JobResult] = asyncio.Queue()

        tasks = [
            asyncio.create_task(
                self._dispatch(list(state.lites), jobs, concurrency, cancel_event),
                name="metrics-dispatch",
            ),
            asyncio.create_task(
                self._report(state.counters, cancel_event), name="metrics-progress"
            ),
        ]
        tasks.extend(
            asyncio.create_task(
                self._worker(state, jobs, results), name=f"metrics-worker-{i}"
            )
            for i in range(concurrency)
        )

        logger.info(
            f"Processing {state.counters.total} pull requests for {owner}/{repo}",
            extra={"concurrency": concurrency, "persist": self.sink is not None},
        )

        try:
            await self._consume(state, results)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        summary = self._summary(owner, repo, state.counters, started)
        logger.info(f"Finished {summary}", extra=state.counters.snapshot())
        return summary

    async def _preload(
        self,
        aggregator: CommentAggregator,
        owner: str,
        repo: str,
        lites: list[PullRequestLite],
    ) -> dict[int, CommentBreakdown]:
        """Bulk comment scan; on failure every job falls back per item."""
        try:
            return await aggregator.repository_breakdowns(
                owner, repo, [lite.number for lite in lites]
            )
        except GitHubError as e:
            logger.warning(
                f"Bulk comment scan failed for {owner}/{repo}, "
                f"falling back to per pull request lookups: {e}",
                extra={"error_type": type(e).__name__},
            )
            return {}

    async def _dispatch(
        self,
        numbers: list[int],
        jobs: "asyncio.Queue[int | None]",
        workers: int,
        cancel_event: asyncio.Event,
    ) -> None:
        for number in numbers:
            await race_cancel(jobs.put(number), cancel_event)
        for _ in range(workers):
            await race_cancel(jobs.put(None), cancel_event)

    async def _worker(
        self,
        state: _RunState,
        jobs: "asyncio.Queue[int | None]",
        results: "asyncio.Queue[JobResult]",
    ) -> None:
        while True:
            number = await race_cancel(jobs.get(), state.cancel_event)
            if number is None:
                return
            results.put_nowait(await self._process(state, number))

    async def _process(self, state: _RunState, number: int) -> JobResult:
        """Lookup, build and upsert one pull request."""
        try:
            breakdown = state.breakdowns.get(number)
            if breakdown is None:
                breakdown = await state.aggregator.pull_request_breakdown(
                    state.owner, state.repo, number
                )
            row = build_metric_row(
                state.owner, state.repo, state.lites[number], breakdown
            )

            if self.sink is None:
                return JobResult(number=number, row=row)

            if state.cancel_event.is_set():
                raise OperationCancelledError("Run cancelled before upsert")
            await self.sink.upsert(row)
            return JobResult(number=number, row=row, inserted=True)
        except OperationCancelledError:
            raise
        except Exception as e:
            return JobResult(number=number, error=e)

    async def _report(self, counters: RunCounters, cancel_event: asyncio.Event) -> None:
        while True:
            await self._sleep(self.config.progress_interval, cancel_event)
            snapshot = counters.snapshot()
            logger.info(
                f"Progress: {snapshot['processed']}/{snapshot['total']} processed, "
                f"{snapshot['inserted']} inserted, {snapshot['errors']} errors, "
                f"{snapshot['remaining']} remaining",
                extra=snapshot,
            )

    async def _consume(
        self, state: _RunState, results: "asyncio.Queue[JobResult]"
    ) -> None:
        """Read exactly one result per job."""
        for _ in range(state.counters.total):
            result = await race_cancel(results.get(), state.cancel_event)
            state.counters.record(result)
            if not result.success:
                logger.error(
                    f"Failed to process pull request #{result.number} of "
                    f"{state.owner}/{state.repo}: {result.error}",
                    extra={
                        "pr_number": result.number,
                        "error_type": type(result.error).__name__,
                    },
                )

    @staticmethod
    def _summary(
        owner: str, repo: str, counters: RunCounters, started: float
    ) -> RunSummary:
        return RunSummary(
            owner=owner,
            repo=repo,
            total=counters.total,
            processed=counters.processed,
            inserted=counters.inserted,
            errors=counters.errors,
            duration_seconds=time.monotonic() - started,
        )
