"""Data models for the metrics pipeline.

Plain frozen dataclasses passed between the lister, the comment aggregator,
the row builder and the orchestrator. None of them touch the database; the
SQLAlchemy table lives in :mod:`prmetrics.models.metric`.
"""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class PullRequestLite:
    """Minimal projection of a pull request: line deltas and creation time."""

    number: int
    additions: int
    deletions: int
    created_at: datetime


@dataclass(frozen=True)
class CommentBreakdown:
    """Conversation plus review comment counts for one pull request."""

    total_comments: int = 0
    bot_comments: int = 0

    def __post_init__(self) -> None:
        if self.bot_comments > self.total_comments:
            raise ValueError(
                f"bot_comments ({self.bot_comments}) exceeds "
                f"total_comments ({self.total_comments})"
            )

    def add(self, is_bot: bool) -> "CommentBreakdown":
        """Return a breakdown with one more comment counted."""
        return CommentBreakdown(
            total_comments=self.total_comments + 1,
            bot_comments=self.bot_comments + (1 if is_bot else 0),
        )


@dataclass(frozen=True)
class MetricRow:
    """The unit persisted per pull request."""

    owner: str
    repo: str
    number: int
    total_comments: int
    bot_comments: int
    lines_changed: int
    created_at: datetime

    @property
    def key(self) -> str:
        """Unique persisted key, stable across repositories."""
        return metric_row_key(self.number, self.owner, self.repo)


def metric_row_key(number: int, owner: str, repo: str) -> str:
    """Build the composite ``number:owner:repo`` key."""
    return f"{number}:{owner}:{repo}"


@dataclass(frozen=True)
class JobResult:
    """Outcome of one orchestrator job."""

    number: int
    row: MetricRow | None = None
    inserted: bool = False
    error: Exception | None = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class RunCounters:
    """Counters updated by the result consumer and read by the reporter."""

    total: int = 0
    processed: int = 0
    inserted: int = 0
    errors: int = 0

    @property
    def remaining(self) -> int:
        return max(self.total - self.processed - self.errors, 0)

    def record(self, result: JobResult) -> None:
        """Account for one consumed job result."""
        if not result.success:
            self.errors += 1
            return
        self.processed += 1
        if result.inserted:
            self.inserted += 1

    def snapshot(self) -> dict[str, int]:
        return {
            "total": self.total,
            "processed": self.processed,
            "inserted": self.inserted,
            "errors": self.errors,
            "remaining": self.remaining,
        }


@dataclass(frozen=True)
class RunSummary:
    """Final report of a run."""

    owner: str
    repo: str
    total: int
    processed: int
    inserted: int
    errors: int
    duration_seconds: float

    def __str__(self) -> str:
        """Return human-readable representation."""
        return (
            f"RunSummary({self.owner}/{self.repo}: total={self.total}, "
            f"processed={self.processed}, inserted={self.inserted}, "
            f"errors={self.errors}, time={self.duration_seconds:.2f}s)"
        )
