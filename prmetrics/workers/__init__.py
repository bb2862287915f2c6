"""Pipeline workers: listing, comment aggregation and the orchestrator."""

from .models import (
    CommentBreakdown,
    JobResult,
    MetricRow,
    PullRequestLite,
    RunCounters,
    RunSummary,
    metric_row_key,
)
from .comments import CommentAggregator, is_bot_author
from .listing import ListingStrategy, PullRequestLister
from .orchestrator import MetricsOrchestrator, OrchestratorConfig
from .rows import build_metric_row

__all__ = [
    "CommentAggregator",
    "CommentBreakdown",
    "JobResult",
    "ListingStrategy",
    "MetricRow",
    "MetricsOrchestrator",
    "OrchestratorConfig",
    "PullRequestLister",
    "PullRequestLite",
    "RunCounters",
    "RunSummary",
    "build_metric_row",
    "is_bot_author",
    "metric_row_key",
]
