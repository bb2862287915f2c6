"""Assembly of persisted metric rows."""

from .models import CommentBreakdown, MetricRow, PullRequestLite


def build_metric_row(
    owner: str,
    repo: str,
    lite: PullRequestLite,
    breakdown: CommentBreakdown,
) -> MetricRow:
    """Combine a lite pull request and its comment counts into a row."""
    return MetricRow(
        owner=owner,
        repo=repo,
        number=lite.number,
        total_comments=breakdown.total_comments,
        bot_comments=breakdown.bot_comments,
        lines_changed=lite.additions + lite.deletions,
        created_at=lite.created_at,
    )
