"""SQLAlchemy models for the pull request metrics store."""

from .base import Base
from .metric import PullRequestMetric

__all__ = [
    "Base",
    "PullRequestMetric",
]
