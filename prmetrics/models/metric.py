"""PullRequestMetric SQLAlchemy model."""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class PullRequestMetric(Base):
    """One row of per pull request metrics.

    ``id`` is the composite ``number:owner:repo`` key so that pull request
    numbers from different repositories never collide.
    """

    __tablename__ = "prs"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    number: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    repo: Mapped[str] = mapped_column(String(200), nullable=False)
    owner: Mapped[str] = mapped_column(String(200), nullable=False)
    comment_count: Mapped[int] = mapped_column(Integer, nullable=False)
    bot_comments: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    lines_changed: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    scraped_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (Index("ix_prs_owner_repo", "owner", "repo"),)

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<PullRequestMetric(id={self.id}, comments={self.comment_count}, "
            f"bot_comments={self.bot_comments}, lines={self.lines_changed})>"
        )
