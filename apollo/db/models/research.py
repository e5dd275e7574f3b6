"""
Research job persistence.

One row per research job. The orchestrator is the only writer of ``status``
and ``progress`` after creation, apart from the cancel entry point.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, CheckConstraint, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, utcnow

JOB_STATUSES = ("queued", "researching", "resolving", "published", "failed", "cancelled")


class ResearchJobRecord(Base):
    """Persisted state of a research job."""

    __tablename__ = "research_jobs"
    __table_args__ = (
        CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in JOB_STATUSES) + ")",
            name="ck_research_jobs_status",
        ),
        Index("ix_research_jobs_status_created", "status", "created_at"),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    root_topic: Mapped[str] = mapped_column(Text, nullable=False)
    current_topic: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="queued")
    progress: Mapped[dict[str, Any] | None] = mapped_column(JSON(none_as_null=True))
    error: Mapped[str | None] = mapped_column(Text)
    started_at: Mapped[datetime | None] = mapped_column()
    completed_at: Mapped[datetime | None] = mapped_column()
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<ResearchJobRecord(id={self.id}, status={self.status})>"
