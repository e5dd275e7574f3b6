"""
Research job repository.

ResearchJobRepository is the persistence capability used by the orchestrator
and the service layer. SqlResearchJobRepository stores jobs in the
``research_jobs`` table through SQLAlchemy.

Timestamps follow the job lifecycle: ``started_at`` is set the first time a
job leaves ``queued``; ``completed_at`` is set on every terminal status.
"""

from __future__ import annotations

import uuid
from typing import Protocol, runtime_checkable

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from apollo.db.database import session_scope
from apollo.db.models import ResearchJobRecord
from apollo.db.models.base import utcnow

from .models import (
    STATUS_QUEUED,
    Page,
    ResearchJob,
    ResearchProgress,
    is_terminal_status,
)

DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100


class JobNotFoundError(LookupError):
    """Raised when a research job id does not exist."""

    def __init__(self, job_id: str):
        super().__init__(f"research job {job_id}: not found")
        self.job_id = job_id


@runtime_checkable
class ResearchJobRepository(Protocol):
    """Protocol for research job persistence."""

    def create_job(self, topic: str) -> ResearchJob:
        ...

    def get_job(self, job_id: str) -> ResearchJob:
        """Raises JobNotFoundError when the id is unknown."""
        ...

    def list_jobs(self, page: int = 1, per_page: int = DEFAULT_PER_PAGE) -> Page[ResearchJob]:
        ...

    def find_oldest_by_status(self, status: str) -> str | None:
        ...

    def update_job_status(self, job_id: str, status: str, error: str = "") -> None:
        ...

    def update_job_progress(self, job_id: str, progress: ResearchProgress) -> None:
        ...

    def update_job_current_topic(self, job_id: str, topic: str) -> None:
        ...


def normalize_page(page: int, per_page: int) -> tuple[int, int]:
    """Clamp pagination parameters to sane values."""
    page = page if page >= 1 else 1
    per_page = per_page if per_page >= 1 else DEFAULT_PER_PAGE
    return page, min(per_page, MAX_PER_PAGE)


def _to_job(record: ResearchJobRecord) -> ResearchJob:
    return ResearchJob(
        id=record.id,
        root_topic=record.root_topic,
        current_topic=record.current_topic,
        status=record.status,
        progress=ResearchProgress.from_dict(record.progress) if record.progress else None,
        error=record.error,
        started_at=record.started_at,
        completed_at=record.completed_at,
        created_at=record.created_at,
    )


class SqlResearchJobRepository:
    """SQLAlchemy-backed research job repository."""

    def __init__(self, session_factory: sessionmaker[Session] | None = None):
        self._session_factory = session_factory

    def _get_record(self, session: Session, job_id: str) -> ResearchJobRecord:
        record = session.get(ResearchJobRecord, job_id)
        if record is None:
            raise JobNotFoundError(job_id)
        return record

    def create_job(self, topic: str) -> ResearchJob:
        job_id = str(uuid.uuid4())
        with session_scope(self._session_factory) as session:
            record = ResearchJobRecord(
                id=job_id,
                root_topic=topic,
                current_topic=topic,
                status=STATUS_QUEUED,
                created_at=utcnow(),
            )
            session.add(record)
            session.flush()
            job = _to_job(record)
        logger.info(f"Created research job {job_id} for '{topic}'")
        return job

    def get_job(self, job_id: str) -> ResearchJob:
        with session_scope(self._session_factory) as session:
            return _to_job(self._get_record(session, job_id))

    def list_jobs(self, page: int = 1, per_page: int = DEFAULT_PER_PAGE) -> Page[ResearchJob]:
        """Newest jobs first."""
        page, per_page = normalize_page(page, per_page)
        with session_scope(self._session_factory) as session:
            total = session.scalar(select(func.count()).select_from(ResearchJobRecord)) or 0
            records = session.scalars(
                select(ResearchJobRecord)
                .order_by(ResearchJobRecord.created_at.desc(), ResearchJobRecord.id.desc())
                .limit(per_page)
                .offset((page - 1) * per_page)
            ).all()
            items = [_to_job(r) for r in records]
        return Page(items=items, total=total, page=page, per_page=per_page)

    def find_oldest_by_status(self, status: str) -> str | None:
        with session_scope(self._session_factory) as session:
            return session.scalar(
                select(ResearchJobRecord.id)
                .where(ResearchJobRecord.status == status)
                .order_by(ResearchJobRecord.created_at.asc(), ResearchJobRecord.id.asc())
                .limit(1)
            )

    def update_job_status(self, job_id: str, status: str, error: str = "") -> None:
        now = utcnow()
        with session_scope(self._session_factory) as session:
            record = self._get_record(session, job_id)
            record.status = status
            record.error = error or None
            if record.started_at is None and status != STATUS_QUEUED:
                record.started_at = now
            if is_terminal_status(status):
                record.completed_at = now
        logger.debug(f"Job {job_id} -> {status}")

    def update_job_progress(self, job_id: str, progress: ResearchProgress) -> None:
        with session_scope(self._session_factory) as session:
            record = self._get_record(session, job_id)
            record.progress = progress.to_dict()

    def update_job_current_topic(self, job_id: str, topic: str) -> None:
        with session_scope(self._session_factory) as session:
            record = self._get_record(session, job_id)
            record.current_topic = topic
