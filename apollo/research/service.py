"""Research job lifecycle: submit, inspect, list and cancel jobs."""

from __future__ import annotations

from loguru import logger

from .jobs import DEFAULT_PER_PAGE, ResearchJobRepository
from .models import STATUS_CANCELLED, Page, ResearchJob
from .orchestrator import ResearchOrchestrator


class JobStateError(Exception):
    """Raised when a job is in a state that does not allow the operation."""


class ResearchService:
    """Entry points for callers outside the pipeline (CLI, API handlers)."""

    def __init__(self, repo: ResearchJobRepository, orchestrator: ResearchOrchestrator | None = None):
        self.repo = repo
        self.orchestrator = orchestrator

    def submit(self, topic: str) -> ResearchJob:
        """Queue a research job for ``topic``."""
        topic = topic.strip()
        if not topic:
            raise ValueError("topic must not be empty")
        return self.repo.create_job(topic)

    def get(self, job_id: str) -> ResearchJob:
        return self.repo.get_job(job_id)

    def list(self, page: int = 1, per_page: int = DEFAULT_PER_PAGE) -> Page[ResearchJob]:
        return self.repo.list_jobs(page, per_page)

    def cancel_job(self, job_id: str) -> ResearchJob:
        """
        Cancel a job that has not finished.

        The status is written first, then the running execution (if any) is
        signalled, so the orchestrator observes ``cancelled`` when it stops.

        Raises:
            JobNotFoundError: If the job does not exist
            JobStateError: If the job already reached a terminal status
        """
        job = self.repo.get_job(job_id)
        if job.is_terminal:
            raise JobStateError(f"job {job_id} is already {job.status}")

        self.repo.update_job_status(job_id, STATUS_CANCELLED)
        if self.orchestrator is not None:
            self.orchestrator.cancel(job_id)

        logger.info(f"Cancelled research job {job_id}")
        return self.repo.get_job(job_id)
