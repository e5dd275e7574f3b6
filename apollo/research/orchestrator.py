"""
Research Pipeline Orchestrator.

Drives a research job from ``queued`` to a published curriculum:

    queued -> researching -> resolving -> published
                         \\-> failed | cancelled

Four agent passes run sequentially in the job's working directory (survey,
deep dive, exercises, validation), each with one retry. The resulting file
tree is assembled, validated and ingested in one transaction.

The orchestrator is the only writer of job status during a run. Cancellation
arrives through the job's CancelToken; a cancelled job is not an error and
run_job() returns normally.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from apollo.schema import curriculum_schema_json

from .agent import AgentError, AgentRunner, InitialPassOptions, ResumePassOptions
from .assembler import AssemblyError, assemble_from_dir
from .cancellation import CancellationRegistry, CancelToken, JobAlreadyRunningError
from .ingest import CurriculumIngester, IngestionError
from .jobs import JobNotFoundError, ResearchJobRepository
from .models import (
    SCHEMA_FILE_NAME,
    STATUS_CANCELLED,
    STATUS_FAILED,
    STATUS_PUBLISHED,
    STATUS_QUEUED,
    STATUS_RESEARCHING,
    STATUS_RESOLVING,
    SYSTEM_PROMPT_FILE_NAME,
    IngestResult,
    ResearchProgress,
)
from .pool import PoolSummaryBuilder
from .prompts import PASS_DESCRIPTIONS, PASS_PROMPTS, SYSTEM_PROMPT, TOTAL_PASSES, build_topic_prompt

if TYPE_CHECKING:
    from config import Settings

MAX_RETRIES = 1

__all__ = [
    "JobAlreadyRunningError",
    "JobNotFoundError",
    "PipelineError",
    "ResearchOrchestrator",
]


class PipelineError(Exception):
    """Raised when a research job ends in the ``failed`` state."""

    def __init__(self, job_id: str, message: str):
        super().__init__(message)
        self.job_id = job_id


class _Cancelled(Exception):
    """Internal signal: the job token fired while work was in progress."""


class _StepFailed(Exception):
    """Internal signal: a pipeline step failed and the job must be failed."""


class ResearchOrchestrator:
    """Runs research jobs through the four-pass pipeline."""

    def __init__(
        self,
        agent: AgentRunner,
        pool: PoolSummaryBuilder,
        ingester: CurriculumIngester,
        repo: ResearchJobRepository,
        work_root: Path | str,
        model: str = "opus",
        allowed_tools: list[str] | None = None,
        poll_interval: float = 2.0,
        final_pass_schema: bool = False,
    ):
        self.agent = agent
        self.pool = pool
        self.ingester = ingester
        self.repo = repo
        self.work_root = Path(work_root)
        self.model = model
        self.allowed_tools = list(allowed_tools or [])
        self.poll_interval = poll_interval
        self.final_pass_schema = final_pass_schema
        self._registry = CancellationRegistry()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        agent: AgentRunner,
        pool: PoolSummaryBuilder,
        ingester: CurriculumIngester,
        repo: ResearchJobRepository,
    ) -> ResearchOrchestrator:
        return cls(
            agent=agent,
            pool=pool,
            ingester=ingester,
            repo=repo,
            work_root=settings.research_work_dir,
            model=settings.research_model,
            allowed_tools=settings.research_allowed_tools,
            poll_interval=settings.research_poll_interval,
            final_pass_schema=settings.research_final_pass_schema,
        )

    # ========================================
    # Public API
    # ========================================

    def running_jobs(self) -> list[str]:
        return self._registry.running()

    def cancel(self, job_id: str) -> bool:
        """Signal a running job to stop. Returns False if it is not running here."""
        signalled = self._registry.cancel(job_id)
        if signalled:
            logger.info(f"Cancellation signalled for job {job_id}")
        return signalled

    def reconcile_cancellations(self) -> list[str]:
        """
        Signal running jobs whose persisted status is already ``cancelled``.

        Lets a cancel written by another process reach this process's workers.
        """
        signalled = []
        for job_id in self.running_jobs():
            try:
                job = self.repo.get_job(job_id)
            except (JobNotFoundError, SQLAlchemyError) as e:
                logger.warning(f"Cancellation check for job {job_id} failed: {e}")
                continue
            if job.status == STATUS_CANCELLED and self.cancel(job_id):
                signalled.append(job_id)
        return signalled

    def start(self, stop: CancelToken) -> None:
        """
        Process queued jobs one at a time until ``stop`` is cancelled.

        Errors from individual jobs are logged and never stop the loop.
        """
        logger.info("Research orchestrator started")
        while not stop.cancelled:
            try:
                job_id = self.repo.find_oldest_by_status(STATUS_QUEUED)
            except Exception as e:
                if stop.cancelled:
                    break
                logger.error(f"Find queued job failed: {e}")
                stop.wait(timeout=self.poll_interval)
                continue

            if not job_id:
                stop.wait(timeout=self.poll_interval)
                continue

            try:
                self.run_job(job_id, parent=stop)
            except Exception as e:
                logger.error(f"Job {job_id} execution failed: {e}")

        logger.info("Research orchestrator stopping")

    def run_job(self, job_id: str, parent: CancelToken | None = None) -> None:
        """
        Execute the full pipeline for one job.

        Returns normally when the job is published or cancelled.

        Raises:
            JobNotFoundError: If the job does not exist
            JobAlreadyRunningError: If the job is already running
            PipelineError: If the job ended up ``failed``
        """
        job = self.repo.get_job(job_id)
        log = logger.bind(job_id=job_id)

        with self._registry.register(job_id, parent) as token:
            self.repo.update_job_status(job_id, STATUS_RESEARCHING)
            log.info(f"Starting research pipeline for '{job.root_topic}'")

            try:
                result = self._execute(job_id, job.root_topic, job.current_topic, token)
            except _Cancelled:
                self._handle_cancellation(job_id)
                return
            except (AgentError, AssemblyError, IngestionError, _StepFailed) as e:
                if token.cancelled:
                    self._handle_cancellation(job_id)
                    return
                raise self._fail_job(job_id, e) from e

            self._record_counts(job_id, result)
            self.repo.update_job_status(job_id, STATUS_PUBLISHED)
            log.info("Research pipeline completed successfully")

    # ========================================
    # Pipeline steps
    # ========================================

    def _execute(
        self, job_id: str, root_topic: str, current_topic: str, token: CancelToken
    ) -> IngestResult:
        try:
            work_dir = self._prepare_work_dir(job_id)
        except Exception as e:  # pool query, schema check or file I/O
            raise _StepFailed(f"prepare work dir: {e}") from e

        session_id = self._run_pass(
            job_id, 1, build_topic_prompt(root_topic, current_topic), "", work_dir, token
        )
        for pass_num in range(2, TOTAL_PASSES + 1):
            self._run_pass(job_id, pass_num, PASS_PROMPTS[pass_num], session_id, work_dir, token)

        # The token is not consulted past this point: once every pass has
        # finished the job always moves on to resolving.
        try:
            self.repo.update_job_status(job_id, STATUS_RESOLVING)
        except (SQLAlchemyError, JobNotFoundError) as e:
            raise _StepFailed(f"update status to resolving: {e}") from e

        try:
            curriculum = assemble_from_dir(work_dir)
        except AssemblyError as e:
            raise AssemblyError(f"assemble curriculum: {e}", e.path) from e
        except Exception as e:
            raise _StepFailed(f"assemble curriculum: {e}") from e

        try:
            return self.ingester.ingest_with_result(curriculum.to_json())
        except IngestionError as e:
            raise IngestionError(f"ingest curriculum: {e}") from e
        except Exception as e:
            raise _StepFailed(f"ingest curriculum: {e}") from e

    def _prepare_work_dir(self, job_id: str) -> Path:
        work_dir = self.work_root / job_id
        if work_dir.exists():
            shutil.rmtree(work_dir)
        work_dir.mkdir(parents=True)

        self.pool.write_to_dir(work_dir)
        (work_dir / SYSTEM_PROMPT_FILE_NAME).write_text(SYSTEM_PROMPT, encoding="utf-8")
        (work_dir / SCHEMA_FILE_NAME).write_bytes(curriculum_schema_json())
        return work_dir

    def _run_pass(
        self,
        job_id: str,
        pass_num: int,
        prompt: str,
        session_id: str,
        work_dir: Path,
        token: CancelToken,
    ) -> str:
        """Run one pass with retry; returns the session id the agent reports."""
        log = logger.bind(job_id=job_id)
        log.info(f"Starting pass {pass_num}: {PASS_DESCRIPTIONS[pass_num]}")

        last_error: Exception | None = None
        for attempt in range(MAX_RETRIES + 1):
            if token.cancelled:
                raise _Cancelled()
            if attempt > 0:
                log.warning(f"Retrying pass {pass_num} (attempt {attempt + 1})")

            try:
                if not session_id:
                    response = self.agent.run_initial_pass(
                        InitialPassOptions(
                            prompt=prompt,
                            work_dir=work_dir,
                            system_prompt_file=SYSTEM_PROMPT_FILE_NAME,
                            model=self.model,
                            allowed_tools=self.allowed_tools,
                        ),
                        token,
                    )
                    if not response.session_id:
                        raise AgentError("agent returned no session id")
                else:
                    schema_file = (
                        SCHEMA_FILE_NAME
                        if pass_num == TOTAL_PASSES and self.final_pass_schema
                        else ""
                    )
                    response = self.agent.run_resume_pass(
                        ResumePassOptions(
                            prompt=prompt,
                            session_id=session_id,
                            work_dir=work_dir,
                            json_schema_file=schema_file,
                        ),
                        token,
                    )
            except AgentError as e:
                last_error = e
                log.warning(f"Pass {pass_num} attempt {attempt + 1} failed: {e}")
                if token.cancelled:
                    raise _Cancelled() from e
                continue

            self._update_progress(job_id, pass_num)
            log.info(f"Pass {pass_num} completed (session {response.session_id})")
            return response.session_id or session_id

        if token.cancelled:
            raise _Cancelled()
        raise AgentError(
            f"pass {pass_num}: pass {pass_num} failed after {MAX_RETRIES + 1} attempts: {last_error}"
        )

    def _update_progress(self, job_id: str, pass_num: int) -> None:
        progress = ResearchProgress(
            current_pass=pass_num,
            total_passes=TOTAL_PASSES,
            pass_descriptions=dict(PASS_DESCRIPTIONS),
        )
        try:
            self.repo.update_job_progress(job_id, progress)
        except Exception as e:
            logger.bind(job_id=job_id).warning(f"Failed to update progress after pass {pass_num}: {e}")

    def _record_counts(self, job_id: str, result: IngestResult) -> None:
        progress = ResearchProgress(
            current_pass=TOTAL_PASSES,
            total_passes=TOTAL_PASSES,
            modules_planned=result.modules_created,
            modules_completed=result.modules_created,
            concepts_found=result.concepts_created,
            pass_descriptions=dict(PASS_DESCRIPTIONS),
        )
        try:
            self.repo.update_job_progress(job_id, progress)
        except Exception as e:
            logger.bind(job_id=job_id).warning(f"Failed to record ingestion counts: {e}")

    # ========================================
    # Terminal transitions
    # ========================================

    def _fail_job(self, job_id: str, cause: Exception) -> PipelineError:
        message = str(cause)
        try:
            self.repo.update_job_status(job_id, STATUS_FAILED, message)
        except Exception as e:
            logger.bind(job_id=job_id).error(f"Failed to update job status to failed: {e}")
        logger.bind(job_id=job_id).error(f"Research job failed: {message}")
        return PipelineError(job_id, message)

    def _handle_cancellation(self, job_id: str) -> None:
        logger.bind(job_id=job_id).info("Job cancelled")
        job = self.repo.get_job(job_id)
        if job.status != STATUS_CANCELLED:
            self.repo.update_job_status(job_id, STATUS_CANCELLED)
