"""
Research pipeline: turns a topic into a published curriculum.

The orchestrator drives an external agent through four passes in a per-job
working directory, assembles the resulting file tree, and ingests it into
the catalog.
"""

from .agent import (
    AgentCancelledError,
    AgentError,
    AgentResponse,
    AgentRunner,
    ClaudeCliRunner,
    InitialPassOptions,
    ResumePassOptions,
)
from .assembler import AssemblyError, assemble_from_dir
from .cancellation import CancellationRegistry, CancelToken, JobAlreadyRunningError
from .ingest import (
    ConstraintViolationError,
    CurriculumIngester,
    DuplicateTopicError,
    IngestionError,
)
from .jobs import JobNotFoundError, ResearchJobRepository, SqlResearchJobRepository
from .models import CurriculumOutput, IngestResult, Page, ResearchJob, ResearchProgress
from .orchestrator import PipelineError, ResearchOrchestrator
from .pool import PoolSummaryBuilder
from .service import JobStateError, ResearchService

__all__ = [
    # Agent
    "AgentCancelledError",
    "AgentError",
    "AgentResponse",
    "AgentRunner",
    "ClaudeCliRunner",
    "InitialPassOptions",
    "ResumePassOptions",
    # Assembly / ingestion
    "AssemblyError",
    "assemble_from_dir",
    "ConstraintViolationError",
    "CurriculumIngester",
    "DuplicateTopicError",
    "IngestionError",
    "PoolSummaryBuilder",
    # Jobs
    "CancellationRegistry",
    "CancelToken",
    "JobAlreadyRunningError",
    "JobNotFoundError",
    "JobStateError",
    "PipelineError",
    "ResearchJobRepository",
    "ResearchOrchestrator",
    "ResearchService",
    "SqlResearchJobRepository",
    # Models
    "CurriculumOutput",
    "IngestResult",
    "Page",
    "ResearchJob",
    "ResearchProgress",
]
