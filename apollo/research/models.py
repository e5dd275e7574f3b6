"""
Research pipeline data models.

Two groups live here:

- Curriculum documents (pydantic): the assembled CurriculumOutput the ingester
  stores, and the per-file shapes the agent writes into the working directory
  (topic.json with its module plan, module.json per module directory).
  Free-form blocks such as lesson content and exercises are carried through
  untouched; the curriculum schema is what constrains them.
- Job state (dataclasses): ResearchJob, ResearchProgress and the small result
  types passed between the orchestrator and its collaborators.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

# ========================================
# Working-directory layout
# ========================================

TOPIC_FILE_NAME = "topic.json"
MODULES_DIR_NAME = "modules"
MODULE_FILE_NAME = "module.json"
POOL_SUMMARY_FILE_NAME = "knowledge_pool_summary.json"
SYSTEM_PROMPT_FILE_NAME = "research.md"
SCHEMA_FILE_NAME = "curriculum.json"


# ========================================
# Curriculum documents
# ========================================


class _Document(BaseModel):
    model_config = ConfigDict(extra="ignore")


class PrerequisiteItem(_Document):
    topic_id: str = ""
    reason: str = ""


class Prerequisites(_Document):
    """Three-tier prerequisite lists."""

    essential: list[PrerequisiteItem] = Field(default_factory=list)
    helpful: list[PrerequisiteItem] = Field(default_factory=list)
    deep_background: list[PrerequisiteItem] = Field(default_factory=list)


class Flashcard(_Document):
    front: str = ""
    back: str = ""


class ConceptTaught(_Document):
    id: str = ""
    name: str = ""
    definition: str = ""
    flashcard: Flashcard = Field(default_factory=Flashcard)


class ConceptReferenced(_Document):
    id: str = ""
    defined_in: str = ""


class LessonOutput(_Document):
    """One lesson file, also the lesson shape inside CurriculumOutput."""

    id: str = ""
    title: str = ""
    order: int = 0
    estimated_minutes: int = 0
    content: Any = None
    concepts_taught: list[ConceptTaught] = Field(default_factory=list)
    concepts_referenced: list[ConceptReferenced] = Field(default_factory=list)
    examples: Any = None
    exercises: Any = None
    review_questions: Any = None

    def text_body(self) -> str:
        """Concatenated bodies of the lesson's text sections."""
        if not isinstance(self.content, dict):
            return ""
        sections = self.content.get("sections") or []
        bodies = [
            s.get("body", "")
            for s in sections
            if isinstance(s, dict) and s.get("type") == "text" and s.get("body")
        ]
        return "\n\n".join(bodies)


class ModuleOutput(_Document):
    id: str = ""
    title: str = ""
    description: str = ""
    learning_objectives: list[str] = Field(default_factory=list)
    estimated_minutes: int = 0
    order: int = 0
    lessons: list[LessonOutput] = Field(default_factory=list)
    assessment: Any = None


class CurriculumOutput(_Document):
    """A fully assembled topic, ready for validation and ingestion."""

    id: str = ""
    title: str = ""
    description: str = ""
    difficulty: str = ""
    estimated_hours: float = 0
    tags: list[str] = Field(default_factory=list)
    prerequisites: Prerequisites = Field(default_factory=Prerequisites)
    related_topics: list[str] = Field(default_factory=list)
    modules: list[ModuleOutput] = Field(default_factory=list)
    source_urls: list[str] = Field(default_factory=list)
    generated_at: str = ""
    version: int = 0

    def to_json(self) -> bytes:
        """Serialize for schema validation and ingestion."""
        return self.model_dump_json(exclude_none=True).encode("utf-8")


class ModulePlanEntry(_Document):
    """Module stub written to topic.json during the survey pass."""

    id: str = ""
    title: str = ""
    description: str = ""
    order: int = 0


class TopicFile(_Document):
    """Contents of topic.json at the root of a working directory."""

    id: str = ""
    title: str = ""
    description: str = ""
    difficulty: str = ""
    estimated_hours: float = 0
    tags: list[str] = Field(default_factory=list)
    prerequisites: Prerequisites = Field(default_factory=Prerequisites)
    related_topics: list[str] = Field(default_factory=list)
    source_urls: list[str] = Field(default_factory=list)
    generated_at: str = ""
    version: int = 0
    module_plan: list[ModulePlanEntry] = Field(default_factory=list)


class ModuleFile(_Document):
    """Contents of modules/NN-slug/module.json."""

    id: str = ""
    title: str = ""
    description: str = ""
    order: int = 0
    learning_objectives: list[str] = Field(default_factory=list)
    estimated_minutes: int = 0
    assessment: Any = None


# ========================================
# Job state
# ========================================

STATUS_QUEUED = "queued"
STATUS_RESEARCHING = "researching"
STATUS_RESOLVING = "resolving"
STATUS_PUBLISHED = "published"
STATUS_FAILED = "failed"
STATUS_CANCELLED = "cancelled"

TERMINAL_STATUSES = frozenset({STATUS_PUBLISHED, STATUS_FAILED, STATUS_CANCELLED})


def is_terminal_status(status: str) -> bool:
    """Check whether a job in ``status`` will never change again."""
    return status in TERMINAL_STATUSES


@dataclass
class ResearchProgress:
    """Structured progress persisted on the job row."""

    current_pass: int = 0
    total_passes: int = 4
    modules_planned: int = 0
    modules_completed: int = 0
    concepts_found: int = 0
    pass_descriptions: dict[int, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_pass": self.current_pass,
            "total_passes": self.total_passes,
            "modules_planned": self.modules_planned,
            "modules_completed": self.modules_completed,
            "concepts_found": self.concepts_found,
            "pass_descriptions": {str(k): v for k, v in self.pass_descriptions.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ResearchProgress:
        if not data:
            return cls()
        return cls(
            current_pass=int(data.get("current_pass", 0)),
            total_passes=int(data.get("total_passes", 4)),
            modules_planned=int(data.get("modules_planned", 0)),
            modules_completed=int(data.get("modules_completed", 0)),
            concepts_found=int(data.get("concepts_found", 0)),
            pass_descriptions={
                int(k): v for k, v in (data.get("pass_descriptions") or {}).items()
            },
        )


@dataclass
class ResearchJob:
    """A research job as seen by the orchestrator and service layer."""

    id: str
    root_topic: str
    current_topic: str
    status: str = STATUS_QUEUED
    progress: ResearchProgress | None = None
    error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return is_terminal_status(self.status)


T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    """One page of a listing."""

    items: list[T]
    total: int
    page: int
    per_page: int


@dataclass
class IngestResult:
    """Row counts from a successful ingestion."""

    modules_created: int = 0
    lessons_created: int = 0
    concepts_created: int = 0
    references_created: int = 0
    prerequisites_linked: int = 0
    relations_linked: int = 0
    expansions_queued: int = 0
