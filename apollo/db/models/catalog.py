"""
Curriculum catalog models.

These tables hold published curricula: the research ingester writes them in a
single transaction and the read-side catalog browses them afterwards.

Hierarchy:
    Topic -> Module -> Lesson -> Concept (defined in exactly one lesson)

Cross-links:
    ConceptReference   lesson mentions (or defines) a concept
    TopicPrerequisite  topic requires another existing topic
    TopicRelation      topic is related to another existing topic
    ExpansionQueueItem prerequisite topic that still needs research

The full-text ``search_index`` table is not mapped here; it is an FTS5 virtual
table on SQLite and is created by ``apollo.db.database.init_db``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Float,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, utcnow

PRIORITY_TIERS = ("essential", "helpful", "deep_background")
DIFFICULTY_LEVELS = ("foundational", "intermediate", "advanced")


def _in_list(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


# ========================================
# CURRICULUM HIERARCHY
# ========================================


class Topic(Base):
    """A researched subject, the root of one curriculum."""

    __tablename__ = "topics"
    __table_args__ = (
        CheckConstraint(
            "difficulty IS NULL OR " + _in_list("difficulty", DIFFICULTY_LEVELS),
            name="ck_topics_difficulty",
        ),
        CheckConstraint(
            _in_list("status", ("draft", "published", "archived")),
            name="ck_topics_status",
        ),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    difficulty: Mapped[str | None] = mapped_column(Text)
    estimated_hours: Mapped[float | None] = mapped_column(Float)
    tags: Mapped[list[str] | None] = mapped_column(JSON(none_as_null=True))
    status: Mapped[str] = mapped_column(Text, nullable=False, default="draft")
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    source_urls: Mapped[list[str] | None] = mapped_column(JSON(none_as_null=True))
    generated_at: Mapped[str | None] = mapped_column(Text)
    generated_by: Mapped[str | None] = mapped_column(Text)
    parent_topic_id: Mapped[str | None] = mapped_column(
        ForeignKey("topics.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow)

    # Relationships
    modules: Mapped[list[Module]] = relationship(
        back_populates="topic", order_by="Module.sort_order"
    )


class Module(Base):
    """An ordered unit of a topic."""

    __tablename__ = "modules"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    topic_id: Mapped[str] = mapped_column(
        ForeignKey("topics.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    learning_objectives: Mapped[list[str] | None] = mapped_column(JSON(none_as_null=True))
    estimated_minutes: Mapped[int | None] = mapped_column(Integer)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False)
    assessment: Mapped[Any | None] = mapped_column(JSON(none_as_null=True))

    # Relationships
    topic: Mapped[Topic] = relationship(back_populates="modules")
    lessons: Mapped[list[Lesson]] = relationship(
        back_populates="module", order_by="Lesson.sort_order"
    )


class Lesson(Base):
    """An ordered lesson inside a module; content blocks are stored as JSON."""

    __tablename__ = "lessons"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    module_id: Mapped[str] = mapped_column(
        ForeignKey("modules.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False)
    estimated_minutes: Mapped[int | None] = mapped_column(Integer)
    content: Mapped[Any] = mapped_column(JSON, nullable=False)
    examples: Mapped[Any | None] = mapped_column(JSON(none_as_null=True))
    exercises: Mapped[Any | None] = mapped_column(JSON(none_as_null=True))
    review_questions: Mapped[Any | None] = mapped_column(JSON(none_as_null=True))

    # Relationships
    module: Mapped[Module] = relationship(back_populates="lessons")


class Concept(Base):
    """A glossary entry taught by exactly one lesson."""

    __tablename__ = "concepts"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    definition: Mapped[str] = mapped_column(Text, nullable=False)
    defined_in_lesson: Mapped[str | None] = mapped_column(
        ForeignKey("lessons.id", ondelete="SET NULL")
    )
    defined_in_topic: Mapped[str | None] = mapped_column(
        ForeignKey("topics.id", ondelete="SET NULL")
    )
    difficulty: Mapped[str | None] = mapped_column(Text)
    flashcard_front: Mapped[str | None] = mapped_column(Text)
    flashcard_back: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="active")
    aliases: Mapped[list[str] | None] = mapped_column(JSON(none_as_null=True))
    created_at: Mapped[datetime] = mapped_column(default=utcnow)


# ========================================
# CROSS-LINKS
# ========================================


class ConceptReference(Base):
    """A lesson that teaches or mentions a concept (one row per pair)."""

    __tablename__ = "concept_references"
    __table_args__ = (
        UniqueConstraint("concept_id", "lesson_id", name="uq_concept_references_pair"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    concept_id: Mapped[str] = mapped_column(
        ForeignKey("concepts.id", ondelete="CASCADE"), nullable=False
    )
    lesson_id: Mapped[str] = mapped_column(
        ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False
    )
    context: Mapped[str | None] = mapped_column(Text)


class TopicPrerequisite(Base):
    """Prerequisite edge between two topics that both exist in the catalog."""

    __tablename__ = "topic_prerequisites"
    __table_args__ = (
        CheckConstraint(_in_list("priority", PRIORITY_TIERS), name="ck_topic_prerequisites_priority"),
    )

    topic_id: Mapped[str] = mapped_column(
        ForeignKey("topics.id", ondelete="CASCADE"), primary_key=True
    )
    prerequisite_topic_id: Mapped[str] = mapped_column(
        ForeignKey("topics.id", ondelete="CASCADE"), primary_key=True
    )
    priority: Mapped[str] = mapped_column(Text, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text)


class TopicRelation(Base):
    """Undirected "see also" link between two existing topics."""

    __tablename__ = "topic_relations"

    topic_a: Mapped[str] = mapped_column(
        ForeignKey("topics.id", ondelete="CASCADE"), primary_key=True
    )
    topic_b: Mapped[str] = mapped_column(
        ForeignKey("topics.id", ondelete="CASCADE"), primary_key=True
    )
    relation_type: Mapped[str] = mapped_column(Text, primary_key=True)
    description: Mapped[str | None] = mapped_column(Text)


class ExpansionQueueItem(Base):
    """A prerequisite topic waiting to be researched by a future job."""

    __tablename__ = "expansion_queue"
    __table_args__ = (
        CheckConstraint(_in_list("priority", PRIORITY_TIERS), name="ck_expansion_queue_priority"),
        CheckConstraint(
            _in_list("status", ("available", "claimed", "completed", "skipped")),
            name="ck_expansion_queue_status",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    topic_id: Mapped[str] = mapped_column(Text, nullable=False)  # may not exist yet
    requested_by_topic: Mapped[str | None] = mapped_column(
        ForeignKey("topics.id", ondelete="CASCADE")
    )
    priority: Mapped[str] = mapped_column(Text, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="available")
    created_at: Mapped[datetime] = mapped_column(default=utcnow)
