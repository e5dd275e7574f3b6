"""
Curriculum Ingester.

Stores an assembled curriculum in the catalog inside a single transaction:

1. topic (published, generated by the research agent)
2. modules and lessons in document order
3. taught concepts, each with a reference back to its defining lesson
4. references for concepts a lesson only mentions
5. prerequisite edges to topics that already exist
6. expansion queue entries for helpful / deep-background prerequisites
7. "related" links to topics that already exist
8. search index rows for the topic and each lesson

Any failure rolls the whole curriculum back.
"""

from __future__ import annotations

from loguru import logger
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import insert, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from apollo.db.database import insert_or_ignore, session_scope
from apollo.db.models import (
    Concept,
    ConceptReference,
    ExpansionQueueItem,
    Lesson,
    Module,
    Topic,
    TopicPrerequisite,
    TopicRelation,
)
from apollo.schema import SchemaError, validate

from .models import CurriculumOutput, IngestResult, PrerequisiteItem

GENERATED_BY = "research-agent"

_DELETE_SEARCH_SQL = text(
    "DELETE FROM search_index WHERE entity_type = :entity_type AND entity_id = :entity_id"
)
_INSERT_SEARCH_SQL = text(
    "INSERT INTO search_index (entity_type, entity_id, title, body) "
    "VALUES (:entity_type, :entity_id, :title, :body)"
)


class IngestionError(Exception):
    """Raised when a curriculum cannot be stored."""


class DuplicateTopicError(IngestionError):
    """Raised when the curriculum collides with rows already in the catalog."""


class ConstraintViolationError(IngestionError):
    """Raised on foreign-key or check constraint failures."""


def _classify_integrity_error(e: IntegrityError) -> IngestionError:
    message = str(e.orig)
    pgcode = getattr(e.orig, "pgcode", None)
    if "UNIQUE constraint failed" in message or pgcode == "23505":
        return DuplicateTopicError(f"duplicate entity: {message}")
    return ConstraintViolationError(f"constraint violation: {message}")


class CurriculumIngester:
    """Validates and stores curriculum documents."""

    def __init__(self, session_factory: sessionmaker[Session] | None = None):
        self._session_factory = session_factory

    def ingest(self, json_data: str | bytes) -> None:
        """Validate and store a curriculum document."""
        self.ingest_with_result(json_data)

    def ingest_with_result(self, json_data: str | bytes) -> IngestResult:
        """
        Validate and store a curriculum document, returning row counts.

        Raises:
            IngestionError: Schema validation or storage failed (nothing stored)
            DuplicateTopicError: The topic or one of its entities already exists
            ConstraintViolationError: A reference points at a missing row
        """
        try:
            validate(json_data)
        except SchemaError as e:
            raise IngestionError(f"schema validation: {e}") from e

        try:
            curriculum = CurriculumOutput.model_validate_json(json_data)
        except PydanticValidationError as e:
            raise IngestionError(f"decode curriculum: {e}") from e

        try:
            with session_scope(self._session_factory) as session:
                result = self._store(session, curriculum)
        except IntegrityError as e:
            raise _classify_integrity_error(e) from e
        except Exception as e:  # SQLAlchemy errors and unwrapped driver errors (OverflowError)
            raise IngestionError(f"store curriculum {curriculum.id}: {e}") from e

        logger.info(
            f"Ingested {curriculum.id}: {result.modules_created} modules, "
            f"{result.lessons_created} lessons, {result.concepts_created} concepts, "
            f"{result.expansions_queued} queued expansions"
        )
        return result

    # ========================================
    # Storage steps
    # ========================================

    def _store(self, session: Session, curr: CurriculumOutput) -> IngestResult:
        result = IngestResult()

        session.execute(
            insert(Topic).values(
                id=curr.id,
                title=curr.title,
                description=curr.description,
                difficulty=curr.difficulty,
                estimated_hours=curr.estimated_hours,
                tags=curr.tags,
                status="published",
                version=curr.version,
                source_urls=curr.source_urls,
                generated_at=curr.generated_at,
                generated_by=GENERATED_BY,
            )
        )

        for i, mod in enumerate(curr.modules):
            session.execute(
                insert(Module).values(
                    id=mod.id,
                    topic_id=curr.id,
                    title=mod.title,
                    description=mod.description,
                    learning_objectives=mod.learning_objectives,
                    estimated_minutes=mod.estimated_minutes,
                    sort_order=mod.order or i + 1,
                    assessment=mod.assessment,
                )
            )
            result.modules_created += 1

            for j, lesson in enumerate(mod.lessons):
                session.execute(
                    insert(Lesson).values(
                        id=lesson.id,
                        module_id=mod.id,
                        title=lesson.title,
                        sort_order=lesson.order or j + 1,
                        estimated_minutes=lesson.estimated_minutes,
                        content=lesson.content,
                        examples=lesson.examples,
                        exercises=lesson.exercises,
                        review_questions=lesson.review_questions,
                    )
                )
                result.lessons_created += 1

        # Concepts go in before any reference so a lesson may mention a
        # concept taught later in the same curriculum.
        for mod in curr.modules:
            for lesson in mod.lessons:
                for concept in lesson.concepts_taught:
                    session.execute(
                        insert(Concept).values(
                            id=concept.id,
                            name=concept.name,
                            definition=concept.definition,
                            defined_in_lesson=lesson.id,
                            defined_in_topic=curr.id,
                            flashcard_front=concept.flashcard.front,
                            flashcard_back=concept.flashcard.back,
                            status="active",
                        )
                    )
                    result.concepts_created += 1
                    result.references_created += self._store_reference(
                        session, concept.id, lesson.id
                    )

        for mod in curr.modules:
            for lesson in mod.lessons:
                for ref in lesson.concepts_referenced:
                    result.references_created += self._store_reference(session, ref.id, lesson.id)

        prereqs = curr.prerequisites
        for priority, items in (
            ("essential", prereqs.essential),
            ("helpful", prereqs.helpful),
            ("deep_background", prereqs.deep_background),
        ):
            result.prerequisites_linked += self._store_prerequisites(
                session, curr.id, items, priority
            )

        for priority, items in (
            ("helpful", prereqs.helpful),
            ("deep_background", prereqs.deep_background),
        ):
            for item in items:
                session.execute(
                    insert(ExpansionQueueItem).values(
                        topic_id=item.topic_id,
                        requested_by_topic=curr.id,
                        priority=priority,
                        reason=item.reason,
                        status="available",
                    )
                )
                result.expansions_queued += 1

        for related_id in curr.related_topics:
            if related_id == curr.id or not self._topic_exists(session, related_id):
                continue
            result.relations_linked += insert_or_ignore(
                session,
                TopicRelation,
                topic_a=curr.id,
                topic_b=related_id,
                relation_type="related",
                description="",
            )

        self._store_search_index(session, curr)
        return result

    def _store_reference(self, session: Session, concept_id: str, lesson_id: str) -> int:
        return insert_or_ignore(
            session, ConceptReference, concept_id=concept_id, lesson_id=lesson_id, context=""
        )

    @staticmethod
    def _topic_exists(session: Session, topic_id: str) -> bool:
        return session.scalar(select(Topic.id).where(Topic.id == topic_id)) is not None

    def _store_prerequisites(
        self,
        session: Session,
        topic_id: str,
        items: list[PrerequisiteItem],
        priority: str,
    ) -> int:
        linked = 0
        for item in items:
            # Missing topics are picked up through the expansion queue instead.
            if not self._topic_exists(session, item.topic_id):
                continue
            linked += insert_or_ignore(
                session,
                TopicPrerequisite,
                topic_id=topic_id,
                prerequisite_topic_id=item.topic_id,
                priority=priority,
                reason=item.reason,
            )
        return linked

    def _store_search_index(self, session: Session, curr: CurriculumOutput) -> None:
        entries = [("topic", curr.id, curr.title, curr.description)]
        for mod in curr.modules:
            for lesson in mod.lessons:
                entries.append(("lesson", lesson.id, lesson.title, lesson.text_body()))

        for entity_type, entity_id, title, body in entries:
            params = {"entity_type": entity_type, "entity_id": entity_id}
            session.execute(_DELETE_SEARCH_SQL, params)
            session.execute(_INSERT_SEARCH_SQL, {**params, "title": title, "body": body})
