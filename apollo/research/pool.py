"""Knowledge pool summary: topic, module and concept ids already in the catalog."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from apollo.db.database import session_scope
from apollo.db.models import Concept, Module, Topic
from apollo.schema import validate_pool_summary

from .models import POOL_SUMMARY_FILE_NAME


class PoolSummaryBuilder:
    """Builds ``knowledge_pool_summary.json`` from the catalog (read-only)."""

    def __init__(self, session_factory: sessionmaker[Session] | None = None):
        self._session_factory = session_factory

    def _collect(self, session: Session) -> dict[str, Any]:
        topic_ids = session.scalars(select(Topic.id).order_by(Topic.id)).all()

        topics = []
        for topic_id in topic_ids:
            module_ids = session.scalars(
                select(Module.id).where(Module.topic_id == topic_id).order_by(Module.sort_order)
            ).all()
            topics.append({"id": topic_id, "modules": list(module_ids)})

        concept_ids = session.scalars(select(Concept.id).order_by(Concept.id)).all()

        return {"existing_topics": topics, "existing_concepts": list(concept_ids)}

    def build(self) -> bytes:
        """Return the summary as indented JSON, validated against its schema."""
        with session_scope(self._session_factory) as session:
            summary = self._collect(session)

        data = json.dumps(summary, indent=2).encode("utf-8")
        validate_pool_summary(data)
        return data

    def write_to_dir(self, directory: Path | str) -> Path:
        """Write the summary into ``directory`` and return the file path."""
        data = self.build()
        path = Path(directory) / POOL_SUMMARY_FILE_NAME
        path.write_bytes(data)
        logger.debug(f"Wrote knowledge pool summary to {path}")
        return path
