# SQLAlchemy models
from .base import Base
from .catalog import (
    Concept,
    ConceptReference,
    ExpansionQueueItem,
    Lesson,
    Module,
    Topic,
    TopicPrerequisite,
    TopicRelation,
)
from .research import ResearchJobRecord

__all__ = [
    # Base
    "Base",
    # Catalog
    "Topic",
    "Module",
    "Lesson",
    "Concept",
    "ConceptReference",
    "TopicPrerequisite",
    "TopicRelation",
    "ExpansionQueueItem",
    # Research
    "ResearchJobRecord",
]
