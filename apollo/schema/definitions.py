"""
JSON Schemas for research pipeline documents.

CURRICULUM_SCHEMA describes the assembled curriculum (a topic with its
modules, lessons and concepts) that the ingester stores. It is also written
into every research working directory as ``curriculum.json`` so the agent can
check its own output.

POOL_SUMMARY_SCHEMA describes ``knowledge_pool_summary.json``, the list of
topics and concepts already in the catalog that the agent reuses instead of
re-defining.
"""

from __future__ import annotations

from typing import Any

DIFFICULTY_VALUES = ["foundational", "intermediate", "advanced"]

SECTION_TYPES = ["text", "code", "callout", "diagram", "table", "image"]

EXERCISE_TYPES = [
    "command",
    "configuration",
    "exploration",
    "build",
    "troubleshooting",
    "scenario",
    "thought_experiment",
]

_NON_EMPTY_STRING: dict[str, Any] = {"type": "string", "minLength": 1}

_STRING_LIST: dict[str, Any] = {"type": "array", "items": {"type": "string"}}


CURRICULUM_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": "https://apollo.local/schemas/curriculum.json",
    "title": "Topic",
    "description": "A researched topic broken into ordered modules and lessons.",
    "type": "object",
    "required": [
        "id",
        "title",
        "description",
        "difficulty",
        "estimated_hours",
        "tags",
        "prerequisites",
        "related_topics",
        "modules",
        "source_urls",
        "generated_at",
        "version",
    ],
    "properties": {
        "id": _NON_EMPTY_STRING,
        "title": _NON_EMPTY_STRING,
        "description": {"type": "string"},
        "difficulty": {"type": "string", "enum": DIFFICULTY_VALUES},
        "estimated_hours": {"type": "number", "minimum": 0},
        "tags": _STRING_LIST,
        "prerequisites": {"$ref": "#/$defs/prerequisites"},
        "related_topics": _STRING_LIST,
        "modules": {
            "type": "array",
            "minItems": 1,
            "items": {"$ref": "#/$defs/module"},
        },
        "source_urls": _STRING_LIST,
        "generated_at": {"type": "string"},
        "version": {"type": "integer", "minimum": 1},
    },
    "$defs": {
        "prerequisite_item": {
            "type": "object",
            "required": ["topic_id", "reason"],
            "properties": {
                "topic_id": _NON_EMPTY_STRING,
                "reason": {"type": "string"},
            },
        },
        "prerequisites": {
            "type": "object",
            "required": ["essential", "helpful", "deep_background"],
            "properties": {
                "essential": {"type": "array", "items": {"$ref": "#/$defs/prerequisite_item"}},
                "helpful": {"type": "array", "items": {"$ref": "#/$defs/prerequisite_item"}},
                "deep_background": {
                    "type": "array",
                    "items": {"$ref": "#/$defs/prerequisite_item"},
                },
            },
        },
        "module": {
            "type": "object",
            "required": [
                "id",
                "title",
                "description",
                "learning_objectives",
                "estimated_minutes",
                "lessons",
                "assessment",
            ],
            "properties": {
                "id": _NON_EMPTY_STRING,
                "title": _NON_EMPTY_STRING,
                "description": {"type": "string"},
                "learning_objectives": _STRING_LIST,
                "estimated_minutes": {"type": "integer", "minimum": 0},
                "order": {"type": "integer", "minimum": 0},
                "lessons": {
                    "type": "array",
                    "minItems": 1,
                    "items": {"$ref": "#/$defs/lesson"},
                },
                "assessment": {"$ref": "#/$defs/assessment"},
            },
        },
        "assessment": {
            "type": "object",
            "required": ["questions"],
            "properties": {
                "questions": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["type", "question", "answer", "concepts_tested"],
                        "properties": {
                            "type": {"type": "string"},
                            "question": _NON_EMPTY_STRING,
                            "answer": {"type": "string"},
                            "concepts_tested": _STRING_LIST,
                        },
                    },
                },
            },
        },
        "lesson": {
            "type": "object",
            "required": [
                "id",
                "title",
                "estimated_minutes",
                "content",
                "concepts_taught",
                "concepts_referenced",
                "examples",
                "exercises",
                "review_questions",
            ],
            "properties": {
                "id": _NON_EMPTY_STRING,
                "title": _NON_EMPTY_STRING,
                "order": {"type": "integer", "minimum": 0},
                "estimated_minutes": {"type": "integer", "minimum": 0},
                "content": {
                    "type": "object",
                    "required": ["sections"],
                    "properties": {
                        "sections": {
                            "type": "array",
                            "minItems": 1,
                            "items": {"$ref": "#/$defs/section"},
                        },
                    },
                },
                "concepts_taught": {
                    "type": "array",
                    "items": {"$ref": "#/$defs/concept_taught"},
                },
                "concepts_referenced": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["id", "defined_in"],
                        "properties": {
                            "id": _NON_EMPTY_STRING,
                            "defined_in": {"type": "string"},
                        },
                    },
                },
                "examples": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["title"],
                        "properties": {"title": {"type": "string"}},
                    },
                },
                "exercises": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["type", "title", "instructions"],
                        "properties": {
                            "type": {"type": "string", "enum": EXERCISE_TYPES},
                            "title": {"type": "string"},
                            "instructions": {"type": "string"},
                            "success_criteria": _STRING_LIST,
                            "hints": _STRING_LIST,
                            "environment": {"type": "string"},
                        },
                    },
                },
                "review_questions": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["question", "answer"],
                        "properties": {
                            "question": {"type": "string"},
                            "answer": {"type": "string"},
                        },
                    },
                },
            },
        },
        "section": {
            "type": "object",
            "required": ["type"],
            "properties": {
                "type": {"type": "string", "enum": SECTION_TYPES},
                "body": {"type": "string"},
            },
        },
        "concept_taught": {
            "type": "object",
            "required": ["id", "name", "definition", "flashcard"],
            "properties": {
                "id": _NON_EMPTY_STRING,
                "name": _NON_EMPTY_STRING,
                "definition": _NON_EMPTY_STRING,
                "flashcard": {
                    "type": "object",
                    "required": ["front", "back"],
                    "properties": {
                        "front": {"type": "string"},
                        "back": {"type": "string"},
                    },
                },
            },
        },
    },
}


POOL_SUMMARY_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": "https://apollo.local/schemas/knowledge_pool_summary.json",
    "title": "KnowledgePoolSummary",
    "type": "object",
    "required": ["existing_topics", "existing_concepts"],
    "additionalProperties": False,
    "properties": {
        "existing_topics": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "modules"],
                "additionalProperties": False,
                "properties": {
                    "id": _NON_EMPTY_STRING,
                    "modules": _STRING_LIST,
                },
            },
        },
        "existing_concepts": _STRING_LIST,
    },
}
