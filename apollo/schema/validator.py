"""
Schema Validator - reject curriculum documents that do not match their schema.

Each compiled validator is built on first use and reused for the life of the
process. Errors report the first violation (ordered by JSON path) with its
location, so a malformed agent output can be traced to the file it came from.
"""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError

from .definitions import CURRICULUM_SCHEMA, POOL_SUMMARY_SCHEMA

CURRICULUM_SCHEMA_FILE = "curriculum.json"
POOL_SUMMARY_SCHEMA_FILE = "knowledge_pool_summary.json"

_SCHEMAS: dict[str, dict[str, Any]] = {
    CURRICULUM_SCHEMA_FILE: CURRICULUM_SCHEMA,
    POOL_SUMMARY_SCHEMA_FILE: POOL_SUMMARY_SCHEMA,
}


class SchemaError(Exception):
    """Base class for document validation failures."""


class InvalidJSONError(SchemaError):
    """Raised when the input cannot be parsed as JSON."""


class SchemaValidationError(SchemaError):
    """Raised when a parsed document violates its schema."""

    def __init__(self, message: str, path: str, kind: str, error_count: int = 1):
        super().__init__(message)
        self.path = path
        self.kind = kind
        self.error_count = error_count


@lru_cache(maxsize=None)
def _get_validator(schema_name: str) -> Draft202012Validator:
    schema = _SCHEMAS[schema_name]
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


def _pointer(error: ValidationError) -> str:
    if not error.absolute_path:
        return "(root)"
    return "/" + "/".join(str(part) for part in error.absolute_path)


def _path_key(error: ValidationError) -> tuple[tuple[bool, Any], ...]:
    # Array indexes compare numerically so /modules/2 sorts before /modules/10
    return tuple((isinstance(part, str), part) for part in error.absolute_path)


def _validate(schema_name: str, json_data: str | bytes) -> None:
    validator = _get_validator(schema_name)

    try:
        document = json.loads(json_data)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidJSONError(f"invalid JSON input: {e}") from e

    errors = sorted(validator.iter_errors(document), key=_path_key)
    if not errors:
        return

    first = errors[0]
    path = _pointer(first)
    detail = f"{path}: {first.validator}: {first.message}"
    if len(errors) == 1:
        message = f"schema validation failed: {detail}"
    else:
        message = f"schema validation failed ({len(errors)} errors, first): {detail}"

    raise SchemaValidationError(
        message, path=path, kind=str(first.validator), error_count=len(errors)
    )


def validate(json_data: str | bytes) -> None:
    """
    Validate a curriculum document.

    Raises:
        InvalidJSONError: If ``json_data`` is not parseable JSON
        SchemaValidationError: If the document breaks a schema rule
    """
    _validate(CURRICULUM_SCHEMA_FILE, json_data)


def validate_pool_summary(json_data: str | bytes) -> None:
    """Validate a knowledge pool summary document."""
    _validate(POOL_SUMMARY_SCHEMA_FILE, json_data)


def curriculum_schema_json() -> bytes:
    """Serialized curriculum schema, as written into research working directories."""
    return json.dumps(CURRICULUM_SCHEMA, indent=2).encode("utf-8")
