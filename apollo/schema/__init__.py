from .definitions import CURRICULUM_SCHEMA, POOL_SUMMARY_SCHEMA
from .validator import (
    InvalidJSONError,
    SchemaError,
    SchemaValidationError,
    curriculum_schema_json,
    validate,
    validate_pool_summary,
)

__all__ = [
    "CURRICULUM_SCHEMA",
    "POOL_SUMMARY_SCHEMA",
    "InvalidJSONError",
    "SchemaError",
    "SchemaValidationError",
    "curriculum_schema_json",
    "validate",
    "validate_pool_summary",
]
