"""Schema package exports."""

from .target import TargetSchema, boolean, default, enum, number, optional, record, sequence, string
from .validation import SchemaIssue, ValidationOutcome, validate_against_schema

__all__ = ["TargetSchema", "boolean", "default", "enum", "number", "optional", "record", "sequence", "string", "SchemaIssue", "ValidationOutcome", "validate_against_schema"]
