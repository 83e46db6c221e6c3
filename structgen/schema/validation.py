"""Validate values against target schema descriptions using pydantic."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainValidator, StrictBool, StrictStr, TypeAdapter, ValidationError, create_model
from pydantic_core import PydanticCustomError

from structgen.schema.target import BooleanSchema, DefaultSchema, EnumSchema, NumberSchema, OptionalSchema, RecordSchema, SequenceSchema, StringSchema, TargetSchema

PathPart = str | int


@dataclass(frozen=True)
class SchemaIssue:
  """One schema violation reported by validation."""

  path: tuple[PathPart, ...]
  code: str
  message: str

  @property
  def dotted_path(self) -> str:
    return ".".join(str(part) for part in self.path)

  def to_dict(self) -> dict[str, Any]:
    return {"path": list(self.path), "code": self.code, "message": self.message}


@dataclass(frozen=True)
class ValidationOutcome:
  """Validated value (when ok) or the issues that blocked it."""

  ok: bool
  value: Any = None
  issues: list[SchemaIssue] = field(default_factory=list)


def _validate_number(value: Any) -> Any:
  # Keep ints as ints; booleans are not numbers here.
  if isinstance(value, bool) or not isinstance(value, (int, float)):
    raise PydanticCustomError("number_type", "Input should be a valid number")
  return value


StrictNumber = Annotated[Any, PlainValidator(_validate_number)]


def _compile(schema: TargetSchema) -> Any:
  """Translate a schema node into a pydantic-compatible annotation."""
  if isinstance(schema, StringSchema):
    return StrictStr
  if isinstance(schema, NumberSchema):
    return StrictNumber
  if isinstance(schema, BooleanSchema):
    return StrictBool
  if isinstance(schema, EnumSchema):
    return Literal[schema.options]
  if isinstance(schema, SequenceSchema):
    return list[_compile(schema.element)]
  if isinstance(schema, OptionalSchema):
    return Optional[_compile(schema.inner)]
  if isinstance(schema, DefaultSchema):
    return _compile(schema.inner)
  if isinstance(schema, RecordSchema):
    return _compile_record(schema)
  raise TypeError(f"Unsupported schema node: {type(schema).__name__}")


def _compile_record(schema: RecordSchema) -> type[BaseModel]:
  """Generate a BaseModel for a record; declared keys become aliases of positional field names."""
  definitions: dict[str, Any] = {}

  # Positional attribute names avoid clashes with BaseModel attributes and non-identifier keys.
  for index, (key, field_schema) in enumerate(schema.fields):
    attribute = f"field_{index}"

    if isinstance(field_schema, OptionalSchema):
      definitions[attribute] = (Optional[_compile(field_schema.inner)], Field(default=None, alias=key))
      continue

    if isinstance(field_schema, DefaultSchema):
      default_value = field_schema.default
      definitions[attribute] = (_compile(field_schema.inner), Field(default_factory=lambda value=default_value: copy.deepcopy(value), alias=key))
      continue

    definitions[attribute] = (_compile(field_schema), Field(alias=key))

  config = ConfigDict(extra="ignore")
  return create_model(schema.name, __config__=config, **definitions)


@lru_cache(maxsize=256)
def _adapter_for(schema: TargetSchema) -> TypeAdapter[Any]:
  return TypeAdapter(_compile(schema))


def _issues_from_error(error: ValidationError) -> list[SchemaIssue]:
  issues: list[SchemaIssue] = []

  for entry in error.errors(include_url=False):
    issues.append(SchemaIssue(path=tuple(entry.get("loc", ())), code=str(entry.get("type", "invalid")), message=str(entry.get("msg", ""))))

  return issues


def validate_against_schema(value: Any, schema: TargetSchema) -> ValidationOutcome:
  """Validate a value and return plain Python data with defaults applied.

  Optional fields that are absent or null are omitted from the returned value.
  """
  adapter = _adapter_for(schema)

  try:
    validated = adapter.validate_python(value)
  except ValidationError as exc:
    return ValidationOutcome(ok=False, issues=_issues_from_error(exc))

  return ValidationOutcome(ok=True, value=adapter.dump_python(validated, by_alias=True, exclude_none=True))
