"""Target schema descriptions used to validate and coerce provider output."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class StringSchema:
  """A string scalar."""


@dataclass(frozen=True)
class NumberSchema:
  """An int or float scalar."""


@dataclass(frozen=True)
class BooleanSchema:
  """A boolean scalar."""


@dataclass(frozen=True)
class EnumSchema:
  """A string restricted to a fixed option set."""

  options: tuple[str, ...]

  def __post_init__(self) -> None:
    if not self.options:
      raise ValueError("EnumSchema requires at least one option.")


@dataclass(frozen=True)
class SequenceSchema:
  """An ordered list of values sharing one element schema."""

  element: TargetSchema


@dataclass(frozen=True)
class RecordSchema:
  """A keyed record of named sub-schemas; unknown keys are dropped."""

  fields: tuple[tuple[str, TargetSchema], ...]
  name: str = "Record"

  def field_map(self) -> dict[str, TargetSchema]:
    return dict(self.fields)


@dataclass(frozen=True)
class OptionalSchema:
  """A field that may be absent or null."""

  inner: TargetSchema


@dataclass(frozen=True, eq=False)
class DefaultSchema:
  """A field that falls back to a default when absent.

  Compared by identity because defaults may be unhashable containers.
  """

  inner: TargetSchema
  default: Any


TargetSchema = Union[StringSchema, NumberSchema, BooleanSchema, EnumSchema, SequenceSchema, RecordSchema, OptionalSchema, DefaultSchema]


def string() -> StringSchema:
  return StringSchema()


def number() -> NumberSchema:
  return NumberSchema()


def boolean() -> BooleanSchema:
  return BooleanSchema()


def enum(*options: str) -> EnumSchema:
  return EnumSchema(options=tuple(options))


def sequence(element: TargetSchema) -> SequenceSchema:
  return SequenceSchema(element=element)


def record(fields: Mapping[str, TargetSchema], *, name: str = "Record") -> RecordSchema:
  """Build a record schema preserving the declared field order."""
  return RecordSchema(fields=tuple(fields.items()), name=name)


def optional(inner: TargetSchema) -> OptionalSchema:
  return OptionalSchema(inner=inner)


def default(inner: TargetSchema, value: Any) -> DefaultSchema:
  return DefaultSchema(inner=inner, default=value)


def unwrap(schema: TargetSchema) -> TargetSchema:
  """Strip Optional/Default wrappers down to the underlying schema."""
  current = schema
  while isinstance(current, (OptionalSchema, DefaultSchema)):
    current = current.inner
  return current


def describe(schema: TargetSchema) -> str:
  """Render a compact, human-readable shape for prompts and logs."""
  if isinstance(schema, StringSchema):
    return "string"
  if isinstance(schema, NumberSchema):
    return "number"
  if isinstance(schema, BooleanSchema):
    return "boolean"
  if isinstance(schema, EnumSchema):
    return " | ".join(f'"{option}"' for option in schema.options)
  if isinstance(schema, SequenceSchema):
    return f"Array<{describe(schema.element)}>"
  if isinstance(schema, OptionalSchema):
    return f"{describe(schema.inner)} (optional)"
  if isinstance(schema, DefaultSchema):
    return f"{describe(schema.inner)} (default {schema.default!r})"
  if isinstance(schema, RecordSchema):
    parts = [f"{key}: {describe(value)}" for key, value in schema.fields]
    return "{" + ", ".join(parts) + "}"
  raise TypeError(f"Unsupported schema node: {type(schema).__name__}")
