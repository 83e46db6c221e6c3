"""Schema-guided coercion of semi-structured provider output."""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any

from structgen.ai.json_repair import repair_unescaped_quotes
from structgen.schema.target import BooleanSchema, DefaultSchema, EnumSchema, NumberSchema, OptionalSchema, RecordSchema, SequenceSchema, StringSchema, TargetSchema, unwrap
from structgen.schema.validation import ValidationOutcome, validate_against_schema
from structgen.telemetry.diagnostics import DEFAULT_SINK, DiagnosticEvent, DiagnosticSink, preview

logger = logging.getLogger(__name__)

_ENUM_SEPARATOR_RE = re.compile(r"[\s_-]+")


def _normalize_enum(value: str) -> str:
  return _ENUM_SEPARATOR_RE.sub("_", value.lower())


def _child_path(path: str, part: str | int) -> str:
  if path == "":
    return str(part)
  return f"{path}.{part}"


def _parse_embedded(text: str) -> tuple[bool, Any]:
  """Decode a JSON string nested inside a value, retrying once after quote repair."""
  try:
    return True, json.loads(text)
  except (ValueError, RecursionError):
    pass

  repaired = repair_unescaped_quotes(text)
  if repaired == text:
    return False, None

  try:
    return True, json.loads(repaired)
  except (ValueError, RecursionError):
    return False, None


class _Coercer:
  """Walk a raw value alongside its schema, emitting a diagnostic per decision."""

  def __init__(self, sink: DiagnosticSink) -> None:
    self._sink = sink

  def _emit(self, kind: str, path: str, **details: Any) -> None:
    self._sink.emit(DiagnosticEvent(kind=kind, path=path, details=details))

  def coerce(self, raw: Any, schema: TargetSchema, path: str) -> Any:
    if isinstance(schema, (OptionalSchema, DefaultSchema)):
      if raw is None:
        return None
      return self.coerce(raw, schema.inner, path)

    if isinstance(schema, StringSchema):
      return self._coerce_string(raw, path)
    if isinstance(schema, NumberSchema):
      return self._coerce_number(raw, path)
    if isinstance(schema, BooleanSchema):
      return self._coerce_boolean(raw, path)
    if isinstance(schema, EnumSchema):
      return self._coerce_enum(raw, schema, path)
    if isinstance(schema, SequenceSchema):
      return self._coerce_sequence(raw, schema, path)
    if isinstance(schema, RecordSchema):
      return self._coerce_record(raw, schema, path)

    return raw

  def _coerce_string(self, raw: Any, path: str) -> Any:
    if raw is None or isinstance(raw, str):
      return raw

    if isinstance(raw, (dict, list)):
      self._emit("stringified_container", path, container=type(raw).__name__)
      try:
        return json.dumps(raw, ensure_ascii=False)
      except (TypeError, ValueError):
        return str(raw)

    if isinstance(raw, bool):
      return "true" if raw else "false"

    return str(raw)

  def _coerce_number(self, raw: Any, path: str) -> Any:
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
      return raw

    if not isinstance(raw, str):
      return raw

    text = raw.strip()
    # Digit separators are Python syntax, not JSON numbers.
    if "_" in text:
      return raw

    try:
      parsed: int | float = int(text)
    except ValueError:
      try:
        parsed = float(text)
      except ValueError:
        return raw

    if isinstance(parsed, float) and not math.isfinite(parsed):
      return raw

    self._emit("numeric_string", path, raw=preview(raw))
    return parsed

  def _coerce_boolean(self, raw: Any, path: str) -> Any:
    if raw == "true":
      self._emit("boolean_string", path, raw=raw)
      return True

    if raw == "false":
      self._emit("boolean_string", path, raw=raw)
      return False

    return raw

  def _coerce_enum(self, raw: Any, schema: EnumSchema, path: str) -> Any:
    if not isinstance(raw, str) or raw in schema.options:
      return raw

    normalized = _normalize_enum(raw)
    for option in schema.options:
      if _normalize_enum(option) == normalized:
        self._emit("enum_normalized", path, raw=preview(raw), matched=option)
        return option

    # e.g. "code" -> "code_block"
    for option in schema.options:
      if option in raw or raw in option:
        self._emit("enum_substring", path, raw=preview(raw), matched=option)
        return option

    self._emit("enum_unmatched", path, raw=preview(raw), options=list(schema.options))
    return raw

  def _coerce_sequence(self, raw: Any, schema: SequenceSchema, path: str) -> Any:
    if isinstance(raw, str):
      ok, parsed = _parse_embedded(raw)
      if ok and isinstance(parsed, list):
        self._emit("parsed_stringified_sequence", path, count=len(parsed))
        raw = parsed

    if not isinstance(raw, list):
      self._emit("defaulted_sequence", path, raw=preview(raw))
      return []

    return [self.coerce(item, schema.element, _child_path(path, index)) for index, item in enumerate(raw)]

  def _coerce_record(self, raw: Any, schema: RecordSchema, path: str) -> Any:
    if isinstance(raw, str):
      ok, parsed = _parse_embedded(raw)
      if ok and isinstance(parsed, dict):
        self._emit("parsed_stringified_record", path, keys=len(parsed))
        return self._coerce_record(parsed, schema, path)

    if not isinstance(raw, dict):
      return raw

    result: dict[str, Any] = {}
    declared = schema.field_map()

    for key, field_schema in schema.fields:
      field_path = _child_path(path, key)
      value = raw.get(key)

      if value is not None:
        result[key] = self.coerce(value, field_schema, field_path)
        continue

      # Optional and defaulted fields are omitted so validation can apply its defaults.
      if isinstance(field_schema, (OptionalSchema, DefaultSchema)):
        if key in raw:
          self._emit("omitted_null_field", field_path)
        continue

      if isinstance(unwrap(field_schema), SequenceSchema):
        self._emit("defaulted_sequence", field_path, raw=preview(value))
        result[key] = []
        continue

      # Explicit nulls on required fields stay so validation reports them.
      if key in raw:
        result[key] = None

    dropped = [key for key in raw if key not in declared]
    if dropped:
      self._emit("dropped_keys", path, keys=dropped[:10], count=len(dropped))

    return result


def coerce_to_schema(raw: Any, schema: TargetSchema, *, sink: DiagnosticSink | None = None) -> Any:
  """Coerce a raw candidate toward the schema.

  Never raises. Values that cannot be coerced are returned untouched so
  validation can report them.
  """
  coercer = _Coercer(sink or DEFAULT_SINK)

  try:
    return coercer.coerce(raw, schema, "")
  except Exception as exc:  # noqa: BLE001
    logger.warning("Coercion aborted, returning raw value: %s", exc)
    return raw


def try_coerce_and_validate(raw: Any, schema: TargetSchema, *, sink: DiagnosticSink | None = None) -> ValidationOutcome:
  """Coerce a raw candidate and validate the result."""
  active_sink = sink or DEFAULT_SINK
  coerced = coerce_to_schema(raw, schema, sink=active_sink)

  if isinstance(coerced, dict):
    active_sink.emit(DiagnosticEvent(kind="coerced_shape", path="", details={"keys": list(coerced)[:20]}))

  outcome = validate_against_schema(coerced, schema)

  if not outcome.ok:
    logger.debug("Validation failed with %d issues after coercion", len(outcome.issues))
    for issue in outcome.issues:
      active_sink.emit(DiagnosticEvent(kind="validation_issue", path=issue.dotted_path, details={"code": issue.code, "message": issue.message}))

  return outcome
