"""Layered recovery for structured generation.

Layer 0 runs inside the model invocation through a repair hook. Layer 1
coerces the raw text captured from a failed invocation. Layer 2 asks the
cheapest credentialed model to repack that raw text into the schema.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Literal

from structgen.ai.coercion import try_coerce_and_validate
from structgen.ai.envelopes import unwrap_envelope
from structgen.ai.errors import FailureKind, GenerationFailedError
from structgen.ai.json_repair import parse_json_lenient
from structgen.ai.prompts import render_repack_prompt
from structgen.ai.providers.base import InvocationFailure, ModelInvoker, RepairHook, failure_from_exception
from structgen.ai.providers.registry import ProviderCredentials, cheapest_model, provider_options_for
from structgen.schema.target import TargetSchema
from structgen.schema.validation import SchemaIssue, validate_against_schema
from structgen.telemetry.diagnostics import DEFAULT_SINK, DiagnosticEvent, DiagnosticSink

logger = logging.getLogger(__name__)

Layer0Result = Literal["coercion-success", "unwrapped-only", "json-parse-failed", "returned-null"]
Layer1Result = Literal["success", "validation_failed", "parse_failed"]
Layer2Result = Literal["success", "failed"]


@dataclass
class Layer0Report:
  """What the in-flight repair hook saw and decided."""

  invoked: bool = False
  result: Layer0Result | None = None
  raw_text: str | None = None
  raw_text_length: int = 0
  had_wrapper: bool = False
  wrapper_type: str | None = None
  error: str | None = None
  issues: list[SchemaIssue] = field(default_factory=list)
  # None until the invocation returns or raises.
  invocation_succeeded: bool | None = None


@dataclass
class Layer1Report:
  invoked: bool = False
  result: Layer1Result | None = None
  raw_text: str | None = None
  had_wrapper: bool = False
  wrapper_type: str | None = None
  error: str | None = None
  issues: list[SchemaIssue] = field(default_factory=list)


@dataclass
class Layer2Report:
  invoked: bool = False
  result: Layer2Result | None = None
  model_id: str | None = None
  error: str | None = None
  issues: list[SchemaIssue] = field(default_factory=list)


@dataclass
class RepairAttemptRecord:
  """Everything one generation attempt learned across the recovery layers."""

  layer0: Layer0Report = field(default_factory=Layer0Report)
  layer1: Layer1Report = field(default_factory=Layer1Report)
  layer2: Layer2Report = field(default_factory=Layer2Report)
  failure: InvocationFailure | None = None
  diagnostics: list[DiagnosticEvent] = field(default_factory=list)

  def serialized_issues(self) -> list[dict[str, Any]]:
    """Flatten schema issues from every layer, tagging each with its layer number."""
    serialized: list[dict[str, Any]] = []
    for layer, issues in ((0, self.layer0.issues), (1, self.layer1.issues), (2, self.layer2.issues)):
      for issue in issues:
        serialized.append({"layer": layer, **issue.to_dict()})
    return serialized


@dataclass(frozen=True)
class RecoveryResult:
  value: Any
  record: RepairAttemptRecord


class _RecordingSink:
  """Attach diagnostics to the attempt record while forwarding them downstream."""

  def __init__(self, record: RepairAttemptRecord, downstream: DiagnosticSink) -> None:
    self._record = record
    self._downstream = downstream

  def emit(self, event: DiagnosticEvent) -> None:
    self._record.diagnostics.append(event)
    self._downstream.emit(event)


def make_repair_hook(schema: TargetSchema, report: Layer0Report, *, sink: DiagnosticSink | None = None) -> RepairHook:
  """Build the hook an invoker calls when its own parse of the response fails.

  The hook returns replacement JSON text, or None when it could not help.
  """
  active_sink = sink or DEFAULT_SINK

  async def repair(text: str, error_message: str) -> str | None:
    report.invoked = True
    report.raw_text = text
    report.raw_text_length = len(text)
    report.error = error_message
    logger.info("Layer 0 repair invoked; raw text length=%d error=%s", len(text), error_message)

    try:
      parsed = parse_json_lenient(text)
    except (ValueError, RecursionError) as exc:
      logger.info("Layer 0 JSON parse failed: %s", exc)
      report.result = "json-parse-failed"
      report.error = str(exc)
      return None

    unwrapped, was_wrapped, wrapper_type = unwrap_envelope(parsed)
    if was_wrapped:
      report.had_wrapper = True
      report.wrapper_type = wrapper_type

    outcome = try_coerce_and_validate(unwrapped, schema, sink=active_sink)
    if outcome.ok:
      report.result = "coercion-success"
      return json.dumps(outcome.value)

    report.issues = list(outcome.issues)

    # Hand back the unwrapped payload so the invoker reports the real validation error.
    if was_wrapped:
      report.result = "unwrapped-only"
      return json.dumps(unwrapped)

    report.result = "returned-null"
    return None

  return repair


class RecoveryOrchestrator:
  """Run one generation attempt through layers 0, 1 and 2."""

  def __init__(self, invoker: ModelInvoker, *, sink: DiagnosticSink | None = None) -> None:
    self._invoker = invoker
    self._sink = sink or DEFAULT_SINK

  async def run(self, *, model_id: str, prompt: str, schema: TargetSchema, credentials: ProviderCredentials, provider_options: dict[str, Any] | None = None) -> RecoveryResult:
    """Return the schema-valid value or raise GenerationFailedError carrying the attempt record."""
    record = RepairAttemptRecord()
    sink = _RecordingSink(record, self._sink)
    hook = make_repair_hook(schema, record.layer0, sink=sink)

    try:
      value = await self._invoker.invoke(model_id=model_id, prompt=prompt, schema=schema, credentials=credentials, provider_options=provider_options, repair_hook=hook)
    except Exception as exc:
      failure = failure_from_exception(exc)
    else:
      record.layer0.invocation_succeeded = True
      return RecoveryResult(value=value, record=record)

    record.layer0.invocation_succeeded = False
    record.failure = failure
    logger.warning("Invocation of %s failed (%s): %s (raw text length=%d)", model_id, failure.kind.value, failure.message, failure.raw_text_length)

    # Hard failures (network, auth) leave nothing to repair.
    if failure.kind == FailureKind.NO_RAW_TEXT:
      raise GenerationFailedError(failure.message, kind=failure.kind, record=record, cause=failure.error, issues=record.serialized_issues()) from failure.error

    value = self._run_layer1(failure.raw_text or "", schema, record, sink)
    if record.layer1.result == "success":
      return RecoveryResult(value=value, record=record)

    value = await self._run_layer2(failure.raw_text or "", schema, credentials, record)
    if record.layer2.result == "success":
      return RecoveryResult(value=value, record=record)

    raise GenerationFailedError(failure.message, kind=FailureKind.ALL_LAYERS_EXHAUSTED, record=record, cause=failure.error, issues=record.serialized_issues()) from failure.error

  def _run_layer1(self, raw_text: str, schema: TargetSchema, record: RepairAttemptRecord, sink: DiagnosticSink) -> Any:
    report = record.layer1
    report.invoked = True
    report.raw_text = raw_text

    try:
      parsed = parse_json_lenient(raw_text)
    except (ValueError, RecursionError) as exc:
      logger.info("Layer 1 could not parse raw text: %s", exc)
      report.result = "parse_failed"
      report.error = str(exc)
      return None

    unwrapped, was_wrapped, wrapper_type = unwrap_envelope(parsed)
    if was_wrapped:
      report.had_wrapper = True
      report.wrapper_type = wrapper_type

    outcome = try_coerce_and_validate(unwrapped, schema, sink=sink)
    if outcome.ok:
      logger.info("Layer 1 direct coercion succeeded")
      report.result = "success"
      return outcome.value

    report.result = "validation_failed"
    report.issues = list(outcome.issues)
    logger.info("Layer 1 validation failed with %d issues", len(outcome.issues))
    return None

  async def _run_layer2(self, raw_text: str, schema: TargetSchema, credentials: ProviderCredentials, record: RepairAttemptRecord) -> Any:
    report = record.layer2
    repack_model = cheapest_model(credentials)

    if repack_model is None:
      logger.warning("Layer 2 skipped; no credentials for any repack model")
      return None

    report.invoked = True
    report.model_id = repack_model
    prompt = render_repack_prompt(raw_text, schema)

    try:
      repacked = await self._invoker.invoke(model_id=repack_model, prompt=prompt, schema=schema, credentials=credentials, provider_options=provider_options_for(repack_model))
    except Exception as exc:  # noqa: BLE001
      logger.warning("Layer 2 repack with %s failed: %s", repack_model, exc)
      report.result = "failed"
      report.error = str(exc)
      return None

    outcome = validate_against_schema(repacked, schema)
    if outcome.ok:
      logger.info("Layer 2 repack with %s succeeded", repack_model)
      report.result = "success"
      return outcome.value

    report.result = "failed"
    report.issues = list(outcome.issues)
    return None
