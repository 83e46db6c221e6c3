"""Outcome resolution and audit logging for one generation attempt."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

from structgen.ai.errors import FailureKind
from structgen.ai.providers.registry import provider_for_model
from structgen.ai.recovery import Layer0Report, Layer1Report, Layer2Report, RepairAttemptRecord
from structgen.config import Settings, get_settings
from structgen.storage.generation_log_repo import GenerationLogRecord, GenerationLogSink
from structgen.telemetry.retention import sensitive_text_expiry
from structgen.telemetry.sanitizer import SanitizedText, prompt_hash, sanitize_prompt_for_persistence, sanitize_text_for_persistence

logger = logging.getLogger(__name__)

GenerationOutcome = Literal["success", "repaired_layer0", "repaired_layer1", "repaired_layer2", "failed"]

_LAYER0_ACCEPTED = ("coercion-success", "unwrapped-only")


@dataclass(frozen=True)
class GenerationLogContext:
  """Identifying context stored with every audit record."""

  generation_type: str
  schema_name: str
  model_id: str
  user_id: str | None = None
  course_id: str | None = None
  item_id: str | None = None
  language: str | None = None
  difficulty: str | None = None
  prompt_text: str | None = None
  attempt: int = 1


@dataclass
class OutcomeState:
  """Recorded layer state; the outcome is derived from it and never set directly."""

  layer0_called: bool = False
  layer0_result: str | None = None
  layer0_error: str | None = None
  layer0_raw_text: str | None = None
  layer0_raw_text_length: int = 0
  layer0_wrapper_type: str | None = None
  invocation_succeeded: bool | None = None
  layer1_called: bool = False
  layer1_success: bool = False
  layer1_had_wrapper: bool = False
  layer1_wrapper_type: str | None = None
  layer1_raw_text: str | None = None
  layer2_called: bool = False
  layer2_success: bool = False
  layer2_model_id: str | None = None
  error_message: str | None = None
  issues: list[dict[str, Any]] = field(default_factory=list)


def resolve_outcome(state: OutcomeState) -> GenerationOutcome:
  """Derive the outcome from recorded layer state."""
  if state.layer2_called and state.layer2_success:
    return "repaired_layer2"

  if state.layer1_called and state.layer1_success:
    return "repaired_layer1"

  further_layers = state.layer1_called or state.layer2_called

  # An unwrapped-only repair counts when the invocation accepted the unwrapped payload.
  if state.layer0_called and state.layer0_result in _LAYER0_ACCEPTED and not further_layers and state.invocation_succeeded is not False:
    return "repaired_layer0"

  if further_layers:
    return "failed"

  if state.layer0_called and (state.layer0_result not in _LAYER0_ACCEPTED or state.invocation_succeeded is False):
    return "failed"

  if state.error_message or state.invocation_succeeded is False:
    return "failed"

  return "success"


def _truncate_raw_text(text: str | None, max_chars: int) -> str | None:
  if text is None or len(text) <= max_chars:
    return text
  omitted = len(text) - max_chars
  return text[:max_chars] + f"\n[TRUNCATED: {omitted} chars omitted]"


def _resolve_provider(model_id: str) -> str:
  try:
    return provider_for_model(model_id)
  except ValueError:
    return "unknown"


class GenerationLogger:
  """Collect layer results for one attempt and write a single sanitized audit record."""

  def __init__(self, context: GenerationLogContext, *, sink: GenerationLogSink | None = None, settings: Settings | None = None, clock: Callable[[], datetime] | None = None) -> None:
    self.context = context
    self.state = OutcomeState()
    self._sink = sink
    self._settings = settings or get_settings()
    self._clock = clock or (lambda: datetime.now(UTC))
    self._started_at = self._clock()
    self._finalized = False
    # Set when the sink rejected the record.
    self.persistence_failure: FailureKind | None = None

  @property
  def finalized(self) -> bool:
    return self._finalized

  def record_layer0(self, report: Layer0Report) -> None:
    """Record what the in-flight repair hook did. Safe when the hook never fired."""
    self.state.layer0_called = report.invoked
    self.state.layer0_result = report.result
    self.state.layer0_error = report.error
    self.state.layer0_raw_text = report.raw_text
    self.state.layer0_raw_text_length = report.raw_text_length
    self.state.layer0_wrapper_type = report.wrapper_type
    self.state.invocation_succeeded = report.invocation_succeeded
    self._add_issues(0, report.issues)

  def record_layer1(self, report: Layer1Report) -> None:
    if not report.invoked:
      return
    self.state.layer1_called = True
    self.state.layer1_success = report.result == "success"
    self.state.layer1_had_wrapper = report.had_wrapper
    self.state.layer1_wrapper_type = report.wrapper_type
    self.state.layer1_raw_text = report.raw_text
    self._add_issues(1, report.issues)

  def record_layer2(self, report: Layer2Report) -> None:
    if not report.invoked:
      return
    self.state.layer2_called = True
    self.state.layer2_success = report.result == "success"
    self.state.layer2_model_id = report.model_id
    self._add_issues(2, report.issues)

  def record_failure(self, error_message: str) -> None:
    self.state.error_message = error_message

  def record_attempt(self, record: RepairAttemptRecord) -> None:
    """Record every layer from a finished recovery run."""
    self.record_layer0(record.layer0)
    self.record_layer1(record.layer1)
    self.record_layer2(record.layer2)

  def resolve_outcome(self) -> GenerationOutcome:
    return resolve_outcome(self.state)

  def _add_issues(self, layer: int, issues: list[Any]) -> None:
    for issue in issues:
      self.state.issues.append({"layer": layer, **issue.to_dict()})

  def _raw_text(self) -> tuple[str | None, int]:
    # Layer 1 captures the text from the invocation error itself.
    if self.state.layer1_raw_text:
      return self.state.layer1_raw_text, len(self.state.layer1_raw_text)
    if self.state.layer0_raw_text:
      return self.state.layer0_raw_text, self.state.layer0_raw_text_length
    return None, 0

  def build_record(self) -> GenerationLogRecord:
    """Assemble the sanitized record without persisting it."""
    settings = self._settings
    outcome = self.resolve_outcome()
    now = self._clock()
    duration_ms = max(int((now - self._started_at).total_seconds() * 1000), 0)
    raw_text, raw_length = self._raw_text()

    raw_sanitized = sanitize_text_for_persistence(raw_text, "rawOutput", inline_max_chars=settings.inline_redaction_chars)

    # Prompt text is only worth keeping when something went wrong.
    if outcome != "success":
      prompt_sanitized = sanitize_prompt_for_persistence(self.context.prompt_text, long_block_chars=settings.prompt_redaction_chars)
    else:
      prompt_sanitized = SanitizedText(sanitized=None, redacted=False, hash=prompt_hash(self.context.prompt_text))

    has_sensitive_payload = bool(raw_sanitized.sanitized or prompt_sanitized.sanitized)
    expires_at = sensitive_text_expiry(settings.sensitive_ttl_hours, now=now) if has_sensitive_payload else None

    return GenerationLogRecord(
      generation_type=self.context.generation_type,
      schema_name=self.context.schema_name,
      model_id=self.context.model_id,
      provider=_resolve_provider(self.context.model_id),
      outcome=outcome,
      attempt=self.context.attempt,
      started_at=self._started_at,
      duration_ms=duration_ms,
      user_id=self.context.user_id,
      course_id=self.context.course_id,
      item_id=self.context.item_id,
      language=self.context.language,
      difficulty=self.context.difficulty,
      layer0_called=self.state.layer0_called,
      layer0_result=self.state.layer0_result,
      layer0_error=self.state.layer0_error,
      layer1_called=self.state.layer1_called,
      layer1_success=self.state.layer1_success,
      layer1_had_wrapper=self.state.layer1_had_wrapper,
      wrapper_type=self.state.layer1_wrapper_type or self.state.layer0_wrapper_type,
      layer2_called=self.state.layer2_called,
      layer2_success=self.state.layer2_success,
      layer2_model_id=self.state.layer2_model_id,
      raw_output_text=_truncate_raw_text(raw_sanitized.sanitized, settings.raw_text_max_chars),
      raw_output_len=raw_length if raw_length > 0 else None,
      raw_output_redacted=raw_sanitized.redacted,
      schema_issues=json.dumps(self.state.issues) if self.state.issues else None,
      error_message=self.state.error_message,
      prompt_hash=prompt_sanitized.hash,
      prompt_text=prompt_sanitized.sanitized,
      prompt_redacted=prompt_sanitized.redacted,
      sensitive_text_expires_at=expires_at,
    )

  async def finalize(self) -> GenerationLogRecord | None:
    """Write the audit record once. Later calls are no-ops; sink failures are logged, never raised."""
    if self._finalized:
      return None
    self._finalized = True

    try:
      record = self.build_record()
    except Exception as exc:  # noqa: BLE001
      logger.warning("Failed to build generation log record: %s", exc)
      return None

    logger.info("Generation %s/%s attempt %d finished with outcome=%s in %dms", record.generation_type, record.schema_name, record.attempt, record.outcome, record.duration_ms)

    if self._sink is None:
      return record

    try:
      await self._sink.append(record)
    except Exception as exc:  # noqa: BLE001
      self.persistence_failure = FailureKind.PERSISTENCE_FAILURE
      logger.warning("Failed to persist generation log record (%s): %s", self.persistence_failure.value, exc)

    return record
