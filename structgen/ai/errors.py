"""Failure taxonomy for structured generation."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
  from structgen.ai.recovery import RepairAttemptRecord


class FailureKind(str, Enum):
  MALFORMED_OUTPUT = "malformed_output"
  RATE_LIMITED = "rate_limited"
  OVERLOADED = "overloaded"
  TRANSIENT = "transient"
  NO_RAW_TEXT = "no_raw_text"
  ALL_LAYERS_EXHAUSTED = "all_layers_exhausted"
  PERSISTENCE_FAILURE = "persistence_failure"


class ModelOutputError(RuntimeError):
  """Raised by a model invoker when the provider produced output that could not be used."""

  def __init__(self, message: str, *, raw_text: str | None = None) -> None:
    super().__init__(message)
    self.raw_text = raw_text

  @property
  def raw_text_length(self) -> int:
    if self.raw_text is None:
      return 0
    return len(self.raw_text)


class GenerationFailedError(RuntimeError):
  """Raised when every recovery layer failed for one generation attempt."""

  def __init__(self, message: str, *, kind: FailureKind, record: RepairAttemptRecord, cause: BaseException | None = None, issues: list[dict[str, Any]] | None = None) -> None:
    """Store the original failure message alongside the full repair diagnostics."""
    super().__init__(message)
    self.kind = kind
    self.record = record
    self.cause = cause
    # Serialized schema issues from every layer that ran.
    self.issues = issues or []
