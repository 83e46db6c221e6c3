"""Storage interfaces for generation audit records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol


@dataclass(frozen=True)
class GenerationLogRecord:
  """One finalized generation attempt, with sensitive text already sanitized."""

  generation_type: str
  schema_name: str
  model_id: str
  provider: str
  outcome: str
  attempt: int
  started_at: datetime
  duration_ms: int
  user_id: str | None
  course_id: str | None
  item_id: str | None
  language: str | None
  difficulty: str | None
  layer0_called: bool
  layer0_result: str | None
  layer0_error: str | None
  layer1_called: bool
  layer1_success: bool
  layer1_had_wrapper: bool
  wrapper_type: str | None
  layer2_called: bool
  layer2_success: bool
  layer2_model_id: str | None
  raw_output_text: str | None
  raw_output_len: int | None
  raw_output_redacted: bool
  schema_issues: str | None
  error_message: str | None
  prompt_hash: str | None
  prompt_text: str | None
  prompt_redacted: bool
  sensitive_text_expires_at: datetime | None


class GenerationLogSink(Protocol):
  """Append-only destination for generation audit records."""

  async def append(self, record: GenerationLogRecord) -> None:
    """Persist one record. May raise; callers swallow failures."""


class InMemoryGenerationLogSink:
  """Keep records in a list for tests and local runs."""

  def __init__(self) -> None:
    self.records: list[GenerationLogRecord] = []

  async def append(self, record: GenerationLogRecord) -> None:
    self.records.append(record)
