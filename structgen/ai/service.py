"""Entry points for schema-valid generation with recovery, audit logging and retry."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING, Any

from structgen.ai.backoff import AttemptReport, RetryPolicy, retry_with_backoff
from structgen.ai.errors import FailureKind, GenerationFailedError
from structgen.ai.providers.base import ModelInvoker
from structgen.ai.providers.registry import ProviderCredentials, provider_options_for
from structgen.ai.recovery import RecoveryOrchestrator, RepairAttemptRecord
from structgen.config import Settings, get_settings
from structgen.schema.target import RecordSchema, TargetSchema
from structgen.storage.generation_log_repo import GenerationLogRecord, GenerationLogSink
from structgen.telemetry.diagnostics import DiagnosticSink
from structgen.telemetry.generation_log import GenerationLogContext, GenerationLogger, GenerationOutcome

if TYPE_CHECKING:
  from structgen.storage.postgres_generation_log_repo import PostgresGenerationLogRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationRequest:
  """Prompt, target schema and model for one logical generation, plus audit context."""

  prompt: str
  schema: TargetSchema
  model_id: str
  generation_type: str
  schema_name: str | None = None
  user_id: str | None = None
  course_id: str | None = None
  item_id: str | None = None
  language: str | None = None
  difficulty: str | None = None
  provider_options: dict[str, Any] | None = None

  def resolved_schema_name(self) -> str:
    if self.schema_name:
      return self.schema_name
    if isinstance(self.schema, RecordSchema):
      return self.schema.name
    return type(self.schema).__name__

  def log_context(self, attempt: int) -> GenerationLogContext:
    return GenerationLogContext(
      generation_type=self.generation_type,
      schema_name=self.resolved_schema_name(),
      model_id=self.model_id,
      user_id=self.user_id,
      course_id=self.course_id,
      item_id=self.item_id,
      language=self.language,
      difficulty=self.difficulty,
      prompt_text=self.prompt,
      attempt=attempt,
    )


@dataclass(frozen=True)
class GenerationResult:
  value: Any
  outcome: GenerationOutcome
  record: RepairAttemptRecord
  log_record: GenerationLogRecord | None = None


@lru_cache(maxsize=4)
def _get_postgres_sink(dsn: str, echo: bool) -> PostgresGenerationLogRepository:
  """Cache one repository per DSN so repeated attempts reuse the session factory."""
  from structgen.storage.postgres_generation_log_repo import PostgresGenerationLogRepository

  return PostgresGenerationLogRepository(dsn=dsn, echo=echo)


def default_generation_log_sink(settings: Settings | None = None) -> GenerationLogSink | None:
  """Return the Postgres sink when audit logging is enabled and a DSN is configured.

  A sink that cannot be built is logged and skipped; audit logging never fails a generation.
  """
  active = settings or get_settings()

  if not active.generation_log_enabled or not active.pg_dsn:
    return None

  try:
    return _get_postgres_sink(active.pg_dsn, active.debug)
  except Exception as exc:  # noqa: BLE001
    logger.warning("Generation log sink unavailable (%s): %s", FailureKind.PERSISTENCE_FAILURE.value, exc)
    return None


async def generate_with_repair(
  invoker: ModelInvoker,
  request: GenerationRequest,
  *,
  credentials: ProviderCredentials,
  log_sink: GenerationLogSink | None = None,
  settings: Settings | None = None,
  diagnostics: DiagnosticSink | None = None,
  attempt: int = 1,
) -> GenerationResult:
  """Run one generation attempt through every recovery layer and write one audit record.

  Raises GenerationFailedError, carrying the repair record, when no layer
  produced a schema-valid value.
  """
  active_settings = settings or get_settings()
  sink = log_sink if log_sink is not None else default_generation_log_sink(active_settings)
  generation_logger = GenerationLogger(request.log_context(attempt), sink=sink, settings=active_settings)
  orchestrator = RecoveryOrchestrator(invoker, sink=diagnostics)
  provider_options = request.provider_options if request.provider_options is not None else provider_options_for(request.model_id)

  try:
    result = await orchestrator.run(model_id=request.model_id, prompt=request.prompt, schema=request.schema, credentials=credentials, provider_options=provider_options)
  except GenerationFailedError as exc:
    generation_logger.record_attempt(exc.record)
    generation_logger.record_failure(str(exc))
    await generation_logger.finalize()
    raise

  generation_logger.record_attempt(result.record)
  log_record = await generation_logger.finalize()
  return GenerationResult(value=result.value, outcome=generation_logger.resolve_outcome(), record=result.record, log_record=log_record)


async def generate_with_retry(
  invoker: ModelInvoker,
  request: GenerationRequest,
  *,
  credentials: ProviderCredentials,
  policy: RetryPolicy | None = None,
  log_sink: GenerationLogSink | None = None,
  settings: Settings | None = None,
  diagnostics: DiagnosticSink | None = None,
  observer: Callable[[AttemptReport], None] | None = None,
  sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> GenerationResult:
  """Retry generate_with_repair with classified backoff; each attempt writes its own audit record."""
  active_settings = settings or get_settings()
  active_policy = policy or RetryPolicy(max_attempts=active_settings.retry_max_attempts)

  async def _attempt(attempt: int) -> GenerationResult:
    return await generate_with_repair(invoker, request, credentials=credentials, log_sink=log_sink, settings=active_settings, diagnostics=diagnostics, attempt=attempt)

  label = f"{request.generation_type}:{request.resolved_schema_name()}"
  return await retry_with_backoff(_attempt, policy=active_policy, label=label, observer=observer, sleep=sleep)
