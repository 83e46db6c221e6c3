"""Postgres-backed sink for generation audit records using SQLAlchemy."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from structgen.core.database import create_session_factory, get_session_factory
from structgen.schema.generation_log import AiGenerationLog
from structgen.storage.generation_log_repo import GenerationLogRecord

logger = logging.getLogger(__name__)


class PostgresGenerationLogRepository:
  """Persist generation audit records into Postgres for later analysis."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None, *, dsn: str | None = None, echo: bool = False) -> None:
    if session_factory is None and dsn:
      session_factory = create_session_factory(dsn, echo=echo)
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def append(self, record: GenerationLogRecord) -> None:
    """Insert one finalized record; rows are never updated afterwards by this layer."""
    async with self._session_factory() as session:
      row = AiGenerationLog(
        generation_type=record.generation_type,
        schema_name=record.schema_name,
        model_id=record.model_id,
        provider=record.provider,
        outcome=record.outcome,
        attempt=record.attempt,
        started_at=record.started_at,
        duration_ms=record.duration_ms,
        user_id=record.user_id,
        course_id=record.course_id,
        item_id=record.item_id,
        language=record.language,
        difficulty=record.difficulty,
        layer0_called=record.layer0_called,
        layer0_result=record.layer0_result,
        layer0_error=record.layer0_error,
        layer1_called=record.layer1_called,
        layer1_success=record.layer1_success,
        layer1_had_wrapper=record.layer1_had_wrapper,
        wrapper_type=record.wrapper_type,
        layer2_called=record.layer2_called,
        layer2_success=record.layer2_success,
        layer2_model_id=record.layer2_model_id,
        raw_output_text=record.raw_output_text,
        raw_output_len=record.raw_output_len,
        raw_output_redacted=record.raw_output_redacted,
        schema_issues=record.schema_issues,
        error_message=record.error_message,
        prompt_hash=record.prompt_hash,
        prompt_text=record.prompt_text,
        prompt_redacted=record.prompt_redacted,
        sensitive_text_expires_at=record.sensitive_text_expires_at,
      )
      session.add(row)
      await session.flush()
      await session.commit()
      logger.debug("Inserted generation log record %s (outcome=%s)", row.id, record.outcome)
