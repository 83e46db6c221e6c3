from __future__ import annotations

import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from structgen.core.database import Base


class AiGenerationLog(Base):
  __tablename__ = "ai_generation_log"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  generation_type: Mapped[str] = mapped_column(String, nullable=False)
  schema_name: Mapped[str] = mapped_column(String, nullable=False)
  model_id: Mapped[str] = mapped_column(String, nullable=False)
  provider: Mapped[str] = mapped_column(String, nullable=False)
  outcome: Mapped[str] = mapped_column(String, nullable=False, index=True)
  attempt: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
  started_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  duration_ms: Mapped[int] = mapped_column(Integer, nullable=False)
  user_id: Mapped[str | None] = mapped_column(String, nullable=True)
  course_id: Mapped[str | None] = mapped_column(String, nullable=True)
  item_id: Mapped[str | None] = mapped_column(String, nullable=True)
  language: Mapped[str | None] = mapped_column(String, nullable=True)
  difficulty: Mapped[str | None] = mapped_column(String, nullable=True)
  layer0_called: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  layer0_result: Mapped[str | None] = mapped_column(String, nullable=True)
  layer0_error: Mapped[str | None] = mapped_column(Text, nullable=True)
  layer1_called: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  layer1_success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  layer1_had_wrapper: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  wrapper_type: Mapped[str | None] = mapped_column(String, nullable=True)
  layer2_called: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  layer2_success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  layer2_model_id: Mapped[str | None] = mapped_column(String, nullable=True)
  raw_output_text: Mapped[str | None] = mapped_column(Text, nullable=True)
  raw_output_len: Mapped[int | None] = mapped_column(Integer, nullable=True)
  raw_output_redacted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  schema_issues: Mapped[str | None] = mapped_column(Text, nullable=True)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  prompt_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
  prompt_text: Mapped[str | None] = mapped_column(Text, nullable=True)
  prompt_redacted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  sensitive_text_expires_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
  # Set by the retention sweep when sensitive text is purged.
  sensitive_text_redacted_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
