"""Shared fixtures for the structgen test suite."""

from __future__ import annotations

import pytest

from structgen.config import Settings


# Force anyio to use asyncio
@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def settings(tmp_path):
  return Settings(
    environment="test",
    debug=False,
    log_level="INFO",
    log_dir=str(tmp_path / "logs"),
    log_max_bytes=1024 * 1024,
    log_backup_count=1,
    pg_dsn=None,
    generation_log_enabled=False,
    sensitive_ttl_hours=24.0,
    inline_redaction_chars=800,
    prompt_redaction_chars=1200,
    raw_text_max_chars=200 * 1024,
    retry_max_attempts=3,
    batch_concurrency=3,
    checkpoint_dir=str(tmp_path / "checkpoints"),
  )
