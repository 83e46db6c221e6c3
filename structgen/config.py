"""Runtime configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from structgen.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the structured-generation resilience layer."""

  environment: str
  debug: bool
  log_level: str
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  pg_dsn: str | None
  generation_log_enabled: bool
  sensitive_ttl_hours: float
  inline_redaction_chars: int
  prompt_redaction_chars: int
  raw_text_max_chars: int
  retry_max_attempts: int
  batch_concurrency: int
  checkpoint_dir: str


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None


_TRUTHY = {"1", "true", "yes", "on"}


def _parse_bool(raw: str | None) -> bool:
  """Treat 1/true/yes/on (any case) as enabled; anything else, including unset, as disabled."""
  return raw is not None and raw.strip().lower() in _TRUTHY


def _optional_str(raw: str | None) -> str | None:
  """Blank values count as unset."""
  return (raw or "").strip() or None


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _sensitive_ttl_hours() -> float:
  """Resolve the retention window for sensitive payloads, falling back to 24 hours."""
  raw = _optional_str(os.getenv("STRUCTGEN_SENSITIVE_TTL_HOURS")) or _optional_str(os.getenv("AI_LOG_SENSITIVE_TTL_HOURS"))

  if raw is None:
    return 24.0

  try:
    hours = float(raw)
  except ValueError:
    return 24.0

  # Non-positive windows would expire payloads before they are written.
  if hours <= 0:
    return 24.0

  return hours


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("STRUCTGEN_ENV", "development").lower()
  debug = _parse_bool(os.getenv("STRUCTGEN_DEBUG"))
  log_level = (os.getenv("STRUCTGEN_LOG_LEVEL") or ("DEBUG" if debug else "INFO")).strip().upper()

  log_max_bytes = _positive_int("STRUCTGEN_LOG_MAX_BYTES", "5242880")  # 5MB default

  log_backup_count = int(os.getenv("STRUCTGEN_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("STRUCTGEN_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Redaction thresholds are character counts, not bytes.
  inline_redaction_chars = _positive_int("STRUCTGEN_INLINE_REDACTION_CHARS", "800")
  prompt_redaction_chars = _positive_int("STRUCTGEN_PROMPT_REDACTION_CHARS", "1200")
  raw_text_max_chars = _positive_int("STRUCTGEN_RAW_TEXT_MAX_CHARS", str(200 * 1024))

  retry_max_attempts = _positive_int("STRUCTGEN_RETRY_MAX_ATTEMPTS", "3")
  batch_concurrency = _positive_int("STRUCTGEN_BATCH_CONCURRENCY", "3")

  pg_dsn = _optional_str(os.getenv("STRUCTGEN_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))

  return Settings(
    environment=environment,
    debug=debug,
    log_level=log_level,
    log_dir=(os.getenv("STRUCTGEN_LOG_DIR") or "./logs").strip(),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    pg_dsn=pg_dsn,
    generation_log_enabled=_parse_bool(os.getenv("STRUCTGEN_GENERATION_LOG_ENABLED")),
    sensitive_ttl_hours=_sensitive_ttl_hours(),
    inline_redaction_chars=inline_redaction_chars,
    prompt_redaction_chars=prompt_redaction_chars,
    raw_text_max_chars=raw_text_max_chars,
    retry_max_attempts=retry_max_attempts,
    batch_concurrency=batch_concurrency,
    checkpoint_dir=(os.getenv("STRUCTGEN_CHECKPOINT_DIR") or "./checkpoints").strip(),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring the rest of the runtime configuration."""
  debug = _parse_bool(os.getenv("STRUCTGEN_DEBUG"))
  pg_dsn = _optional_str(os.getenv("STRUCTGEN_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn)
