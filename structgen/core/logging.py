"""Process-wide logging: console plus a rotating per-run file."""

import logging
import logging.handlers
import sys
import time
import traceback
from pathlib import Path
from types import TracebackType

from structgen.config import Settings

LOG_LINE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"
TRACEBACK_TAIL_LINES = 5

# Driver loggers that drown out recovery diagnostics at INFO.
_NOISY_LOGGERS = ("sqlalchemy.engine", "asyncpg")

_active_log_path: Path | None = None


class TruncatedFormatter(logging.Formatter):
  """Keep the traceback header and its last few frames."""

  # ruff: noqa: N802
  def formatException(self, ei: tuple[type[BaseException] | None, BaseException | None, TracebackType | None]) -> str:
    lines = traceback.format_exception(*ei)
    if len(lines) <= TRACEBACK_TAIL_LINES + 1:
      return "".join(lines)
    return "".join([lines[0], "    ...\n", *lines[-TRACEBACK_TAIL_LINES:]])


def _rotated_name(default_name: str) -> str:
  """Rename run.log.1 to run.log-1 so rotated files keep sorting next to the live one."""
  stem, dot, suffix = default_name.rpartition(".")
  if dot and suffix.isdigit():
    return f"{stem}-{suffix}"
  return default_name


def _resolve_level(name: str) -> int:
  level = logging.getLevelName(name)
  return level if isinstance(level, int) else logging.INFO


def _run_log_path(settings: Settings) -> Path:
  log_dir = Path(settings.log_dir).resolve()
  try:
    log_dir.mkdir(parents=True, exist_ok=True)
  except OSError as exc:
    raise RuntimeError(f"Failed to create log directory at {log_dir}: {exc}") from exc

  return log_dir / f"structgen_{settings.environment}_{time.strftime('%Y%m%d_%H%M%S')}.log"


def setup_logging(settings: Settings) -> Path:
  """Replace root handlers with console and rotating file output; return the file path."""
  log_path = _run_log_path(settings)

  console = logging.StreamHandler(sys.stdout)
  console.setFormatter(TruncatedFormatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))

  try:
    run_file = logging.handlers.RotatingFileHandler(log_path, encoding="utf-8", maxBytes=settings.log_max_bytes, backupCount=settings.log_backup_count)
  except OSError as exc:
    raise RuntimeError(f"Failed to open log file at {log_path}: {exc}") from exc
  run_file.namer = _rotated_name
  run_file.setFormatter(logging.Formatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))

  level = _resolve_level(settings.log_level)
  logging.basicConfig(level=level, handlers=[console, run_file], force=True)

  if not settings.debug:
    for name in _NOISY_LOGGERS:
      logging.getLogger(name).setLevel(max(level, logging.WARNING))

  return log_path


def initialize_logging(settings: Settings) -> Path:
  """Configure logging on the first call only; later calls return the same file."""
  global _active_log_path
  if _active_log_path is None:
    _active_log_path = setup_logging(settings)
    logging.getLogger(__name__).info("Logging initialized. Writing to %s", _active_log_path)
  return _active_log_path
