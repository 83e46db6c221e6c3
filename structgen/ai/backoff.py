"""Retry logic with failure-specific backoff strategy."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from structgen.ai.errors import FailureKind

T = TypeVar("T")
logger = logging.getLogger(__name__)

_RATE_LIMIT_MARKERS = ("429", "rate limit", "rate_limit", "ratelimit", "too many requests", "resource exhausted", "resource_exhausted", "quota exceeded")
_OVERLOADED_MARKERS = ("overloaded", "529", "503", "service unavailable", "capacity")


@dataclass(frozen=True)
class RetryPolicy:
  """Attempt bound and per-kind backoff parameters, in seconds."""

  max_attempts: int = 3
  rate_limit_base: float = 4.0
  rate_limit_cap: float = 120.0
  overloaded_base: float = 8.0
  overloaded_cap: float = 180.0
  transient_step: float = 2.0

  def __post_init__(self) -> None:
    if self.max_attempts < 1:
      raise ValueError("max_attempts must be at least 1.")


@dataclass(frozen=True)
class AttemptReport:
  """One attempt as observed by the retry controller."""

  label: str
  attempt: int
  elapsed_ms: int
  error: BaseException | None = None
  kind: FailureKind | None = None
  # Suspension before the next attempt; None when no retry follows.
  delay_seconds: float | None = None

  @property
  def succeeded(self) -> bool:
    return self.error is None


def classify_failure(message: str) -> FailureKind:
  """Map a provider failure message onto a retry category."""
  lowered = (message or "").lower()

  if any(marker in lowered for marker in _RATE_LIMIT_MARKERS):
    return FailureKind.RATE_LIMITED

  if any(marker in lowered for marker in _OVERLOADED_MARKERS):
    return FailureKind.OVERLOADED

  return FailureKind.TRANSIENT


def backoff_delay_seconds(kind: FailureKind, attempt: int, policy: RetryPolicy | None = None) -> float:
  """Delay after the given 1-based failed attempt."""
  active = policy or RetryPolicy()

  if kind == FailureKind.RATE_LIMITED:
    return min(active.rate_limit_base * (2 ** (attempt - 1)), active.rate_limit_cap)

  if kind == FailureKind.OVERLOADED:
    return min(active.overloaded_base * (2 ** (attempt - 1)), active.overloaded_cap)

  return active.transient_step * attempt


def _log_attempt(report: AttemptReport) -> None:
  if report.succeeded:
    logger.info("%s attempt %d succeeded in %dms", report.label, report.attempt, report.elapsed_ms)
    return

  logger.warning("%s attempt %d failed in %dms (%s): %s", report.label, report.attempt, report.elapsed_ms, report.kind.value if report.kind else "unknown", report.error)


async def retry_with_backoff(
  operation: Callable[[int], Awaitable[T]],
  *,
  policy: RetryPolicy | None = None,
  label: str = "operation",
  observer: Callable[[AttemptReport], None] | None = None,
  sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
  """Execute an operation with classified retries.

  The operation receives the 1-based attempt number. Every attempt is reported
  to the observer. The last error is re-raised once attempts run out.
  """
  active = policy or RetryPolicy()

  def report_attempt(report: AttemptReport) -> None:
    _log_attempt(report)
    if observer is not None:
      observer(report)

  for attempt in range(1, active.max_attempts + 1):
    started = time.perf_counter()

    try:
      result = await operation(attempt)
    except Exception as exc:
      elapsed_ms = int((time.perf_counter() - started) * 1000)
      kind = classify_failure(str(exc))
      is_last = attempt >= active.max_attempts
      delay = None if is_last else backoff_delay_seconds(kind, attempt, active)
      report_attempt(AttemptReport(label=label, attempt=attempt, elapsed_ms=elapsed_ms, error=exc, kind=kind, delay_seconds=delay))

      if is_last:
        logger.error("%s exhausted %d attempts", label, active.max_attempts)
        raise

      logger.warning("Retry attempt %d/%d needed for %s. Retrying in %.1fs...", attempt + 1, active.max_attempts, label, delay)
      await sleep(delay)
      continue

    elapsed_ms = int((time.perf_counter() - started) * 1000)
    report_attempt(AttemptReport(label=label, attempt=attempt, elapsed_ms=elapsed_ms))
    return result

  raise RuntimeError("retry_with_backoff exited without a result")
