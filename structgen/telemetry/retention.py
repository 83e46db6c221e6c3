"""Retention window for sensitive audit payloads."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

DEFAULT_RETENTION_HOURS = 24.0


def sensitive_text_expiry(ttl_hours: float = DEFAULT_RETENTION_HOURS, *, now: datetime | None = None) -> datetime:
  """Return when persisted raw output and prompt text become eligible for purge."""
  # Non-positive windows fall back to the default.
  hours = ttl_hours if ttl_hours > 0 else DEFAULT_RETENTION_HOURS
  start = now or datetime.now(UTC)
  return start + timedelta(hours=hours)
