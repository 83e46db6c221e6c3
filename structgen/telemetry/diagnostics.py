"""Structured diagnostic events emitted while repairing provider output."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiagnosticEvent:
  """One coercion or recovery decision worth surfacing to operators."""

  kind: str
  path: str
  details: dict[str, Any] = field(default_factory=dict)


class DiagnosticSink(Protocol):
  def emit(self, event: DiagnosticEvent) -> None: ...


class LoggingDiagnosticSink:
  """Forward diagnostic events to the module logger at debug level."""

  def emit(self, event: DiagnosticEvent) -> None:
    logger.debug("Coercion %s at %s: %s", event.kind, event.path or "<root>", event.details)


class CollectingDiagnosticSink:
  """Keep events in memory so tests can assert on them."""

  def __init__(self) -> None:
    self.events: list[DiagnosticEvent] = []

  def emit(self, event: DiagnosticEvent) -> None:
    self.events.append(event)

  def kinds(self) -> list[str]:
    return [event.kind for event in self.events]


DEFAULT_SINK = LoggingDiagnosticSink()


def preview(value: Any, limit: int = 80) -> str:
  """Return a short repr suitable for diagnostic payloads."""
  text = repr(value)
  if len(text) <= limit:
    return text
  return text[:limit] + "..."
