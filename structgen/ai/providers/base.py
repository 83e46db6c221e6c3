"""Boundary between the recovery layers and a concrete model invocation."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

from structgen.ai.errors import FailureKind, ModelOutputError
from structgen.ai.providers.registry import ProviderCredentials
from structgen.schema.target import TargetSchema

# Called by the invoker when its own parse of the raw response fails.
RepairHook = Callable[[str, str], Awaitable[str | None]]


class ModelInvoker(Protocol):
  """Opaque capability that asks a provider for schema-conforming output."""

  async def invoke(
    self, *, model_id: str, prompt: str, schema: TargetSchema, credentials: ProviderCredentials, provider_options: dict[str, Any] | None = None, repair_hook: RepairHook | None = None
  ) -> Any:
    """Return the validated value, or raise ModelOutputError when unusable output was produced."""
    ...


@dataclass(frozen=True)
class InvocationFailure:
  """An invocation error captured as a value so recovery layers can inspect it."""

  message: str
  raw_text: str | None
  raw_text_length: int
  error: BaseException

  @property
  def has_raw_text(self) -> bool:
    return bool(self.raw_text)

  @property
  def kind(self) -> FailureKind:
    """Raw text means malformed output the recovery layers can work on; without it there is nothing to repair."""
    return FailureKind.MALFORMED_OUTPUT if self.has_raw_text else FailureKind.NO_RAW_TEXT


def failure_from_exception(exc: BaseException) -> InvocationFailure:
  """Convert an invoker exception; only ModelOutputError carries raw provider text."""
  if isinstance(exc, ModelOutputError):
    return InvocationFailure(message=str(exc), raw_text=exc.raw_text, raw_text_length=exc.raw_text_length, error=exc)

  return InvocationFailure(message=str(exc) or type(exc).__name__, raw_text=None, raw_text_length=0, error=exc)
