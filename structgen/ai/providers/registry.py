"""Model registry, provider resolution and repack model selection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

Provider = Literal["anthropic", "openai", "google"]


@dataclass(frozen=True)
class ModelInfo:
  model_id: str
  label: str
  provider: Provider
  tier: Literal["premium", "balanced", "fast"]


@dataclass(frozen=True)
class ProviderCredentials:
  """API keys available to one caller, passed explicitly rather than read from ambient state."""

  anthropic: str | None = None
  openai: str | None = None
  google: str | None = None

  def for_provider(self, provider: str) -> str | None:
    return getattr(self, provider, None) or None

  def has_any(self) -> bool:
    return bool(self.anthropic or self.openai or self.google)


MODEL_REGISTRY: tuple[ModelInfo, ...] = (
  ModelInfo("claude-opus-4-6", "Claude Opus 4.6", "anthropic", "premium"),
  ModelInfo("claude-sonnet-4-5-20250929", "Claude Sonnet 4.5", "anthropic", "balanced"),
  ModelInfo("claude-haiku-4-5-20251001", "Claude Haiku 4.5", "anthropic", "fast"),
  ModelInfo("gpt-5.2", "GPT-5.2", "openai", "premium"),
  ModelInfo("gpt-5-mini", "GPT-5 Mini", "openai", "fast"),
  ModelInfo("o3-mini", "o3-mini", "openai", "balanced"),
  ModelInfo("gemini-3-pro-preview", "Gemini 3 Pro", "google", "premium"),
  ModelInfo("gemini-2.5-pro", "Gemini 2.5 Pro", "google", "balanced"),
  ModelInfo("gemini-2.5-flash", "Gemini 2.5 Flash", "google", "fast"),
)

# Cheapest first, interleaved across providers.
REPACK_MODEL_PREFERENCE: tuple[str, ...] = (
  "claude-haiku-4-5-20251001",
  "gpt-5-mini",
  "gemini-2.5-flash",
  "claude-sonnet-4-5-20250929",
  "o3-mini",
  "gemini-2.5-pro",
  "claude-opus-4-6",
  "gpt-5.2",
  "gemini-3-pro-preview",
)

_PREFIXES: tuple[tuple[str, Provider], ...] = (
  ("claude-", "anthropic"),
  ("gpt-", "openai"),
  ("o1-", "openai"),
  ("o3-", "openai"),
  ("o4-", "openai"),
  ("gemini-", "google"),
)


def _registry_entry(model_id: str) -> ModelInfo | None:
  for entry in MODEL_REGISTRY:
    if entry.model_id == model_id:
      return entry
  return None


def provider_for_model(model_id: str) -> Provider:
  """Resolve the provider by model id prefix, then by registry lookup.

  Raises ValueError for unknown models.
  """
  for prefix, provider in _PREFIXES:
    if model_id.startswith(prefix):
      return provider

  entry = _registry_entry(model_id)
  if entry is not None:
    return entry.provider

  raise ValueError(f"Unknown model provider for model: {model_id}")


def cheapest_model(credentials: ProviderCredentials) -> str | None:
  """Return the cheapest repack model whose provider has credentials, or None."""
  for model_id in REPACK_MODEL_PREFERENCE:
    entry = _registry_entry(model_id)
    if entry is None:
      continue
    if credentials.for_provider(entry.provider):
      return model_id
  return None


def provider_options_for(model_id: str) -> dict[str, object] | None:
  """Provider-specific invocation options; Anthropic is forced into tool-calling output mode."""
  try:
    provider = provider_for_model(model_id)
  except ValueError:
    return None

  if provider == "anthropic":
    return {"anthropic": {"structured_output_mode": "json_tool"}}

  return None
