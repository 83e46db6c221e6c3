import pytest

from structgen.ai.providers.registry import MODEL_REGISTRY, REPACK_MODEL_PREFERENCE, ProviderCredentials, cheapest_model, provider_for_model, provider_options_for


def test_provider_for_model_uses_prefixes():
  assert provider_for_model("claude-haiku-4-5-20251001") == "anthropic"
  assert provider_for_model("gpt-5-mini") == "openai"
  assert provider_for_model("o3-mini") == "openai"
  assert provider_for_model("o4-preview") == "openai"
  assert provider_for_model("gemini-2.5-flash") == "google"


def test_provider_for_unknown_model_raises():
  with pytest.raises(ValueError):
    provider_for_model("mystery-model")


def test_cheapest_model_follows_cost_order():
  assert cheapest_model(ProviderCredentials(anthropic="a", openai="o", google="g")) == "claude-haiku-4-5-20251001"
  assert cheapest_model(ProviderCredentials(openai="o")) == "gpt-5-mini"
  assert cheapest_model(ProviderCredentials(google="g")) == "gemini-2.5-flash"


def test_cheapest_model_without_credentials_is_none():
  assert cheapest_model(ProviderCredentials()) is None
  assert cheapest_model(ProviderCredentials(anthropic="")) is None


def test_every_repack_model_is_registered():
  registered = {entry.model_id for entry in MODEL_REGISTRY}

  assert set(REPACK_MODEL_PREFERENCE) <= registered


def test_anthropic_models_use_tool_output_mode():
  assert provider_options_for("claude-opus-4-6") == {"anthropic": {"structured_output_mode": "json_tool"}}
  assert provider_options_for("gpt-5.2") is None
  assert provider_options_for("mystery-model") is None
