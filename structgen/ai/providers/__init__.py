"""Provider registry and invocation boundary."""

from structgen.ai.providers.base import InvocationFailure, ModelInvoker, RepairHook, failure_from_exception
from structgen.ai.providers.registry import MODEL_REGISTRY, REPACK_MODEL_PREFERENCE, ProviderCredentials, cheapest_model, provider_for_model

__all__ = ["InvocationFailure", "ModelInvoker", "RepairHook", "failure_from_exception", "MODEL_REGISTRY", "REPACK_MODEL_PREFERENCE", "ProviderCredentials", "cheapest_model", "provider_for_model"]
