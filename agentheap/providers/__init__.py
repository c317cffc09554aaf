"""Provider adapter layer — model-agnostic, rate-gated LLM interface."""

from agentheap.providers.base import ModelProvider, ProviderAdapter
from agentheap.providers.factory import create_provider

__all__ = ["ModelProvider", "ProviderAdapter", "create_provider"]
