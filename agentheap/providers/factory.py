"""Provider factory — create the right adapter based on model string."""

from __future__ import annotations

from agentheap.providers.base import ModelProvider, ProviderAdapter
from agentheap.rate_limiter import RateLimiter, RequestContext, rate_limit_for_config


def parse_model_string(model: str) -> tuple[str, str]:
    """Parse 'provider/model-name' into (provider, model)."""
    if "/" in model:
        provider, model_name = model.split("/", 1)
        return provider.lower(), model_name
    # Infer provider from model name
    if model.startswith("claude"):
        return "anthropic", model
    if model.startswith("gpt") or model.startswith("o1") or model.startswith("o3"):
        return "openai", model
    return "anthropic", model


def create_adapter(model: str, base_url: str | None = None, text_tools: bool = False) -> ProviderAdapter:
    """Create a provider adapter for the given model string.

    `text_tools` wraps the adapter so tools are described in the prompt and
    parsed back out of <tool_call> blocks.
    """
    provider, model_name = parse_model_string(model)

    adapter: ProviderAdapter
    if provider == "anthropic":
        from agentheap.providers.anthropic_provider import AnthropicAdapter
        adapter = AnthropicAdapter(model=model_name)
    elif provider in ("openai", "openrouter", "local", "custom_http"):
        from agentheap.providers.openai_provider import OpenAIAdapter
        adapter = OpenAIAdapter(model=model_name, base_url=base_url)
    else:
        raise ValueError(f"Unknown provider: {provider}. Use 'anthropic/model' or 'openai/model'.")

    if text_tools:
        from agentheap.providers.text_fallback import TextFallbackAdapter
        adapter = TextFallbackAdapter(adapter)
    return adapter


def create_provider(
    model: str,
    rate_limit_override: dict | None = None,
    rate_limiter: RateLimiter | None = None,
    request_context: RequestContext | None = None,
    base_url: str | None = None,
    text_tools: bool = False,
) -> ModelProvider:
    """Create a rate-gated ModelProvider for `model`. The gate key is the full model string."""
    provider, _ = parse_model_string(model)
    return ModelProvider(
        create_adapter(model, base_url=base_url, text_tools=text_tools),
        rate_key=model,
        rate_limits=rate_limit_for_config(provider, rate_limit_override),
        rate_limiter=rate_limiter,
        request_context=request_context,
    )
