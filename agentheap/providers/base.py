"""Base provider adapter — abstract interface for all LLM providers."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

from agentheap.config import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE
from agentheap.models import LLMRequest, ModelResponse, ToolDef
from agentheap.rate_limiter import RateLimitConfig, RateLimiter, RequestContext, get_default_rate_limiter

logger = logging.getLogger(__name__)


class ProviderAdapter(ABC):
    """Translates between canonical messages/tool defs and provider-specific API formats."""

    @abstractmethod
    def format_tools(self, tools: list[ToolDef]) -> Any:
        """Convert canonical tool defs to the provider's API format.
        Text-fallback adapters return None (tools go in the prompt instead)."""

    @abstractmethod
    def format_tool_prompt(self, tools: list[ToolDef]) -> str:
        """Tool guidance text appended to the system prompt."""

    @abstractmethod
    async def generate(
        self,
        messages: list[dict],
        tools: list[ToolDef] | None = None,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        top_p: float | None = None,
    ) -> ModelResponse:
        """Call the model and return a unified ModelResponse. System messages stay in `messages`."""

    def count_tokens(self, messages: list[dict]) -> int:
        # Rough estimate: 4 chars per token
        return sum(len(json.dumps(m, default=str)) for m in messages) // 4


def split_system(messages: list[dict]) -> tuple[str | None, list[dict]]:
    """Join all system messages into one string; return it with the remaining messages."""
    system_parts = [str(m.get("content", "")) for m in messages if m.get("role") == "system"]
    rest = [m for m in messages if m.get("role") != "system"]
    return ("\n\n".join(p for p in system_parts if p) or None), rest


class ModelProvider:
    """Rate-gated LLM caller wrapping a ProviderAdapter.

    Instances are awaitable with an LLMRequest, so they plug straight into the
    node-agent executor and the assistant turn as `call_llm`.
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        rate_key: str,
        rate_limits: RateLimitConfig,
        rate_limiter: RateLimiter | None = None,
        request_context: RequestContext | None = None,
    ):
        self.adapter = adapter
        self.rate_key = rate_key
        self.rate_limits = rate_limits
        self.rate_limiter = rate_limiter or get_default_rate_limiter()
        self.request_context = request_context

    async def __call__(self, request: LLMRequest) -> ModelResponse:
        messages = request.messages
        # Inject tool guidance into the system prompt
        if request.tools:
            tool_prompt = self.adapter.format_tool_prompt(request.tools)
            if tool_prompt:
                messages = [{"role": "system", "content": tool_prompt}, *messages]

        await self.rate_limiter.acquire(self.rate_key, self.rate_limits, self.request_context)
        response = await self.adapter.generate(
            messages=messages,
            tools=request.tools,
            temperature=request.temperature if request.temperature is not None else DEFAULT_TEMPERATURE,
            max_tokens=request.max_tokens or DEFAULT_MAX_TOKENS,
            top_p=request.top_p,
        )
        if response.usage:
            self.rate_limiter.record_tokens(self.rate_key, response.usage.total_tokens)
        return response

    def count_tokens(self, messages: list[dict]) -> int:
        return self.adapter.count_tokens(messages)
