"""Text fallback adapter — for models without native tool calling.

Tools are injected into the prompt. Tool calls are parsed back out of the text.
"""

from __future__ import annotations

import json
import logging

from agentheap.config import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE
from agentheap.models import ModelResponse, ToolCall, ToolDef
from agentheap.providers.base import ProviderAdapter
from agentheap.toolcalls import parse_tool_calls, strip_structural_tags

logger = logging.getLogger(__name__)


class TextFallbackAdapter(ProviderAdapter):
    """Wraps any text-only model, injecting tool schemas into the prompt."""

    def __init__(self, inner_adapter: ProviderAdapter):
        self.inner = inner_adapter

    def format_tools(self, tools: list[ToolDef]) -> None:
        return None

    def format_tool_prompt(self, tools: list[ToolDef]) -> str:
        lines = ["## Available Tools\n"]
        lines.append("To call a tool, output EXACTLY this format:")
        lines.append("```")
        lines.append('<tool_call>{"name": "tool_name", "arguments": {"key": "value"}}</tool_call>')
        lines.append("```\n")
        lines.append("You can make multiple tool calls in one response.\n")

        for t in tools:
            lines.append(f"### {t.name}")
            lines.append(f"**Description:** {t.description}")
            lines.append(f"**Parameters:** ```json\n{json.dumps(t.parameters, indent=2)}\n```")
            if t.guidance:
                lines.append(f"\n{t.guidance}\n")

        return "\n".join(lines)

    async def generate(
        self,
        messages: list[dict],
        tools: list[ToolDef] | None = None,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        top_p: float | None = None,
    ) -> ModelResponse:
        # Structured tools are already in the prompt
        response = await self.inner.generate(
            messages=messages,
            tools=None,
            temperature=temperature,
            max_tokens=max_tokens,
            top_p=top_p,
        )
        if not response.content:
            return response

        calls = parse_tool_calls(response.content)
        if not calls:
            return response
        return ModelResponse(
            content=strip_structural_tags(response.content),
            tool_calls=[ToolCall(name=c.name, arguments=json.dumps(c.args)) for c in calls],
            usage=response.usage,
            raw=response.raw,
        )

    def count_tokens(self, messages: list[dict]) -> int:
        return self.inner.count_tokens(messages)
