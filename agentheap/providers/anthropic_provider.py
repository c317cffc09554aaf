"""Anthropic (Claude) provider adapter."""

from __future__ import annotations

import json
import logging
from typing import Any

import anthropic

from agentheap.config import ANTHROPIC_API_KEY, DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE
from agentheap.models import ModelResponse, ToolCall, ToolDef, TokenUsage
from agentheap.providers.base import ProviderAdapter, split_system

logger = logging.getLogger(__name__)


class AnthropicAdapter(ProviderAdapter):
    def __init__(self, model: str = "claude-sonnet-4-5", client: Any = None):
        self.model = model
        self.client = client or anthropic.AsyncAnthropic(api_key=ANTHROPIC_API_KEY)

    def format_tools(self, tools: list[ToolDef]) -> list[dict]:
        return [
            {
                "name": t.name,
                "description": t.description,
                "input_schema": t.parameters,
            }
            for t in tools
        ]

    def format_tool_prompt(self, tools: list[ToolDef]) -> str:
        guides = [f"### {t.name}\n{t.guidance}\n" for t in tools if t.guidance]
        return "\n".join(["## Tool Usage Guide\n", *guides]) if guides else ""

    async def generate(
        self,
        messages: list[dict],
        tools: list[ToolDef] | None = None,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        top_p: float | None = None,
    ) -> ModelResponse:
        system, rest = split_system(messages)
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": self._format_messages(rest),
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if system:
            kwargs["system"] = system
        if top_p is not None:
            kwargs["top_p"] = top_p
        if tools:
            kwargs["tools"] = self.format_tools(tools)

        try:
            raw = await self.client.messages.create(**kwargs)
        except anthropic.APIError as e:
            logger.error(f"Anthropic API error: {e}")
            raise

        return self._parse_response(raw)

    def _format_messages(self, messages: list[dict]) -> list[dict]:
        """Convert our internal format to Anthropic's format."""
        formatted = []
        for msg in messages:
            role = msg.get("role", "user")
            if role == "tool":
                formatted.append({
                    "role": "user",
                    "content": [
                        {
                            "type": "tool_result",
                            "tool_use_id": msg.get("tool_use_id", msg.get("id", "unknown")),
                            "content": str(msg.get("content", "")),
                        }
                    ],
                })
            elif role == "assistant":
                content = msg.get("content", "")
                blocks: list[dict] = []
                if content:
                    blocks.append({"type": "text", "text": content})
                for tc in msg.get("tool_calls", []):
                    blocks.append({
                        "type": "tool_use",
                        "id": tc.get("id", "unknown"),
                        "name": tc.get("name", ""),
                        "input": _loads_arguments(tc.get("arguments", "{}")),
                    })
                formatted.append({"role": "assistant", "content": blocks if blocks else content or ""})
            else:
                formatted.append({"role": "user", "content": str(msg.get("content", ""))})
        return formatted

    def _parse_response(self, raw: Any) -> ModelResponse:
        tool_calls = []
        text_parts = []
        for block in raw.content:
            if block.type == "tool_use":
                tool_calls.append(ToolCall(name=block.name, arguments=json.dumps(block.input), id=block.id))
            elif block.type == "text":
                text_parts.append(block.text)

        return ModelResponse(
            content="\n".join(text_parts),
            tool_calls=tool_calls,
            usage=TokenUsage(raw.usage.input_tokens, raw.usage.output_tokens),
            raw=raw,
        )


def _loads_arguments(arguments: Any) -> dict:
    if isinstance(arguments, dict):
        return arguments
    try:
        parsed = json.loads(arguments or "{}")
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}
