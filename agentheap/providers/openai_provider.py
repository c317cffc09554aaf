"""OpenAI (and OpenAI-compatible) provider adapter."""

from __future__ import annotations

import logging
from typing import Any

import openai

from agentheap.config import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE, OPENAI_API_KEY
from agentheap.models import ModelResponse, ToolCall, ToolDef, TokenUsage
from agentheap.providers.base import ProviderAdapter, split_system

logger = logging.getLogger(__name__)


class OpenAIAdapter(ProviderAdapter):
    def __init__(self, model: str = "gpt-4o", base_url: str | None = None, api_key: str | None = None, client: Any = None):
        self.model = model
        self.client = client or openai.AsyncOpenAI(api_key=api_key or OPENAI_API_KEY, base_url=base_url)

    def format_tools(self, tools: list[ToolDef]) -> list[dict]:
        return [
            {
                "type": "function",
                "function": {
                    "name": t.name,
                    "description": t.description,
                    "parameters": t.parameters,
                },
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
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": self._format_messages(messages),
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if top_p is not None:
            kwargs["top_p"] = top_p
        if tools:
            kwargs["tools"] = self.format_tools(tools)

        try:
            raw = await self.client.chat.completions.create(**kwargs)
        except openai.APIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise

        return self._parse_response(raw)

    def _format_messages(self, messages: list[dict]) -> list[dict]:
        system, rest = split_system(messages)
        formatted = []
        if system:
            formatted.append({"role": "system", "content": system})

        for msg in rest:
            role = msg.get("role", "user")
            if role == "tool":
                formatted.append({
                    "role": "tool",
                    "tool_call_id": msg.get("tool_use_id", msg.get("id", "unknown")),
                    "content": str(msg.get("content", "")),
                })
            elif role == "assistant":
                entry: dict[str, Any] = {"role": "assistant", "content": msg.get("content") or None}
                tool_calls = msg.get("tool_calls", [])
                if tool_calls:
                    entry["tool_calls"] = [
                        {
                            "id": tc.get("id", "unknown"),
                            "type": "function",
                            "function": {"name": tc.get("name", ""), "arguments": tc.get("arguments", "{}")},
                        }
                        for tc in tool_calls
                    ]
                formatted.append(entry)
            else:
                formatted.append({"role": "user", "content": str(msg.get("content", ""))})
        return formatted

    def _parse_response(self, raw: Any) -> ModelResponse:
        msg = raw.choices[0].message
        tool_calls = [
            ToolCall(name=tc.function.name, arguments=tc.function.arguments or "{}", id=tc.id)
            for tc in msg.tool_calls or []
        ]
        usage = TokenUsage(raw.usage.prompt_tokens, raw.usage.completion_tokens) if raw.usage else None
        return ModelResponse(content=msg.content or "", tool_calls=tool_calls, usage=usage, raw=raw)
