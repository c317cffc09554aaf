"""Test provider factory, adapters and the rate-gated caller."""

import json
from types import SimpleNamespace

import pytest

from agentheap.models import LLMRequest, ModelResponse, TokenUsage, ToolDef
from agentheap.providers.anthropic_provider import AnthropicAdapter
from agentheap.providers.base import ModelProvider, ProviderAdapter, split_system
from agentheap.providers.factory import create_adapter, create_provider, parse_model_string
from agentheap.providers.openai_provider import OpenAIAdapter
from agentheap.providers.text_fallback import TextFallbackAdapter
from agentheap.rate_limiter import RateLimitConfig, RateLimiter

TOOL = ToolDef(
    name="test_tool",
    description="A test",
    parameters={"type": "object", "properties": {"x": {"type": "string"}}, "required": ["x"]},
    guidance="Use carefully.",
)


class EchoAdapter(ProviderAdapter):
    """In-memory adapter: returns a scripted reply and records what it was sent."""

    def __init__(self, content="hello", usage=None):
        self.content = content
        self.usage = usage
        self.calls = []

    def format_tools(self, tools):
        return None

    def format_tool_prompt(self, tools):
        return "TOOLS: " + ", ".join(t.name for t in tools)

    async def generate(self, messages, tools=None, temperature=0.4, max_tokens=4096, top_p=None):
        self.calls.append({"messages": messages, "tools": tools, "temperature": temperature, "top_p": top_p})
        return ModelResponse(content=self.content, usage=self.usage)


def test_parse_model_string():
    assert parse_model_string("anthropic/claude-sonnet-4-5") == ("anthropic", "claude-sonnet-4-5")
    assert parse_model_string("openai/gpt-4o") == ("openai", "gpt-4o")
    assert parse_model_string("claude-sonnet-4-5") == ("anthropic", "claude-sonnet-4-5")
    assert parse_model_string("gpt-4o") == ("openai", "gpt-4o")


def test_create_adapter():
    assert isinstance(create_adapter("anthropic/claude-sonnet-4-5"), AnthropicAdapter)
    assert isinstance(create_adapter("openai/gpt-4o"), OpenAIAdapter)

    wrapped = create_adapter("openai/gpt-4o", text_tools=True)
    assert isinstance(wrapped, TextFallbackAdapter)
    assert isinstance(wrapped.inner, OpenAIAdapter)

    with pytest.raises(ValueError):
        create_adapter("mystery/model")


def test_create_provider_uses_provider_limits():
    provider = create_provider("anthropic/claude-sonnet-4-5", rate_limit_override={"requests_per_minute": 3})
    assert provider.rate_key == "anthropic/claude-sonnet-4-5"
    assert provider.rate_limits == RateLimitConfig(3, 100_000)


def test_anthropic_format_tools():
    formatted = AnthropicAdapter().format_tools([TOOL])
    assert len(formatted) == 1
    assert formatted[0]["name"] == "test_tool"
    assert formatted[0]["input_schema"]["properties"]["x"]["type"] == "string"


def test_openai_format_tools():
    formatted = OpenAIAdapter().format_tools([TOOL])
    assert formatted[0]["type"] == "function"
    assert formatted[0]["function"]["name"] == "test_tool"


def test_tool_prompt_generation():
    prompt = AnthropicAdapter().format_tool_prompt([TOOL])
    assert "test_tool" in prompt
    assert "Use carefully" in prompt
    assert AnthropicAdapter().format_tool_prompt([ToolDef(name="t", description="", parameters={})]) == ""


def test_split_system():
    system, rest = split_system([
        {"role": "system", "content": "A"},
        {"role": "user", "content": "q"},
        {"role": "system", "content": "B"},
    ])
    assert system == "A\n\nB"
    assert rest == [{"role": "user", "content": "q"}]


def test_openai_message_formatting():
    adapter = OpenAIAdapter()
    formatted = adapter._format_messages([
        {"role": "system", "content": "sys"},
        {"role": "user", "content": "q"},
        {"role": "assistant", "content": "", "tool_calls": [{"id": "t1", "name": "x", "arguments": '{"a": 1}'}]},
        {"role": "tool", "tool_use_id": "t1", "content": "result"},
    ])
    assert formatted[0] == {"role": "system", "content": "sys"}
    assert formatted[2]["tool_calls"][0]["function"] == {"name": "x", "arguments": '{"a": 1}'}
    assert formatted[3] == {"role": "tool", "tool_call_id": "t1", "content": "result"}


def test_anthropic_message_formatting():
    adapter = AnthropicAdapter()
    formatted = adapter._format_messages([
        {"role": "user", "content": "q"},
        {"role": "assistant", "content": "thinking", "tool_calls": [{"id": "t1", "name": "x", "arguments": '{"a": 1}'}]},
        {"role": "tool", "tool_use_id": "t1", "content": "result"},
    ])
    assert formatted[1]["content"][1] == {"type": "tool_use", "id": "t1", "name": "x", "input": {"a": 1}}
    assert formatted[2]["content"][0]["tool_use_id"] == "t1"


def test_openai_parse_response():
    raw = SimpleNamespace(
        choices=[
            SimpleNamespace(
                message=SimpleNamespace(
                    content=None,
                    tool_calls=[SimpleNamespace(id="c1", function=SimpleNamespace(name="x", arguments='{"q": 1}'))],
                )
            )
        ],
        usage=SimpleNamespace(prompt_tokens=7, completion_tokens=3),
    )
    resp = OpenAIAdapter()._parse_response(raw)
    assert resp.content == ""
    assert resp.tool_calls[0].arguments == '{"q": 1}'
    assert resp.usage.total_tokens == 10


def test_anthropic_parse_response():
    raw = SimpleNamespace(
        content=[
            SimpleNamespace(type="text", text="Let me check."),
            SimpleNamespace(type="tool_use", id="tu1", name="x", input={"q": 1}),
        ],
        usage=SimpleNamespace(input_tokens=4, output_tokens=2),
    )
    resp = AnthropicAdapter()._parse_response(raw)
    assert resp.content == "Let me check."
    assert json.loads(resp.tool_calls[0].arguments) == {"q": 1}
    assert resp.tool_calls[0].id == "tu1"


@pytest.mark.asyncio
async def test_text_fallback_parses_calls():
    inner = EchoAdapter(content='Checking.<tool_call>{"name": "x", "arguments": {"q": 1}}</tool_call>')
    resp = await TextFallbackAdapter(inner).generate([{"role": "user", "content": "q"}], tools=[TOOL])
    assert resp.content == "Checking."
    assert resp.tool_calls[0].name == "x"
    assert json.loads(resp.tool_calls[0].arguments) == {"q": 1}
    assert inner.calls[0]["tools"] is None


@pytest.mark.asyncio
async def test_model_provider_gates_and_records_tokens():
    limiter = RateLimiter()
    adapter = EchoAdapter(usage=TokenUsage(100, 20))
    provider = ModelProvider(adapter, rate_key="k", rate_limits=RateLimitConfig(10, 1000), rate_limiter=limiter)

    resp = await provider(LLMRequest(messages=[{"role": "user", "content": "hi"}], temperature=0.2, top_p=0.9))

    assert resp.content == "hello"
    assert adapter.calls[0]["temperature"] == 0.2
    assert adapter.calls[0]["top_p"] == 0.9
    state = limiter._state["k"]
    assert len(state.request_ts) == 1
    assert [t for _, t in state.token_entries] == [120]


@pytest.mark.asyncio
async def test_model_provider_injects_tool_prompt():
    adapter = EchoAdapter()
    provider = ModelProvider(adapter, rate_key="k", rate_limits=RateLimitConfig(10), rate_limiter=RateLimiter())
    await provider(LLMRequest(messages=[{"role": "user", "content": "hi"}], tools=[TOOL]))
    sent = adapter.calls[0]["messages"]
    assert sent[0] == {"role": "system", "content": "TOOLS: test_tool"}
    assert adapter.calls[0]["tools"] == [TOOL]
