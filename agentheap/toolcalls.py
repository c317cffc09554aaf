"""Free-text tool call and plan parsing.

Models emit tool calls as tagged JSON inside ordinary prose:

    <tool_call>{"name": "tool_name", "arguments": {"key": "value"}}</tool_call>
    <|tool_call_start|>{"name": "tool_name", "arguments": {...}}<|tool_call_end|>

Plans come as <reasoning>...</reasoning> and <todos>...</todos> blocks with one
bulleted or numbered line per step.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

TOOL_CALL_TAG = re.compile(r"<tool_call>\s*", re.IGNORECASE)
TOOL_CALL_START_TAG = re.compile(r"<\|tool_call_start\|>\s*", re.IGNORECASE)

_REASONING_BLOCK = re.compile(r"<reasoning>\s*(.*?)</reasoning>", re.IGNORECASE | re.DOTALL)
_TODOS_BLOCK = re.compile(r"<todos>\s*(.*?)</todos>", re.IGNORECASE | re.DOTALL)
_BULLET = re.compile(r"^\s*[-*•]\s*")
_NUMBER = re.compile(r"^\s*\d+\.\s*")

_STRUCTURAL_BLOCKS = (
    re.compile(r"<tool_call>.*?</tool_call>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<\|tool_call_start\|>.*?<\|tool_call_end\|>", re.IGNORECASE | re.DOTALL),
    _REASONING_BLOCK,
    _TODOS_BLOCK,
)


@dataclass
class ParsedToolCall:
    name: str
    args: dict[str, Any]
    raw: str


def _match_braces(text: str, start: int) -> int | None:
    """Return the index just past the object opening at text[start], or None if it never closes.

    Braces inside JSON string literals are not counted.
    """
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        c = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif c == "\\":
                escaped = True
            elif c == '"':
                in_string = False
            continue
        if c == '"':
            in_string = True
        elif c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def _blocks_after(pattern: re.Pattern, text: str) -> list[str]:
    blocks = []
    for m in pattern.finditer(text):
        brace = text.find("{", m.end())
        if brace == -1:
            continue
        end = _match_braces(text, brace)
        # Unterminated objects are kept so the parse step can report them as malformed
        blocks.append(text[brace:end] if end is not None else text[brace:])
    return blocks


def extract_tool_call_blocks(text: str) -> list[str]:
    """Raw JSON candidates, one per tool-call tag. <tool_call> wins over <|tool_call_start|>."""
    if not text:
        return []
    blocks = _blocks_after(TOOL_CALL_TAG, text)
    if blocks:
        return blocks
    return _blocks_after(TOOL_CALL_START_TAG, text)


def parse_tool_call(block: str) -> ParsedToolCall | None:
    """Parse one JSON block. Returns None for malformed JSON or a missing name."""
    try:
        call = json.loads(block)
    except json.JSONDecodeError as e:
        logger.warning(f"Skipping malformed tool call: {e}")
        return None
    if not isinstance(call, dict):
        logger.warning("Skipping tool call that is not a JSON object")
        return None
    name = call.get("name") or call.get("tool")
    if not name or not isinstance(name, str):
        logger.warning("Skipping tool call without a name")
        return None
    raw_args = call.get("arguments", call.get("args"))
    args = raw_args if isinstance(raw_args, dict) else {}
    return ParsedToolCall(name=name, args=args, raw=block)


def parse_tool_calls(text: str) -> list[ParsedToolCall]:
    calls = []
    for block in extract_tool_call_blocks(text):
        parsed = parse_tool_call(block)
        if parsed:
            calls.append(parsed)
    return calls


def parse_plan(text: str) -> tuple[str | None, list[str] | None]:
    """Extract (reasoning, todos) from a model response. Either may be None."""
    if not text:
        return None, None
    reasoning = None
    todos = None
    m = _REASONING_BLOCK.search(text)
    if m:
        reasoning = m.group(1).strip()
    m = _TODOS_BLOCK.search(text)
    if m:
        todos = []
        for line in m.group(1).strip().splitlines():
            line = _NUMBER.sub("", _BULLET.sub("", line)).strip()
            if line:
                todos.append(line)
    return reasoning, todos


def strip_structural_tags(text: str) -> str:
    """Remove tool-call, reasoning, and todos blocks from user-facing text."""
    if not text:
        return ""
    for pattern in _STRUCTURAL_BLOCKS:
        text = pattern.sub("", text)
    return text.strip()


def format_tool_call(name: str, arguments: dict[str, Any]) -> str:
    return f"<tool_call>{json.dumps({'name': name, 'arguments': arguments})}</tool_call>"
