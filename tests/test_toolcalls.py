"""Test free-text tool-call and plan parsing."""

from agentheap.toolcalls import (
    extract_tool_call_blocks,
    format_tool_call,
    parse_plan,
    parse_tool_calls,
    strip_structural_tags,
)


def test_single_tool_call():
    calls = parse_tool_calls('Sure.\n<tool_call>{"name": "list_workflows", "arguments": {}}</tool_call>')
    assert len(calls) == 1
    assert calls[0].name == "list_workflows"
    assert calls[0].args == {}


def test_multiple_calls_in_order():
    text = (
        '<tool_call>{"name": "a", "arguments": {"x": 1}}</tool_call>\n'
        '<tool_call>{"name": "b", "arguments": {"y": {"z": 2}}}</tool_call>'
    )
    calls = parse_tool_calls(text)
    assert [c.name for c in calls] == ["a", "b"]
    assert calls[1].args == {"y": {"z": 2}}


def test_args_alias_and_tool_alias():
    calls = parse_tool_calls('<tool_call>{"tool": "t", "args": {"k": "v"}}</tool_call>')
    assert calls[0].name == "t"
    assert calls[0].args == {"k": "v"}


def test_non_object_arguments_become_empty():
    calls = parse_tool_calls('<tool_call>{"name": "t", "arguments": "oops"}</tool_call>')
    assert calls[0].args == {}


def test_braces_inside_strings():
    text = '<tool_call>{"name": "write", "arguments": {"content": "if (x) { y(); }"}}</tool_call>'
    calls = parse_tool_calls(text)
    assert calls[0].args["content"] == "if (x) { y(); }"


def test_escaped_quote_inside_string():
    text = r'<tool_call>{"name": "say", "arguments": {"text": "she said \"{hi}\""}}</tool_call>'
    calls = parse_tool_calls(text)
    assert calls[0].args["text"] == 'she said "{hi}"'


def test_malformed_call_is_skipped():
    text = (
        '<tool_call>{"name": "bad", "arguments": {oops}}</tool_call>\n'
        '<tool_call>{"name": "good", "arguments": {}}</tool_call>'
    )
    calls = parse_tool_calls(text)
    assert [c.name for c in calls] == ["good"]


def test_missing_name_is_skipped():
    assert parse_tool_calls('<tool_call>{"arguments": {}}</tool_call>') == []


def test_unterminated_object_is_skipped():
    assert parse_tool_calls('<tool_call>{"name": "a", "arguments": {') == []


def test_alternate_start_tag():
    text = '<|tool_call_start|>{"name": "alt", "arguments": {"n": 1}}<|tool_call_end|>'
    calls = parse_tool_calls(text)
    assert calls[0].name == "alt"
    assert calls[0].args == {"n": 1}


def test_primary_tag_wins_over_alternate():
    text = (
        '<|tool_call_start|>{"name": "alt", "arguments": {}}<|tool_call_end|>\n'
        '<tool_call>{"name": "primary", "arguments": {}}</tool_call>'
    )
    assert [c.name for c in parse_tool_calls(text)] == ["primary"]


def test_no_tags():
    assert extract_tool_call_blocks("just text {not: a call}") == []
    assert extract_tool_call_blocks("") == []


def test_parse_plan():
    text = (
        "<Reasoning> Need the list first. </Reasoning>\n"
        "<todos>\n- List workflows\n\n* Update the agent\n3. Run it\n</todos>\n"
        '<tool_call>{"name": "x", "arguments": {}}</tool_call>'
    )
    reasoning, todos = parse_plan(text)
    assert reasoning == "Need the list first."
    assert todos == ["List workflows", "Update the agent", "Run it"]


def test_parse_plan_absent():
    assert parse_plan("hello") == (None, None)


def test_strip_structural_tags():
    text = (
        "<reasoning>r</reasoning><todos>- a</todos>"
        'Done!<tool_call>{"name": "x", "arguments": {}}</tool_call>'
        '<|tool_call_start|>{"name": "y"}<|tool_call_end|>'
    )
    assert strip_structural_tags(text) == "Done!"


def test_format_tool_call_is_parseable():
    calls = parse_tool_calls(format_tool_call("ask_user", {"question": "Which one?"}))
    assert calls[0].name == "ask_user"
    assert calls[0].args == {"question": "Which one?"}
