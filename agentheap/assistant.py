"""Assistant turn orchestration over free-text tool calls.

One call to `run_assistant` drives a single conversational turn:

1. First model call. Optional <reasoning>/<todos> blocks become the turn's plan.
2. Every <tool_call> in the reply is executed in order.
3. If the user asked for action but no tool call came back, the model is nudged once.
4. If a plan exists and some steps were never completed, the model is nudged once more.
5. While tools keep running, up to `max_follow_up_rounds` follow-up calls let the
   model react to the results.

A tool result carrying `waitingForUser: true` (ask_user, ask_credentials) ends
the turn right after the batch that produced it, so the human can reply.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from agentheap.config import DEFAULT_TEMPERATURE, MAX_FOLLOW_UP_ROUNDS, NUDGE_TEMPERATURE
from agentheap.events import AssistantProgress
from agentheap.models import AssistantResponse, LLMCaller, LLMRequest, ToolExecutor, ToolResult
from agentheap.toolcalls import parse_plan, parse_tool_calls, strip_structural_tags
from agentheap.tools.implementations import clean_options

logger = logging.getLogger(__name__)

ACTION_KEYWORDS = re.compile(
    r"\b(create|add|fix|configure|set up|update|make|build|workflow|workflows|agents?|tools?|llm|graph|outputs?|produce)\b"
)

# Plan bookkeeping the model attaches to tool arguments; never forwarded to tools.
TRACKING_FIELDS = ("todoIndex", "subStepIndex", "subStepLabel", "completeTodo")

TOOL_RESULT_PREVIEW_CHARS = 4000

SYSTEM_PROMPT = """You are an assistant that can act by calling tools.

## Calling tools
To call a tool, output EXACTLY this format, one block per call:
<tool_call>{"name": "tool_name", "arguments": {"key": "value"}}</tool_call>
You can make multiple tool calls in one response. They run in the order written.

## Planning
For multi-step requests, first explain your approach and list the steps:
<reasoning>Why you are doing it this way.</reasoning>
<todos>
- First step
- Second step
</todos>
Then output the tool calls. Add "todoIndex" (0-based step number) to each call's arguments,
and "completeTodo": true on the call that finishes that step.

## Asking the user
If you need information only the user has, call ask_user. If you need a secret or API key,
call ask_credentials. Stop after asking; the user will answer in the next message."""

NO_ACTION_NUDGE = (
    "You responded with text but did not output any <tool_call> blocks. The user asked you to perform "
    "actions, so you MUST output the required <tool_call> blocks now so the system can execute them. "
    "Start by listing or getting current state if needed, then create or update as needed. "
    'Use this exact format for each call: <tool_call>{"name": "tool_name", "arguments": {...}}</tool_call>. '
    "Output only the tool_call blocks, one after another."
)


@dataclass
class AssistantOptions:
    call_llm: LLMCaller
    execute_tool: ToolExecutor
    system_prompt: str | None = None  # replaces SYSTEM_PROMPT; context sections are still appended
    rag_context: str | None = None
    feedback_injection: str | None = None
    ui_context: str | None = None
    attached_context: str | None = None
    cross_chat_context: str | None = None
    temperature: float | None = None  # applies to every call when set
    max_follow_up_rounds: int = MAX_FOLLOW_UP_ROUNDS
    progress: AssistantProgress | None = None


def is_waiting_for_user(result: Any) -> bool:
    return isinstance(result, dict) and result.get("waitingForUser") is True


def pending_user_input(tool_results: list[ToolResult]) -> dict[str, Any] | None:
    """Question (and options / credential flag) from the last tool result that is waiting on the user."""
    for r in reversed(tool_results):
        if not is_waiting_for_user(r.result):
            continue
        res = r.result
        question = res.get("question")
        pending: dict[str, Any] = {
            "tool": r.name,
            "question": question.strip()
            if isinstance(question, str) and question.strip()
            else "Please provide the information or confirmation.",
            "credentialRequest": res.get("credentialRequest") is True,
        }
        options = clean_options(res.get("options"))
        if options:
            pending["options"] = options
        return pending
    return None


def build_system_prompt(options: AssistantOptions) -> str:
    prompt = options.system_prompt or SYSTEM_PROMPT
    if options.rag_context:
        prompt += (
            "\n\n## Knowledge base\nUse the following context when relevant to answer the user.\n\n"
            + options.rag_context
        )
    if options.feedback_injection:
        prompt += "\n\n" + options.feedback_injection
    if options.ui_context:
        prompt += (
            "\n\n## Current UI location\n"
            + options.ui_context
            + "\nUse ids from this context directly when the user asks to fix or populate something."
        )
    if options.attached_context:
        prompt += (
            "\n\n## User-shared context\nThe user attached the following content so you can help directly.\n\n"
            + options.attached_context
        )
    if options.cross_chat_context and options.cross_chat_context.strip():
        prompt += (
            "\n\n## Cross-chat context (preferences and recent conversation summaries)\n"
            + options.cross_chat_context.strip()
        )
    return prompt


def _preview(result: Any) -> str:
    text = result if isinstance(result, str) else json.dumps(result, default=str)
    if len(text) > TOOL_RESULT_PREVIEW_CHARS:
        return text[:TOOL_RESULT_PREVIEW_CHARS] + "... (truncated)"
    return text


class _Turn:
    """Mutable state of one turn: cumulative tool results and plan completion."""

    def __init__(self, options: AssistantOptions, todos: list[str]):
        self.options = options
        self.progress = options.progress or AssistantProgress()
        self.todos = todos
        self.results: list[ToolResult] = []
        self.completed: set[int] = set()
        self.explicit_tracking = False
        self.waiting = False
        self._reported = 0

    async def run_tool_calls(self, text: str) -> list[ToolResult]:
        """Execute every parsable tool call in `text`. Tool errors propagate."""
        batch = []
        for call in parse_tool_calls(text):
            step_index = len(self.results)
            args = dict(call.args)
            tracking = {k: args.pop(k) for k in TRACKING_FIELDS if k in args}
            if "todoIndex" in tracking or "completeTodo" in tracking:
                self.explicit_tracking = True

            todo_index = step_index
            if self.todos:
                raw_index = tracking.get("todoIndex")
                if isinstance(raw_index, (int, float)) and not isinstance(raw_index, bool):
                    todo_index = int(raw_index)
                todo_index = min(max(todo_index, 0), len(self.todos) - 1)
                label = self.todos[todo_index]
            else:
                label = f"Step {step_index + 1}"

            self.progress.on_step_start(todo_index, label, call.name)
            result = await self.options.execute_tool(call.name, args)

            tool_result = ToolResult(name=call.name, args=args, result=result)
            self.results.append(tool_result)
            batch.append(tool_result)
            if self.todos and tracking.get("completeTodo") is True:
                self.completed.add(todo_index)
            if is_waiting_for_user(result):
                self.waiting = True
            self.progress.on_tool_done(len(self.results) - 1, call.name, result)
        return batch

    def completed_step_indices(self) -> list[int]:
        if not self.todos:
            return []
        if self.explicit_tracking:
            return sorted(self.completed)
        # No tracking fields at all: the first N tools complete the first N steps
        return list(range(min(len(self.results), len(self.todos))))

    def remaining_steps(self) -> list[int]:
        done = set(self.completed_step_indices())
        return [i for i in range(len(self.todos)) if i not in done]

    def unreported_results(self) -> str:
        """Plain-text summary of results the model has not been shown yet."""
        lines = [f'- Tool "{r.name}" returned: {_preview(r.result)}' for r in self.results[self._reported:]]
        self._reported = len(self.results)
        return "\n".join(lines)


def _incomplete_plan_nudge(turn: _Turn) -> str:
    remaining = turn.remaining_steps()
    steps = "\n".join(f"{i}. {turn.todos[i]}" for i in remaining)
    if not turn.results:
        return (
            "You listed steps but did not output any <tool_call> blocks. Output them now, one after another, "
            "in the same order as your steps. Use the exact format: "
            '<tool_call>{"name": "tool_name", "arguments": {..., "todoIndex": 0, "completeTodo": true}}</tool_call>. '
            "Do not add explanation, only the tool_call blocks."
        )
    already_run = ", ".join(r.name for r in turn.results)
    return (
        f"You listed {len(turn.todos)} steps but {len(remaining)} are not complete yet. "
        f"Tools already run: {already_run}.\n"
        f"Results so far:\n{turn.unreported_results() or '(already shown)'}\n\n"
        f"Remaining steps (todoIndex. label):\n{steps}\n\n"
        'Output the <tool_call> blocks for the remaining steps now, with "todoIndex" and "completeTodo": true. '
        "Only the missing tool_call blocks."
    )


def _follow_up_message(turn: _Turn) -> str:
    parts = []
    unreported = turn.unreported_results()
    if unreported:
        parts.append(f"Tool results:\n{unreported}")
    remaining = turn.remaining_steps() if turn.todos else []
    if remaining:
        parts.append("Plan steps still open: " + ", ".join(f"{i}. {turn.todos[i]}" for i in remaining))
    parts.append(
        "Either reply to the user with a short summary of what was done and what the results mean "
        "(no <tool_call> blocks), or, if more actions are needed, output the additional <tool_call> blocks now."
    )
    return "\n\n".join(parts)


async def run_assistant(
    history: list[dict[str, Any]],
    user_message: str,
    options: AssistantOptions,
) -> AssistantResponse:
    """Run one assistant turn. LLM and tool errors propagate to the caller."""
    main_temp = options.temperature if options.temperature is not None else DEFAULT_TEMPERATURE
    nudge_temp = options.temperature if options.temperature is not None else NUDGE_TEMPERATURE

    transcript: list[dict[str, Any]] = [
        {"role": "system", "content": build_system_prompt(options)},
        *history,
        {"role": "user", "content": user_message},
    ]

    async def ask(instruction: str | None, temperature: float) -> str:
        if instruction is not None:
            transcript.append({"role": "user", "content": instruction})
        response = await options.call_llm(LLMRequest(messages=list(transcript), temperature=temperature))
        text = response.content or ""
        transcript.append({"role": "assistant", "content": text})
        return text

    raw_content = await ask(None, main_temp)

    reasoning, todos = parse_plan(raw_content)
    todos = todos or []
    turn = _Turn(options, todos)
    if reasoning or todos:
        turn.progress.on_plan(reasoning or "", todos)

    content = raw_content
    await turn.run_tool_calls(raw_content)

    # Asked for action, got only prose
    if not turn.results and ACTION_KEYWORDS.search(user_message.strip().lower()):
        logger.info("No tool calls for an action request; nudging")
        nudge_content = await ask(NO_ACTION_NUDGE, nudge_temp)
        if await turn.run_tool_calls(nudge_content):
            content = nudge_content

    # Plan declared but not finished
    if todos and not turn.waiting and turn.remaining_steps():
        logger.info(f"Plan incomplete ({len(turn.remaining_steps())}/{len(todos)} open); nudging")
        nudge_content = await ask(_incomplete_plan_nudge(turn), nudge_temp)
        if await turn.run_tool_calls(nudge_content):
            content = nudge_content

    # Let the model react to what the tools returned
    batch = turn.results
    rounds = 0
    while batch and rounds < options.max_follow_up_rounds and not turn.waiting:
        logger.debug(f"Follow-up round {rounds + 1}/{options.max_follow_up_rounds}")
        content = await ask(_follow_up_message(turn), main_temp)
        batch = await turn.run_tool_calls(content)
        rounds += 1

    if turn.waiting:
        logger.info("Turn paused waiting for user input")

    return AssistantResponse(
        content=strip_structural_tags(content),
        tool_results=turn.results,
        reasoning=reasoning or None,
        todos=todos or None,
        completed_step_indices=turn.completed_step_indices() if todos else None,
    )
