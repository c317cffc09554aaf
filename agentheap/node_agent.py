"""Node-agent executor — runs one agent's internal graph of typed nodes.

Nodes run in topological order. Each node reads the output of its most
recently computed direct predecessor (or the agent input when it has none),
and the last node's output is the agent's output.
"""

from __future__ import annotations

import json
import logging
import re
from collections import defaultdict, deque
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable

from agentheap.config import TOOL_LOOP_MAX_ROUNDS
from agentheap.errors import MissingDependencyError
from agentheap.models import (
    Graph,
    GraphNode,
    LLMCaller,
    LLMRequest,
    ModelResponse,
    NodeAgentDefinition,
    PromptTemplate,
    ToolDef,
)
from agentheap.prompts import get_prompt, render_prompt_template, validate_prompt_arguments

logger = logging.getLogger(__name__)

NodeToolCaller = Callable[..., Awaitable[Any]]

_INPUT_TOKEN = re.compile(r"\{\{\s*\$input\s*\}\}")


@dataclass
class NodeExecutionContext:
    """Collaborators and shared state for one node-agent execution."""

    call_llm: LLMCaller
    call_tool: NodeToolCaller  # (tool_id, args, override=None) -> result
    prompts: dict[str, PromptTemplate] = field(default_factory=dict)
    shared_context: dict[str, Any] = field(default_factory=dict)
    rag_block: str = ""
    tool_instructions_block: str = ""
    available_tools: list[ToolDef] | None = None
    build_tools_for_ids: Callable[[list[str]], Awaitable[list[ToolDef]]] | None = None
    max_tool_rounds: int = TOOL_LOOP_MAX_ROUNDS


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------


def _effective_edges(graph: Graph) -> list[tuple[str, str]]:
    """Edges between known nodes. A graph without edges is treated as a chain in array order."""
    ids = list(dict.fromkeys(n.id for n in graph.nodes))
    known = set(ids)
    edges = [(e.source, e.target) for e in graph.edges if e.source in known and e.target in known]
    if not edges and len(ids) > 1:
        edges = list(zip(ids, ids[1:]))
    return edges


def compute_execution_order(graph: Graph) -> list[str]:
    """Kahn's algorithm with a FIFO queue; leftover (cyclic) nodes are appended in array order."""
    ids = list(dict.fromkeys(n.id for n in graph.nodes))
    in_degree = {nid: 0 for nid in ids}
    successors: dict[str, list[str]] = defaultdict(list)
    for source, target in _effective_edges(graph):
        in_degree[target] += 1
        successors[source].append(target)

    queue = deque(nid for nid in ids if in_degree[nid] == 0)
    order: list[str] = []
    placed: set[str] = set()
    while queue:
        nid = queue.popleft()
        order.append(nid)
        placed.add(nid)
        for target in successors[nid]:
            in_degree[target] -= 1
            if in_degree[target] == 0:
                queue.append(target)

    order.extend(nid for nid in ids if nid not in placed)
    return order


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def apply_transform(params: dict[str, Any], value: Any) -> Any:
    """Replace {{ $input }} in the configured expression; re-parse as JSON when possible."""
    transform = params.get("transform")
    expr = None
    if isinstance(transform, dict) and isinstance(transform.get("expression"), str):
        expr = transform["expression"]
    elif isinstance(params.get("expression"), str):
        expr = params["expression"]
    if not expr or not expr.strip():
        return value

    input_str = value if isinstance(value, str) else json.dumps(value, default=str)
    result = _INPUT_TOKEN.sub(lambda _: input_str, expr)
    try:
        return json.loads(result)
    except json.JSONDecodeError:
        return result


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def _parse_arguments(raw: str | None) -> dict[str, Any]:
    try:
        args = json.loads(raw or "{}")
    except json.JSONDecodeError:
        return {}
    return args if isinstance(args, dict) else {}


async def run_llm_with_tools(
    call_llm: LLMCaller,
    call_tool: NodeToolCaller,
    request: LLMRequest,
    max_rounds: int = TOOL_LOOP_MAX_ROUNDS,
) -> str:
    """Call the model, execute any tool calls it makes, and repeat until it answers in text."""
    messages = list(request.messages)

    for _ in range(max_rounds):
        response = await call_llm(replace(request, messages=list(messages)))
        if not isinstance(response, ModelResponse):
            return _as_text(response)
        if not response.tool_calls:
            return response.content or ""

        messages.append({
            "role": "assistant",
            "content": response.content or "",
            "tool_calls": [
                {"id": tc.id, "name": tc.name, "arguments": tc.arguments} for tc in response.tool_calls
            ],
        })
        for tc in response.tool_calls:
            result = await call_tool(tc.name, _parse_arguments(tc.arguments))
            messages.append({
                "role": "tool",
                "tool_use_id": tc.id,
                "id": tc.id,
                "name": tc.name,
                "content": _as_text(result) if result is not None else "null",
            })

    logger.warning(f"Tool loop hit {max_rounds} rounds; returning last message content")
    return str(messages[-1].get("content") or "") if messages else ""


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


@dataclass
class _Run:
    definition: NodeAgentDefinition
    context: NodeExecutionContext
    input: Any
    nodes: dict[str, GraphNode]
    position: dict[str, int]
    predecessors: dict[str, list[str]]
    outputs: dict[str, Any] = field(default_factory=dict)


class NodeAgentExecutor:
    """Executes a NodeAgentDefinition. Node kinds dispatch through a handler table."""

    def __init__(self):
        self._handlers: dict[str, Callable[[GraphNode, Any, _Run], Awaitable[Any]]] = {
            "prompt": self._run_prompt,
            "llm": self._run_llm,
            "decision": self._run_decision,
            "tool": self._run_tool,
            "context_read": self._run_context_read,
            "context_write": self._run_context_write,
            "input": self._run_transform,
            "output": self._run_transform,
        }

    async def execute(self, definition: NodeAgentDefinition, input: Any, context: NodeExecutionContext) -> Any:
        graph = definition.graph
        order = compute_execution_order(graph)
        if not order:
            return input

        predecessors: dict[str, list[str]] = defaultdict(list)
        for source, target in _effective_edges(graph):
            predecessors[target].append(source)

        nodes: dict[str, GraphNode] = {}
        for n in graph.nodes:
            nodes.setdefault(n.id, n)

        run = _Run(
            definition=definition,
            context=context,
            input=input,
            nodes=nodes,
            position={nid: i for i, nid in enumerate(order)},
            predecessors=predecessors,
        )

        for node_id in order:
            node = nodes[node_id]
            value = self._resolve_input(node_id, run)
            handler = self._handlers.get(node.type)
            if handler is None:
                logger.debug(f"Unknown node type '{node.type}' on {node_id}; passing input through")
                run.outputs[node_id] = value
                continue
            logger.debug(f"Running {node.type} node {node_id}")
            run.outputs[node_id] = await handler(node, value, run)

        return run.outputs.get(order[-1], input)

    def _latest_predecessor(self, node_id: str, run: _Run) -> str | None:
        """The direct predecessor that ran most recently (latest in execution order)."""
        computed = [p for p in run.predecessors.get(node_id, []) if p in run.outputs]
        if not computed:
            return None
        return max(computed, key=lambda p: run.position[p])

    def _resolve_input(self, node_id: str, run: _Run) -> Any:
        pred = self._latest_predecessor(node_id, run)
        return run.input if pred is None else run.outputs[pred]

    # -- llm-backed nodes ----------------------------------------------------

    def _llm_config_id(self, node: GraphNode, run: _Run) -> str | None:
        return node.parameters.get("llmConfigId") or run.definition.default_llm_config_id

    def _declared_tool_ids(self, node: GraphNode, run: _Run) -> list[str]:
        override = node.parameters.get("toolIds")
        if node.type == "decision" and isinstance(override, list):
            return [str(t) for t in override]
        return list(run.definition.tool_ids)

    def _build_messages(self, node: GraphNode, value: Any, run: _Run) -> list[dict]:
        system_prompt = str(node.parameters.get("systemPrompt") or "").strip()
        user_content = _as_text(value)
        prefix = "\n\n".join(b for b in (run.context.rag_block, run.context.tool_instructions_block) if b)
        if prefix:
            user_content = prefix + ("\n\n" + user_content if user_content else "")
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_content})
        return messages

    async def _resolve_tools(self, tool_ids: list[str], run: _Run) -> list[ToolDef] | None:
        if run.context.build_tools_for_ids:
            tools = await run.context.build_tools_for_ids(tool_ids)
        else:
            tools = run.context.available_tools if tool_ids else None
        return tools or None

    async def _run_tool_loop(self, node: GraphNode, value: Any, run: _Run, llm_config_id: str | None) -> str:
        tools = await self._resolve_tools(self._declared_tool_ids(node, run), run)
        request = LLMRequest(
            messages=self._build_messages(node, value, run),
            tools=tools,
            llm_config_id=llm_config_id,
        )
        return await run_llm_with_tools(
            run.context.call_llm, run.context.call_tool, request, max_rounds=run.context.max_tool_rounds
        )

    async def _run_prompt(self, node: GraphNode, value: Any, run: _Run) -> Any:
        p = node.parameters
        prompt = get_prompt(run.context.prompts, str(p.get("promptId") or ""))
        args = p.get("args") or {}
        validate_prompt_arguments(prompt, args)
        rendered = render_prompt_template(prompt, input=value, context=run.context.shared_context, args=args)
        response = await run.context.call_llm(
            LLMRequest(
                messages=[{"role": "user", "content": rendered}],
                llm_config_id=self._llm_config_id(node, run),
            )
        )
        return response.content if isinstance(response, ModelResponse) else response

    async def _run_llm(self, node: GraphNode, value: Any, run: _Run) -> Any:
        return await self._run_tool_loop(node, value, run, self._llm_config_id(node, run))

    async def _run_decision(self, node: GraphNode, value: Any, run: _Run) -> Any:
        llm_config_id = self._llm_config_id(node, run)
        if not llm_config_id:
            raise MissingDependencyError(
                f'Decision node "{node.id}" requires llmConfigId or agent default_llm_config_id'
            )
        return await self._run_tool_loop(node, value, run, llm_config_id)

    # -- tool / context / transform nodes -----------------------------------

    async def _run_tool(self, node: GraphNode, value: Any, run: _Run) -> Any:
        p = node.parameters
        tool_id = str(p.get("toolId") or "")

        pred_id = self._latest_predecessor(node.id, run)
        if pred_id is not None:
            pred = run.nodes[pred_id]
            if pred.type in ("llm", "decision") and tool_id in self._declared_tool_ids(pred, run):
                # Already available to (and possibly invoked by) the decision loop
                logger.debug(f"Tool node {node.id} passes through; {pred_id} already offered '{tool_id}'")
                return value

        tool_input = p["input"] if p.get("input") is not None else value
        override = p.get("override")
        if override is not None:
            return await run.context.call_tool(tool_id, tool_input, override)
        return await run.context.call_tool(tool_id, tool_input)

    async def _run_context_read(self, node: GraphNode, value: Any, run: _Run) -> Any:
        return run.context.shared_context.get(str(node.parameters.get("key") or ""))

    async def _run_context_write(self, node: GraphNode, value: Any, run: _Run) -> Any:
        p = node.parameters
        run.context.shared_context[str(p.get("key") or "")] = p["value"] if p.get("value") is not None else value
        return value

    async def _run_transform(self, node: GraphNode, value: Any, run: _Run) -> Any:
        return apply_transform(node.parameters, value)
