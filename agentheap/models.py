"""Core data structures for agentheap."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Union


def generate_id() -> str:
    return uuid.uuid4().hex[:12]


# ---------------------------------------------------------------------------
# LLM contract
# ---------------------------------------------------------------------------


@dataclass
class ToolDef:
    """Canonical tool definition. Adapters translate this to provider-specific formats."""

    name: str
    description: str  # short, for the schema
    parameters: dict[str, Any]  # JSON Schema
    guidance: str = ""  # long, for the prompt (tips, patterns)


@dataclass
class ToolCall:
    """A tool call requested by the model. Arguments stay a raw JSON string."""

    name: str
    arguments: str = "{}"
    id: str = field(default_factory=lambda: f"tc_{uuid.uuid4().hex[:8]}")


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class LLMRequest:
    messages: list[dict[str, Any]]
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    tools: list[ToolDef] | None = None
    llm_config_id: str | None = None


@dataclass
class ModelResponse:
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: TokenUsage | None = None
    raw: Any = None


LLMCaller = Callable[[LLMRequest], Awaitable[ModelResponse]]
ToolExecutor = Callable[[str, dict[str, Any]], Awaitable[Any]]


# ---------------------------------------------------------------------------
# Node-agent graph
# ---------------------------------------------------------------------------


@dataclass
class GraphNode:
    id: str
    type: str
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass
class GraphEdge:
    source: str
    target: str


@dataclass
class Graph:
    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Graph":
        nodes = [
            GraphNode(id=str(n["id"]), type=str(n.get("type", "")), parameters=dict(n.get("parameters") or {}))
            for n in data.get("nodes", [])
        ]
        edges = [
            GraphEdge(source=str(e.get("source", e.get("from", ""))), target=str(e.get("target", e.get("to", ""))))
            for e in data.get("edges", [])
        ]
        return cls(nodes=nodes, edges=edges)


@dataclass
class NodeAgentDefinition:
    graph: Graph = field(default_factory=Graph)
    tool_ids: list[str] = field(default_factory=list)
    default_llm_config_id: str | None = None


@dataclass
class PromptArgument:
    name: str
    required: bool = False
    description: str = ""


@dataclass
class PromptTemplate:
    id: str
    template: str
    arguments: list[PromptArgument] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Heap
# ---------------------------------------------------------------------------

# A step is one specialist id, or {"parallel": [ids]}.
HeapStep = Union[str, dict[str, list[str]]]


@dataclass
class HeapContextStep:
    specialist_id: str
    outcome: str

    def to_dict(self) -> dict:
        return {"specialistId": self.specialist_id, "outcome": self.outcome}


@dataclass(frozen=True)
class HeapContextSummary:
    """Sliding window of previous specialist outcomes. Never mutated in place."""

    steps: tuple[HeapContextStep, ...] = ()

    def to_dict(self) -> dict:
        return {"steps": [s.to_dict() for s in self.steps]}


@dataclass
class HeapDAG:
    levels: list[list[str]] = field(default_factory=list)


@dataclass
class SpecialistResult:
    summary: str
    delegate_heap: list[HeapStep] | None = None
    delegate_task: str | None = None


@dataclass
class HeapRunResult:
    summary: str
    context: HeapContextSummary


RunSpecialistFn = Callable[[str, str, HeapContextSummary], Awaitable[SpecialistResult]]


# ---------------------------------------------------------------------------
# Assistant turn
# ---------------------------------------------------------------------------


@dataclass
class ToolResult:
    name: str
    args: dict[str, Any]
    result: Any

    def to_dict(self) -> dict:
        return {"name": self.name, "args": self.args, "result": self.result}


@dataclass
class AssistantResponse:
    content: str
    tool_results: list[ToolResult] = field(default_factory=list)
    reasoning: str | None = None
    todos: list[str] | None = None
    completed_step_indices: list[int] | None = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "content": self.content,
            "toolResults": [r.to_dict() for r in self.tool_results],
        }
        if self.reasoning:
            d["reasoning"] = self.reasoning
        if self.todos:
            d["todos"] = self.todos
            d["completedStepIndices"] = self.completed_step_indices or []
        return d


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass
class Event:
    type: str
    agent_id: str
    ts: float = field(default_factory=time.time)
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"type": self.type, "agent_id": self.agent_id, "ts": self.ts, "data": self.data}
