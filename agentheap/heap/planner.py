"""Router prompt, router output parsing, and keyword fallback routing.

The router LLM call itself belongs to the caller; this module only builds the
prompt and turns the model's text back into a priority order.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from agentheap.heap.registry import SpecialistRegistry
from agentheap.models import HeapStep

logger = logging.getLogger(__name__)

# Max options the router sees at once; deeper levels are reached through delegation.
ROUTER_OPTIONS_CAP = 10

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)
_AGENT_INTENT = re.compile(r"\b(create|add|build|make)\s+(an?\s+)?agent\b|\bagent\s+(create|add)\b", re.IGNORECASE)
_WORKFLOW_INTENT = re.compile(
    r"\b(create|add|build|make|run|execute)\s+(a\s+)?workflow\b"
    r"|\bworkflow\s+(create|run|execute)\b"
    r"|\brun\s+the\s+workflow\b",
    re.IGNORECASE,
)


@dataclass
class RouterOutput:
    priority_order: list[HeapStep]
    refined_task: str


def build_router_prompt(user_message: str, registry: SpecialistRegistry, include_descriptions: bool = True) -> str:
    lines = []
    for sid in registry.top_level_ids[:ROUTER_OPTIONS_CAP]:
        entry = registry.get(sid)
        desc = f": {entry.description}" if include_descriptions and entry and entry.description else ""
        lines.append(f"- {sid}{desc}")
    specialist_list = "\n".join(lines)

    return f"""You are a router. The user message and available specialists are below.

Available specialists (choose one or more, in order; you may use parallel steps):
{specialist_list}

Respond with exactly one JSON object, no other text, in this form:
{{"priorityOrder": [...], "refinedTask": "..."}}

Rules for priorityOrder:
- Each element is either a specialist id string (e.g. "workflow") or a parallel group: {{"parallel": ["id1", "id2"]}}.
- Only use ids from the list above.
- Order matters: steps run sequentially unless in a parallel group.
- Keep the list short (e.g. 1-3 steps).

refinedTask: a short, clear task description for the specialists (1-2 sentences).

User message:
---
{user_message}
---"""


def parse_priority_order(items: Any) -> list[HeapStep]:
    """Keep string steps and non-empty parallel groups of strings; drop everything else."""
    order: list[HeapStep] = []
    for item in items if isinstance(items, list) else []:
        if isinstance(item, str):
            order.append(item)
        elif isinstance(item, dict) and isinstance(item.get("parallel"), list):
            ids = [x for x in item["parallel"] if isinstance(x, str)]
            if ids:
                order.append({"parallel": ids})
    return order


def parse_router_output(text: str) -> RouterOutput | None:
    """Parse {"priorityOrder": [...], "refinedTask": "..."} out of model text. None if invalid."""
    m = _JSON_OBJECT.search((text or "").strip())
    if not m:
        return None
    try:
        parsed = json.loads(m.group(0))
    except json.JSONDecodeError:
        logger.warning("Router output is not valid JSON")
        return None
    if not isinstance(parsed, dict):
        return None
    order = parsed.get("priorityOrder")
    task = parsed.get("refinedTask")
    if not isinstance(order, list) or not isinstance(task, str):
        return None
    return RouterOutput(priority_order=parse_priority_order(order), refined_task=task)


def infer_fallback_priority_order(
    message: str,
    recent_context: str | None,
    registry: SpecialistRegistry,
) -> list[str]:
    """Keyword routing for when the router returns nothing usable."""
    text = " ".join([message or "", recent_context or ""]).lower()
    order = []
    if _AGENT_INTENT.search(text) and "agent" in registry:
        order.append("agent")
    if _WORKFLOW_INTENT.search(text) and "workflow" in registry:
        order.append("workflow")
    if order:
        return order
    return registry.top_level_ids[:1]


def route(text: str, user_message: str, registry: SpecialistRegistry, recent_context: str | None = None) -> RouterOutput:
    """Router output when valid and non-empty, else the keyword fallback with the raw message as task."""
    parsed = parse_router_output(text)
    if parsed and parsed.priority_order:
        return parsed
    logger.info("Router output empty or invalid; using keyword fallback")
    fallback = infer_fallback_priority_order(user_message, recent_context, registry)
    return RouterOutput(
        priority_order=list(fallback),
        refined_task=parsed.refined_task if parsed and parsed.refined_task else user_message,
    )


def enrich_task_with_plan(
    refined_task: str,
    instructions: str | None = None,
    extracted_context: dict[str, Any] | None = None,
    previous_steps: str | None = None,
) -> str:
    """Task text for one specialist: the refined task plus its plan, extracted values, and prior outcomes."""
    parts = [refined_task]
    if instructions and instructions.strip():
        parts.append("\n\nPlan for you:\n" + instructions.strip())
    if extracted_context:
        parts.append("\n\nExtracted context (use these values):\n" + json.dumps(extracted_context))
    if previous_steps and previous_steps.strip():
        parts.append("\n\nPrevious steps:\n" + previous_steps.strip())
    return "".join(parts)
