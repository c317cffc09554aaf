"""Builds a HeapDAG from a priority order. Pure: no model calls."""

from __future__ import annotations

from agentheap.config import HEAP_CONTEXT_MAX_STEPS
from agentheap.heap.registry import SpecialistRegistry
from agentheap.models import HeapContextStep, HeapContextSummary, HeapDAG, HeapStep


def step_ids(step: HeapStep) -> list[str]:
    """Specialist ids in one step: a bare id, or the members of a {"parallel": [...]} group."""
    if isinstance(step, str):
        return [step]
    if isinstance(step, dict) and isinstance(step.get("parallel"), list):
        return [s for s in step["parallel"] if isinstance(s, str)]
    return []


def build_heap_dag(priority_order: list[HeapStep], registry: SpecialistRegistry) -> HeapDAG:
    """One level per sequential step, one level per parallel group. Unknown ids and empty steps are dropped."""
    levels = []
    for step in priority_order:
        level = [sid for sid in step_ids(step) if sid in registry.specialists]
        if level:
            levels.append(level)
    return HeapDAG(levels=levels)


def append_context(
    context: HeapContextSummary,
    specialist_id: str,
    outcome: str,
    max_steps: int = HEAP_CONTEXT_MAX_STEPS,
) -> HeapContextSummary:
    """New summary with the outcome appended; oldest steps drop off past max_steps."""
    steps = (*context.steps, HeapContextStep(specialist_id=specialist_id, outcome=outcome))
    return HeapContextSummary(steps=steps[-max_steps:] if max_steps > 0 else ())


def format_previous_steps(context: HeapContextSummary) -> str:
    return "\n".join(f"- {s.specialist_id}: {s.outcome}" for s in context.steps)
