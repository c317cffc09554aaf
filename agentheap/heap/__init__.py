"""Heap — multi-specialist routing and DAG execution."""

from agentheap.heap.dag import append_context, build_heap_dag, format_previous_steps
from agentheap.heap.planner import (
    RouterOutput,
    build_router_prompt,
    enrich_task_with_plan,
    infer_fallback_priority_order,
    parse_router_output,
    route,
)
from agentheap.heap.registry import SpecialistEntry, SpecialistRegistry, apply_registry_caps
from agentheap.heap.runner import run_heap, run_heap_from_dag

__all__ = [
    "RouterOutput",
    "SpecialistEntry",
    "SpecialistRegistry",
    "append_context",
    "apply_registry_caps",
    "build_heap_dag",
    "build_router_prompt",
    "enrich_task_with_plan",
    "format_previous_steps",
    "infer_fallback_priority_order",
    "parse_router_output",
    "route",
    "run_heap",
    "run_heap_from_dag",
]
