"""Heap runner — runs a HeapDAG level by level, with depth-limited delegation."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from agentheap.config import HEAP_CONTEXT_MAX_STEPS, HEAP_DEPTH_LIMIT
from agentheap.heap.dag import append_context, build_heap_dag
from agentheap.heap.registry import SpecialistRegistry
from agentheap.models import HeapContextSummary, HeapDAG, HeapRunResult, HeapStep, RunSpecialistFn

if TYPE_CHECKING:
    from agentheap.events import EventBus

logger = logging.getLogger(__name__)

NO_STEPS_RUN = "No steps run."
NO_SPECIALISTS = "No specialists available."


async def run_heap_from_dag(
    dag: HeapDAG,
    task: str,
    run_specialist: RunSpecialistFn,
    registry: SpecialistRegistry,
    depth: int = 0,
    depth_limit: int = HEAP_DEPTH_LIMIT,
    initial_context: HeapContextSummary | None = None,
    max_context_steps: int = HEAP_CONTEXT_MAX_STEPS,
    trace_id: str | None = None,
    event_bus: "EventBus | None" = None,
) -> HeapRunResult:
    """Run each level concurrently, in order. Results fold into the context in declaration order."""
    context = initial_context or HeapContextSummary()
    outcomes: list[str] = []

    for level_index, level in enumerate(dag.levels):
        if not level:
            continue

        logger.info(f"[heap {trace_id}] level {level_index} depth {depth}: {level}")
        if event_bus:
            event_bus.emit_simple("heap.level", trace_id or "", level=level_index, specialists=level, depth=depth)

        # Every specialist in the level sees the same snapshot
        snapshot = context
        results = await asyncio.gather(*(run_specialist(sid, task, snapshot) for sid in level))

        for sid, result in zip(level, results):
            context = append_context(context, sid, result.summary, max_context_steps)
            outcomes.append(result.summary)

            if not result.delegate_heap:
                continue
            if depth >= depth_limit:
                logger.warning(f"[heap {trace_id}] {sid} asked to delegate at depth {depth}; limit {depth_limit} reached")
                continue

            sub_dag = build_heap_dag(result.delegate_heap, registry)
            if not sub_dag.levels:
                continue

            logger.info(f"[heap {trace_id}] {sid} delegates {result.delegate_heap} at depth {depth + 1}")
            if event_bus:
                event_bus.emit_simple(
                    "heap.delegate", trace_id or "", specialist=sid, steps=sub_dag.levels, depth=depth + 1
                )
            sub = await run_heap_from_dag(
                sub_dag,
                result.delegate_task or task,
                run_specialist,
                registry,
                depth=depth + 1,
                depth_limit=depth_limit,
                initial_context=context,
                max_context_steps=max_context_steps,
                trace_id=trace_id,
                event_bus=event_bus,
            )
            context = sub.context
            outcomes.append(sub.summary)

    return HeapRunResult(summary=outcomes[-1] if outcomes else NO_STEPS_RUN, context=context)


async def run_heap(
    priority_order: list[HeapStep],
    task: str,
    run_specialist: RunSpecialistFn,
    registry: SpecialistRegistry,
    depth_limit: int = HEAP_DEPTH_LIMIT,
    max_context_steps: int = HEAP_CONTEXT_MAX_STEPS,
    trace_id: str | None = None,
    event_bus: "EventBus | None" = None,
) -> HeapRunResult:
    """Build the DAG from a priority order and run it. An empty DAG falls back to the first top-level specialist."""
    dag = build_heap_dag(priority_order, registry)

    if not dag.levels:
        if not registry.top_level_ids:
            return HeapRunResult(summary=NO_SPECIALISTS, context=HeapContextSummary())
        fallback = registry.top_level_ids[0]
        logger.info(f"[heap {trace_id}] empty route; falling back to {fallback}")
        result = await run_specialist(fallback, task, HeapContextSummary())
        return HeapRunResult(
            summary=result.summary,
            context=append_context(HeapContextSummary(), fallback, result.summary, max_context_steps),
        )

    return await run_heap_from_dag(
        dag,
        task,
        run_specialist,
        registry,
        depth=0,
        depth_limit=depth_limit,
        max_context_steps=max_context_steps,
        trace_id=trace_id,
        event_bus=event_bus,
    )
