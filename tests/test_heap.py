"""Test heap DAG building, runner delegation, and router parsing."""

import asyncio

import pytest

from agentheap.events import EventBus
from agentheap.heap import (
    SpecialistEntry,
    SpecialistRegistry,
    append_context,
    apply_registry_caps,
    build_heap_dag,
    build_router_prompt,
    enrich_task_with_plan,
    format_previous_steps,
    infer_fallback_priority_order,
    parse_router_output,
    route,
    run_heap,
    run_heap_from_dag,
)
from agentheap.heap.runner import NO_SPECIALISTS, NO_STEPS_RUN
from agentheap.models import HeapContextSummary, HeapDAG, SpecialistResult


def make_registry(*ids, top=None):
    return SpecialistRegistry(
        top_level_ids=list(top if top is not None else ids),
        specialists={i: SpecialistEntry(id=i, description=f"{i} things") for i in ids},
    )


class Recorder:
    """Fake specialist runner: records calls and the context each one saw."""

    def __init__(self, results=None, delay=None):
        self.results = results or {}
        self.delay = delay or {}
        self.calls: list[tuple[str, str, tuple]] = []

    async def __call__(self, sid, task, context):
        self.calls.append((sid, task, tuple(s.specialist_id for s in context.steps)))
        if sid in self.delay:
            await asyncio.sleep(self.delay[sid])
        result = self.results.get(sid)
        if callable(result):
            return result(task, context)
        return result or SpecialistResult(summary=f"{sid} done")


# ---------------------------------------------------------------------------
# DAG build / context
# ---------------------------------------------------------------------------


def test_build_heap_dag():
    reg = make_registry("a", "b", "c")
    dag = build_heap_dag(["a", {"parallel": ["b", "c"]}, "a"], reg)
    assert dag.levels == [["a"], ["b", "c"], ["a"]]


def test_build_heap_dag_drops_unknown_and_empty():
    reg = make_registry("a", "b")
    dag = build_heap_dag(["ghost", {"parallel": ["ghost", "b"]}, {"parallel": []}, {"other": 1}, "a"], reg)
    assert dag.levels == [["b"], ["a"]]


def test_append_context_caps_and_does_not_mutate():
    ctx = HeapContextSummary()
    for i in range(12):
        ctx = append_context(ctx, f"s{i}", f"o{i}", max_steps=10)
    assert len(ctx.steps) == 10
    assert ctx.steps[0].specialist_id == "s2"

    before = ctx
    after = append_context(before, "x", "y", max_steps=10)
    assert before.steps[-1].specialist_id == "s11"
    assert after.steps[-1].specialist_id == "x"


def test_format_previous_steps():
    ctx = append_context(append_context(HeapContextSummary(), "a", "did A"), "b", "did B")
    assert format_previous_steps(ctx) == "- a: did A\n- b: did B"


def test_registry_caps():
    reg = SpecialistRegistry(
        top_level_ids=[f"t{i}" for i in range(10)],
        specialists={
            "s": SpecialistEntry(id="s", tool_names=[f"tool{i}" for i in range(15)], delegate_targets=list("abcdefghij"))
        },
    )
    capped = apply_registry_caps(reg)
    assert len(capped.top_level_ids) == 7
    assert len(capped.specialists["s"].tool_names) == 10
    assert len(capped.specialists["s"].delegate_targets) == 7
    assert len(reg.specialists["s"].tool_names) == 15


def test_registry_from_dict():
    reg = SpecialistRegistry.from_dict({
        "specialists": {"workflow": {"toolNames": ["list"], "delegateTargets": ["agent"]}, "agent": {}},
    })
    assert reg.top_level_ids == ["workflow", "agent"]
    assert reg.get("workflow").delegate_targets == ["agent"]
    assert "agent" in reg


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_sequential_context_flows():
    reg = make_registry("a", "b")
    run = Recorder()
    result = await run_heap(["a", "b"], "task", run, reg)

    assert result.summary == "b done"
    assert [s.specialist_id for s in result.context.steps] == ["a", "b"]
    assert run.calls == [("a", "task", ()), ("b", "task", ("a",))]


@pytest.mark.asyncio
async def test_parallel_level_shares_snapshot_and_keeps_declaration_order():
    reg = make_registry("a", "b", "c", "d")
    # b finishes before a, but context order follows the declaration
    run = Recorder(delay={"a": 0.02, "b": 0.0})
    result = await run_heap(["c", {"parallel": ["a", "b"]}, "d"], "t", run, reg)

    seen = {sid: ctx for sid, _, ctx in run.calls}
    assert seen["a"] == ("c",)
    assert seen["b"] == ("c",)
    assert seen["d"] == ("c", "a", "b")
    assert [s.specialist_id for s in result.context.steps] == ["c", "a", "b", "d"]


@pytest.mark.asyncio
async def test_empty_route_falls_back_to_first_top_level():
    reg = make_registry("general", "other")
    run = Recorder()
    result = await run_heap(["ghost"], "t", run, reg)
    assert [c[0] for c in run.calls] == ["general"]
    assert result.summary == "general done"
    assert [s.specialist_id for s in result.context.steps] == ["general"]


@pytest.mark.asyncio
async def test_no_specialists():
    result = await run_heap([], "t", Recorder(), SpecialistRegistry())
    assert result.summary == NO_SPECIALISTS
    assert result.context.steps == ()


@pytest.mark.asyncio
async def test_empty_dag_from_dag():
    result = await run_heap_from_dag(HeapDAG(), "t", Recorder(), make_registry("a"))
    assert result.summary == NO_STEPS_RUN


@pytest.mark.asyncio
async def test_delegation_runs_sub_heap():
    reg = make_registry("planner", "worker")
    run = Recorder(results={
        "planner": SpecialistResult(summary="planned", delegate_heap=["worker", "ghost"], delegate_task="do it"),
    })
    result = await run_heap(["planner"], "t", run, reg)

    assert run.calls[1] == ("worker", "do it", ("planner",))
    assert result.summary == "worker done"
    assert [s.specialist_id for s in result.context.steps] == ["planner", "worker"]


@pytest.mark.asyncio
async def test_delegation_uses_parent_task_when_none_given():
    reg = make_registry("a", "b")
    run = Recorder(results={"a": SpecialistResult(summary="x", delegate_heap=["b"])})
    await run_heap(["a"], "parent task", run, reg)
    assert run.calls[1][1] == "parent task"


@pytest.mark.asyncio
async def test_delegation_depth_limit():
    reg = make_registry("loop")
    run = Recorder(results={"loop": SpecialistResult(summary="again", delegate_heap=["loop"])})
    await run_heap(["loop"], "t", run, reg, depth_limit=5)
    # Depth 0 through 5 inclusive
    assert len(run.calls) == 6


@pytest.mark.asyncio
async def test_delegation_with_only_unknown_ids_is_ignored():
    reg = make_registry("a", "b")
    run = Recorder(results={"a": SpecialistResult(summary="a out", delegate_heap=["ghost"])})
    result = await run_heap(["a", "b"], "t", run, reg)
    assert [c[0] for c in run.calls] == ["a", "b"]
    assert result.summary == "b done"


@pytest.mark.asyncio
async def test_specialist_error_propagates():
    reg = make_registry("a")

    async def boom(sid, task, context):
        raise RuntimeError("specialist failed")

    with pytest.raises(RuntimeError, match="specialist failed"):
        await run_heap(["a"], "t", boom, reg)


@pytest.mark.asyncio
async def test_runner_emits_events():
    bus = EventBus()
    reg = make_registry("a", "b")
    run = Recorder(results={"a": SpecialistResult(summary="x", delegate_heap=["b"])})
    await run_heap(["a"], "t", run, reg, trace_id="trace1", event_bus=bus)
    types = [e.type for e in bus.recent()]
    assert types == ["heap.level", "heap.delegate", "heap.level"]
    assert bus.recent()[1].data["depth"] == 1


# ---------------------------------------------------------------------------
# Router / planner
# ---------------------------------------------------------------------------


def test_router_prompt_lists_options():
    reg = make_registry(*[f"s{i}" for i in range(12)])
    prompt = build_router_prompt("do stuff", reg)
    assert "- s0: s0 things" in prompt
    assert "- s9" in prompt
    assert "- s10" not in prompt
    assert "do stuff" in prompt
    assert "s0 things" not in build_router_prompt("x", reg, include_descriptions=False)


def test_parse_router_output():
    out = parse_router_output(
        'Here: {"priorityOrder": ["a", {"parallel": ["b", 3]}, {"parallel": [1]}, 7], "refinedTask": "Do A then B"}'
    )
    assert out.priority_order == ["a", {"parallel": ["b"]}]
    assert out.refined_task == "Do A then B"


def test_parse_router_output_invalid():
    assert parse_router_output("no json here") is None
    assert parse_router_output("{broken") is None
    assert parse_router_output('{"priorityOrder": "a", "refinedTask": "x"}') is None


def test_fallback_priority_order():
    reg = make_registry("general", "agent", "workflow")
    assert infer_fallback_priority_order("Please create an agent and run the workflow", None, reg) == [
        "agent",
        "workflow",
    ]
    assert infer_fallback_priority_order("hello", "we said build a workflow", reg) == ["workflow"]
    assert infer_fallback_priority_order("hello", None, reg) == ["general"]
    assert infer_fallback_priority_order("create an agent", None, make_registry("general")) == ["general"]
    assert infer_fallback_priority_order("hi", None, SpecialistRegistry()) == []


def test_route_falls_back():
    reg = make_registry("general", "agent")
    routed = route("garbage", "make an agent please", reg)
    assert routed.priority_order == ["agent"]
    assert routed.refined_task == "make an agent please"

    routed = route('{"priorityOrder": ["general"], "refinedTask": "answer"}', "q", reg)
    assert routed.priority_order == ["general"]
    assert routed.refined_task == "answer"


def test_enrich_task_with_plan():
    text = enrich_task_with_plan("Build it", " step 1", {"id": "w1"}, "- a: done")
    assert text.startswith("Build it")
    assert "Plan for you:\nstep 1" in text
    assert '"id": "w1"' in text
    assert text.endswith("Previous steps:\n- a: done")
    assert enrich_task_with_plan("Only") == "Only"
