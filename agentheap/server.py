"""FastAPI server — thin HTTP surface over the rate gate, heap planner and assistant turn."""

from __future__ import annotations

import logging
from typing import Any

import uvicorn
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from agentheap.assistant import AssistantOptions, pending_user_input, run_assistant
from agentheap.config import DEFAULT_MODEL, SERVER_HOST, SERVER_PORT
from agentheap.events import EventBus, EventBusProgress
from agentheap.heap import SpecialistRegistry, apply_registry_caps, build_heap_dag, route
from agentheap.models import LLMCaller, generate_id
from agentheap.providers import create_provider
from agentheap.rate_limiter import RequestContext, get_default_rate_limiter
from agentheap.tools import create_default_registry

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(name)s] %(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="AgentHeap", version="0.1", description="Agent execution and turn orchestration")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

event_bus = EventBus()
tool_registry = create_default_registry()


def make_llm_caller(model: str) -> LLMCaller:
    """LLM caller for a turn. Swapped out in tests."""
    return create_provider(model, request_context=RequestContext(source="chat"))


# ---------------------------------------------------------------------------
# Request / Response Models
# ---------------------------------------------------------------------------


class RegistryPayload(BaseModel):
    topLevelIds: list[str] | None = None
    specialists: dict[str, dict[str, Any]] = Field(default_factory=dict)


class DagRequest(BaseModel):
    priorityOrder: list[Any]
    registry: RegistryPayload


class RouteRequest(BaseModel):
    text: str
    userMessage: str
    registry: RegistryPayload
    recentContext: str | None = None


class TurnRequest(BaseModel):
    message: str
    history: list[dict[str, Any]] = Field(default_factory=list)
    model: str | None = None
    systemPrompt: str | None = None
    ragContext: str | None = None
    uiContext: str | None = None
    temperature: float | None = None
    maxFollowUpRounds: int | None = None


def _registry(payload: RegistryPayload) -> SpecialistRegistry:
    return apply_registry_caps(SpecialistRegistry.from_dict(payload.model_dump()))


# ---------------------------------------------------------------------------
# Health / Rate gate
# ---------------------------------------------------------------------------


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/llm/queue")
async def llm_queue() -> dict:
    """Requests currently waiting on the rate gate, plus recently delayed ones."""
    limiter = get_default_rate_limiter()
    return {
        "pending": [p.to_dict() for p in limiter.pending()],
        "recentDelayed": [d.to_dict() for d in limiter.recent_delayed()],
    }


# ---------------------------------------------------------------------------
# Heap
# ---------------------------------------------------------------------------


@app.post("/heap/dag")
async def heap_dag(req: DagRequest) -> dict:
    dag = build_heap_dag(req.priorityOrder, _registry(req.registry))
    return {"levels": dag.levels}


@app.post("/heap/route")
async def heap_route(req: RouteRequest) -> dict:
    """Parse router output; falls back to keyword routing when it is empty or invalid."""
    registry = _registry(req.registry)
    routed = route(req.text, req.userMessage, registry, req.recentContext)
    dag = build_heap_dag(routed.priority_order, registry)
    return {"priorityOrder": routed.priority_order, "refinedTask": routed.refined_task, "levels": dag.levels}


# ---------------------------------------------------------------------------
# Assistant turn
# ---------------------------------------------------------------------------


@app.post("/turn")
async def turn(req: TurnRequest) -> dict:
    """Run one assistant turn with the built-in tools."""
    turn_id = generate_id()
    options = AssistantOptions(
        call_llm=make_llm_caller(req.model or DEFAULT_MODEL),
        execute_tool=tool_registry.execute,
        system_prompt=req.systemPrompt,
        rag_context=req.ragContext,
        ui_context=req.uiContext,
        temperature=req.temperature,
        progress=EventBusProgress(event_bus, turn_id),
    )
    if req.maxFollowUpRounds is not None:
        options.max_follow_up_rounds = req.maxFollowUpRounds

    event_bus.emit_simple("turn.started", turn_id, message=req.message[:200])
    try:
        response = await run_assistant(req.history, req.message, options)
    except Exception as e:
        logger.error(f"Turn {turn_id} failed: {e}", exc_info=True)
        event_bus.emit_simple("turn.failed", turn_id, error=str(e))
        raise HTTPException(status_code=500, detail=str(e))
    event_bus.emit_simple("turn.completed", turn_id, tools=len(response.tool_results))

    result = response.to_dict()
    result["turnId"] = turn_id
    pending = pending_user_input(response.tool_results)
    if pending:
        result["pendingInput"] = pending
    return result


# ---------------------------------------------------------------------------
# Events (WebSocket + Polling)
# ---------------------------------------------------------------------------


@app.websocket("/events/ws")
async def event_stream(websocket: WebSocket):
    """WebSocket stream of progress events."""
    await websocket.accept()
    queue = event_bus.subscribe()
    try:
        while True:
            event = await queue.get()
            await websocket.send_json(event.to_dict())
    except WebSocketDisconnect:
        pass
    finally:
        event_bus.unsubscribe(queue)


@app.get("/events")
async def get_events(limit: int = 50, offset: int = 0) -> list[dict]:
    """Get recent events (polling fallback)."""
    return [e.to_dict() for e in event_bus.recent(limit=limit, offset=offset)]


# ---------------------------------------------------------------------------
# Entry Point
# ---------------------------------------------------------------------------


def main():
    """Start the AgentHeap server."""
    print(f"Starting AgentHeap server on {SERVER_HOST}:{SERVER_PORT}")
    uvicorn.run(app, host=SERVER_HOST, port=SERVER_PORT, log_level="info")


if __name__ == "__main__":
    main()
