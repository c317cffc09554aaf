"""Event system — append-only log with streaming support, plus turn progress callbacks."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from agentheap.models import Event

logger = logging.getLogger(__name__)


class EventBus:
    """Append-only event log with subscription support."""

    def __init__(self, log_file: Path | None = None, max_history: int = 1000):
        self._log_file = log_file
        self._subscribers: list[asyncio.Queue] = []
        self._history: list[Event] = []
        self._max_history = max_history

        if log_file:
            log_file.parent.mkdir(parents=True, exist_ok=True)

    def emit(self, event: Event):
        """Emit an event — log and notify subscribers."""
        self._history.append(event)
        if len(self._history) > self._max_history:
            del self._history[: len(self._history) - self._max_history]
        self._persist(event)
        self._notify(event)
        logger.debug(f"Event: {event.type} [{event.agent_id}] {event.data}")

    def emit_simple(self, type: str, agent_id: str, **data):
        """Convenience: emit with keyword args."""
        self.emit(Event(type=type, agent_id=agent_id, data=data))

    def recent(self, limit: int = 50, offset: int = 0) -> list[Event]:
        """Get recent events (paginated)."""
        start = max(0, len(self._history) - offset - limit)
        end = len(self._history) - offset
        return self._history[start:end]

    def subscribe(self) -> asyncio.Queue:
        """Subscribe to live events."""
        q: asyncio.Queue = asyncio.Queue(maxsize=1000)
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue):
        if q in self._subscribers:
            self._subscribers.remove(q)

    def _persist(self, event: Event):
        if self._log_file:
            with open(self._log_file, "a") as f:
                f.write(json.dumps(event.to_dict(), default=str) + "\n")

    def _notify(self, event: Event):
        for q in self._subscribers:
            try:
                q.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"Event subscriber queue full; dropping {event.type}")


# ---------------------------------------------------------------------------
# Turn progress
# ---------------------------------------------------------------------------


class AssistantProgress:
    """Progress hooks for one assistant turn. Override what you need; defaults do nothing."""

    def on_plan(self, reasoning: str, todos: list[str]):
        pass

    def on_step_start(self, step_index: int, todo_label: str, tool_name: str):
        pass

    def on_tool_done(self, index: int, name: str, result: Any):
        pass


class EventBusProgress(AssistantProgress):
    """Republishes turn progress on an EventBus."""

    def __init__(self, event_bus: EventBus, turn_id: str):
        self.event_bus = event_bus
        self.turn_id = turn_id

    def on_plan(self, reasoning: str, todos: list[str]):
        self.event_bus.emit_simple("turn.plan", self.turn_id, reasoning=reasoning, todos=todos)

    def on_step_start(self, step_index: int, todo_label: str, tool_name: str):
        self.event_bus.emit_simple(
            "tool.called", self.turn_id, step_index=step_index, todo=todo_label, tool=tool_name
        )

    def on_tool_done(self, index: int, name: str, result: Any):
        self.event_bus.emit_simple("tool.result", self.turn_id, index=index, tool=name, result=str(result)[:200])
