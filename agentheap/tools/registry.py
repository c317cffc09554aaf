"""Tool registry — registers, resolves, and dispatches tool calls."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable

from agentheap.models import ToolDef

logger = logging.getLogger(__name__)

# Type for tool implementation functions
ToolImpl = Callable[..., Awaitable[Any] | Any]


class ToolRegistry:
    """Registry of tool definitions and their implementations."""

    def __init__(self):
        self._tools: dict[str, ToolDef] = {}
        self._impls: dict[str, ToolImpl] = {}

    def register(self, tool_def: ToolDef, impl: ToolImpl):
        """Register a tool definition with its implementation."""
        self._tools[tool_def.name] = tool_def
        self._impls[tool_def.name] = impl

    def get_def(self, name: str) -> ToolDef | None:
        return self._tools.get(name)

    def get_all(self) -> list[ToolDef]:
        return list(self._tools.values())

    def build_tools_for_ids(self, ids: list[str]) -> list[ToolDef]:
        """ToolDefs for the known ids, in the order given. Unknown ids are skipped."""
        return [self._tools[i] for i in ids if i in self._tools]

    async def execute(self, name: str, args: dict[str, Any]) -> Any:
        """Run a tool and return its raw result. Implementation errors propagate."""
        impl = self._impls.get(name)
        if not impl:
            logger.warning(f"Unknown tool '{name}'")
            return {"error": f"Unknown tool: {name}"}

        logger.debug(f"Tool '{name}' args={args}")
        result = impl(**args)
        # Handle both sync and async implementations
        if inspect.isawaitable(result):
            result = await result
        return result

    def names(self) -> list[str]:
        return list(self._tools.keys())
