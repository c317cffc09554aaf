"""Tool registry and built-in tools."""

from agentheap.tools.registry import ToolRegistry
from agentheap.tools.setup import create_default_registry

__all__ = ["ToolRegistry", "create_default_registry"]
