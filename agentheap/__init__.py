"""AgentHeap — agent graph execution, heap delegation and assistant turn orchestration."""

from agentheap.assistant import AssistantOptions, pending_user_input, run_assistant
from agentheap.node_agent import NodeAgentExecutor, NodeExecutionContext
from agentheap.rate_limiter import RateLimitConfig, RateLimiter, get_default_rate_limiter

__all__ = [
    "AssistantOptions",
    "NodeAgentExecutor",
    "NodeExecutionContext",
    "RateLimitConfig",
    "RateLimiter",
    "get_default_rate_limiter",
    "pending_user_input",
    "run_assistant",
]
