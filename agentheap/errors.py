"""Exception classes raised by the orchestration core."""

from __future__ import annotations


class AgentHeapError(Exception):
    """Base class for agentheap errors."""


class MissingDependencyError(AgentHeapError):
    """A node or turn needs something the caller did not provide (prompt, llm config, ...)."""


class PromptNotFoundError(MissingDependencyError, KeyError):
    def __init__(self, prompt_id: str):
        self.prompt_id = prompt_id
        super().__init__(f"Prompt not found: {prompt_id}")

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.args[0]


class PromptArgumentError(AgentHeapError, ValueError):
    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Missing required prompt arguments: {', '.join(missing)}")
