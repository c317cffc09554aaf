"""Wire tool definitions to implementations and create the default registry."""

from agentheap.tools.definitions import ASK_CREDENTIALS, ASK_USER, FORMAT_RESPONSE
from agentheap.tools.implementations import impl_ask_credentials, impl_ask_user, impl_format_response
from agentheap.tools.registry import ToolRegistry


def create_default_registry() -> ToolRegistry:
    """Create a tool registry with the built-in interactive tools."""
    registry = ToolRegistry()

    # Human in the loop
    registry.register(ASK_USER, impl_ask_user)
    registry.register(ASK_CREDENTIALS, impl_ask_credentials)

    # Presentation
    registry.register(FORMAT_RESPONSE, impl_format_response)

    return registry
