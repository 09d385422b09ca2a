"""Server side: capability registry, dispatcher, and connection runtime."""

from mcpkit.server.dispatcher import Dispatcher
from mcpkit.server.registry import (
    CapabilityRegistry,
    Resource,
    ResourceRequest,
    ResourceTemplate,
)
from mcpkit.server.schema import Tool, ToolParameter
from mcpkit.server.server import Server, ServerConnection
from mcpkit.server.templates import CharClass, UriTemplate

__all__ = [
    "CapabilityRegistry",
    "CharClass",
    "Dispatcher",
    "Resource",
    "ResourceRequest",
    "ResourceTemplate",
    "Server",
    "ServerConnection",
    "Tool",
    "ToolParameter",
    "UriTemplate",
]
