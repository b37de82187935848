"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

tmcp: a Model Context Protocol server runtime.

Declare tools and resources, then serve them over stdio, HTTP or WebSocket
with JSON-RPC 2.0 framing and optional authentication.

Quick start::

    from tmcp import MCPServer, mcp_server, resource

    @mcp_server(name="Template MCP Server", version="0.1.0", auth="disabled")
    class TemplateServer:
        async def add_numbers(self, a: float, b: float) -> float:
            "Add two numbers together."
            return a + b

        @resource("template://example-data/{id}", description="Example data entry by ID")
        async def example_data(self, id: str) -> dict:
            return {"id": id}

    MCPServer.from_object(TemplateServer()).run(transport="stdio")
"""

from .resources import (
    Resource,
    ResourceNotFoundError,
    ResourceRegistry,
    ResourceSpec,
    resource,
)
from .server import (
    AuthContext,
    AuthError,
    AuthorizationError,
    DisabledAuthProvider,
    FileAuthProvider,
    InMemoryAuthProvider,
    JWTAuthProvider,
    MCPProtocolHandler,
    MCPServer,
    MCPServerConfig,
    Principal,
    create_auth_provider,
    create_mcp_server,
    mcp_server,
)
from .tools import (
    Tool,
    ToolContext,
    ToolRegistry,
    ToolResult,
    ToolSpec,
    tool,
    tool_options,
)

__version__ = "0.1.0"

__all__ = [
    "MCPServer",
    "MCPServerConfig",
    "MCPProtocolHandler",
    "create_mcp_server",
    "mcp_server",
    "Tool",
    "ToolSpec",
    "ToolContext",
    "ToolResult",
    "ToolRegistry",
    "tool",
    "tool_options",
    "Resource",
    "ResourceSpec",
    "ResourceRegistry",
    "ResourceNotFoundError",
    "resource",
    "AuthContext",
    "AuthError",
    "AuthorizationError",
    "Principal",
    "DisabledAuthProvider",
    "InMemoryAuthProvider",
    "FileAuthProvider",
    "JWTAuthProvider",
    "create_auth_provider",
]
