"""
MCP server package.

Contains the JSON-RPC dispatcher, auth gate, transports and server runtime.
"""

from .auth import (
    AuthConfigError,
    AuthContext,
    AuthError,
    AuthGate,
    AuthorizationDecision,
    AuthorizationError,
    AuthProvider,
    DisabledAuthProvider,
    FileAuthProvider,
    InMemoryAuthProvider,
    JWTAuthProvider,
    Principal,
    create_auth_provider,
    list_auth_providers,
    register_auth_provider,
)
from .config import MCPServerConfig
from .protocol import MCP_PROTOCOL_VERSION, SUPPORTED_PROTOCOL_VERSIONS, MCPProtocolHandler
from .runtime import MCPServer, MCPServerError, create_mcp_server, mcp_server

__all__ = [
    "MCPServer",
    "MCPServerConfig",
    "MCPServerError",
    "MCPProtocolHandler",
    "MCP_PROTOCOL_VERSION",
    "SUPPORTED_PROTOCOL_VERSIONS",
    "create_mcp_server",
    "mcp_server",
    "AuthContext",
    "AuthConfigError",
    "AuthError",
    "AuthGate",
    "AuthorizationDecision",
    "AuthorizationError",
    "AuthProvider",
    "DisabledAuthProvider",
    "FileAuthProvider",
    "InMemoryAuthProvider",
    "JWTAuthProvider",
    "Principal",
    "create_auth_provider",
    "list_auth_providers",
    "register_auth_provider",
]
