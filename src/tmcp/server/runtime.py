"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

MCP (Model Context Protocol) server runtime.

Wires a ``ToolRegistry`` and ``ResourceRegistry`` to the JSON-RPC dispatcher,
the auth gate and the stdio / HTTP / WebSocket transports.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Iterable, Mapping, TextIO, TypeVar

from ..resources import Resource, ResourceRegistry, resources_from_object
from ..tools import Tool, ToolRegistry, tools_from_object
from .auth import AuthGate, AuthProvider, create_auth_provider
from .config import MCPServerConfig, TransportName
from .protocol import MCPProtocolHandler
from .transports.stdio import serve_stdio

logger = logging.getLogger("tmcp.server")

SERVER_CONFIG_ATTR = "__tmcp_server__"

T = TypeVar("T", bound=type)


class MCPServerError(RuntimeError):
    """Raised for invalid MCP server setup."""


def mcp_server(
    *,
    name: str | None = None,
    version: str | None = None,
    description: str | None = None,
    instructions: str | None = None,
    auth: str | None = None,
    **config: Any,
) -> Callable[[T], T]:
    """
    Class decorator declaring server metadata for ``MCPServer.from_object``.

    Public methods of the decorated class become tools; methods marked with
    ``@resource`` become resources::

        @mcp_server(name="Template MCP Server", version="0.1.0", auth="disabled")
        class TemplateServer:
            async def echo(self, message: str, prefix: str | None = None) -> str:
                "Echo back a message with optional prefix."
                return f"{prefix or 'Echo'}: {message}"

        MCPServer.from_object(TemplateServer()).run(transport="stdio")
    """
    options: dict[str, Any] = {
        "name": name,
        "version": version,
        "description": description,
        "instructions": instructions,
        "auth": auth,
        **config,
    }

    def _decorate(cls: T) -> T:
        setattr(cls, SERVER_CONFIG_ATTR, {k: v for k, v in options.items() if v is not None})
        return cls

    return _decorate


class MCPServer:
    """
    MCP server exposing tools and resources over stdio, HTTP or WebSocket.

    Usage::

        from tmcp import MCPServer, ToolRegistry, tool

        @tool
        def greet(name: str) -> str:
            "Greet someone."
            return f"Hello, {name}!"

        server = MCPServer.from_tools([greet])
        server.run()  # HTTP on port 8000; run(transport="stdio") for stdio

    Args:
        registry: ``ToolRegistry`` containing tools to expose.
        resources: Optional ``ResourceRegistry``.
        config: Server configuration.
        auth_provider: Explicit provider; defaults to ``config.auth``.
        app: Existing FastAPI app to mount the MCP routes into.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        resources: ResourceRegistry | None = None,
        config: MCPServerConfig | None = None,
        auth_provider: AuthProvider | None = None,
        app: Any | None = None,
    ) -> None:
        self._registry = registry
        self._resources = resources if resources is not None else ResourceRegistry()
        self._config = config or MCPServerConfig()
        provider = auth_provider or self._create_auth_provider()
        self._auth_gate = AuthGate(provider, production_mode=self._config.production_mode)
        self._protocol_handler = self._create_protocol_handler()
        self._app = app
        if app is not None:
            self.mount(app)

    @classmethod
    def from_tools(
        cls,
        tools: Iterable[Tool[Any, Any]],
        *,
        resources: Iterable[Resource | Callable[..., Any]] = (),
        config: MCPServerConfig | None = None,
        auth_provider: AuthProvider | None = None,
        app: Any | None = None,
    ) -> "MCPServer":
        """Build an MCP server from tools (and resources) without explicit registries."""
        config = config or MCPServerConfig()
        registry = _new_registry(config)
        registry.register_many(tools)
        resource_registry = ResourceRegistry()
        resource_registry.register_many(resources)
        return cls(
            registry,
            resources=resource_registry,
            config=config,
            auth_provider=auth_provider,
            app=app,
        )

    @classmethod
    def from_object(
        cls,
        obj: Any,
        *,
        config: MCPServerConfig | None = None,
        auth_provider: AuthProvider | None = None,
        app: Any | None = None,
    ) -> "MCPServer":
        """
        Build an MCP server from an object's public methods.

        Metadata from ``@mcp_server`` on the object's class fills the fields
        ``config`` leaves at their defaults; values the caller set win.
        """
        declared: Mapping[str, Any] = getattr(type(obj), SERVER_CONFIG_ATTR, {})
        config = (config or MCPServerConfig()).with_defaults(declared)
        return cls.from_tools(
            tools_from_object(obj),
            resources=resources_from_object(obj),
            config=config,
            auth_provider=auth_provider,
            app=app,
        )

    @property
    def app(self):
        """
        The FastAPI application instance, created on first access.

        Use this to mount the MCP server into an existing app or for testing::

            from fastapi.testclient import TestClient
            client = TestClient(server.app)
        """
        if self._app is None:
            from .transports.http import create_app

            self._app = create_app(
                self._protocol_handler, self._config, auth_gate=self._auth_gate
            )
        return self._app

    @property
    def config(self) -> MCPServerConfig:
        """Server configuration."""
        return self._config

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def resources(self) -> ResourceRegistry:
        return self._resources

    @property
    def protocol_handler(self) -> MCPProtocolHandler:
        return self._protocol_handler

    @property
    def auth_gate(self) -> AuthGate:
        return self._auth_gate

    def _create_auth_provider(self) -> AuthProvider:
        options = self._config.provider_options()
        ignored = sorted(set(self._config.auth_options) - set(options))
        if ignored:
            logger.warning(
                "Ignoring auth option(s) %s not used by auth mode '%s'",
                ", ".join(ignored),
                self._config.auth,
            )
        return create_auth_provider(self._config.auth, **options)

    def _create_protocol_handler(self) -> MCPProtocolHandler:
        return MCPProtocolHandler(
            registry=self._registry,
            resources=self._resources,
            server_name=self._config.name,
            server_version=self._config.version,
            instructions=self._config.instructions,
            auth_gate=self._auth_gate,
        )

    def mount(self, app: Any) -> Any:
        """
        Mount MCP routes into an existing FastAPI app.

        Returns the provided app for fluent usage.
        """
        from .transports.http import create_router

        app.include_router(
            create_router(self._protocol_handler, self._config, auth_gate=self._auth_gate)
        )
        return app

    async def serve_stdio(
        self,
        *,
        reader: TextIO | None = None,
        writer: TextIO | None = None,
    ) -> None:
        """Serve over stdio (or the given text streams) until input ends."""
        await serve_stdio(
            self._protocol_handler,
            auth_gate=self._auth_gate,
            headers=self._config.stdio_headers(),
            reader=reader,
            writer=writer,
        )

    def run(self, transport: TransportName | None = None, **kwargs: Any) -> None:
        """
        Start the server on ``transport`` (defaults to ``config.transport``).

        Args:
            transport: ``stdio``, ``http`` or ``websocket``.
            **kwargs: Additional arguments passed to ``uvicorn.run()``.
        """
        selected = transport or self._config.transport
        logger.info(
            "Starting %s %s on %s (%d tools, %d resources, auth=%s)",
            self._config.name,
            self._config.version,
            selected,
            len(self._registry),
            len(self._resources),
            self._auth_gate.provider_id,
        )
        if selected == "stdio":
            asyncio.run(self.serve_stdio())
            return
        if selected not in ("http", "websocket"):
            raise MCPServerError(f"Unknown transport '{selected}'")
        if selected == "websocket" and not self._config.enable_websocket:
            raise MCPServerError("WebSocket transport requested but enable_websocket is False")

        import uvicorn

        uvicorn.run(
            self.app,
            host=kwargs.pop("host", self._config.host),
            port=kwargs.pop("port", self._config.port),
            log_level=kwargs.pop("log_level", self._config.log_level.lower()),
            **kwargs,
        )


def _new_registry(config: MCPServerConfig) -> ToolRegistry:
    return ToolRegistry(
        max_concurrency=config.max_concurrent_requests,
        default_timeout=config.timeout_seconds,
    )


def create_mcp_server(
    *,
    registry: ToolRegistry | None = None,
    tools: Iterable[Tool[Any, Any]] | None = None,
    resources: Iterable[Resource | Callable[..., Any]] | ResourceRegistry | None = None,
    obj: Any | None = None,
    config: MCPServerConfig | None = None,
    auth_provider: AuthProvider | None = None,
    app: Any | None = None,
) -> MCPServer:
    """
    DX-first constructor for MCP servers.

    Callers pass exactly one of ``registry``, ``tools`` or ``obj``.
    """
    given = [x for x in (registry, tools, obj) if x is not None]
    if len(given) > 1:
        raise ValueError("Pass only one of 'registry', 'tools' or 'obj'")
    if obj is not None:
        if resources is not None:
            raise ValueError("'resources' cannot be combined with 'obj'")
        return MCPServer.from_object(obj, config=config, auth_provider=auth_provider, app=app)
    if registry is not None:
        if isinstance(resources, ResourceRegistry) or resources is None:
            resource_registry = resources
        else:
            resource_registry = ResourceRegistry()
            resource_registry.register_many(resources)
        return MCPServer(
            registry,
            resources=resource_registry,
            config=config,
            auth_provider=auth_provider,
            app=app,
        )
    if isinstance(resources, ResourceRegistry):
        resources = resources.list()
    return MCPServer.from_tools(
        tools or [],
        resources=resources or (),
        config=config,
        auth_provider=auth_provider,
        app=app,
    )
