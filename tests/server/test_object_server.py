from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from tmcp import MCPServer, MCPServerConfig, create_mcp_server, mcp_server, resource, tool
from tmcp.resources import ResourceRegistry, resources_from_object
from tmcp.server.auth import AuthConfigError
from tmcp.server.runtime import MCPServerError
from tmcp.tools import ToolRegistry


@mcp_server(
    name="Template MCP Server",
    version="0.2.0",
    instructions="Example tools and resources.",
    auth="disabled",
)
class TemplateServer:
    def __init__(self) -> None:
        self.default_prefix = "Echo"

    async def echo(self, message: str, prefix: str | None = None) -> str:
        """Echo back a message with optional prefix."""
        return f"{prefix or self.default_prefix}: {message}"

    def add_numbers(self, a: float, b: float) -> float:
        """Add two numbers together."""
        return a + b

    @resource("template://server-status", description="Current server status")
    def server_status(self) -> dict:
        return {"status": "running", "prefix": self.default_prefix}

    @resource("template://example-data/{id}")
    def example_data(self, id: str) -> dict:
        return {"id": id, "name": f"Example {id}"}


def post(client: TestClient, method: str, params=None, msg_id=1) -> dict:
    body = {"jsonrpc": "2.0", "id": msg_id, "method": method}
    if params is not None:
        body["params"] = params
    return client.post("/mcp", json=body).json()


def test_from_object_applies_declared_metadata():
    server = MCPServer.from_object(TemplateServer())

    assert server.config.name == "Template MCP Server"
    assert server.config.version == "0.2.0"
    assert server.registry.names() == ["echo", "add_numbers"]
    assert len(server.resources) == 2
    assert server.auth_gate.provider_id == "disabled"


def test_declared_metadata_fills_fields_left_at_defaults():
    server = MCPServer.from_object(TemplateServer(), config=MCPServerConfig(name="custom", port=9001))

    assert server.config.name == "custom"
    assert server.config.version == "0.2.0"
    assert server.config.port == 9001


def test_object_server_over_http():
    client = TestClient(MCPServer.from_object(TemplateServer()).app)

    init = post(client, "initialize", {"protocolVersion": "2025-03-26"})
    echoed = post(client, "tools/call", {"name": "echo", "arguments": {"message": "hi", "prefix": "Re"}})
    status = post(client, "resources/read", {"uri": "template://server-status"})
    data = post(client, "resources/read", {"uri": "template://example-data/3"})

    assert init["result"]["instructions"] == "Example tools and resources."
    assert echoed["result"]["content"][0]["text"] == "Re: hi"
    assert json.loads(status["result"]["contents"][0]["text"]) == {"status": "running", "prefix": "Echo"}
    assert json.loads(data["result"]["contents"][0]["text"])["name"] == "Example 3"


def test_registry_limits_follow_config():
    server = MCPServer.from_tools([], config=MCPServerConfig(max_concurrent_requests=4, timeout_seconds=2.5))

    assert server.registry.max_concurrency == 4
    assert server.registry.default_timeout == 2.5


def test_production_mode_refuses_disabled_auth():
    with pytest.raises(AuthConfigError):
        MCPServer.from_object(TemplateServer(), config=MCPServerConfig(production_mode=True))


def test_create_mcp_server_variants():
    @tool
    def greet(name: str) -> str:
        return f"Hello, {name}!"

    registry = ToolRegistry()
    registry.register(greet)
    resources = ResourceRegistry()
    resources.register_many(resources_from_object(TemplateServer()))

    from_registry = create_mcp_server(registry=registry, resources=resources)
    from_tools = create_mcp_server(tools=[greet])
    from_obj = create_mcp_server(obj=TemplateServer())

    assert from_registry.registry is registry
    assert from_registry.resources is resources
    assert from_tools.registry.names() == ["greet"]
    assert from_obj.config.name == "Template MCP Server"

    with pytest.raises(ValueError):
        create_mcp_server(registry=registry, tools=[greet])


def test_run_rejects_unknown_transport():
    server = MCPServer.from_tools([])

    with pytest.raises(MCPServerError):
        server.run(transport="carrier-pigeon")  # type: ignore[arg-type]

    ws_off = MCPServer.from_tools([], config=MCPServerConfig(enable_websocket=False))
    with pytest.raises(MCPServerError):
        ws_off.run(transport="websocket")


def test_run_stdio_uses_asyncio_run(monkeypatch):
    server = MCPServer.from_tools([])
    seen = []

    async def fake_serve_stdio(**kwargs):
        seen.append(kwargs)

    monkeypatch.setattr(server, "serve_stdio", fake_serve_stdio)
    server.run(transport="stdio")

    assert seen == [{}]


def test_explicit_config_wins_over_declared_metadata(tmp_path):
    key_file = tmp_path / "keys.json"
    key_file.write_text(json.dumps({"keys": [{"key": "k", "subject": "svc"}]}), encoding="utf-8")

    server = MCPServer.from_object(
        TemplateServer(),
        config=MCPServerConfig(auth="file", auth_options={"path": str(key_file)}),
    )
    client = TestClient(server.app)

    assert server.auth_gate.provider_id == "file"
    assert server.config.name == "Template MCP Server"
    assert client.post("/mcp", json={"jsonrpc": "2.0", "id": 1, "method": "ping"}).status_code == 401


def test_leftover_env_auth_options_do_not_break_startup(monkeypatch):
    monkeypatch.setenv("TMCP_AUTH", "jwt")
    monkeypatch.setenv("TMCP_JWT_SECRET", "s3cret")
    monkeypatch.setenv("TMCP_AUTH_FILE", "/etc/keys.json")

    server = MCPServer.from_tools([], config=MCPServerConfig.from_env())

    assert server.auth_gate.provider_id == "jwt"
