from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from tmcp import MCPServer, MCPServerConfig
from tmcp.server.jsonrpc import INVALID_REQUEST, PARSE_ERROR, UNAUTHORIZED
from tmcp.tools import ToolRegistry, tool


@tool
def add_numbers(a: float, b: float) -> float:
    """Add two numbers together."""
    return a + b


def make_client(**config) -> TestClient:
    server = MCPServer.from_tools([add_numbers], config=MCPServerConfig(name="http-test", **config))
    return TestClient(server.app)


def test_mcp_endpoint_returns_204_for_jsonrpc_notification():
    registry = ToolRegistry()
    server = MCPServer(registry)
    client = TestClient(server.app)

    response = client.post(
        "/mcp",
        json={
            "jsonrpc": "2.0",
            "method": "ping",
            "params": {},
        },
    )

    assert response.status_code == 204
    assert response.text == ""


def test_mcp_endpoint_dispatches_requests():
    client = make_client()

    response = client.post(
        "/mcp",
        json={
            "jsonrpc": "2.0",
            "id": 1,
            "method": "tools/call",
            "params": {"name": "add_numbers", "arguments": {"a": 2, "b": 3}},
        },
    )

    assert response.status_code == 200
    assert response.json()["result"]["content"][0]["text"] == "5.0"


def test_mcp_endpoint_reports_parse_errors_and_batches():
    client = make_client()

    parse_error = client.post("/mcp", content=b"{oops", headers={"content-type": "application/json"})
    batch = client.post(
        "/mcp",
        json=[
            {"jsonrpc": "2.0", "id": 1, "method": "ping"},
            {"jsonrpc": "2.0", "id": 2, "method": "tools/list"},
        ],
    )

    assert parse_error.json()["error"]["code"] == PARSE_ERROR
    assert sorted(item["id"] for item in batch.json()) == [1, 2]


def test_batches_can_be_disabled():
    client = make_client(allow_batch_requests=False)

    response = client.post("/mcp", json=[{"jsonrpc": "2.0", "id": 1, "method": "ping"}])

    assert response.json()["error"]["code"] == INVALID_REQUEST


def test_health_endpoint():
    client = make_client()

    body = client.get("/health").json()

    assert body == {
        "status": "ok",
        "server": "http-test",
        "version": "0.1.0",
        "tools_count": 1,
        "resources_count": 0,
        "auth": "disabled",
    }


def test_memory_auth_rejects_missing_keys_with_401():
    client = make_client(auth="memory", auth_options={"key_to_subject": {"secret-key": "svc"}})
    ping = {"jsonrpc": "2.0", "id": 1, "method": "ping"}

    rejected = client.post("/mcp", json=ping)
    accepted = client.post("/mcp", json=ping, headers={"x-api-key": "secret-key"})
    bearer = client.post("/mcp", json=ping, headers={"Authorization": "Bearer secret-key"})

    assert rejected.status_code == 401
    assert rejected.headers["www-authenticate"] == "Bearer"
    assert rejected.json()["error"]["code"] == UNAUTHORIZED
    assert accepted.status_code == 200
    assert bearer.status_code == 200


def test_websocket_session():
    client = make_client()

    with client.websocket_connect("/mcp/ws") as ws:
        ws.send_text('{"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}}')
        init = ws.receive_json()
        ws.send_text('{"jsonrpc": "2.0", "method": "notifications/initialized"}')
        ws.send_text('{"jsonrpc": "2.0", "id": 2, "method": "tools/call", "params": {"name": "add_numbers", "arguments": {"a": 1, "b": 1}}}')
        call = ws.receive_json()

    assert init["result"]["serverInfo"]["name"] == "http-test"
    assert call["id"] == 2
    assert call["result"]["content"][0]["text"] == "2.0"


def test_websocket_rejects_unauthenticated_clients():
    client = make_client(auth="memory", auth_options={"key_to_subject": {"secret-key": "svc"}})

    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/mcp/ws") as ws:
            ws.receive_text()

    assert exc.value.code == 4401

    with client.websocket_connect("/mcp/ws", headers={"x-api-key": "secret-key"}) as ws:
        ws.send_text('{"jsonrpc": "2.0", "id": 1, "method": "tools/list"}')
        assert ws.receive_json()["result"]["tools"][0]["name"] == "add_numbers"


def test_mount_into_existing_app():
    app = FastAPI()

    @app.get("/")
    async def index():
        return {"app": "host"}

    MCPServer.from_tools([add_numbers], app=app)
    client = TestClient(app)

    assert client.get("/").json() == {"app": "host"}
    response = client.post("/mcp", json={"jsonrpc": "2.0", "id": 1, "method": "tools/list"})
    assert response.json()["result"]["tools"][0]["name"] == "add_numbers"


def test_websocket_is_closed_when_session_fails(monkeypatch):
    from tmcp.server.transports import http as http_transport

    closed = []
    original_close = http_transport.WebSocketStream.close

    async def tracking_close(self):
        closed.append(True)
        await original_close(self)

    class FailingSession:
        def __init__(self, *args, **kwargs) -> None:
            pass

        async def run(self) -> None:
            raise RuntimeError("session crashed")

    monkeypatch.setattr(http_transport, "StreamSession", FailingSession)
    monkeypatch.setattr(http_transport.WebSocketStream, "close", tracking_close)
    client = make_client()

    with pytest.raises((RuntimeError, WebSocketDisconnect)):
        with client.websocket_connect("/mcp/ws") as ws:
            ws.receive_text()

    assert closed == [True]
