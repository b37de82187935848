from __future__ import annotations

import asyncio
import io
import json
from typing import Any

from tmcp import MCPServer, MCPServerConfig
from tmcp.server.jsonrpc import PARSE_ERROR, UNAUTHORIZED, jsonrpc_notification
from tmcp.server.transports import StreamSession
from tmcp.tools import tool


def run_async(coro):
    return asyncio.run(coro)


@tool
def add_numbers(a: float, b: float) -> float:
    """Add two numbers together."""
    return a + b


@tool
async def slow(delay: float = 5.0) -> str:
    await asyncio.sleep(delay)
    return "finished"


def lines(*messages) -> io.StringIO:
    return io.StringIO("".join((m if isinstance(m, str) else json.dumps(m)) + "\n" for m in messages))


def replies(out: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in out.getvalue().splitlines()]


def test_stdio_serves_newline_delimited_json():
    server = MCPServer.from_tools([add_numbers], config=MCPServerConfig(name="stdio-test"))
    reader = lines(
        {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {"protocolVersion": "2024-11-05"}},
        "",
        {"jsonrpc": "2.0", "method": "notifications/initialized"},
        {"jsonrpc": "2.0", "id": 2, "method": "tools/call", "params": {"name": "add_numbers", "arguments": {"a": 1, "b": 2}}},
        "{broken",
    )
    writer = io.StringIO()

    run_async(server.serve_stdio(reader=reader, writer=writer))

    out = replies(writer)
    by_id = {r["id"]: r for r in out}
    assert len(out) == 3
    assert by_id[1]["result"]["protocolVersion"] == "2024-11-05"
    assert by_id[2]["result"]["content"][0]["text"] == "3.0"
    assert by_id[None]["error"]["code"] == PARSE_ERROR


def test_stdio_without_credentials_only_allows_public_methods():
    config = MCPServerConfig(auth="memory", auth_options={"key_to_subject": {"k": "svc"}})
    server = MCPServer.from_tools([add_numbers], config=config)
    reader = lines(
        {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}},
        {"jsonrpc": "2.0", "id": 2, "method": "tools/list"},
    )
    writer = io.StringIO()

    run_async(server.serve_stdio(reader=reader, writer=writer))

    by_id = {r["id"]: r for r in replies(writer)}
    assert "result" in by_id[1]
    assert by_id[2]["error"]["code"] == UNAUTHORIZED


def test_stdio_api_key_authenticates_session():
    config = MCPServerConfig(
        auth="memory",
        auth_options={"key_to_subject": {"k": "svc"}},
        stdio_api_key="k",
    )
    server = MCPServer.from_tools([add_numbers], config=config)
    writer = io.StringIO()

    run_async(server.serve_stdio(reader=lines({"jsonrpc": "2.0", "id": 1, "method": "tools/list"}), writer=writer))

    assert replies(writer)[0]["result"]["tools"][0]["name"] == "add_numbers"


class ListStream:
    def __init__(self, incoming: list[str]) -> None:
        self.incoming = list(incoming)
        self.sent: list[str] = []

    async def receive(self) -> str | None:
        await asyncio.sleep(0)
        return self.incoming.pop(0) if self.incoming else None

    async def send(self, text: str) -> None:
        self.sent.append(text)

    async def close(self) -> None:
        return None


def test_cancelled_request_gets_no_reply():
    server = MCPServer.from_tools([slow])
    stream = ListStream(
        [
            json.dumps({"jsonrpc": "2.0", "id": 7, "method": "tools/call", "params": {"name": "slow"}}),
            json.dumps(jsonrpc_notification("notifications/cancelled", {"requestId": 7, "reason": "user"})),
            json.dumps({"jsonrpc": "2.0", "id": 8, "method": "ping"}),
        ]
    )

    run_async(StreamSession(server.protocol_handler, stream).run())

    assert [json.loads(s)["id"] for s in stream.sent] == [8]


def test_slow_request_does_not_block_others():
    server = MCPServer.from_tools([slow])
    stream = ListStream(
        [
            json.dumps({"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {"name": "slow", "arguments": {"delay": 0.2}}}),
            json.dumps({"jsonrpc": "2.0", "id": 2, "method": "ping"}),
        ]
    )

    run_async(StreamSession(server.protocol_handler, stream).run())

    assert [json.loads(s)["id"] for s in stream.sent] == [2, 1]


@tool
def echo(text: Any) -> Any:
    return text


def test_lone_surrogate_reply_still_reaches_utf8_stdout():
    server = MCPServer.from_tools([echo])
    reader = io.StringIO('{"jsonrpc":"2.0","id":1,"method":"tools/call","params":{"name":"echo","arguments":{"text":"\\ud800 caf\\u00e9"}}}\n')
    raw = io.BytesIO()
    writer = io.TextIOWrapper(raw, encoding="utf-8", newline="\n")

    run_async(server.serve_stdio(reader=reader, writer=writer))
    writer.flush()

    [line] = raw.getvalue().decode("ascii").splitlines()
    reply = json.loads(line)
    assert reply["id"] == 1
    assert reply["result"]["content"][0]["text"] == "\ud800 café"
