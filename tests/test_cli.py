from __future__ import annotations

import json
import sys
import types

import pytest

from tmcp import MCPServer, mcp_server, tool
from tmcp.cli import TargetResolutionError, build_server, main, resolve_server
from tmcp.server.config import MCPServerConfig
from tmcp.tools import ToolRegistry


@tool
def greet(name: str) -> str:
    """Greet someone by name."""
    return f"Hello, {name}!"


@mcp_server(name="cli-server")
class CliServer:
    def shout(self, text: str) -> str:
        """Upper-case the text."""
        return text.upper()


@pytest.fixture
def target_module(monkeypatch):
    module = types.ModuleType("tmcp_cli_target")
    module.CliServer = CliServer
    module.registry = ToolRegistry()
    module.registry.register(greet)
    module.tools = [greet]
    module.server = MCPServer.from_tools([greet])
    module.make_server = lambda: CliServer()
    module.nothing = None
    monkeypatch.setitem(sys.modules, "tmcp_cli_target", module)
    return module


def test_build_server_accepts_supported_targets(target_module):
    config = MCPServerConfig()

    assert build_server(target_module.server, config) is target_module.server
    assert build_server(target_module.registry, config).registry is target_module.registry
    assert build_server(target_module.tools, config).registry.names() == ["greet"]
    assert build_server(CliServer, config).config.name == "cli-server"
    assert build_server(target_module.make_server, config).registry.names() == ["shout"]


def test_resolve_server_defaults_to_server_attribute(target_module):
    assert resolve_server("tmcp_cli_target") is target_module.server

    with pytest.raises(TargetResolutionError):
        resolve_server("tmcp_cli_target:missing")
    with pytest.raises(TargetResolutionError):
        resolve_server("tmcp_no_such_module:server")


def test_tools_command_prints_tool_list(target_module, capsys):
    assert main(["tools", "tmcp_cli_target:CliServer"]) == 0

    listed = json.loads(capsys.readouterr().out)
    assert [t["name"] for t in listed] == ["shout"]
    assert listed[0]["description"] == "Upper-case the text."


def test_tools_command_rejects_bad_target(target_module):
    with pytest.raises(SystemExit) as exc:
        main(["tools", "tmcp_cli_target:missing"])

    assert exc.value.code == 2


def test_serve_command_applies_flags(target_module, monkeypatch):
    calls = []

    def fake_run(self, transport=None, **kwargs):
        calls.append((self, transport, kwargs))

    monkeypatch.setattr(MCPServer, "run", fake_run)
    monkeypatch.delenv("TMCP_TRANSPORT", raising=False)

    main(["serve", "tmcp_cli_target:CliServer", "--port", "9100", "--auth", "memory", "--api-key", "k"])
    main(["serve", "tmcp_cli_target:CliServer", "--transport", "stdio"])

    (http_server, http_transport, http_kwargs), (stdio_server, stdio_transport, stdio_kwargs) = calls
    assert http_transport == "http"
    assert http_kwargs == {"port": 9100}
    assert http_server.config.port == 9100
    assert http_server.auth_gate.provider_id == "memory"
    assert http_server.config.stdio_api_key == "k"
    assert stdio_transport == "stdio"
    assert stdio_kwargs == {}
    assert stdio_server.config.name == "cli-server"


def test_serve_rejects_unknown_transport(target_module):
    with pytest.raises(SystemExit):
        main(["serve", "tmcp_cli_target:CliServer", "--transport", "carrier-pigeon"])


@mcp_server(name="open-server", auth="disabled")
class OpenServer:
    def echo(self, text: str) -> str:
        return text


def test_serve_auth_flag_overrides_declared_auth(target_module, monkeypatch, tmp_path):
    key_file = tmp_path / "keys.json"
    key_file.write_text(json.dumps({"keys": [{"key": "k", "subject": "svc"}]}), encoding="utf-8")
    target_module.OpenServer = OpenServer
    servers = []
    monkeypatch.setattr(MCPServer, "run", lambda self, transport=None, **kwargs: servers.append(self))

    main(["serve", "tmcp_cli_target:OpenServer", "--auth", "file", "--auth-file", str(key_file)])
    main(["serve", "tmcp_cli_target:OpenServer"])

    secured, declared = servers
    assert secured.auth_gate.provider_id == "file"
    assert secured.config.name == "open-server"
    assert declared.auth_gate.provider_id == "disabled"
