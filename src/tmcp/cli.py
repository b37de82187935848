"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Command line entrypoint.

    tmcp serve my_pkg.server:TemplateServer --transport stdio
    tmcp tools my_pkg.server:TemplateServer
"""

from __future__ import annotations

import argparse
import importlib
import inspect
import json
import logging
import sys
from typing import Any, Sequence

from .server.config import TRANSPORTS, MCPServerConfig
from .server.runtime import MCPServer
from .tools import Tool, ToolRegistry

logger = logging.getLogger("tmcp.cli")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class TargetResolutionError(ValueError):
    """Raised when a ``module:attribute`` target cannot be turned into a server."""


def _import_target(target: str) -> Any:
    module_name, _, attr_path = target.partition(":")
    if not module_name:
        raise TargetResolutionError(f"Invalid target '{target}'; expected module:attribute")
    try:
        obj: Any = importlib.import_module(module_name)
    except ImportError as e:
        raise TargetResolutionError(f"Cannot import module '{module_name}': {e}") from e
    for part in (attr_path or "server").split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as e:
            raise TargetResolutionError(f"'{target}' has no attribute '{part}'") from e
    return obj


def build_server(obj: Any, config: MCPServerConfig) -> MCPServer:
    """Turn a resolved target object into an ``MCPServer``."""
    if isinstance(obj, MCPServer):
        return obj
    if isinstance(obj, ToolRegistry):
        return MCPServer(obj, config=config)
    if isinstance(obj, (list, tuple)) and all(isinstance(t, Tool) for t in obj):
        return MCPServer.from_tools(obj, config=config)
    if isinstance(obj, type):
        return MCPServer.from_object(obj(), config=config)
    if inspect.isfunction(obj):
        produced = obj()
        if inspect.isfunction(produced):
            raise TargetResolutionError("Factory targets must not return another function")
        return build_server(produced, config)
    return MCPServer.from_object(obj, config=config)


def resolve_server(target: str, config: MCPServerConfig | None = None) -> MCPServer:
    return build_server(_import_target(target), config or MCPServerConfig.from_env())


def _config_from_args(args: argparse.Namespace) -> MCPServerConfig:
    config = MCPServerConfig.from_env()
    options = dict(config.auth_options)
    if args.auth_file:
        options["path"] = args.auth_file
    if args.jwt_secret:
        options["secret"] = args.jwt_secret
    return config.replace(
        transport=args.transport,
        host=args.host,
        port=args.port,
        auth=args.auth,
        auth_options=options,
        stdio_api_key=args.api_key,
        production_mode=True if args.production else None,
        log_level=args.log_level,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tmcp", description="Model Context Protocol server runtime")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Serve a target over stdio, HTTP or WebSocket")
    serve.add_argument("target", help="module:attribute resolving to a server, registry, class or object")
    serve.add_argument("--transport", choices=TRANSPORTS, default=None)
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.add_argument("--auth", choices=("disabled", "memory", "file", "jwt"), default=None)
    serve.add_argument("--auth-file", default=None, help="JSON key file for --auth file")
    serve.add_argument("--jwt-secret", default=None, help="HMAC secret for --auth jwt")
    serve.add_argument("--api-key", default=None, help="Credential presented by the stdio peer")
    serve.add_argument("--production", action="store_true", help="Refuse to run with auth disabled")
    serve.add_argument("--log-level", default=None)

    tools = sub.add_parser("tools", help="Print the tool list of a target as JSON")
    tools.add_argument("target")
    return parser


def configure_logging(level: str) -> None:
    # stdout is reserved for protocol frames on stdio.
    logging.basicConfig(level=level.upper(), stream=sys.stderr, format=LOG_FORMAT)


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "tools":
        configure_logging("WARNING")
        try:
            server = resolve_server(args.target)
        except TargetResolutionError as e:
            parser.error(str(e))
        print(json.dumps(server.protocol_handler.describe_tools(), indent=2))
        return 0

    config = _config_from_args(args)
    configure_logging(config.log_level)
    try:
        server = resolve_server(args.target, config)
    except TargetResolutionError as e:
        parser.error(str(e))
    overrides = {k: v for k, v in (("host", args.host), ("port", args.port)) if v is not None}
    transport = args.transport or server.config.transport
    if transport == "stdio":
        server.run(transport="stdio")
    else:
        server.run(transport=transport, **overrides)
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
