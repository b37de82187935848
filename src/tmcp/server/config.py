"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

MCP server configuration and explicit environment loading.
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from typing import Any, Literal, Mapping

TransportName = Literal["stdio", "http", "websocket"]
TRANSPORTS: tuple[str, ...] = ("stdio", "http", "websocket")

_TRUE = {"1", "true", "yes", "on"}

# Option keys only one auth mode understands; env and CLI may set several.
_MODE_OPTIONS = {"path": "file", "secret": "jwt", "key_to_subject": "memory"}


def _env(prefix: str, name: str) -> str | None:
    raw = os.getenv(f"{prefix}{name}")
    if raw is None:
        return None
    value = raw.strip()
    return value or None


def _parse_key_pairs(raw: str) -> dict[str, str]:
    """Parse ``key1=subject1,key2=subject2``; a bare key maps to subject ``client``."""
    out: dict[str, str] = {}
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        key, sep, subject = item.partition("=")
        out[key.strip()] = subject.strip() if sep and subject.strip() else "client"
    return out


@dataclass
class MCPServerConfig:
    """
    Configuration for the MCP server.

    Attributes:
        name: Server name advertised during ``initialize``.
        version: Server version string.
        description: Optional description used as the HTTP app description.
        instructions: Optional instructions describing the server's purpose.
        host: Bind host for HTTP/WebSocket transports.
        port: Bind port for HTTP/WebSocket transports.
        transport: Default transport used by ``MCPServer.run``.
        auth: Auth mode (``disabled``, ``memory``, ``file``, ``jwt``).
        auth_options: Provider-specific options passed to the auth factory.
        production_mode: Refuse to start with auth disabled.
        max_concurrent_requests: Upper bound on concurrently running tools.
        timeout_seconds: Default tool timeout; ``None`` disables it.
        cors_origins: List of allowed CORS origins.
        mcp_path: JSON-RPC endpoint path.
        sse_path: SSE endpoint path.
        ws_path: WebSocket endpoint path.
        health_path: Health endpoint path.
        enable_sse: Whether to expose SSE endpoint.
        enable_websocket: Whether to expose WebSocket endpoint.
        enable_health: Whether to expose health endpoint.
        allow_batch_requests: Whether JSON-RPC batch requests are accepted.
        stdio_api_key: Credential presented on behalf of the stdio peer.
        log_level: Level used by the CLI when configuring logging.
    """

    name: str = "tmcp-server"
    version: str = "0.1.0"
    description: str | None = None
    instructions: str | None = None
    host: str = "0.0.0.0"
    port: int = 8000
    transport: TransportName = "http"
    auth: str = "disabled"
    auth_options: dict[str, Any] = field(default_factory=dict)
    production_mode: bool = False
    max_concurrent_requests: int = 100
    timeout_seconds: float | None = 30.0
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    mcp_path: str = "/mcp"
    sse_path: str = "/mcp/sse"
    ws_path: str = "/mcp/ws"
    health_path: str = "/health"
    enable_sse: bool = True
    enable_websocket: bool = True
    enable_health: bool = True
    allow_batch_requests: bool = True
    stdio_api_key: str | None = None
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.transport not in TRANSPORTS:
            raise ValueError(
                f"Unknown transport '{self.transport}'. Expected one of: {', '.join(TRANSPORTS)}"
            )
        if self.max_concurrent_requests < 1:
            raise ValueError("max_concurrent_requests must be >= 1")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive or None")

    def replace(self, **changes: Any) -> "MCPServerConfig":
        """Return a copy with ``changes`` applied; ``None`` values are ignored."""
        return dataclasses.replace(self, **{k: v for k, v in changes.items() if v is not None})

    def with_defaults(self, defaults: Mapping[str, Any]) -> "MCPServerConfig":
        """
        Fill fields still at their default value from ``defaults``.

        Values the caller already set win over ``defaults``. Declared
        ``auth_options`` are dropped when the resulting auth mode is not the
        declared one.
        """
        unknown = set(defaults) - {f.name for f in dataclasses.fields(self)}
        if unknown:
            raise TypeError(f"Unknown server config field(s): {', '.join(sorted(unknown))}")
        base = MCPServerConfig()
        changes = {
            k: v
            for k, v in defaults.items()
            if v is not None and getattr(self, k) == getattr(base, k)
        }
        declared_auth = defaults.get("auth")
        if declared_auth is not None and changes.get("auth", self.auth) != declared_auth:
            changes.pop("auth_options", None)
        return dataclasses.replace(self, **changes)

    def provider_options(self) -> dict[str, Any]:
        """``auth_options`` without the keys that belong to another auth mode."""
        mode = self.auth.strip().lower()
        return {
            k: v for k, v in self.auth_options.items() if _MODE_OPTIONS.get(k, mode) == mode
        }

    def stdio_headers(self) -> dict[str, str]:
        if not self.stdio_api_key:
            return {}
        if self.auth == "jwt":
            return {"authorization": f"Bearer {self.stdio_api_key}"}
        return {"x-api-key": self.stdio_api_key}

    @staticmethod
    def from_env(prefix: str = "TMCP_", base: "MCPServerConfig | None" = None) -> "MCPServerConfig":
        """Load settings from ``TMCP_*`` environment variables over ``base``."""
        cfg = base or MCPServerConfig()
        changes: dict[str, Any] = {}

        for attr, var in (
            ("name", "NAME"),
            ("version", "VERSION"),
            ("instructions", "INSTRUCTIONS"),
            ("host", "HOST"),
            ("transport", "TRANSPORT"),
            ("stdio_api_key", "API_KEY"),
            ("log_level", "LOG_LEVEL"),
        ):
            value = _env(prefix, var)
            if value is not None:
                changes[attr] = value.lower() if attr == "transport" else value

        port = _env(prefix, "PORT")
        if port is not None:
            changes["port"] = int(port)
        max_conc = _env(prefix, "MAX_CONCURRENT_REQUESTS")
        if max_conc is not None:
            changes["max_concurrent_requests"] = int(max_conc)
        timeout = _env(prefix, "TIMEOUT_SECONDS")
        if timeout is not None:
            changes["timeout_seconds"] = None if timeout.lower() in ("none", "0") else float(timeout)
        production = _env(prefix, "PRODUCTION")
        if production is not None:
            changes["production_mode"] = production.lower() in _TRUE
        origins = _env(prefix, "CORS_ORIGINS")
        if origins is not None:
            changes["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]

        auth = _env(prefix, "AUTH")
        options = dict(cfg.auth_options)
        if auth is not None:
            changes["auth"] = auth.lower()
        auth_file = _env(prefix, "AUTH_FILE")
        if auth_file is not None:
            options["path"] = auth_file
        jwt_secret = _env(prefix, "JWT_SECRET")
        if jwt_secret is not None:
            options["secret"] = jwt_secret
        api_keys = _env(prefix, "API_KEYS")
        if api_keys is not None:
            options["key_to_subject"] = _parse_key_pairs(api_keys)
        if options != cfg.auth_options:
            changes["auth_options"] = options

        return dataclasses.replace(cfg, **changes)
