"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Protocol-layer helpers for MCP JSON-RPC request handling.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable

from ..encoding import output_text, to_jsonable
from ..resources import ResourceNotFoundError, ResourceRegistry
from ..tools import (
    ToolContext,
    ToolNotFoundError,
    ToolPolicyError,
    ToolRegistry,
    ToolTimeoutError,
    ToolValidationError,
)
from .auth import AuthError, AuthGate, AuthorizationError, Principal
from .jsonrpc import (
    FORBIDDEN,
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    RESOURCE_NOT_FOUND,
    UNAUTHORIZED,
    JSONRPCError,
    decode_payload,
    encode_payload,
    jsonrpc_error,
    jsonrpc_response,
)

logger = logging.getLogger("tmcp.server")

SUPPORTED_PROTOCOL_VERSIONS = ("2025-06-18", "2025-03-26", "2024-11-05")
MCP_PROTOCOL_VERSION = SUPPORTED_PROTOCOL_VERSIONS[0]

MethodHandler = Callable[[dict[str, Any], "_Call"], Awaitable[dict[str, Any]]]


class _Call:
    __slots__ = ("request_id", "principal")

    def __init__(self, request_id: Any, principal: Principal | None) -> None:
        self.request_id = request_id
        self.principal = principal


def _valid_id(value: Any) -> bool:
    return value is None or (isinstance(value, (str, int)) and not isinstance(value, bool))


class MCPProtocolHandler:
    """
    Handles MCP methods and JSON-RPC envelope validation.

    This class keeps protocol and tool-execution behavior independent from
    transport concerns so it can be reused by HTTP, WebSocket and stdio.
    """

    def __init__(
        self,
        *,
        registry: ToolRegistry,
        server_name: str,
        server_version: str,
        instructions: str | None = None,
        resources: ResourceRegistry | None = None,
        auth_gate: AuthGate | None = None,
    ) -> None:
        self._registry = registry
        self._resources = resources if resources is not None else ResourceRegistry()
        self._server_name = server_name
        self._server_version = server_version
        self._instructions = instructions
        self._auth_gate = auth_gate
        self._methods: dict[str, MethodHandler] = {
            "initialize": self.handle_initialize,
            "ping": self.handle_ping,
            "tools/list": self.handle_tools_list,
            "tools/call": self.handle_tools_call,
            "resources/list": self.handle_resources_list,
            "resources/templates/list": self.handle_resource_templates_list,
            "resources/read": self.handle_resources_read,
        }

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def resources(self) -> ResourceRegistry:
        return self._resources

    @property
    def auth_gate(self) -> AuthGate | None:
        return self._auth_gate

    def methods(self) -> list[str]:
        return list(self._methods)

    # '''''''''''''''
    # Wire entrypoints
    # '''''''''''''''

    async def handle_payload(
        self,
        raw: str | bytes,
        *,
        principal: Principal | None = None,
    ) -> str | None:
        """Decode one wire payload, dispatch it and return the encoded reply."""
        try:
            decoded = decode_payload(raw)
        except JSONRPCError as exc:
            return encode_payload(exc.to_response(None))
        reply = await self.handle_decoded(decoded, principal=principal)
        if reply is None:
            return None
        return encode_payload(reply)

    async def handle_decoded(
        self,
        decoded: Any,
        *,
        principal: Principal | None = None,
    ) -> dict[str, Any] | list[dict[str, Any]] | None:
        """Dispatch a decoded message or batch."""
        if isinstance(decoded, list):
            if not decoded:
                return jsonrpc_error(None, INVALID_REQUEST, "Invalid Request", "Empty batch")
            replies = await asyncio.gather(
                *(self.handle_message(item, principal=principal) for item in decoded)
            )
            out = [r for r in replies if r is not None]
            return out or None
        return await self.handle_message(decoded, principal=principal)

    async def handle_message(
        self,
        message: Any,
        *,
        principal: Principal | None = None,
    ) -> dict[str, Any] | None:
        """Route one JSON-RPC 2.0 message to the appropriate MCP method."""
        if not isinstance(message, dict):
            return jsonrpc_error(None, INVALID_REQUEST, "Invalid Request")

        msg_id = message.get("id")
        if not _valid_id(msg_id):
            return jsonrpc_error(None, INVALID_REQUEST, "Invalid request id")

        if message.get("jsonrpc") != "2.0":
            return jsonrpc_error(msg_id, INVALID_REQUEST, "Invalid JSON-RPC version")

        method = message.get("method")
        if not isinstance(method, str) or not method:
            return jsonrpc_error(msg_id, INVALID_REQUEST, "Missing method")

        is_notification = "id" not in message
        if is_notification:
            await self._handle_notification(method, message.get("params"), principal)
            return None

        params = message.get("params")
        if params is None:
            params = {}
        if not isinstance(params, dict):
            return jsonrpc_error(msg_id, INVALID_PARAMS, "'params' must be an object")

        try:
            result = await self.dispatch(method, params, request_id=msg_id, principal=principal)
        except JSONRPCError as exc:
            return exc.to_response(msg_id)
        except AuthorizationError as exc:
            return jsonrpc_error(msg_id, FORBIDDEN, str(exc) or "Forbidden")
        except AuthError as exc:
            return jsonrpc_error(msg_id, UNAUTHORIZED, str(exc) or "Unauthorized")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Error handling MCP method %s", method)
            return jsonrpc_error(msg_id, INTERNAL_ERROR, str(exc) or "Internal error")
        return jsonrpc_response(msg_id, result)

    async def dispatch(
        self,
        method: str,
        params: dict[str, Any],
        *,
        request_id: Any = None,
        principal: Principal | None = None,
    ) -> dict[str, Any]:
        """Authorize and run one method; raises instead of building envelopes."""
        handler = self._methods.get(method)
        if handler is None:
            raise JSONRPCError(METHOD_NOT_FOUND, f"Method not found: {method}")
        if self._auth_gate is not None:
            await self._auth_gate.authorize(
                principal,
                method=method,
                resource=self._resource_for(method, params),
            )
        logger.debug("Dispatching %s (id=%r)", method, request_id)
        return await handler(params, _Call(request_id, principal))

    async def _handle_notification(
        self,
        method: str,
        params: Any,
        principal: Principal | None,
    ) -> None:
        _ = principal
        if method == "notifications/initialized":
            logger.debug("Client finished initialization")
        elif method == "notifications/cancelled":
            # Stream transports cancel the in-flight task; nothing else to do here.
            logger.debug("Client cancelled request %r", (params or {}).get("requestId"))
        else:
            logger.debug("Ignoring notification %s", method)

    @staticmethod
    def _resource_for(method: str, params: dict[str, Any]) -> str:
        if method == "tools/call" and isinstance(params.get("name"), str):
            return f"tools/{params['name']}"
        if method == "resources/read" and isinstance(params.get("uri"), str):
            return params["uri"]
        return method

    # '''''''
    # Methods
    # '''''''

    async def handle_initialize(self, params: dict[str, Any], call: _Call) -> dict[str, Any]:
        """Handle ``initialize`` and return server capabilities."""
        _ = call
        requested = params.get("protocolVersion")
        version = (
            requested
            if isinstance(requested, str) and requested in SUPPORTED_PROTOCOL_VERSIONS
            else MCP_PROTOCOL_VERSION
        )
        client_info = params.get("clientInfo") or {}
        if isinstance(client_info, dict):
            logger.info(
                "Initialize from %s %s (protocol %s)",
                client_info.get("name", "unknown-client"),
                client_info.get("version", ""),
                version,
            )
        return {
            "protocolVersion": version,
            "capabilities": {
                "tools": {
                    "listChanged": False,
                },
                "resources": {
                    "subscribe": False,
                    "listChanged": False,
                },
            },
            "serverInfo": {
                "name": self._server_name,
                "version": self._server_version,
            },
            **({"instructions": self._instructions} if self._instructions else {}),
        }

    async def handle_ping(self, params: dict[str, Any], call: _Call) -> dict[str, Any]:
        _ = params
        _ = call
        return {}

    def describe_tools(self) -> list[dict[str, Any]]:
        """MCP tool descriptors for every registered tool."""
        tools = []
        for tool_obj in self._registry.list():
            spec = tool_obj.spec
            tools.append(
                {
                    "name": spec.name,
                    "description": spec.description,
                    "inputSchema": {
                        "type": "object",
                        **(spec.parameters_schema or {}),
                    },
                }
            )
        return tools

    async def handle_tools_list(self, params: dict[str, Any], call: _Call) -> dict[str, Any]:
        """Handle ``tools/list`` and return MCP tool schemas."""
        _ = params
        _ = call
        return {"tools": self.describe_tools()}

    async def handle_tools_call(self, params: dict[str, Any], call: _Call) -> dict[str, Any]:
        """Handle ``tools/call`` and return MCP content result."""
        tool_name = params.get("name")
        if not isinstance(tool_name, str) or not tool_name:
            raise JSONRPCError(INVALID_PARAMS, "Missing 'name' in tools/call params")

        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise JSONRPCError(INVALID_PARAMS, "'arguments' must be an object")

        ctx = ToolContext(
            request_id=str(call.request_id) if call.request_id is not None else uuid.uuid4().hex,
            principal=call.principal,
            metadata={"source": "mcp", "tool_name": tool_name},
        )
        try:
            result = await self._registry.call(
                tool_name,
                arguments,
                ctx=ctx,
                tool_call_id=ctx.request_id,
            )
        except ToolNotFoundError as exc:
            raise JSONRPCError(INVALID_PARAMS, f"Unknown tool: {tool_name}") from exc
        except ToolValidationError as exc:
            raise JSONRPCError(INVALID_PARAMS, str(exc), {"errors": exc.errors}) from exc
        except ToolPolicyError as exc:
            raise JSONRPCError(FORBIDDEN, str(exc) or "Tool call blocked by policy") from exc
        except ToolTimeoutError as exc:
            return self._tool_error_result(str(exc))

        if not result.success:
            return self._tool_error_result(result.error_message or "Tool execution failed")

        payload: dict[str, Any] = {
            "content": [{"type": "text", "text": output_text(result.output)}],
            "isError": False,
        }
        structured = to_jsonable(result.output)
        if isinstance(structured, dict):
            payload["structuredContent"] = structured
        return payload

    @staticmethod
    def _tool_error_result(message: str) -> dict[str, Any]:
        return {
            "content": [{"type": "text", "text": message}],
            "isError": True,
        }

    async def handle_resources_list(self, params: dict[str, Any], call: _Call) -> dict[str, Any]:
        _ = params
        _ = call
        return {
            "resources": [
                {
                    "uri": r.spec.uri_template,
                    "name": r.spec.name,
                    "description": r.spec.description,
                    "mimeType": r.spec.mime_type,
                }
                for r in self._resources.list_static()
            ]
        }

    async def handle_resource_templates_list(
        self, params: dict[str, Any], call: _Call
    ) -> dict[str, Any]:
        _ = params
        _ = call
        return {
            "resourceTemplates": [
                {
                    "uriTemplate": r.spec.uri_template,
                    "name": r.spec.name,
                    "description": r.spec.description,
                    "mimeType": r.spec.mime_type,
                }
                for r in self._resources.list_templates()
            ]
        }

    async def handle_resources_read(self, params: dict[str, Any], call: _Call) -> dict[str, Any]:
        """Handle ``resources/read`` for static and templated URIs."""
        _ = call
        uri = params.get("uri")
        if not isinstance(uri, str) or not uri:
            raise JSONRPCError(INVALID_PARAMS, "Missing 'uri' in resources/read params")
        try:
            contents = await self._resources.read(uri)
        except ResourceNotFoundError as exc:
            raise JSONRPCError(RESOURCE_NOT_FOUND, str(exc), {"uri": uri}) from exc
        return {"contents": contents}
