"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

JSON-RPC 2.0 envelopes, error codes and the wire codec.

Encoded payloads are always a single line so newline-delimited transports
(stdio) can frame them without escaping.
"""

from __future__ import annotations

import json
from typing import Any

from ..encoding import dumps_compact

# Standard JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# Implementation-defined server errors (-32000 to -32099)
UNAUTHORIZED = -32001
RESOURCE_NOT_FOUND = -32002
FORBIDDEN = -32003


class JSONRPCError(Exception):
    """An error that maps directly onto a JSON-RPC error object."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def to_response(self, id: Any) -> dict[str, Any]:
        return jsonrpc_error(id, self.code, self.message, self.data)


def jsonrpc_response(id: Any, result: Any) -> dict[str, Any]:
    """Build a JSON-RPC 2.0 success response."""
    return {"jsonrpc": "2.0", "id": id, "result": result}


def jsonrpc_error(
    id: Any,
    code: int,
    message: str,
    data: Any = None,
) -> dict[str, Any]:
    """Build a JSON-RPC 2.0 error response."""
    error: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": id, "error": error}


def jsonrpc_notification(method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
    message: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
    if params is not None:
        message["params"] = params
    return message


def decode_payload(raw: str | bytes | bytearray) -> Any:
    """
    Parse one wire payload into a message dict or a batch list.

    Raises ``JSONRPCError(PARSE_ERROR)`` for undecodable input. Shape
    validation is left to the dispatcher.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as e:
            raise JSONRPCError(PARSE_ERROR, "Parse error", "Payload is not valid UTF-8") from e
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise JSONRPCError(PARSE_ERROR, "Parse error", str(e)) from e


def encode_payload(payload: dict[str, Any] | list[dict[str, Any]]) -> str:
    """Serialize a response or batch of responses onto one line."""
    return dumps_compact(payload)
