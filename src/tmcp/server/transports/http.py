"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

FastAPI routes for MCP over HTTP, SSE and WebSocket.

Endpoints (paths configurable):
    ``POST /mcp`` - JSON-RPC 2.0 endpoint
    ``GET /mcp/sse`` - SSE endpoint announcement plus heartbeats
    ``WS /mcp/ws`` - one JSON-RPC payload per text frame
    ``GET /health`` - health check
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any

from fastapi import APIRouter, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response, StreamingResponse
from starlette.websockets import WebSocketState

from ..auth import AuthContext, AuthError, AuthGate, Principal
from ..config import MCPServerConfig
from ..jsonrpc import (
    INVALID_REQUEST,
    UNAUTHORIZED,
    JSONRPCError,
    decode_payload,
    encode_payload,
    jsonrpc_error,
)
from ..protocol import MCPProtocolHandler
from .base import StreamSession

logger = logging.getLogger("tmcp.transport")

WS_UNAUTHORIZED_CLOSE_CODE = 4401
SSE_HEARTBEAT_S = 30.0


def _json(payload: Any, status_code: int = 200, headers: dict[str, str] | None = None) -> Response:
    return Response(
        content=encode_payload(payload),
        status_code=status_code,
        media_type="application/json",
        headers=headers,
    )


class WebSocketStream:
    """``MessageStream`` over a Starlette WebSocket."""

    def __init__(self, websocket: WebSocket) -> None:
        self._ws = websocket

    async def receive(self) -> str | None:
        try:
            return await self._ws.receive_text()
        except WebSocketDisconnect:
            return None

    async def send(self, text: str) -> None:
        await self._ws.send_text(text)

    async def close(self) -> None:
        if (
            self._ws.client_state == WebSocketState.DISCONNECTED
            or self._ws.application_state == WebSocketState.DISCONNECTED
        ):
            return
        await self._ws.close()


def create_router(
    handler: MCPProtocolHandler,
    config: MCPServerConfig,
    *,
    auth_gate: AuthGate | None = None,
) -> APIRouter:
    """Build an APIRouter containing MCP routes."""
    router = APIRouter()

    async def _authenticate(headers: Any, peer: Any, transport: str) -> Principal | None:
        if auth_gate is None:
            return None
        context = AuthContext(
            headers={str(k): str(v) for k, v in headers.items()},
            peer_id=peer.host if peer else None,
            transport=transport,
        )
        return await auth_gate.authenticate(context)

    if config.enable_health:

        @router.get(config.health_path)
        async def health():
            return {
                "status": "ok",
                "server": config.name,
                "version": config.version,
                "tools_count": len(handler.registry),
                "resources_count": len(handler.resources),
                "auth": auth_gate.provider_id if auth_gate else "none",
            }

    @router.post(config.mcp_path)
    async def mcp_endpoint(request: Request):
        """Main JSON-RPC 2.0 endpoint for MCP."""
        try:
            principal = await _authenticate(request.headers, request.client, "http")
        except AuthError as exc:
            return _json(
                jsonrpc_error(None, UNAUTHORIZED, str(exc) or "Unauthorized"),
                status_code=401,
                headers={"WWW-Authenticate": "Bearer"},
            )

        try:
            body = decode_payload(await request.body())
        except JSONRPCError as exc:
            return _json(exc.to_response(None))

        if isinstance(body, list) and not config.allow_batch_requests:
            return _json(jsonrpc_error(None, INVALID_REQUEST, "Batch requests disabled"))

        reply = await handler.handle_decoded(body, principal=principal)
        if reply is None:
            return Response(status_code=204)
        return _json(reply)

    if config.enable_sse:

        @router.get(config.sse_path)
        async def sse_endpoint(request: Request):
            """SSE transport for MCP; announces the POST endpoint then keeps alive."""
            try:
                await _authenticate(request.headers, request.client, "sse")
            except AuthError as exc:
                return _json(
                    jsonrpc_error(None, UNAUTHORIZED, str(exc) or "Unauthorized"),
                    status_code=401,
                    headers={"WWW-Authenticate": "Bearer"},
                )

            session_id = uuid.uuid4().hex

            async def event_stream():
                endpoint_data = json.dumps(
                    {
                        "endpoint": config.mcp_path,
                        "sessionId": session_id,
                    }
                )
                yield f"event: endpoint\ndata: {endpoint_data}\n\n"

                while True:
                    if await request.is_disconnected():
                        break
                    await asyncio.sleep(SSE_HEARTBEAT_S)
                    yield ": heartbeat\n\n"

            return StreamingResponse(
                event_stream(),
                media_type="text/event-stream",
                headers={
                    "Cache-Control": "no-cache",
                    "Connection": "keep-alive",
                    "X-Accel-Buffering": "no",
                },
            )

    if config.enable_websocket:

        @router.websocket(config.ws_path)
        async def ws_endpoint(websocket: WebSocket):
            """WebSocket transport: one JSON-RPC payload per text frame."""
            try:
                principal = await _authenticate(websocket.headers, websocket.client, "websocket")
            except AuthError as exc:
                await websocket.close(code=WS_UNAUTHORIZED_CLOSE_CODE, reason=str(exc))
                return

            offered = websocket.scope.get("subprotocols") or []
            await websocket.accept(subprotocol="mcp" if "mcp" in offered else None)
            stream = WebSocketStream(websocket)
            logger.info("WebSocket session opened")
            try:
                await StreamSession(handler, stream, principal=principal).run()
            finally:
                await stream.close()
                logger.info("WebSocket session closed")

    return router


def create_app(
    handler: MCPProtocolHandler,
    config: MCPServerConfig,
    *,
    auth_gate: AuthGate | None = None,
) -> FastAPI:
    """Build the FastAPI application with MCP routes."""
    app = FastAPI(
        title=config.name,
        version=config.version,
        description=config.description or "MCP Server - Model Context Protocol",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(create_router(handler, config, auth_gate=auth_gate))
    return app
