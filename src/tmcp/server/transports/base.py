"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Uniform message-stream serving loop shared by stdio and WebSocket.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from ..auth import Principal
from ..jsonrpc import JSONRPCError, decode_payload, encode_payload
from ..protocol import MCPProtocolHandler

logger = logging.getLogger("tmcp.transport")


class MessageStream(Protocol):
    """One bidirectional channel carrying whole JSON-RPC payloads as text."""

    async def receive(self) -> str | None:
        """Return the next payload, or ``None`` once the peer has closed."""
        ...

    async def send(self, text: str) -> None:
        ...

    async def close(self) -> None:
        ...


def _hashable_id(value: Any) -> bool:
    return isinstance(value, (str, int)) and not isinstance(value, bool)


class StreamSession:
    """
    Serves one ``MessageStream`` until it closes.

    Each inbound payload is dispatched in its own task so a slow tool does
    not block ``ping`` or other requests. Replies are written one at a time.
    ``notifications/cancelled`` cancels the matching in-flight request and
    suppresses its reply.
    """

    def __init__(
        self,
        handler: MCPProtocolHandler,
        stream: MessageStream,
        *,
        principal: Principal | None = None,
    ) -> None:
        self._handler = handler
        self._stream = stream
        self._principal = principal
        self._send_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task[None]] = set()
        self._in_flight: dict[Any, asyncio.Task[None]] = {}
        self._cancelled: set[Any] = set()

    @property
    def in_flight(self) -> list[Any]:
        return list(self._in_flight)

    async def run(self) -> None:
        try:
            while True:
                raw = await self._stream.receive()
                if raw is None:
                    break
                if not raw.strip():
                    continue
                self._accept(raw)
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
        finally:
            for task in list(self._tasks):
                task.cancel()

    def cancel(self, request_id: Any, reason: str | None = None) -> bool:
        """Cancel an in-flight request; returns ``False`` when it is unknown."""
        if not _hashable_id(request_id):
            return False
        task = self._in_flight.get(request_id)
        if task is None or task.done():
            return False
        logger.info("Cancelling request %r%s", request_id, f": {reason}" if reason else "")
        self._cancelled.add(request_id)
        task.cancel()
        return True

    def _spawn(self, coro: Any) -> asyncio.Task[None]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _accept(self, raw: str) -> None:
        try:
            decoded = decode_payload(raw)
        except JSONRPCError as exc:
            self._spawn(self._send(encode_payload(exc.to_response(None))))
            return

        if isinstance(decoded, dict) and "id" not in decoded:
            if decoded.get("method") == "notifications/cancelled":
                params = decoded.get("params")
                if isinstance(params, dict):
                    self.cancel(params.get("requestId"), params.get("reason"))

        request_id = decoded.get("id") if isinstance(decoded, dict) else None
        task = self._spawn(self._process(decoded, request_id))
        if _hashable_id(request_id):
            self._in_flight[request_id] = task

    async def _process(self, decoded: Any, request_id: Any) -> None:
        try:
            reply = await self._handler.handle_decoded(decoded, principal=self._principal)
        except asyncio.CancelledError:
            if _hashable_id(request_id) and request_id in self._cancelled:
                self._cancelled.discard(request_id)
                return
            raise
        finally:
            if _hashable_id(request_id) and self._in_flight.get(request_id) is asyncio.current_task():
                self._in_flight.pop(request_id, None)
        if reply is not None:
            await self._send(encode_payload(reply))

    async def _send(self, text: str) -> None:
        async with self._send_lock:
            try:
                await self._stream.send(text)
            except Exception as exc:  # noqa: BLE001 - peer went away mid-reply
                logger.warning("Failed to write reply: %s", exc)
