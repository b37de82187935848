"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Newline-delimited JSON-RPC over standard input/output.

stdout carries protocol frames only; logs must go to stderr.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Mapping, TextIO

from ..auth import AuthContext, AuthError, AuthGate, Principal
from ..protocol import MCPProtocolHandler
from .base import StreamSession

logger = logging.getLogger("tmcp.transport")


class StdioStream:
    """``MessageStream`` over text streams, one JSON payload per line."""

    def __init__(self, reader: TextIO | None = None, writer: TextIO | None = None) -> None:
        self._reader = reader if reader is not None else sys.stdin
        self._writer = writer if writer is not None else sys.stdout

    async def receive(self) -> str | None:
        line = await asyncio.to_thread(self._reader.readline)
        if line == "":
            return None
        return line.rstrip("\r\n")

    async def send(self, text: str) -> None:
        await asyncio.to_thread(self._write_line, text)

    def _write_line(self, text: str) -> None:
        self._writer.write(text + "\n")
        self._writer.flush()

    async def close(self) -> None:
        await asyncio.to_thread(self._writer.flush)


async def serve_stdio(
    handler: MCPProtocolHandler,
    *,
    auth_gate: AuthGate | None = None,
    headers: Mapping[str, str] | None = None,
    reader: TextIO | None = None,
    writer: TextIO | None = None,
) -> None:
    """
    Serve MCP over stdio until end of input.

    stdio carries no per-message credentials, so the session authenticates
    once from ``headers`` (for example ``{"x-api-key": ...}``). When that
    fails, protected methods answer with an ``UNAUTHORIZED`` error.
    """
    stream = StdioStream(reader, writer)
    principal: Principal | None = None
    if auth_gate is not None:
        try:
            principal = await auth_gate.authenticate(
                AuthContext(headers=dict(headers or {}), transport="stdio")
            )
        except AuthError as exc:
            logger.error("stdio session is unauthenticated: %s", exc)

    logger.info("Serving MCP over stdio")
    session = StreamSession(handler, stream, principal=principal)
    try:
        await session.run()
    finally:
        await stream.close()
    logger.info("stdio input closed; server stopping")
