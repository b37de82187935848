"""
Transport adapters: stdio, HTTP/SSE and WebSocket framing over one
``StreamSession``/``MCPProtocolHandler`` core.
"""

from .base import MessageStream, StreamSession
from .stdio import StdioStream, serve_stdio

__all__ = [
    "MessageStream",
    "StreamSession",
    "StdioStream",
    "serve_stdio",
]
