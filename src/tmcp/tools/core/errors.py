"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Exception hierarchy for tool registration and execution.
"""

from __future__ import annotations

from typing import Any


class ToolError(Exception):
    """Base class for all tool errors."""


class ToolAlreadyRegisteredError(ToolError):
    """Raised when a tool name is registered twice without ``overwrite``."""


class ToolNotFoundError(ToolError, LookupError):
    """Raised when a tool name is not present in the registry."""


class ToolValidationError(ToolError, ValueError):
    """Raised when raw arguments do not satisfy the tool's args model."""

    def __init__(self, message: str, *, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class ToolPolicyError(ToolError, PermissionError):
    """Raised by registry policies to block a call."""


class ToolTimeoutError(ToolError, TimeoutError):
    """Raised when a tool exceeds its effective timeout."""


class ToolExecutionError(ToolError):
    """Raised by tool handlers to report a domain failure."""
