"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Tool declaration and the registry backing ``tools/list`` and ``tools/call``.
"""

from .core import (
    Tool,
    ToolAlreadyRegisteredError,
    ToolContext,
    ToolError,
    ToolExecutionError,
    ToolFn,
    ToolNotFoundError,
    ToolPolicyError,
    ToolResult,
    ToolSpec,
    ToolTimeoutError,
    ToolValidationError,
    as_async,
    build_tool,
    tool,
    tool_options,
    tools_from_object,
)
from .registry import ToolCallRecord, ToolPolicy, ToolRegistry

__all__ = [
    "Tool",
    "ToolSpec",
    "ToolContext",
    "ToolResult",
    "ToolFn",
    "ToolPolicy",
    "ToolRegistry",
    "ToolCallRecord",
    "as_async",
    "build_tool",
    "tool",
    "tool_options",
    "tools_from_object",
    "ToolError",
    "ToolAlreadyRegisteredError",
    "ToolExecutionError",
    "ToolNotFoundError",
    "ToolPolicyError",
    "ToolTimeoutError",
    "ToolValidationError",
]
