from .base import (
    Tool,
    ToolContext,
    ToolResult,
    ToolSpec,
    ToolFn,
    as_async,
)
from .decorator import (
    build_tool,
    model_from_signature,
    schema_for,
    tool,
    tool_options,
    tools_from_object,
)
from .errors import (
    ToolAlreadyRegisteredError,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
    ToolPolicyError,
    ToolTimeoutError,
    ToolValidationError,
)

__all__ = [
    "Tool",
    "ToolSpec",
    "ToolContext",
    "ToolResult",
    "ToolFn",
    "as_async",
    "build_tool",
    "model_from_signature",
    "schema_for",
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
