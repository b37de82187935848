"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Core tool types: specs, call context, results and the executable ``Tool``.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Literal, TypeVar

from pydantic import BaseModel, ValidationError

from .errors import ToolTimeoutError, ToolValidationError

logger = logging.getLogger("tmcp.tools")

ArgsT = TypeVar("ArgsT", bound=BaseModel)
ReturnT = TypeVar("ReturnT")

ToolFn = Callable[..., Any]
CallStyle = Literal["model", "kwargs"]


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """
    Public description of a tool.

    Attributes:
        name: Unique tool name.
        description: Human readable description shown to clients.
        parameters_schema: JSON Schema object for the tool arguments.
    """

    name: str
    description: str = ""
    parameters_schema: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ToolContext:
    """Per-call context handed to tools that declare a ``ctx`` parameter."""

    request_id: str | None = None
    principal: Any | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ToolResult(Generic[ReturnT]):
    """Outcome of one tool execution."""

    output: ReturnT | None = None
    success: bool = True
    error_message: str | None = None
    tool_name: str | None = None
    tool_call_id: str | None = None


def as_async(fn: ToolFn) -> Callable[..., Awaitable[Any]]:
    """Return an awaitable version of ``fn``; sync callables run in a worker thread."""
    if inspect.iscoroutinefunction(fn):
        return fn

    @functools.wraps(fn)
    async def _runner(*args: Any, **kwargs: Any) -> Any:
        return await asyncio.to_thread(fn, *args, **kwargs)

    return _runner


def _takes_ctx(fn: ToolFn) -> bool:
    try:
        params = inspect.signature(fn).parameters
    except (TypeError, ValueError):
        return False
    return "ctx" in params


class Tool(Generic[ArgsT, ReturnT]):
    """
    Executable tool: a handler plus the pydantic model validating its input.

    ``call_style`` controls how validated arguments reach the handler:
      - ``"model"``: ``fn(args)`` or ``fn(args, ctx)``
      - ``"kwargs"``: ``fn(**fields)`` or ``fn(**fields, ctx=ctx)``
    """

    def __init__(
        self,
        *,
        spec: ToolSpec,
        fn: ToolFn,
        args_model: type[ArgsT],
        default_timeout: float | None = None,
        call_style: CallStyle = "model",
    ) -> None:
        self.spec = spec
        self.fn = fn
        self.args_model = args_model
        self.default_timeout = default_timeout
        self.call_style = call_style
        self._takes_ctx = _takes_ctx(fn)
        self._async_fn = as_async(fn)

    def __repr__(self) -> str:
        return f"Tool(name={self.spec.name!r})"

    def validate(self, raw_args: dict[str, Any] | None) -> ArgsT:
        try:
            return self.args_model.model_validate(raw_args or {})
        except ValidationError as e:
            errors = json.loads(e.json(include_url=False))
            raise ToolValidationError(
                f"Invalid arguments for tool '{self.spec.name}': {e.error_count()} validation error(s)",
                errors=errors,
            ) from e

    async def _invoke(self, args: ArgsT, ctx: ToolContext) -> Any:
        if self.call_style == "kwargs":
            kwargs = {name: getattr(args, name) for name in type(args).model_fields}
            if self._takes_ctx:
                kwargs["ctx"] = ctx
            return await self._async_fn(**kwargs)
        if self._takes_ctx:
            return await self._async_fn(args, ctx)
        return await self._async_fn(args)

    async def call(
        self,
        raw_args: dict[str, Any] | None,
        *,
        ctx: ToolContext | None = None,
        timeout: float | None = None,
        tool_call_id: str | None = None,
    ) -> ToolResult[ReturnT]:
        """
        Validate ``raw_args`` and run the handler.

        Raises ``ToolValidationError`` for bad input and ``ToolTimeoutError``
        when the effective timeout elapses. Any other handler exception is
        reported as an unsuccessful ``ToolResult``.
        """
        ctx = ctx or ToolContext()
        args = self.validate(raw_args)
        effective_timeout = timeout if timeout is not None else self.default_timeout

        try:
            if effective_timeout is not None:
                output = await asyncio.wait_for(
                    self._invoke(args, ctx), timeout=effective_timeout
                )
            else:
                output = await self._invoke(args, ctx)
        except asyncio.TimeoutError as e:
            raise ToolTimeoutError(
                f"Tool '{self.spec.name}' timed out after {effective_timeout} seconds."
            ) from e
        except Exception as e:
            logger.warning("Tool %s failed: %s", self.spec.name, e)
            return ToolResult(
                success=False,
                error_message=str(e) or e.__class__.__name__,
                tool_name=self.spec.name,
                tool_call_id=tool_call_id,
            )

        return ToolResult(
            output=output,
            success=True,
            tool_name=self.spec.name,
            tool_call_id=tool_call_id,
        )
