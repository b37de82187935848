"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Decorators and helpers that turn plain callables into ``Tool`` objects.

Two styles are supported::

    class EchoArgs(BaseModel):
        text: str

    @tool(args_model=EchoArgs, name="echo", description="Echo text")
    def echo(args: EchoArgs) -> str:
        return args.text

    @tool
    def add_numbers(a: float, b: float) -> float:
        "Add two numbers together."
        return a + b

The second form derives the args model from the signature.
"""

from __future__ import annotations

import inspect
import types
import typing
from typing import Any, Callable, Union, overload

from pydantic import BaseModel, ConfigDict, create_model

from .base import Tool, ToolFn, ToolSpec

TOOL_OPTIONS_ATTR = "__tmcp_tool__"
RESOURCE_MARKER_ATTR = "__tmcp_resource__"


def describe(fn: Callable[..., Any]) -> str:
    """First paragraph of the callable's docstring, joined onto one line."""
    doc = inspect.getdoc(fn) or ""
    first = doc.strip().split("\n\n", 1)[0]
    return " ".join(line.strip() for line in first.splitlines()).strip()


def _is_optional(annotation: Any) -> bool:
    origin = typing.get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        return type(None) in typing.get_args(annotation)
    return False


def model_from_signature(fn: ToolFn, *, model_name: str) -> type[BaseModel]:
    """
    Build a pydantic model describing ``fn``'s keyword arguments.

    ``ctx`` and variadic parameters are skipped. Optional parameters without
    a default become non-required fields defaulting to ``None``.
    """
    sig = inspect.signature(fn)
    try:
        hints = typing.get_type_hints(fn)
    except Exception:  # noqa: BLE001 - unresolved forward refs fall back to raw annotations
        hints = {}

    fields: dict[str, Any] = {}
    for pname, param in sig.parameters.items():
        if pname == "ctx":
            continue
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        annotation = hints.get(pname, param.annotation)
        if annotation is inspect.Parameter.empty:
            annotation = Any
        if param.default is not inspect.Parameter.empty:
            default = param.default
        elif _is_optional(annotation):
            default = None
        else:
            default = ...
        fields[pname] = (annotation, default)

    return create_model(  # type: ignore[call-overload]
        model_name,
        __config__=ConfigDict(extra="forbid"),
        **fields,
    )


def schema_for(args_model: type[BaseModel]) -> dict[str, Any]:
    """JSON Schema for an args model, without the pydantic title noise."""
    schema = dict(args_model.model_json_schema())
    schema.pop("title", None)
    schema["type"] = "object"
    schema.setdefault("properties", {})
    return schema


def _model_name(tool_name: str) -> str:
    parts = [p for p in tool_name.replace("-", "_").split("_") if p]
    return "".join(p[:1].upper() + p[1:] for p in parts) + "Args"


def build_tool(
    fn: ToolFn,
    *,
    args_model: type[BaseModel] | None = None,
    name: str | None = None,
    description: str | None = None,
    timeout: float | None = None,
) -> Tool[Any, Any]:
    """Construct a ``Tool`` from a callable, inferring whatever is not given."""
    tool_name = name or getattr(fn, "__name__", None)
    if not tool_name:
        raise ValueError("Tool name could not be inferred; pass name=...")

    if args_model is None:
        model = model_from_signature(fn, model_name=_model_name(tool_name))
        call_style = "kwargs"
    else:
        model = args_model
        call_style = "model"

    spec = ToolSpec(
        name=tool_name,
        description=description if description is not None else describe(fn),
        parameters_schema=schema_for(model),
    )
    return Tool(
        spec=spec,
        fn=fn,
        args_model=model,
        default_timeout=timeout,
        call_style=call_style,
    )


@overload
def tool(args_model: ToolFn) -> Tool[Any, Any]: ...


@overload
def tool(
    args_model: type[BaseModel] | None = None,
    *,
    name: str | None = None,
    description: str | None = None,
    timeout: float | None = None,
) -> Callable[[ToolFn], Tool[Any, Any]]: ...


def tool(
    args_model: Any = None,
    *,
    name: str | None = None,
    description: str | None = None,
    timeout: float | None = None,
) -> Any:
    """Decorate a function as a tool. Usable bare (``@tool``) or with options."""
    if args_model is not None and not (
        isinstance(args_model, type) and issubclass(args_model, BaseModel)
    ):
        if callable(args_model):
            return build_tool(args_model)
        raise TypeError("args_model must be a pydantic BaseModel subclass")

    def _decorate(fn: ToolFn) -> Tool[Any, Any]:
        return build_tool(
            fn,
            args_model=args_model,
            name=name,
            description=description,
            timeout=timeout,
        )

    return _decorate


def tool_options(
    *,
    name: str | None = None,
    description: str | None = None,
    timeout: float | None = None,
    hidden: bool = False,
) -> Callable[[ToolFn], ToolFn]:
    """
    Attach tool options to a method discovered by ``tools_from_object``.

    ``hidden=True`` keeps a public method out of the tool list.
    """

    def _mark(fn: ToolFn) -> ToolFn:
        setattr(
            fn,
            TOOL_OPTIONS_ATTR,
            {
                "name": name,
                "description": description,
                "timeout": timeout,
                "hidden": hidden,
            },
        )
        return fn

    return _mark


def _public_method_names(cls: type) -> list[str]:
    seen: list[str] = []
    for klass in cls.__mro__:
        if klass is object:
            continue
        for attr in vars(klass):
            if attr.startswith("_") or attr in seen:
                continue
            seen.append(attr)
    return seen


def tools_from_object(obj: Any) -> list[Tool[Any, Any]]:
    """
    Expose every public method of ``obj`` as a tool.

    Methods marked as resources, hidden via ``tool_options``, static methods,
    class methods and properties are skipped.
    """
    cls = type(obj)
    out: list[Tool[Any, Any]] = []
    for attr in _public_method_names(cls):
        raw = inspect.getattr_static(cls, attr)
        if not isinstance(raw, types.FunctionType):
            continue
        if getattr(raw, RESOURCE_MARKER_ATTR, None) is not None:
            continue
        options = getattr(raw, TOOL_OPTIONS_ATTR, None) or {}
        if options.get("hidden"):
            continue
        bound = getattr(obj, attr)
        out.append(
            build_tool(
                bound,
                name=options.get("name") or attr,
                description=options.get("description"),
                timeout=options.get("timeout"),
            )
        )
    return out
