"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Read-only MCP resources addressed by URI templates.

A template such as ``template://example-data/{id}`` matches
``template://example-data/42`` and calls the handler with ``id="42"``.
Each ``{param}`` matches exactly one non-empty segment without ``/``.
"""

from __future__ import annotations

import base64
import re
from dataclasses import dataclass
from typing import Any, Callable

from ..encoding import output_text
from ..tools.core.base import as_async
from ..tools.core.decorator import RESOURCE_MARKER_ATTR, describe

_PARAM_RE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")

ResourceFn = Callable[..., Any]


class ResourceError(Exception):
    """Base class for resource errors."""


class ResourceNotFoundError(ResourceError, LookupError):
    """Raised when no registered resource matches a URI."""


class ResourceAlreadyRegisteredError(ResourceError):
    """Raised when a URI template is registered twice."""


@dataclass(frozen=True, slots=True)
class ResourceSpec:
    uri_template: str
    name: str
    description: str = ""
    mime_type: str = "application/json"


def compile_uri_template(template: str) -> tuple[re.Pattern[str], tuple[str, ...]]:
    """Compile a URI template into an anchored regex and its parameter names."""
    parts: list[str] = []
    params: list[str] = []
    pos = 0
    for m in _PARAM_RE.finditer(template):
        parts.append(re.escape(template[pos : m.start()]))
        name = m.group(1)
        if name in params:
            raise ValueError(f"Duplicate parameter '{name}' in URI template {template!r}")
        params.append(name)
        parts.append(f"(?P<{name}>[^/]+)")
        pos = m.end()
    parts.append(re.escape(template[pos:]))
    return re.compile("^" + "".join(parts) + "$"), tuple(params)


class Resource:
    """A resource handler bound to one URI template."""

    def __init__(self, *, spec: ResourceSpec, fn: ResourceFn) -> None:
        self.spec = spec
        self.fn = fn
        self._pattern, self.parameters = compile_uri_template(spec.uri_template)
        self._async_fn = as_async(fn)

    def __repr__(self) -> str:
        return f"Resource(uri_template={self.spec.uri_template!r})"

    @property
    def is_template(self) -> bool:
        return bool(self.parameters)

    def match(self, uri: str) -> dict[str, str] | None:
        m = self._pattern.match(uri)
        if m is None:
            return None
        return m.groupdict()

    async def read(self, uri: str) -> list[dict[str, Any]]:
        params = self.match(uri)
        if params is None:
            raise ResourceNotFoundError(f"Resource not found: {uri}")
        value = await self._async_fn(**params)
        content: dict[str, Any] = {"uri": uri, "mimeType": self.spec.mime_type}
        if isinstance(value, (bytes, bytearray)):
            content["blob"] = base64.b64encode(bytes(value)).decode("ascii")
        else:
            content["text"] = output_text(value)
        return [content]


def resource(
    uri_template: str,
    *,
    name: str | None = None,
    description: str | None = None,
    mime_type: str = "application/json",
) -> Callable[[ResourceFn], ResourceFn]:
    """
    Mark a function or method as a resource handler.

    The function is returned unchanged so the decorator also works on
    methods; ``ResourceRegistry.register`` and ``resources_from_object``
    read the marker.
    """
    _, params = compile_uri_template(uri_template)

    def _mark(fn: ResourceFn) -> ResourceFn:
        setattr(
            fn,
            RESOURCE_MARKER_ATTR,
            {
                "uri_template": uri_template,
                "name": name,
                "description": description,
                "mime_type": mime_type,
                "params": params,
            },
        )
        return fn

    return _mark


def build_resource(fn: ResourceFn) -> Resource:
    """Build a ``Resource`` from a callable previously marked with ``@resource``."""
    options = getattr(fn, RESOURCE_MARKER_ATTR, None)
    if options is None:
        raise ResourceError(f"{fn!r} is not marked with @resource")
    spec = ResourceSpec(
        uri_template=options["uri_template"],
        name=options["name"] or getattr(fn, "__name__", options["uri_template"]),
        description=options["description"] if options["description"] is not None else describe(fn),
        mime_type=options["mime_type"],
    )
    return Resource(spec=spec, fn=fn)
