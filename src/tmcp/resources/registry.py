"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Registry of resources backing ``resources/list``, ``resources/templates/list``
and ``resources/read``.
"""

from __future__ import annotations

import inspect
import logging
import types
from typing import Any, Iterable

from ..tools.core.decorator import RESOURCE_MARKER_ATTR
from .base import (
    Resource,
    ResourceAlreadyRegisteredError,
    ResourceFn,
    ResourceNotFoundError,
    build_resource,
)

logger = logging.getLogger("tmcp.resources")


class ResourceRegistry:
    """Resources keyed by URI template, matched in registration order."""

    def __init__(self) -> None:
        self._resources: dict[str, Resource] = {}

    def register(self, item: Resource | ResourceFn, *, overwrite: bool = False) -> Resource:
        res = item if isinstance(item, Resource) else build_resource(item)
        key = res.spec.uri_template
        if not overwrite and key in self._resources:
            raise ResourceAlreadyRegisteredError(f"Resource already registered: {key}")
        self._resources[key] = res
        logger.debug("Registered resource %s", key)
        return res

    def register_many(self, items: Iterable[Resource | ResourceFn], *, overwrite: bool = False) -> None:
        for item in items:
            self.register(item, overwrite=overwrite)

    def unregister(self, uri_template: str) -> None:
        self._resources.pop(uri_template, None)

    def list(self) -> list[Resource]:
        return list(self._resources.values())

    def list_static(self) -> list[Resource]:
        return [r for r in self._resources.values() if not r.is_template]

    def list_templates(self) -> list[Resource]:
        return [r for r in self._resources.values() if r.is_template]

    def __len__(self) -> int:
        return len(self._resources)

    def resolve(self, uri: str) -> Resource:
        # Exact (static) templates win over parameterized ones.
        exact = self._resources.get(uri)
        if exact is not None and not exact.is_template:
            return exact
        for res in self._resources.values():
            if res.is_template and res.match(uri) is not None:
                return res
        raise ResourceNotFoundError(f"Resource not found: {uri}")

    async def read(self, uri: str) -> list[dict[str, Any]]:
        return await self.resolve(uri).read(uri)


def resources_from_object(obj: Any) -> list[Resource]:
    """Collect ``@resource``-marked methods of ``obj`` as bound resources."""
    cls = type(obj)
    out: list[Resource] = []
    seen: set[str] = set()
    for klass in cls.__mro__:
        if klass is object:
            continue
        for attr in vars(klass):
            if attr in seen:
                continue
            seen.add(attr)
            raw = inspect.getattr_static(cls, attr)
            if not isinstance(raw, types.FunctionType):
                continue
            if getattr(raw, RESOURCE_MARKER_ATTR, None) is None:
                continue
            out.append(build_resource(getattr(obj, attr)))
    return out
