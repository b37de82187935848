"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Read-only resources exposed through MCP resource URIs.
"""

from .base import (
    Resource,
    ResourceAlreadyRegisteredError,
    ResourceError,
    ResourceNotFoundError,
    ResourceSpec,
    build_resource,
    compile_uri_template,
    resource,
)
from .registry import ResourceRegistry, resources_from_object

__all__ = [
    "Resource",
    "ResourceSpec",
    "ResourceRegistry",
    "ResourceError",
    "ResourceNotFoundError",
    "ResourceAlreadyRegisteredError",
    "build_resource",
    "compile_uri_template",
    "resource",
    "resources_from_object",
]
