"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

JSON conversion helpers shared by tool results, resources and the wire codec.
"""

from __future__ import annotations

import dataclasses
import json
from typing import Any

from pydantic import BaseModel


def to_jsonable(value: Any) -> Any:
    """Convert pydantic models and dataclasses into plain JSON-compatible data."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in value]
    return value


def dumps_compact(value: Any) -> str:
    """Single-line ASCII JSON; unknown objects fall back to ``str``.

    Non-ASCII text, lone surrogates included, is escaped so any transport
    encoding can carry the payload.
    """
    return json.dumps(
        to_jsonable(value),
        separators=(",", ":"),
        ensure_ascii=True,
        default=str,
    )


def output_text(output: Any) -> str:
    """Text rendering of a handler output for MCP ``text`` content."""
    if isinstance(output, str):
        return output
    if output is None:
        return ""
    return json.dumps(to_jsonable(output), default=str)
