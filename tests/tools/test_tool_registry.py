from __future__ import annotations

import asyncio

import pytest

from tmcp.tools import (
    ToolAlreadyRegisteredError,
    ToolContext,
    ToolNotFoundError,
    ToolPolicyError,
    ToolRegistry,
    ToolTimeoutError,
    tool,
)


def run_async(coro):
    return asyncio.run(coro)


@tool
def add_numbers(a: float, b: float) -> float:
    """Add two numbers together."""
    return a + b


@tool
async def slow_echo(message: str, delay: float = 0.5) -> str:
    await asyncio.sleep(delay)
    return message


def test_register_rejects_duplicates_unless_overwrite():
    registry = ToolRegistry()
    registry.register(add_numbers)

    with pytest.raises(ToolAlreadyRegisteredError):
        registry.register(add_numbers)

    registry.register(add_numbers, overwrite=True)
    assert registry.names() == ["add_numbers"]
    assert len(registry) == 1


def test_unknown_tool_raises_not_found():
    registry = ToolRegistry()

    with pytest.raises(ToolNotFoundError):
        registry.get("missing")
    with pytest.raises(ToolNotFoundError):
        run_async(registry.call("missing", {}))


def test_call_records_history():
    registry = ToolRegistry(history_limit=2)
    registry.register(add_numbers)

    for i in range(3):
        res = run_async(registry.call("add_numbers", {"a": i, "b": 1}, tool_call_id=f"c{i}"))
        assert res.success is True

    records = registry.recent_calls()
    assert [r.tool_call_id for r in records] == ["c1", "c2"]
    assert all(r.ok for r in records)


def test_registry_default_timeout_applies():
    registry = ToolRegistry(default_timeout=0.05)
    registry.register(slow_echo)

    with pytest.raises(ToolTimeoutError):
        run_async(registry.call("slow_echo", {"message": "hi"}))

    assert registry.recent_calls()[-1].error == "timeout"

    # Call-level timeout wins over the registry default.
    res = run_async(registry.call("slow_echo", {"message": "hi", "delay": 0.01}, timeout=1.0))
    assert res.output == "hi"


def test_policy_can_block_calls():
    def deny_delete(name: str, args: dict, ctx: ToolContext) -> None:
        if ctx.principal is None:
            raise ValueError(f"{name} requires an authenticated caller")

    registry = ToolRegistry(policy=deny_delete)
    registry.register(add_numbers)

    with pytest.raises(ToolPolicyError):
        run_async(registry.call("add_numbers", {"a": 1, "b": 2}))

    ctx = ToolContext(principal=object())
    assert run_async(registry.call("add_numbers", {"a": 1, "b": 2}, ctx=ctx)).output == 3


def test_concurrency_is_bounded():
    active = 0
    peak = 0

    @tool
    async def tracked() -> int:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.02)
        active -= 1
        return peak

    registry = ToolRegistry(max_concurrency=2)
    registry.register(tracked)

    results = run_async(registry.call_many([("tracked", {})] * 6))

    assert len(results) == 6
    assert peak == 2


def test_invalid_concurrency_rejected():
    with pytest.raises(ValueError):
        ToolRegistry(max_concurrency=0)


def test_specs_and_summaries():
    registry = ToolRegistry()
    registry.register_many([add_numbers, slow_echo])
    registry.unregister("slow_echo")

    assert [s.name for s in registry.specs()] == ["add_numbers"]
    assert registry.list_tool_summaries() == [
        {"name": "add_numbers", "description": "Add two numbers together."}
    ]
    assert registry.has("add_numbers") and not registry.has("slow_echo")


class FakeEntryPoint:
    def __init__(self, name: str, obj) -> None:
        self.name = name
        self._obj = obj

    def load(self):
        return self._obj


class FakeEntryPoints:
    def __init__(self, eps) -> None:
        self._eps = eps

    def select(self, *, group: str):
        return [ep for g, ep in self._eps if g == group]


def test_load_plugins_from_entry_points(monkeypatch):
    from tmcp.tools import registry as registry_module

    eps = FakeEntryPoints(
        [
            ("tmcp.tools", FakeEntryPoint("add", add_numbers)),
            ("tmcp.tools", FakeEntryPoint("factory", lambda: slow_echo)),
            ("tmcp.tools", FakeEntryPoint("junk", lambda: "not a tool")),
            ("other.group", FakeEntryPoint("ignored", add_numbers)),
        ]
    )
    monkeypatch.setattr(registry_module.importlib_metadata, "entry_points", lambda: eps)

    registry = ToolRegistry(enable_plugins=True)

    assert registry.names() == ["add_numbers", "slow_echo"]
