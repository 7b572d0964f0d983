"""
Tests for the webpilot.environment.registry and guard modules.

This module tests:
- Registering, replacing and removing tool handlers
- Calling handlers through the registry
- Exclusive access through ExclusiveGuard
"""

import asyncio

import pytest

from webpilot.agents.exceptions import BrowserBusyError, UnknownToolError
from webpilot.environment.guard import ExclusiveGuard
from webpilot.environment.registry import ToolRegistry
from webpilot.environment.tool_response import ToolResult


async def echo(args):
    return ToolResult(text=f"echo {args.get('value', '')}")


# =============================================================================
# ToolRegistry Tests
# =============================================================================

class TestToolRegistry:
    """Tests for ToolRegistry."""

    def test_register_and_lookup(self):
        registry = ToolRegistry()
        registry.register("echo", echo)

        assert registry.get("echo") is echo
        assert "echo" in registry
        assert registry.names() == ["echo"]

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            ToolRegistry().register("", echo)

    def test_reregister_replaces(self):
        registry = ToolRegistry()

        async def other(args):
            return ToolResult(text="other")

        registry.register("echo", echo)
        registry.register("echo", other)

        assert registry.get("echo") is other

    def test_unregister_and_clear(self):
        registry = ToolRegistry()
        registry.register("a", echo)
        registry.register("b", echo)

        registry.unregister("a")
        registry.unregister("missing")
        assert registry.names() == ["b"]

        registry.clear()
        assert registry.names() == []

    @pytest.mark.asyncio
    async def test_call(self):
        registry = ToolRegistry()
        registry.register("echo", echo)

        result = await registry.call("echo", {"value": "hi"})

        assert result.text == "echo hi"

    @pytest.mark.asyncio
    async def test_call_passes_a_copy(self):
        registry = ToolRegistry()
        seen = []

        async def mutate(args):
            args["added"] = True
            seen.append(args)
            return ToolResult()

        registry.register("mutate", mutate)
        original = {"x": 1}
        await registry.call("mutate", original)

        assert original == {"x": 1}
        assert seen[0] == {"x": 1, "added": True}

    @pytest.mark.asyncio
    async def test_call_unknown(self):
        with pytest.raises(UnknownToolError, match="unknown tool: nope"):
            await ToolRegistry().call("nope")


# =============================================================================
# ExclusiveGuard Tests
# =============================================================================

class TestExclusiveGuard:
    """Tests for ExclusiveGuard."""

    @pytest.mark.asyncio
    async def test_run_returns_value(self):
        guard = ExclusiveGuard(timeout=1)

        async def work():
            assert guard.locked()
            return 42

        assert await guard.run(work) == 42
        assert not guard.locked()

    @pytest.mark.asyncio
    async def test_released_after_exception(self):
        guard = ExclusiveGuard(timeout=1)

        async def fail():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await guard.run(fail)
        assert not guard.locked()

    @pytest.mark.asyncio
    async def test_operations_are_serialized(self):
        guard = ExclusiveGuard(timeout=1)
        events = []

        async def op(name):
            async def work():
                events.append(f"{name}-start")
                await asyncio.sleep(0.01)
                events.append(f"{name}-end")

            await guard.run(work)

        await asyncio.gather(op("a"), op("b"))

        assert events in (
            ["a-start", "a-end", "b-start", "b-end"],
            ["b-start", "b-end", "a-start", "a-end"],
        )

    @pytest.mark.asyncio
    async def test_busy_after_timeout(self):
        guard = ExclusiveGuard(timeout=0.01)
        release = asyncio.Event()
        called = []

        async def hold():
            await release.wait()

        async def never():
            called.append(True)

        holder = asyncio.create_task(guard.run(hold))
        await asyncio.sleep(0)

        with pytest.raises(BrowserBusyError):
            await guard.run(never)

        release.set()
        await holder
        assert called == []
        assert not guard.locked()
