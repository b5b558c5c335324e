"""Tests for ToolSpec and ToolRegistry.

Covers:
- ToolSpec immutability
- Read-only filtering of mutating tools
- Dispatch and error translation in call_tool
"""

import dataclasses
from unittest.mock import MagicMock

import mcp.types as types
import pytest

from smartsync.exceptions import (
    ConnectivityError,
    DangerGuardTripped,
    SmartSyncError,
)
from smartsync.mcp.tools import ALL_SPECS
from smartsync.mcp.tools.registry import ToolRegistry, ToolSpec


def _make_spec(name: str, mutating: bool = False, handler=None) -> ToolSpec:
    if handler is None:

        async def handler(orchestrator, args):
            return types.CallToolResult(
                content=[types.TextContent(type="text", text=f"ok:{name}:{args}")]
            )

    return ToolSpec(
        tool=types.Tool(
            name=name,
            description=f"Test tool {name}",
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        mutating=mutating,
        handler=handler,
    )


def _raising(exc: Exception):
    async def handler(orchestrator, args):
        raise exc

    return handler


class TestToolSpec:
    def test_is_frozen(self):
        spec = _make_spec("a")

        with pytest.raises(dataclasses.FrozenInstanceError):
            spec.mutating = True


class TestFiltering:
    def test_all_tools_by_default(self):
        registry = ToolRegistry([_make_spec("a"), _make_spec("b", mutating=True)])

        assert registry.tool_count() == 2
        assert [t.name for t in registry.list_tools()] == ["a", "b"]

    def test_read_only_hides_mutating_tools(self):
        registry = ToolRegistry(
            [_make_spec("a"), _make_spec("b", mutating=True)], read_only=True
        )

        assert [t.name for t in registry.list_tools()] == ["a"]

    def test_read_only_sync_tools(self):
        registry = ToolRegistry(ALL_SPECS, read_only=True)

        assert sorted(t.name for t in registry.list_tools()) == [
            "sync_check",
            "sync_diff",
            "sync_rescan",
            "sync_status",
            "sync_test",
        ]

    def test_mutating_tools_are_not_hinted_read_only(self):
        for spec in ALL_SPECS:
            if spec.mutating:
                assert spec.tool.annotations.readOnlyHint is False


class TestCallTool:
    async def test_dispatches_with_empty_args(self):
        registry = ToolRegistry([_make_spec("a")])

        result = await registry.call_tool("a", None, MagicMock())

        assert result.content[0].text == "ok:a:{}"

    async def test_unknown_tool_raises(self):
        registry = ToolRegistry([_make_spec("a")])

        with pytest.raises(ValueError, match="Unknown tool: b"):
            await registry.call_tool("b", {}, MagicMock())

    async def test_filtered_tool_is_unknown(self):
        registry = ToolRegistry([_make_spec("w", mutating=True)], read_only=True)

        with pytest.raises(ValueError, match="Unknown tool"):
            await registry.call_tool("w", {}, MagicMock())

    @pytest.mark.parametrize(
        "exc,error_type",
        [
            (ValueError("path is required"), "validation_error"),
            (ConnectivityError("refused"), "offline"),
            (DangerGuardTripped(20, 15), "sync_error"),
            (SmartSyncError("bad listing"), "sync_error"),
            (RuntimeError("bug"), "server_error"),
        ],
    )
    async def test_errors_are_translated(self, exc, error_type):
        registry = ToolRegistry([_make_spec("a", handler=_raising(exc))])

        result = await registry.call_tool("a", {}, MagicMock())

        assert result.isError is True
        assert result.content[0].text.startswith(f"Error ({error_type}): {exc}")
