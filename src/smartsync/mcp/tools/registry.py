"""ToolSpec and ToolRegistry for read-only tool filtering.

This module provides a centralized registry for MCP tools. Operators can
start the server read-only, which hides every tool that changes a
replica, the snapshot or the session.

Key concepts:
- ToolSpec: Immutable dataclass linking a Tool definition, whether it
  mutates state, and an async handler with standardized signature
  (orchestrator, args) -> CallToolResult.
- ToolRegistry: Filters specs at construction time, then provides
  list_tools() and call_tool() dispatch with error translation.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import mcp.types as types

from ...exceptions import ConnectivityError, SmartSyncError
from ...sync.engine import SyncOrchestrator

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Immutable specification for a single MCP tool.

    Attributes:
        tool: The MCP Tool definition (name, description, inputSchema).
        mutating: Whether the tool changes a replica, the snapshot or the
            session. Mutating tools are hidden in read-only mode.
        handler: Async handler with signature (orchestrator, args) -> CallToolResult.
    """

    tool: types.Tool
    mutating: bool
    handler: Callable[
        [SyncOrchestrator, dict], Awaitable[types.CallToolResult]
    ]


class ToolRegistry:
    """Registry of ToolSpecs, optionally restricted to read-only tools."""

    def __init__(self, specs: list[ToolSpec], read_only: bool = False):
        self._specs: dict[str, ToolSpec] = {}
        for spec in specs:
            if read_only and spec.mutating:
                continue
            self._specs[spec.tool.name] = spec

    def list_tools(self) -> list[types.Tool]:
        """Return list of types.Tool for all registered specs."""
        return [spec.tool for spec in self._specs.values()]

    def tool_count(self) -> int:
        """Return number of registered tools."""
        return len(self._specs)

    async def call_tool(
        self,
        name: str,
        arguments: dict | None,
        orchestrator: SyncOrchestrator,
    ) -> types.CallToolResult:
        """Dispatch tool call to registered handler.

        Translates validation errors, connectivity failures, sync errors
        and unexpected exceptions into structured CallToolResult
        responses with corrective actions.

        Args:
            name: Tool name to invoke.
            arguments: Tool arguments (may be None).
            orchestrator: The running SyncOrchestrator.

        Returns:
            CallToolResult from the handler.

        Raises:
            ValueError: If tool name is not registered (unknown or filtered out).
        """
        from .errors import error_for

        spec = self._specs.get(name)
        if spec is None:
            raise ValueError(f"Unknown tool: {name}")
        args = arguments or {}
        try:
            return await spec.handler(orchestrator, args)
        except ValueError as e:
            return error_for("validation_error", str(e))
        except ConnectivityError as e:
            logger.warning("Remote unreachable in %s: %s", name, e)
            return error_for("offline", str(e))
        except SmartSyncError as e:
            logger.warning("Sync error in %s: %s", name, e)
            return error_for("sync_error", str(e))
        except Exception as e:
            logger.exception("Unexpected error in tool %s", name)
            return error_for("server_error", str(e))
