"""MCP tool handlers for the sync orchestrator.

Defines the tools an agent uses to drive a SmartSync session:

- ``sync_test`` -- check that the remote is reachable.
- ``sync_check`` -- reconcile both replicas and list pending changes.
- ``sync_run`` -- execute the pending changes with a preset or a custom
  directive matrix.
- ``sync_save_state`` -- commit the local replica as the new baseline.
- ``sync_select`` / ``sync_deselect`` -- include or exclude one path
  from the next sync.
- ``sync_diff`` -- unified diff between the two copies of a file.
- ``sync_clear_error`` -- reset the persisted error flag.
- ``sync_pause`` -- toggle the paused state.
- ``sync_status`` -- status, flags and pending counts.
- ``sync_rescan`` -- ask the server to rebuild its checksum cache.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ...core.async_utils import run_sync_limited
from ...sync.engine import SyncOrchestrator
from ...sync.models import CATEGORIES, Controller, OperationResult
from ...sync.reporter import (
    format_check_summary,
    format_sync_report,
    result_to_json,
    transfers_to_json,
)
from ...validators import require_relative_path
from .registry import ToolSpec

logger = logging.getLogger(__name__)

SYNC_MODES = ["push", "pull", "full_sync", "duplicate_local", "duplicate_remote"]


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------

_PATH_SCHEMA = {
    "type": "object",
    "properties": {
        "path": {
            "type": "string",
            "description": "Vault-relative path with '/' separators",
        },
    },
    "required": ["path"],
}

_DIRECTIVE_SIDE_SCHEMA = {
    "type": "object",
    "properties": {
        name: {"enum": [1, -1, None]} for name in CATEGORIES
    },
    "additionalProperties": False,
}

SYNC_TOOLS: list[types.Tool] = [
    types.Tool(
        name="sync_test",
        description="Test the connection to the SmartSync server.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    types.Tool(
        name="sync_check",
        description=(
            "Compare the local vault and the remote server against the last "
            "saved state and list added, deleted, modified and conflicted "
            "files on each side. Nothing is transferred."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    types.Tool(
        name="sync_run",
        description=(
            "Execute the pending changes of the last check. Modes: push "
            "(local changes to remote), pull (remote changes to local), "
            "full_sync (both ways, conflicts untouched), duplicate_local "
            "(remote becomes a copy of local), duplicate_remote (local "
            "becomes a copy of remote), custom (directive matrix: for each "
            "side and category, 1 applies the change to the other side, -1 "
            "reverts it from the other side)."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=False,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "mode": {
                    "type": "string",
                    "enum": SYNC_MODES + ["custom"],
                    "default": "full_sync",
                    "description": "Sync preset, or 'custom' to pass a controller",
                },
                "controller": {
                    "type": "object",
                    "properties": {
                        "remote": _DIRECTIVE_SIDE_SCHEMA,
                        "local": _DIRECTIVE_SIDE_SCHEMA,
                    },
                    "description": "Directive matrix, required when mode is 'custom'",
                },
            },
            "required": [],
        },
    ),
    types.Tool(
        name="sync_save_state",
        description=(
            "Save the current local vault as the baseline for the next "
            "check. Deselected files keep their previous baseline."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    types.Tool(
        name="sync_deselect",
        description="Leave one pending file out of the next sync.",
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema=_PATH_SCHEMA,
    ),
    types.Tool(
        name="sync_select",
        description="Include a previously deselected file in the next sync again.",
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema=_PATH_SCHEMA,
    ),
    types.Tool(
        name="sync_diff",
        description=(
            "Show a unified diff from the local to the remote copy of a "
            "file, typically a conflicted one."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema=_PATH_SCHEMA,
    ),
    types.Tool(
        name="sync_clear_error",
        description=(
            "Clear the persisted error flag after inspecting both replicas. "
            "Check, sync and save are blocked while it is set."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    types.Tool(
        name="sync_pause",
        description="Pause or resume syncing.",
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=False,
        ),
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    types.Tool(
        name="sync_status",
        description=(
            "Show the sync status, the error flag, the saved baseline and "
            "the changes pending from the last check."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    types.Tool(
        name="sync_rescan",
        description=(
            "Ask the SmartSync server to rebuild its checksum cache, for "
            "example after files were changed on the server directly."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
]


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def _operation_response(
    outcome: OperationResult, unselected: set[str] | None = None
) -> types.CallToolResult:
    """Render an OperationResult as text plus structured JSON."""
    parts: list[str] = []
    if outcome.message:
        parts.append(outcome.message)
    if outcome.transfers is not None and outcome.transfers.total:
        parts.append(format_sync_report(outcome.transfers))
    if outcome.result is not None:
        parts.append(format_check_summary(outcome.result, unselected))
    if not parts:
        parts.append(f"{outcome.operation}: {outcome.status.value}")

    structured: dict[str, Any] = {
        "operation": outcome.operation,
        "ok": outcome.ok,
        "status": outcome.status.value,
        "message": outcome.message,
    }
    if outcome.result is not None:
        structured["result"] = result_to_json(outcome.result)
    if outcome.transfers is not None:
        structured["transfers"] = transfers_to_json(outcome.transfers)

    return types.CallToolResult(
        content=[types.TextContent(type="text", text="\n\n".join(parts))],
        structuredContent=structured,
        isError=not outcome.ok,
    )


def _controller_from_args(args: dict[str, Any]) -> Controller:
    mode = args.get("mode") or "full_sync"
    if mode != "custom":
        return Controller.preset(mode)
    matrix = args.get("controller")
    if not isinstance(matrix, dict):
        raise ValueError("controller is required when mode is 'custom'")
    return Controller(
        remote=matrix.get("remote") or {}, local=matrix.get("local") or {}
    )


def _path_arg(args: dict[str, Any]) -> str:
    path = args.get("path")
    if not path:
        raise ValueError("path is required")
    return require_relative_path(path)


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


async def _handle_test(
    orchestrator: SyncOrchestrator, args: dict
) -> types.CallToolResult:
    return _operation_response(await orchestrator.test())


async def _handle_check(
    orchestrator: SyncOrchestrator, args: dict
) -> types.CallToolResult:
    outcome = await orchestrator.check()
    return _operation_response(outcome, orchestrator.session.unselected)


async def _handle_run(
    orchestrator: SyncOrchestrator, args: dict
) -> types.CallToolResult:
    """Handle the ``sync_run`` tool."""
    controller = _controller_from_args(args)
    logger.info("sync_run mode=%s", args.get("mode") or "full_sync")
    outcome = await orchestrator.sync(controller)
    return _operation_response(outcome, orchestrator.session.unselected)


async def _handle_save_state(
    orchestrator: SyncOrchestrator, args: dict
) -> types.CallToolResult:
    return _operation_response(await orchestrator.save_state())


async def _handle_deselect(
    orchestrator: SyncOrchestrator, args: dict
) -> types.CallToolResult:
    outcome = orchestrator.deselect(_path_arg(args))
    return _operation_response(outcome, orchestrator.session.unselected)


async def _handle_select(
    orchestrator: SyncOrchestrator, args: dict
) -> types.CallToolResult:
    outcome = orchestrator.select(_path_arg(args))
    return _operation_response(outcome, orchestrator.session.unselected)


async def _handle_diff(
    orchestrator: SyncOrchestrator, args: dict
) -> types.CallToolResult:
    path = _path_arg(args)
    text = await orchestrator.diff(path)
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent={"path": path, "diff": text},
    )


async def _handle_clear_error(
    orchestrator: SyncOrchestrator, args: dict
) -> types.CallToolResult:
    return _operation_response(orchestrator.clear_error())


async def _handle_pause(
    orchestrator: SyncOrchestrator, args: dict
) -> types.CallToolResult:
    return _operation_response(orchestrator.toggle_pause())


async def _handle_status(
    orchestrator: SyncOrchestrator, args: dict
) -> types.CallToolResult:
    """Handle the ``sync_status`` tool."""
    report = orchestrator.status_report()

    pending = report["pending"]
    lines = [
        f"Status: {report['emoji']} {report['label']} ({report['status']})",
        f"  Error flag:        {'set' if report['error_flag'] else 'clear'}",
        f"  Last saved:        {report['snapshot_time'] or 'never'}",
        f"  Baseline files:    {report['baseline_files']}",
        f"  Carried conflicts: {report['carried_conflicts']}",
        f"  Last check:        {report['last_check'] or 'never'}",
        f"  Pending changes:   {'unknown' if pending is None else pending}",
    ]
    if report["conflicts"]:
        lines.append(f"  Conflicts:         {', '.join(report['conflicts'])}")
    if report["unselected"]:
        lines.append(f"  Deselected:        {', '.join(report['unselected'])}")

    return types.CallToolResult(
        content=[types.TextContent(type="text", text="\n".join(lines))],
        structuredContent=report,
    )


async def _handle_rescan(
    orchestrator: SyncOrchestrator, args: dict
) -> types.CallToolResult:
    count = await run_sync_limited(orchestrator.remote.trigger_rescan)
    logger.info("Server rescan: %d files", count)
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text",
                text=f"Server rescanned {count} files. Run sync_check to see changes.",
            )
        ],
        structuredContent={"file_count": count},
    )


# ToolSpec list for registry-based dispatch
SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(tool=SYNC_TOOLS[0], mutating=False, handler=_handle_test),
    ToolSpec(tool=SYNC_TOOLS[1], mutating=False, handler=_handle_check),
    ToolSpec(tool=SYNC_TOOLS[2], mutating=True, handler=_handle_run),
    ToolSpec(tool=SYNC_TOOLS[3], mutating=True, handler=_handle_save_state),
    ToolSpec(tool=SYNC_TOOLS[4], mutating=True, handler=_handle_deselect),
    ToolSpec(tool=SYNC_TOOLS[5], mutating=True, handler=_handle_select),
    ToolSpec(tool=SYNC_TOOLS[6], mutating=False, handler=_handle_diff),
    ToolSpec(tool=SYNC_TOOLS[7], mutating=True, handler=_handle_clear_error),
    ToolSpec(tool=SYNC_TOOLS[8], mutating=True, handler=_handle_pause),
    ToolSpec(tool=SYNC_TOOLS[9], mutating=False, handler=_handle_status),
    ToolSpec(tool=SYNC_TOOLS[10], mutating=False, handler=_handle_rescan),
]
