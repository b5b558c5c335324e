"""Report formatting for check and sync results.

Provides human-readable and machine-readable output:

- ``format_check_summary`` -- pending changes per replica and category.
- ``format_sync_report`` -- what a sync transferred and what failed.
- ``format_conflict_diff`` -- unified diff between the two copies of a file.
- ``result_to_json`` / ``transfers_to_json`` -- dicts for MCP output.
"""

from __future__ import annotations

import difflib

from ..file_handler import decode_bytes
from .models import (
    CATEGORIES,
    ReconciliationResult,
    TransferKind,
    TransferReport,
)

_SIDE_TITLES = {"remote": "Remote changes", "local": "Local changes"}

_KIND_TITLES = {
    TransferKind.DOWNLOAD: "Downloaded",
    TransferKind.UPLOAD: "Uploaded",
    TransferKind.DELETE_LOCAL: "Deleted locally",
    TransferKind.DELETE_REMOTE: "Deleted on remote",
}

# Longest path list printed per section
_MAX_LISTED = 50


def _listing(paths: list[str]) -> list[str]:
    lines = [f"    {p}" for p in paths[:_MAX_LISTED]]
    if len(paths) > _MAX_LISTED:
        lines.append(f"    ... ({len(paths) - _MAX_LISTED} more)")
    return lines


# ------------------------------------------------------------------
# Check summary
# ------------------------------------------------------------------


def format_check_summary(
    result: ReconciliationResult, unselected: set[str] | None = None
) -> str:
    """Format the pending changes of a check.

    Empty categories are left out.

    Args:
        result: The executable reconciliation result.
        unselected: Paths the user excluded from the next sync.
    """
    if result.is_empty() and not unselected:
        return "Everything is in sync."

    lines: list[str] = [f"{result.total()} pending changes"]
    for side in ("remote", "local"):
        changes = result.side(side)
        if changes.is_empty():
            continue
        lines.append("")
        lines.append(f"{_SIDE_TITLES[side]}:")
        for name in CATEGORIES:
            paths = sorted(changes.category(name))
            if not paths:
                continue
            lines.append(f"  {name} ({len(paths)}):")
            lines.extend(_listing(paths))

    if unselected:
        lines.append("")
        lines.append(f"Deselected ({len(unselected)}):")
        lines.extend(_listing(sorted(unselected)))

    return "\n".join(lines)


# ------------------------------------------------------------------
# Sync report
# ------------------------------------------------------------------


def format_sync_report(report: TransferReport) -> str:
    """Format the transfers of one sync, failures last."""
    lines: list[str] = [
        f"Synced {report.total - report.failures} files, "
        f"{report.failures} failed"
    ]
    for kind in TransferKind:
        done = report.succeeded.get(kind, [])
        if done:
            lines.append("")
            lines.append(f"{_KIND_TITLES[kind]} ({len(done)}):")
            lines.extend(_listing(sorted(done)))

    failed = [
        f"{kind.value}: {path}"
        for kind in TransferKind
        for path in report.failed.get(kind, [])
    ]
    if failed:
        lines.append("")
        lines.append("Failed (will be retried after the next check):")
        lines.extend(_listing(failed))

    return "\n".join(lines)


# ------------------------------------------------------------------
# Conflict diff
# ------------------------------------------------------------------


def format_conflict_diff(
    path: str, local: bytes | None, remote: bytes | None
) -> str:
    """Unified diff from the local to the remote copy of *path*.

    A missing copy diffs as an empty file. Binary content is reported
    instead of diffed.
    """
    local_text = decode_bytes(local or b"")
    remote_text = decode_bytes(remote or b"")
    if local_text is None or remote_text is None:
        return (
            f"{path}: binary content "
            f"(local {len(local or b'')} bytes, remote {len(remote or b'')} bytes)"
        )

    diff = "".join(
        difflib.unified_diff(
            local_text[0].splitlines(keepends=True),
            remote_text[0].splitlines(keepends=True),
            fromfile=f"local: {path}",
            tofile=f"remote: {path}",
        )
    )
    return diff.rstrip() if diff else f"{path}: no textual differences"


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def result_to_json(result: ReconciliationResult) -> dict:
    """Reconciliation result as a dict of side -> category -> sorted paths."""
    return {
        side: {
            name: sorted(result.side(side).category(name))
            for name in CATEGORIES
        }
        for side in ("remote", "local")
    } | {"total": result.total()}


def transfers_to_json(report: TransferReport) -> dict:
    return {
        "succeeded": {k.value: sorted(v) for k, v in report.succeeded.items()},
        "failed": {k.value: sorted(v) for k, v in report.failed.items()},
        "total": report.total,
        "failures": report.failures,
    }
