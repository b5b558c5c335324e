"""MCP tool handlers for SmartSync operations.

This package contains MCP tool implementations that wrap the
SyncOrchestrator with async handlers and structured error responses.
"""

from .errors import build_error_response
from .registry import ToolRegistry, ToolSpec
from .sync import SYNC_SPECS, SYNC_TOOLS

ALL_SPECS: list[ToolSpec] = list(SYNC_SPECS)

__all__ = [
    "build_error_response",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    # Spec lists
    "ALL_SPECS",
    "SYNC_SPECS",
    "SYNC_TOOLS",
]
