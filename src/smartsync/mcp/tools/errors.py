"""Error response builders for MCP tool handlers.

Structured error responses carry a corrective action so an agent can
recover without human intervention.
"""

import mcp.types as types


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (validation_error, offline, sync_error,
            server_error, unknown_tool)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("offline", "Remote server is offline", "Run sync_test once the server is back.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


# ---------------------------------------------------------------------------
# Corrective action messages
# ---------------------------------------------------------------------------

CORRECTIVE_ACTIONS: dict[str, str] = {
    "validation_error": "Check parameter values and retry.",
    "offline": (
        "The SmartSync server is unreachable. Run sync_test once it is "
        "back online, then sync_check."
    ),
    "sync_error": (
        "Inspect both replicas, then call sync_clear_error and run "
        "sync_check again."
    ),
    "server_error": (
        "Check the SmartSync server log and the local vault, then retry. "
        "The error flag may have been set; see sync_status."
    ),
    "unknown_tool": "Use list_tools to see available tools.",
}


def error_for(error_type: str, message: str) -> types.CallToolResult:
    """``build_error_response`` with the standard action for *error_type*."""
    return build_error_response(
        error_type,
        message,
        CORRECTIVE_ACTIONS.get(error_type, CORRECTIVE_ACTIONS["server_error"]),
    )
