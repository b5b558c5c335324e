"""MCP Server for SmartSync using stdio transport.

This module implements the Model Context Protocol server that lets AI
agents check, sync and inspect a vault replicated to a SmartSync server.

Transport: stdio (for Claude Desktop/Code integration)
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..config_loader import ensure_config
from ..logger import setup_logging
from ..sync.engine import SyncOrchestrator
from .lifespan import load_unified_config, server_lifespan
from .tools import ALL_SPECS, ToolRegistry
from .tools.errors import error_for

logger = logging.getLogger(__name__)

# Initialize server instance
server = Server("smartsync")

# Global orchestrator instance (initialized in lifespan)
_orchestrator: SyncOrchestrator | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_orchestrator() -> SyncOrchestrator:
    """Get the global SyncOrchestrator instance.

    Raises:
        RuntimeError: If the orchestrator is not initialized
    """
    if _orchestrator is None:
        raise RuntimeError(
            "SyncOrchestrator not initialized. Server lifespan not started."
        )
    return _orchestrator


def set_orchestrator(orchestrator: SyncOrchestrator | None) -> None:
    """Set the global SyncOrchestrator instance, or None to clear."""
    global _orchestrator
    _orchestrator = orchestrator


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    """Set the global ToolRegistry instance, or None to clear."""
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List available sync tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    orchestrator = get_orchestrator()
    try:
        return await get_registry().call_tool(name, arguments, orchestrator)
    except ValueError as e:
        # Unknown or filtered-out tool name
        return error_for("unknown_tool", str(e))


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Sets up logging for MCP mode (file only, never stdout), starts the
    orchestrator via the lifespan manager, and serves JSON-RPC over stdio.

    Args:
        config_overrides: Optional dict with config values to override
            (url, port, token, insecure, debug, log_file, vault, read_only)
    """
    overrides = dict(config_overrides or {})
    log_file = overrides.pop("log_file", None)
    vault = overrides.pop("vault", None)
    read_only = overrides.pop("read_only", False)

    unified = load_unified_config()
    if vault:
        unified = unified.model_copy(
            update={"sync": unified.sync.model_copy(update={"vault_root": vault})}
        )

    # CRITICAL: logging must be configured BEFORE stdio_server context
    # to prevent any stdout contamination during protocol negotiation
    setup_logging(
        mode="mcp",
        debug=overrides.get("debug", False) or unified.server.debug,
        log_file=log_file or unified.logging.file,
        level=unified.logging.level,
    )

    registry = ToolRegistry(ALL_SPECS, read_only=read_only)
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(ALL_SPECS),
    )
    if read_only:
        print(
            f"Read-only mode ({registry.tool_count()} of {len(ALL_SPECS)} tools enabled)",
            file=sys.stderr,
        )
    set_registry(registry)

    # set_orchestrator() is called here rather than in the lifespan so that
    # running this file via `python -m smartsync.mcp.server` updates the
    # __main__ module's global, not a second imported copy.
    async with server_lifespan(
        config_overrides=overrides or None, unified=unified
    ) as ctx:
        set_orchestrator(ctx["orchestrator"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="smartsync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_orchestrator(None)
            set_registry(None)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="SmartSync MCP Server - sync a local vault with a SmartSync server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or .smartsync/config.yml)
  smartsync-mcp

  # Override the server and vault
  smartsync-mcp --url https://sync.example.com --vault ~/Notes

  # Plain HTTP on a custom port (development only)
  smartsync-mcp --url http://localhost --port 8080 --insecure

  # Only expose tools that do not change anything
  smartsync-mcp --read-only

  # Write a starter config file and exit
  smartsync-mcp --init-config

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr. Do not pipe stdin/stdout manually.
        """,
    )

    parser.add_argument(
        "--url",
        help="Override SmartSync server URL (takes precedence over SMARTSYNC_URL env var and config files)",
    )
    parser.add_argument(
        "--port",
        type=int,
        help="Override server port, 0 to use the URL as-is (takes precedence over SMARTSYNC_PORT)",
    )
    parser.add_argument(
        "--token",
        help="Override bearer token (takes precedence over SMARTSYNC_TOKEN env var and config files)"
        " (visible in process list -- prefer SMARTSYNC_TOKEN env var for security)",
    )
    parser.add_argument(
        "--vault",
        help="Override the local vault directory (sync.vault_root)",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--log-file",
        help="Log file path (default: /tmp/smartsync.log)",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Hide every tool that changes a replica, the snapshot or the session",
    )
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Write a starter .smartsync/config.yml if no config file exists, then exit",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"smartsync version {__version__}",
    )
    return parser


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    args = _build_parser().parse_args()

    if args.init_config:
        path = ensure_config()
        print(f"Config file: {path}", file=sys.stderr)
        return

    # Build config overrides dict from CLI args
    config_overrides: dict = {}
    if args.url:
        config_overrides["url"] = args.url
    if args.port is not None:
        config_overrides["port"] = args.port
    if args.token:
        config_overrides["token"] = args.token
    if args.vault:
        config_overrides["vault"] = args.vault
    if args.insecure:
        config_overrides["insecure"] = True
    if args.debug:
        config_overrides["debug"] = True
    if args.log_file:
        config_overrides["log_file"] = args.log_file
    if args.read_only:
        config_overrides["read_only"] = True

    # Log config overrides to stderr (before stdio transport starts)
    if config_overrides:
        override_keys = [k for k in config_overrides if k != "token"]
        print(
            f"Config overrides from CLI: {', '.join(override_keys)}",
            file=sys.stderr,
        )

    try:
        asyncio.run(main(config_overrides=config_overrides or None))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
