"""Lifespan management for MCP server startup and shutdown."""

import asyncio
import contextlib
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import yaml
from dotenv import load_dotenv

from ..config import load_config
from ..config_loader import discover_config_files, load_hierarchical_config
from ..config_schema import UnifiedConfig, build_config
from ..core.async_utils import init_semaphore
from ..sync.engine import build_orchestrator, run_auto_sync

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


def load_unified_config() -> UnifiedConfig:
    """Load ``.env`` and the YAML config files into a ``UnifiedConfig``.

    ``.env`` is loaded first so ``${VAR}`` references in YAML can use it.

    Raises:
        RuntimeError: If a config file cannot be read or fails validation.
    """
    load_dotenv()
    try:
        return build_config(load_hierarchical_config())
    except (OSError, ValueError, yaml.YAMLError) as e:
        _stderr_print(f"ERROR: Invalid config file: {e}")
        raise RuntimeError(f"Invalid config file: {e}") from e


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
    unified: UnifiedConfig | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env and YAML config files (unless *unified* is given)
    - Merge connection settings via load_config(): CLI > env vars > .env > YAML > defaults
    - Build the SyncOrchestrator and load the saved snapshot
    - Test the remote once; an offline remote is reported, not fatal
    - Start the auto-sync loop when enabled

    On shutdown:
    - Cancel the auto-sync loop
    - Close the HTTP session

    Args:
        config_overrides: Optional dict with config values from CLI (url, port, token, insecure, debug)
        unified: Already loaded configuration, if the caller has one.

    Yields:
        Dict with 'orchestrator' key containing the started SyncOrchestrator

    Raises:
        RuntimeError: If configuration is invalid.
    """
    logger.info("MCP server starting...")
    _stderr_print("SmartSync MCP Server starting...")

    if unified is None:
        unified = load_unified_config()

    try:
        sources = []
        config_files = discover_config_files()
        if config_files:
            sources.append(f"config file: {config_files[0]}")

        yaml_fallbacks = {
            k: v
            for k, v in unified.server.model_dump().items()
            if v is not None
        }

        overrides = config_overrides or {}
        config = load_config(
            url=overrides.get("url"),
            port=overrides.get("port"),
            token=overrides.get("token"),
            insecure=overrides.get("insecure", False),
            debug=overrides.get("debug", False),
            yaml_fallbacks=yaml_fallbacks,
        )

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        logger.info("SmartSync server: %s", config.base_url)
        _stderr_print(f"  SmartSync server: {config.base_url}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        _stderr_print("  Ensure SMARTSYNC_URL and SMARTSYNC_TOKEN are set.")
        raise RuntimeError(
            f"Configuration error: {e}. Ensure SMARTSYNC_URL and SMARTSYNC_TOKEN are set."
        ) from e

    init_semaphore(config.max_parallel_requests)
    _stderr_print(f"  Parallel requests: {config.max_parallel_requests}")

    orchestrator = build_orchestrator(unified.sync, config)
    notice = orchestrator.start()
    if notice:
        logger.warning(notice)
        _stderr_print(f"  WARNING: {notice}")
    _stderr_print(f"  Vault: {orchestrator.local.root}")

    tested = await orchestrator.test()
    _stderr_print(f"  {tested.message}")

    auto_task: asyncio.Task | None = None
    if unified.sync.auto_sync:
        auto_task = asyncio.create_task(
            run_auto_sync(orchestrator, unified.sync.auto_sync_interval)
        )
        _stderr_print(
            f"  Auto sync every {unified.sync.auto_sync_interval} seconds"
        )

    _stderr_print("Server ready. Waiting for MCP client connection...")

    try:
        yield {"orchestrator": orchestrator}
    finally:
        if auto_task is not None:
            auto_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await auto_task
        orchestrator.close()
        logger.info("MCP server shutting down")
        _stderr_print("SmartSync MCP Server shutting down.")
