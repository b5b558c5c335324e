"""Tests for smartsync.mcp.lifespan -- server startup/shutdown lifecycle.

Tests the server_lifespan() async context manager which:
- Resolves the connection config (CLI > env > YAML)
- Initializes the request semaphore
- Builds and starts the orchestrator, then tests the remote once
- Starts and cancels the auto-sync loop
- Closes the orchestrator on shutdown
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from smartsync.config import Config
from smartsync.config_schema import UnifiedConfig
from smartsync.mcp.lifespan import load_unified_config, server_lifespan
from smartsync.sync.models import OperationResult
from smartsync.sync.status import Status

_MODULE = "smartsync.mcp.lifespan"


def _make_config(**overrides):
    defaults = {
        "server_url": "https://sync.example.com",
        "port": 443,
        "auth_token": "tok",
        "max_parallel_requests": 5,
    }
    defaults.update(overrides)
    return Config(**defaults)


def _make_orchestrator(notice=None, online=True):
    orchestrator = MagicMock()
    orchestrator.start.return_value = notice
    orchestrator.test = AsyncMock(
        return_value=OperationResult(
            operation="test",
            ok=online,
            status=Status.IDLE if online else Status.OFFLINE,
            message="Connection successful" if online else "Offline",
        )
    )
    return orchestrator


def _unified(**sync):
    return UnifiedConfig.model_validate(
        {"server": {"url": "https://yaml.example.com"}, "sync": sync}
    )


class TestServerLifespanSuccess:
    async def test_successful_startup(self):
        orchestrator = _make_orchestrator()
        config = _make_config()

        with (
            patch(f"{_MODULE}.load_config", return_value=config),
            patch(
                f"{_MODULE}.build_orchestrator", return_value=orchestrator
            ) as mock_build,
            patch(f"{_MODULE}.init_semaphore") as mock_init_sem,
            patch(f"{_MODULE}._stderr_print"),
        ):
            unified = _unified()
            async with server_lifespan(unified=unified) as ctx:
                assert ctx["orchestrator"] is orchestrator
                mock_build.assert_called_once_with(unified.sync, config)
                mock_init_sem.assert_called_once_with(5)
                orchestrator.start.assert_called_once()
                orchestrator.test.assert_awaited_once()
                orchestrator.close.assert_not_called()

        orchestrator.close.assert_called_once()

    async def test_yaml_server_section_is_the_fallback(self):
        with (
            patch(f"{_MODULE}.load_config", return_value=_make_config()) as mock_load,
            patch(
                f"{_MODULE}.build_orchestrator",
                return_value=_make_orchestrator(),
            ),
            patch(f"{_MODULE}.init_semaphore"),
            patch(f"{_MODULE}._stderr_print"),
        ):
            async with server_lifespan(
                config_overrides={"url": "https://cli.example.com", "port": 0},
                unified=_unified(),
            ):
                pass

        kwargs = mock_load.call_args.kwargs
        assert kwargs["url"] == "https://cli.example.com"
        assert kwargs["port"] == 0
        assert kwargs["yaml_fallbacks"]["url"] == "https://yaml.example.com"
        # Unset YAML values never shadow env vars
        assert "token" not in kwargs["yaml_fallbacks"]

    async def test_offline_remote_is_not_fatal(self):
        orchestrator = _make_orchestrator(online=False)

        with (
            patch(f"{_MODULE}.load_config", return_value=_make_config()),
            patch(f"{_MODULE}.build_orchestrator", return_value=orchestrator),
            patch(f"{_MODULE}.init_semaphore"),
            patch(f"{_MODULE}._stderr_print") as mock_print,
        ):
            async with server_lifespan(unified=_unified()) as ctx:
                assert ctx["orchestrator"] is orchestrator

        printed = [c.args[0] for c in mock_print.call_args_list]
        assert "  Offline" in printed

    async def test_start_notice_is_printed(self):
        orchestrator = _make_orchestrator(notice="Error loading previous sync state")

        with (
            patch(f"{_MODULE}.load_config", return_value=_make_config()),
            patch(f"{_MODULE}.build_orchestrator", return_value=orchestrator),
            patch(f"{_MODULE}.init_semaphore"),
            patch(f"{_MODULE}._stderr_print") as mock_print,
        ):
            async with server_lifespan(unified=_unified()):
                pass

        printed = [c.args[0] for c in mock_print.call_args_list]
        assert "  WARNING: Error loading previous sync state" in printed


class TestAutoSync:
    async def test_auto_sync_task_is_cancelled_on_shutdown(self):
        started = asyncio.Event()
        cancelled = asyncio.Event()

        async def _fake_loop(orchestrator, interval):
            assert interval == 60
            started.set()
            try:
                await asyncio.sleep(3600)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        with (
            patch(f"{_MODULE}.load_config", return_value=_make_config()),
            patch(
                f"{_MODULE}.build_orchestrator",
                return_value=_make_orchestrator(),
            ),
            patch(f"{_MODULE}.init_semaphore"),
            patch(f"{_MODULE}.run_auto_sync", side_effect=_fake_loop),
            patch(f"{_MODULE}._stderr_print"),
        ):
            async with server_lifespan(
                unified=_unified(auto_sync=True, auto_sync_interval=60)
            ):
                await started.wait()

        assert cancelled.is_set()

    async def test_no_task_when_disabled(self):
        with (
            patch(f"{_MODULE}.load_config", return_value=_make_config()),
            patch(
                f"{_MODULE}.build_orchestrator",
                return_value=_make_orchestrator(),
            ),
            patch(f"{_MODULE}.init_semaphore"),
            patch(f"{_MODULE}.run_auto_sync") as mock_loop,
            patch(f"{_MODULE}._stderr_print"),
        ):
            async with server_lifespan(unified=_unified()):
                pass

        mock_loop.assert_not_called()


class TestServerLifespanErrors:
    async def test_config_error_raises_runtime_error(self):
        with (
            patch(
                f"{_MODULE}.load_config",
                side_effect=ValueError("SmartSync URL not found"),
            ),
            patch(f"{_MODULE}.build_orchestrator") as mock_build,
            patch(f"{_MODULE}._stderr_print"),
        ):
            with pytest.raises(RuntimeError, match="Configuration error"):
                async with server_lifespan(unified=_unified()):
                    pass

        mock_build.assert_not_called()


class TestLoadUnifiedConfig:
    def test_invalid_yaml_becomes_runtime_error(self):
        with (
            patch(f"{_MODULE}.load_dotenv"),
            patch(
                f"{_MODULE}.load_hierarchical_config",
                return_value={"sync": {"auto_sync_interval": 1}},
            ),
            patch(f"{_MODULE}._stderr_print"),
        ):
            with pytest.raises(RuntimeError, match="Invalid config file"):
                load_unified_config()

    def test_loads_sections(self):
        with (
            patch(f"{_MODULE}.load_dotenv") as mock_dotenv,
            patch(
                f"{_MODULE}.load_hierarchical_config",
                return_value={"logging": {"level": "DEBUG"}},
            ),
        ):
            unified = load_unified_config()

        mock_dotenv.assert_called_once()
        assert unified.logging.level == "DEBUG"
