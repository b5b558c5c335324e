"""Tests for the MCP server module: CLI parsing, globals and dispatch."""

import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from smartsync import __version__
from smartsync.mcp import server
from smartsync.mcp.tools import ALL_SPECS, ToolRegistry


@pytest.fixture(autouse=True)
def _clear_globals():
    yield
    server.set_orchestrator(None)
    server.set_registry(None)


class TestParser:
    def test_defaults(self):
        args = server._build_parser().parse_args([])

        assert args.url is None
        assert args.port is None
        assert args.read_only is False
        assert args.init_config is False

    def test_all_flags(self):
        args = server._build_parser().parse_args(
            [
                "--url", "https://sync.example.com",
                "--port", "0",
                "--token", "tok",
                "--vault", "/notes",
                "--insecure",
                "--debug",
                "--log-file", "/tmp/x.log",
                "--read-only",
            ]
        )

        assert args.port == 0
        assert args.vault == "/notes"
        assert args.log_file == "/tmp/x.log"
        assert args.read_only is True

    def test_version(self, capsys):
        with pytest.raises(SystemExit):
            server._build_parser().parse_args(["--version"])

        assert __version__ in capsys.readouterr().out


class TestGlobals:
    def test_orchestrator_not_initialized(self):
        with pytest.raises(RuntimeError, match="not initialized"):
            server.get_orchestrator()

    def test_registry_not_initialized(self):
        with pytest.raises(RuntimeError, match="not initialized"):
            server.get_registry()


class TestHandlers:
    async def test_list_tools(self):
        server.set_registry(ToolRegistry(ALL_SPECS, read_only=True))

        tools = await server.handle_list_tools()

        assert "sync_run" not in {t.name for t in tools}

    async def test_unknown_tool(self):
        server.set_registry(ToolRegistry(ALL_SPECS))
        server.set_orchestrator(MagicMock())

        result = await server.handle_call_tool("wiki_get", {})

        assert result.isError is True
        assert result.content[0].text.startswith("Error (unknown_tool)")


class TestRun:
    def test_init_config(self, monkeypatch, tmp_path):
        monkeypatch.setattr(sys, "argv", ["smartsync-mcp", "--init-config"])
        with patch.object(
            server, "ensure_config", return_value=tmp_path / "config.yml"
        ) as mock_ensure, patch.object(server.asyncio, "run") as mock_run:
            server.run()

        mock_ensure.assert_called_once()
        mock_run.assert_not_called()

    def test_overrides_are_passed_to_main(self, monkeypatch):
        monkeypatch.setattr(
            sys, "argv", ["smartsync-mcp", "--port", "0", "--read-only"]
        )
        with patch.object(server, "main", new=MagicMock()) as mock_main, patch.object(
            server.asyncio, "run"
        ):
            server.run()

        mock_main.assert_called_once_with(
            config_overrides={"port": 0, "read_only": True}
        )

    def test_runtime_error_exits_1(self, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["smartsync-mcp"])

        def _fail(coro):
            coro.close()
            raise RuntimeError("Configuration error")

        with patch.object(server, "main", new=AsyncMock()), patch.object(
            server.asyncio, "run", side_effect=_fail
        ):
            with pytest.raises(SystemExit) as exc_info:
                server.run()

        assert exc_info.value.code == 1
