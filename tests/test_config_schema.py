"""Tests for the unified config schema and build_config()."""

import pytest
from pydantic import ValidationError

from smartsync.config_schema import (
    LoggingConfig,
    ServerConfig,
    SyncConfig,
    UnifiedConfig,
    build_config,
)

# ---------------------------------------------------------------------------
# UnifiedConfig
# ---------------------------------------------------------------------------


class TestUnifiedConfig:
    def test_defaults(self):
        config = UnifiedConfig()

        assert config.server.url is None
        assert config.server.port == 443
        assert config.sync.vault_root == "."
        assert config.sync.trash_dir == ".trash"
        assert config.logging.level == "INFO"

    def test_full_config(self):
        config = build_config(
            {
                "server": {"url": "https://sync.example.com", "port": 0},
                "sync": {
                    "vault_root": "/vault",
                    "ignore_patterns": ["*.tmp"],
                    "auto_sync": True,
                },
                "logging": {"level": "DEBUG", "file": "/tmp/smartsync.log"},
            }
        )

        assert config.server.port == 0
        assert config.sync.ignore_patterns == ["*.tmp"]
        assert config.sync.auto_sync is True
        assert config.logging.file == "/tmp/smartsync.log"

    def test_empty_input(self):
        assert build_config({}) == UnifiedConfig()

    def test_frozen(self):
        with pytest.raises(ValidationError):
            UnifiedConfig().server = ServerConfig()


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


class TestServerConfig:
    @pytest.mark.parametrize("port", [-1, 65536])
    def test_port_range(self, port):
        with pytest.raises(ValidationError):
            ServerConfig(port=port)

    def test_max_parallel_range(self):
        with pytest.raises(ValidationError):
            ServerConfig(max_parallel_requests=0)


class TestSyncConfig:
    def test_default_ignore_patterns(self):
        assert SyncConfig().ignore_patterns == ["*.exe", ".smartsync/", ".trash/"]

    def test_slashes_stripped_from_dir_names(self):
        config = SyncConfig(config_dir="/.obsidian/", protected_prefix=".obsidian/")

        assert config.config_dir == ".obsidian"
        assert config.protected_prefix == ".obsidian"

    def test_auto_sync_interval_minimum(self):
        with pytest.raises(ValidationError):
            SyncConfig(auto_sync_interval=1)

    def test_negative_danger_threshold(self):
        with pytest.raises(ValidationError):
            SyncConfig(danger_threshold=-1)

    def test_trash_can_be_disabled(self):
        assert SyncConfig(trash_dir=None).trash_dir is None


def test_logging_defaults():
    assert LoggingConfig() == LoggingConfig(level="INFO", file=None)
