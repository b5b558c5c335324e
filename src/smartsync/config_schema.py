"""Unified configuration schema for smartsync.

Pydantic models for the YAML config structure, with one section per
concern: the remote ``server``, the ``sync`` behaviour of the vault, and
``logging``. The ``server`` section only supplies fallbacks for
``config.load_config()``; CLI args and env vars win over it.

Usage:
    from smartsync.config_schema import build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    fallbacks = unified.server.model_dump()
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class ServerConfig(BaseModel):
    """SmartSync server connection settings.

    All fields are optional so env vars and CLI args can supply them at
    runtime instead.
    """

    url: str | None = Field(default=None, description="SmartSync server URL")
    port: int = Field(
        default=443,
        ge=0,
        le=65535,
        description="Server port, 0 to use the URL unchanged",
    )
    token: str | None = Field(default=None, description="Bearer token")
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    max_parallel_requests: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Maximum concurrent requests to the server (1-100)",
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """How the local vault is scanned and reconciled.

    Attributes:
        vault_root: Directory holding the local replica.
        state_path: Snapshot file, relative to ``vault_root`` unless absolute.
        remote_base_path: Prefix prepended to every remote path.
        trash_dir: Vault directory receiving locally deleted files, or
            None to delete outright.
        ignore_patterns: Ordered gitignore-style exclusion patterns.
        exclusions_override: Disable all filtering when True.
        skip_hidden: Exclude the hidden configuration directory.
        config_dir: Name of the hidden configuration directory.
        protected_prefix: Prefix counted by the danger guard.
        danger_threshold: Pending local deletions under ``protected_prefix``
            above which a check is rejected.
        hash_concurrency: Parallel hashing fan-out for the local walk.
        auto_sync: Run a periodic check + full sync in the server.
        auto_sync_interval: Seconds between auto-sync ticks.
    """

    vault_root: str = Field(default=".", description="Local vault directory")
    state_path: str = Field(
        default=".smartsync/prevdata.json",
        description="Snapshot file path",
    )
    remote_base_path: str = Field(
        default="", description="Prefix for remote paths"
    )
    trash_dir: str | None = Field(
        default=".trash",
        description="Vault directory receiving locally deleted files",
    )
    ignore_patterns: list[str] = Field(
        default_factory=lambda: ["*.exe", ".smartsync/", ".trash/"],
        description="Gitignore-style exclusion patterns",
    )
    exclusions_override: bool = Field(
        default=False, description="Disable all exclusion filtering"
    )
    skip_hidden: bool = Field(
        default=False, description="Exclude the hidden config directory"
    )
    config_dir: str = Field(
        default=".obsidian", description="Hidden config directory name"
    )
    protected_prefix: str = Field(
        default=".obsidian", description="Prefix watched by the danger guard"
    )
    danger_threshold: int = Field(
        default=15, ge=0, description="Danger guard deletion threshold"
    )
    hash_concurrency: int = Field(
        default=16, ge=1, le=256, description="Local hashing fan-out"
    )
    auto_sync: bool = Field(default=False, description="Enable auto sync")
    auto_sync_interval: int = Field(
        default=30, ge=5, description="Seconds between auto-sync runs"
    )

    model_config = {"frozen": True}

    @field_validator("config_dir", "protected_prefix")
    @classmethod
    def _strip_slashes(cls, value: str) -> str:
        return value.strip("/")


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level configuration. ``UnifiedConfig()`` is always valid."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from ``load_hierarchical_config()`` output.

    Missing sections get defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)
