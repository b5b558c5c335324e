"""
Hierarchical configuration loader for smartsync.

Discovers config files by convention, resolves YAML ``!include`` directives,
expands ``${VAR:-default}`` references and merges files so that the project
file wins over the global one.

Usage:
    from smartsync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "SMARTSYNC_CONFIG"
PROJECT_CONFIG_DIR = ".smartsync"

# ${VAR} or ${VAR:-default}
_ENV_REF = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}`` references in *value*.

    An unset or empty variable falls back to *default*, or to ``""`` when no
    default is given. A ``${`` without a closing brace is kept verbatim.
    """

    def _expand(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) if match.group(2) is not None else ""

    return _ENV_REF.sub(_expand, value)


def _interpolate_tree(node: Any) -> Any:
    if isinstance(node, str):
        return interpolate_env_vars(node)
    if isinstance(node, dict):
        return {key: _interpolate_tree(val) for key, val in node.items()}
    if isinstance(node, list):
        return [_interpolate_tree(item) for item in node]
    return node


# ---------------------------------------------------------------------------
# YAML !include
# ---------------------------------------------------------------------------


class IncludeLoader(yaml.SafeLoader):
    """SafeLoader with an ``!include`` tag.

    A subclass keeps the global ``yaml.SafeLoader`` untouched. Each loader
    carries the chain of files being loaded so include cycles are reported
    instead of recursing forever.
    """

    include_chain: list[Path]


def _construct_include(loader: IncludeLoader, node: yaml.ScalarNode) -> Any:
    """Load the file named by ``!include <path>``, relative to the includer."""
    requested = Path(loader.construct_scalar(node))
    including_file = Path(loader.name).resolve()
    if not requested.is_absolute():
        requested = including_file.parent / requested
    target = requested.resolve()

    chain = loader.include_chain
    if target in chain:
        cycle = " -> ".join(str(p) for p in [*chain, target])
        raise ValueError(f"Circular include detected: {cycle}")
    if not target.exists():
        raise FileNotFoundError(
            f"Include file not found: {target} (referenced from {including_file})"
        )

    return load_yaml_file(target, include_chain=[*chain, target])


IncludeLoader.add_constructor("!include", _construct_include)


def load_yaml_file(
    path: Path, *, include_chain: list[Path] | None = None
) -> Any:
    """Parse one YAML file, following ``!include`` directives."""
    path = path.resolve()
    with open(path, "r", encoding="utf-8") as fh:
        loader = IncludeLoader(fh)
        loader.include_chain = include_chain or [path]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Return existing config file paths, highest precedence first.

    Search order:
        1. ``SMARTSYNC_CONFIG`` env var (explicit single path)
        2. ``.smartsync/config.yml`` in CWD (project-level)
        3. ``.smartsync/config.yaml`` in CWD
        4. ``~/.config/smartsync/config.yml`` (XDG global)
    """
    candidates: list[Path] = []

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    project_dir = Path.cwd() / PROJECT_CONFIG_DIR
    candidates.append(project_dir / "config.yml")
    candidates.append(project_dir / "config.yaml")
    candidates.append(Path.home() / ".config" / "smartsync" / "config.yml")

    return [p for p in candidates if p.exists()]


_STARTER_CONFIG = """\
# smartsync configuration
#
# Server settings can also come from environment variables:
#   SMARTSYNC_URL, SMARTSYNC_PORT, SMARTSYNC_TOKEN, SMARTSYNC_INSECURE
#
# server:
#   url: https://sync.example.com
#   port: 443
#   token: ${SMARTSYNC_TOKEN}
#
# sync:
#   vault_root: .
#   state_path: .smartsync/prevdata.json
#   ignore_patterns:
#     - "*.exe"
#     - ".trash/"
#   skip_hidden: false
#   auto_sync: false
#   auto_sync_interval: 30
#
# logging:
#   level: INFO
#   file: null
"""


def resolve_config_path() -> Path:
    """Return the active config file, or the default project path if none exists.

    Does not create anything; see ``ensure_config()``.
    """
    existing = discover_config_files()
    if existing:
        return existing[0]
    return Path.cwd() / PROJECT_CONFIG_DIR / "config.yml"


def ensure_config(target: Path | None = None) -> Path:
    """Return the active config file, writing a commented starter file if none exists.

    Args:
        target: Where to create the starter file. Defaults to
            ``resolve_config_path()``.
    """
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = target or resolve_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def load_hierarchical_config() -> dict[str, Any]:
    """Load every discovered config file and merge them.

    Files are applied from lowest to highest precedence; a top-level key
    from a higher file replaces the whole section from a lower one.
    Environment references are expanded after the merge.

    Returns an empty dict when no config files exist.
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = load_yaml_file(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_tree(merged)
