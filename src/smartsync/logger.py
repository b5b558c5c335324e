"""Logging setup for the smartsync MCP server and command line.

The MCP server speaks JSON-RPC over stdout, so ``mcp`` mode only ever
writes to a log file. ``cli`` mode writes to stderr, plus a file when one
is given.

The level is resolved as ``debug=True`` > ``SMARTSYNC_LOG_LEVEL`` > the
YAML ``logging.level`` > the mode default (WARNING for mcp, INFO for cli).

Sync code attaches context with ``extra=``, e.g.::

    logger.warning("upload of %s failed", path,
                   extra={"operation": "upload", "path": path})

``JsonFormatter`` lifts the ``SYNC_FIELDS`` keys into the JSON object so
failed transfers can be filtered by path or operation.
"""

import json
import logging
import os
import sys
import tempfile
from pathlib import Path

LEVEL_ENV_VAR = "SMARTSYNC_LOG_LEVEL"
FILE_ENV_VAR = "SMARTSYNC_LOG_FILE"
DEFAULT_LOG_FILE = Path(tempfile.gettempdir()) / "smartsync.log"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

SYNC_FIELDS = ("operation", "path", "status")

# Kept at WARNING unless the resolved level is DEBUG
QUIET_LOGGERS = ("urllib3", "requests", "charset_normalizer", "mcp")


class JsonFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, msg, any sync context
    fields present on the record, and ``exc`` for attached exceptions."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for field in SYNC_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def resolve_level(mode: str, debug: bool = False, level: str | None = None) -> int:
    """Return the numeric level for *mode*; unknown names fall back to INFO."""
    if debug:
        return logging.DEBUG
    name = (
        os.getenv(LEVEL_ENV_VAR)
        or level
        or ("WARNING" if mode == "mcp" else "INFO")
    )
    resolved = logging.getLevelName(name.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _formatter(debug_format: str, with_name: bool) -> logging.Formatter:
    if debug_format == "json":
        return JsonFormatter(datefmt=DATE_FORMAT)
    origin = "%(name)s " if with_name else ""
    return logging.Formatter(
        f"[%(asctime)s] [%(levelname)s] {origin}%(message)s", datefmt=DATE_FORMAT
    )


def _file_handler(path: str | Path, formatter: logging.Formatter) -> logging.FileHandler:
    # The log may live under a vault directory that does not exist yet
    target = Path(path).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(target, mode="a", encoding="utf-8")
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    mode: str = "cli",
    debug: bool = False,
    log_file: str | None = None,
    debug_format: str = "text",
    level: str | None = None,
) -> None:
    """Configure the root logger for *mode*.

    Args:
        mode: "mcp" for file-only logging, "cli" for stderr logging.
        debug: Force DEBUG regardless of env and YAML.
        log_file: Log file path. In mcp mode it wins over
            ``SMARTSYNC_LOG_FILE`` and the default under the temp dir.
        debug_format: "text" (default) or "json".
        level: Level name from the YAML ``logging`` section.
    """
    log_level = resolve_level(mode, debug, level)

    if mode == "mcp":
        path = log_file or os.getenv(FILE_ENV_VAR) or DEFAULT_LOG_FILE
        handlers: list[logging.Handler] = [
            _file_handler(path, _formatter(debug_format, with_name=True))
        ]
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(_formatter(debug_format, with_name=False))
        handlers = [stderr_handler]
        if log_file:
            handlers.append(
                _file_handler(log_file, _formatter(debug_format, with_name=True))
            )

    logging.basicConfig(level=log_level, handlers=handlers)

    if log_level != logging.DEBUG:
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
