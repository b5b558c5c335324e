"""Connection configuration for the SmartSync server.

Reads remote server settings from CLI args, environment variables,
.env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    SMARTSYNC_URL: SmartSync server URL (required)
    SMARTSYNC_PORT: Server port, 0 to use the URL as-is (optional, default: 443)
    SMARTSYNC_TOKEN: Bearer token (optional)
    SMARTSYNC_INSECURE: Skip SSL verification (optional, default: false)
    SMARTSYNC_DEBUG: Enable debug logging (optional, default: false)
    SMARTSYNC_MAX_PARALLEL_REQUESTS: Max parallel HTTP requests (optional, default: 5)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


@dataclass
class Config:
    server_url: str
    port: int = 443
    auth_token: str = ""
    insecure: bool = False
    debug: bool = False
    max_parallel_requests: int = 5

    @property
    def base_url(self) -> str:
        """Server URL with the port appended when one is configured.

        A port already present in ``server_url`` wins over ``port``.
        """
        if self.port and urlparse(self.server_url).port is None:
            return f"{self.server_url}:{self.port}"
        return self.server_url


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If URL format or port is invalid.
    """
    config.server_url = config.server_url.strip()

    if not config.server_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid server URL '{config.server_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.server_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid server URL '{config.server_url}': URL must include a hostname"
        )

    config.server_url = config.server_url.removesuffix("/")

    if not (0 <= config.port <= 65535):
        raise ValueError(
            f"Invalid port {config.port}: must be between 0 and 65535"
        )

    if not config.auth_token:
        logger.warning(
            "No auth token configured; requests to %s are unauthenticated",
            config.server_url,
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_int_env(key: str, low: int, high: int) -> int | None:
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        ) from None
    if not (low <= value <= high):
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        )
    return value


def load_config(
    url: str | None = None,
    port: int | None = None,
    token: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        url: Override server URL.
        port: Override server port.
        token: Override bearer token.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Dict of values from the YAML ``server`` section.
            Used as fallback when CLI arg and env var are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If the server URL is missing after checking all
            sources, or a numeric value is out of range.
    """
    fb = yaml_fallbacks or {}

    server_url = url or os.getenv("SMARTSYNC_URL") or fb.get("url")
    if not server_url:
        raise ValueError(
            "SmartSync URL not found. Set SMARTSYNC_URL environment variable, "
            "pass --url CLI argument, or add 'url' to config.yml."
        )

    auth_token = (
        token or os.getenv("SMARTSYNC_TOKEN") or fb.get("token") or ""
    ).strip()

    if port is not None:
        final_port = port
    else:
        env_port = _get_int_env("SMARTSYNC_PORT", 0, 65535)
        if env_port is not None:
            final_port = env_port
        else:
            final_port = int(fb.get("port", 443))

    if insecure:
        final_insecure = True
    else:
        env_insecure = _get_bool_env("SMARTSYNC_INSECURE")
        if env_insecure is not None:
            final_insecure = env_insecure
        else:
            final_insecure = bool(fb.get("insecure", False))

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("SMARTSYNC_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    env_parallel = _get_int_env("SMARTSYNC_MAX_PARALLEL_REQUESTS", 1, 100)
    if env_parallel is not None:
        final_max_parallel = env_parallel
    elif "max_parallel_requests" in fb:
        final_max_parallel = int(fb["max_parallel_requests"])
    else:
        final_max_parallel = 5

    config = Config(
        server_url=server_url,
        port=final_port,
        auth_token=auth_token,
        insecure=final_insecure,
        debug=final_debug,
        max_parallel_requests=final_max_parallel,
    )

    validate_config(config)

    return config
