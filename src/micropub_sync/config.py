"""Runtime configuration for the Micropub sync server.

Reads connection and workspace settings from CLI args, environment
variables, .env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    MICROPUB_URL: Micropub endpoint URL (required)
    MICROPUB_TOKEN: App token sent as a Bearer credential (required)
    MICROPUB_MEDIA_ENDPOINT: Media endpoint URL (optional)
    MICROPUB_INSECURE: Skip SSL verification (optional, default: false)
    MICROPUB_DEBUG: Enable debug logging (optional, default: false)
    MICROPUB_MAX_PARALLEL_REQUESTS: Max parallel HTTP requests (optional, default: 4)
    MICROPUB_TIMEOUT: Request timeout in seconds (optional, default: 10)
    MICROPUB_WORKSPACE: Workspace root directory (optional, default: CWD)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


@dataclass
class Config:
    micropub_url: str
    token: str
    media_endpoint: str | None = None
    discover_media_endpoint: bool = False
    workspace: str = "."
    insecure: bool = False
    debug: bool = False
    timeout: float = 10.0
    max_parallel_requests: int = 4
    content_dir: str = "content"
    uploads_dir: str = "uploads"
    state_dir: str = ".micropub"
    frontmatter_delimiter: str = "---"
    conflict_policy: str = "stale-local-edit"


def _validate_url(value: str, label: str) -> str:
    value = value.strip()
    if not value.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid {label} '{value}': must start with http:// or https://"
        )
    if not urlparse(value).hostname:
        raise ValueError(
            f"Invalid {label} '{value}': URL must include a hostname"
        )
    return value


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If a URL is malformed, the token is empty, or a numeric
            setting is out of range.
    """
    config.micropub_url = _validate_url(
        config.micropub_url, "Micropub URL"
    )
    if config.media_endpoint:
        config.media_endpoint = _validate_url(
            config.media_endpoint, "media endpoint"
        )

    if not config.token.strip():
        raise ValueError(
            "Micropub token cannot be empty. Set MICROPUB_TOKEN environment variable."
        )

    if config.timeout <= 0:
        raise ValueError(
            f"Invalid timeout {config.timeout}: must be greater than zero"
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
    token: str | None = None,
    media_endpoint: str | None = None,
    workspace: str | None = None,
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
        url: Override Micropub endpoint URL.
        token: Override app token.
        media_endpoint: Override media endpoint URL.
        workspace: Override workspace root.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flat dict of values from the YAML config file
            (see ``config_schema.flatten_for_fallbacks``).

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If required config (URL, token) is missing after
            checking all sources, or a value is invalid.
    """
    fb = yaml_fallbacks or {}

    micropub_url = url or os.getenv("MICROPUB_URL") or fb.get("url")
    if not micropub_url:
        raise ValueError(
            "Micropub URL not found. Set MICROPUB_URL environment variable, "
            "pass --url CLI argument, or add 'micropub.url' to config.yml."
        )

    final_token = token or os.getenv("MICROPUB_TOKEN") or fb.get("token")
    if not final_token:
        raise ValueError(
            "Micropub token not found. Set MICROPUB_TOKEN environment variable, "
            "pass --token CLI argument, or add 'micropub.token' to config.yml."
        )

    final_media = (
        media_endpoint
        or os.getenv("MICROPUB_MEDIA_ENDPOINT")
        or fb.get("media_endpoint")
    )
    final_workspace = (
        workspace
        or os.getenv("MICROPUB_WORKSPACE")
        or fb.get("root")
        or "."
    )

    if insecure:
        final_insecure = True
    else:
        env_insecure = _get_bool_env("MICROPUB_INSECURE")
        if env_insecure is not None:
            final_insecure = env_insecure
        else:
            final_insecure = bool(fb.get("insecure", False))

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("MICROPUB_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    max_parallel = _get_int_env("MICROPUB_MAX_PARALLEL_REQUESTS", 1, 32)
    if max_parallel is None:
        max_parallel = int(fb.get("max_parallel_requests", 4))

    timeout = _get_int_env("MICROPUB_TIMEOUT", 1, 600)
    final_timeout = (
        float(timeout)
        if timeout is not None
        else float(fb.get("timeout", 10.0))
    )

    config = Config(
        micropub_url=micropub_url,
        token=final_token.strip(),
        media_endpoint=final_media,
        discover_media_endpoint=bool(
            fb.get("discover_media_endpoint", False)
        ),
        workspace=final_workspace,
        insecure=final_insecure,
        debug=final_debug,
        timeout=final_timeout,
        max_parallel_requests=max_parallel,
        content_dir=fb.get("content_dir", "content"),
        uploads_dir=fb.get("uploads_dir", "uploads"),
        state_dir=fb.get("state_dir", ".micropub"),
        frontmatter_delimiter=fb.get("frontmatter_delimiter", "---"),
        conflict_policy=fb.get("conflict_policy", "stale-local-edit"),
    )

    validate_config(config)

    return config
