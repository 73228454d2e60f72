"""Lifespan management for MCP server startup and shutdown."""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv

from ..config import load_config
from ..config_loader import (
    discover_config_files,
    load_hierarchical_config,
)
from ..config_schema import LoggingConfig, build_config, flatten_for_fallbacks
from ..core.client import MicropubClient
from ..logger import setup_logging
from .context import ServiceContext, build_context

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[ServiceContext]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config file if present (as fallback values)
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Re-point logging using the YAML logging section and the debug flag
    - Create MicropubClient and verify the endpoint accepts the token
    - Discover the media endpoint when configured to
    - Wire workspace, reconciler and pipelines into a ServiceContext

    On shutdown:
    - Log shutdown message

    Args:
        config_overrides: Optional dict with config values from CLI (url, token,
            media_endpoint, workspace, insecure)

    Yields:
        The initialized ServiceContext

    Raises:
        RuntimeError: If configuration is invalid or the endpoint is unreachable.
    """
    logger.info("MCP server starting...")
    _stderr_print("Micropub Sync Server starting...")

    # CLI args > env vars (.env loaded first) > YAML config > defaults
    try:
        # .env first, so ${VAR} interpolation in YAML can use its values
        load_dotenv()

        yaml_fallbacks: dict[str, Any] | None = None
        logging_section: LoggingConfig | None = None
        config_files = discover_config_files()
        sources = []

        if config_files:
            unified = build_config(load_hierarchical_config())
            yaml_fallbacks = flatten_for_fallbacks(unified)
            logging_section = unified.logging
            sources.append(f"config file: {config_files[0]}")

        overrides = config_overrides or {}
        config = load_config(
            url=overrides.get("url"),
            token=overrides.get("token"),
            media_endpoint=overrides.get("media_endpoint"),
            workspace=overrides.get("workspace"),
            insecure=overrides.get("insecure", False),
            debug=overrides.get("debug", False),
            yaml_fallbacks=yaml_fallbacks,
        )
        setup_logging(
            log_file=overrides.get("log_file"),
            section=logging_section,
            debug=config.debug,
        )

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        logger.info("Micropub URL: %s", config.micropub_url)
        _stderr_print(f"  Micropub URL: {config.micropub_url}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        _stderr_print("  Ensure MICROPUB_URL and MICROPUB_TOKEN are set.")
        raise RuntimeError(
            f"Configuration error: {e}. Ensure MICROPUB_URL and MICROPUB_TOKEN are set."
        ) from e

    logger.info("Verifying Micropub endpoint...")
    _stderr_print("  Verifying Micropub endpoint...")
    try:
        client = MicropubClient(config)
        service_config = await client.verify()
    except Exception as e:
        logger.error("Failed to reach Micropub endpoint: %s", e)
        _stderr_print("ERROR: Micropub endpoint check failed.")
        _stderr_print(f"  {e}")
        _stderr_print("  Check MICROPUB_URL and MICROPUB_TOKEN.")
        raise RuntimeError(
            f"Micropub endpoint check failed: {e}. Check MICROPUB_URL and MICROPUB_TOKEN."
        ) from e

    if not config.media_endpoint and config.discover_media_endpoint:
        discovered = service_config.get("media-endpoint")
        if isinstance(discovered, str) and discovered:
            config.media_endpoint = discovered
            logger.info("Discovered media endpoint %s", discovered)
    if config.media_endpoint:
        _stderr_print(f"  Media endpoint: {config.media_endpoint}")
    else:
        _stderr_print("  Media endpoint: not configured (uploads disabled)")

    context = build_context(config, client)
    _stderr_print(f"  Workspace: {context.workspace.root}")
    _stderr_print(f"  Parallel requests: {config.max_parallel_requests}")
    _stderr_print("Server ready. Waiting for MCP client connection...")

    yield context

    logger.info("MCP server shutting down")
    _stderr_print("Micropub Sync Server shutting down.")
