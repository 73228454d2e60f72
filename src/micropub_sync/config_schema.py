"""Unified configuration schema for micropub_sync.

Defines Pydantic models for the YAML config structure with dedicated
sections for the Micropub connection, the local workspace, reconciliation
policy and logging.

Usage:
    from micropub_sync.config_schema import build_config, flatten_for_fallbacks

    raw = load_hierarchical_config()
    unified = build_config(raw)
    fallbacks = flatten_for_fallbacks(unified)
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class MicropubConfig(BaseModel):
    """Micropub service connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    url: str | None = Field(
        default=None, description="Micropub endpoint URL"
    )
    token: str | None = Field(default=None, description="App token")
    media_endpoint: str | None = Field(
        default=None, description="Media endpoint URL"
    )
    discover_media_endpoint: bool = Field(
        default=False,
        description="Query ?q=config for the media endpoint when none is configured",
    )
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    timeout: float = Field(
        default=10.0, gt=0, description="Request timeout in seconds"
    )
    max_parallel_requests: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Maximum concurrent requests to the service (1-32)",
    )

    model_config = {"frozen": True}


class WorkspaceConfig(BaseModel):
    """Layout of the local content workspace."""

    root: str | None = Field(
        default=None, description="Workspace root directory"
    )
    content_dir: str = Field(
        default="content", description="Posts and pages directory"
    )
    uploads_dir: str = Field(
        default="uploads", description="Local media directory"
    )
    state_dir: str = Field(
        default=".micropub", description="Sync state directory"
    )
    frontmatter_delimiter: str = Field(
        default="---", min_length=3, description="Front-matter fence"
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Reconciliation policy."""

    conflict_policy: Literal[
        "stale-local-edit", "remote-newer", "both-changed", "never"
    ] = Field(
        default="stale-local-edit",
        description="When a joined local/remote pair is reported as a conflict",
    )

    model_config = {"frozen": True}


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
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid.
    """

    micropub: MicropubConfig = Field(default_factory=MicropubConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully: anything absent gets defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def flatten_for_fallbacks(unified: UnifiedConfig) -> dict:
    """Flatten the YAML sections into the key space ``load_config`` reads.

    ``None`` values are dropped so they never shadow env vars.
    """
    flat: dict = {}
    for section in (unified.micropub, unified.workspace, unified.sync):
        flat.update(
            {k: v for k, v in section.model_dump().items() if v is not None}
        )
    return flat
