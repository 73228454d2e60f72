"""Services shared by the MCP tool handlers."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ..config import Config
from ..converters.frontmatter import FrontMatterCodec
from ..core.client import ApiClient, MicropubClient
from ..file_handler import Workspace
from ..pipeline.publish import PublishPipeline
from ..pipeline.upload import UploadPipeline
from ..sync.models import ConflictPolicy
from ..sync.reconciler import Reconciler
from ..sync.state import SyncStateStore


@dataclass
class ServiceContext:
    """Everything a tool handler needs, wired once at startup."""

    config: Config
    client: ApiClient
    workspace: Workspace
    codec: FrontMatterCodec
    state_store: SyncStateStore
    reconciler: Reconciler
    publisher: PublishPipeline
    uploader: UploadPipeline


def build_context(
    config: Config, client: ApiClient | None = None
) -> ServiceContext:
    """Wire the workspace, the reconciler and both pipelines.

    Args:
        config: Validated configuration.
        client: API client; a ``MicropubClient`` for *config* by default.
    """
    client = client if client is not None else MicropubClient(config)
    workspace = Workspace(config.workspace)
    codec = FrontMatterCodec(config.frontmatter_delimiter)
    state_store = SyncStateStore(Path(workspace.root) / config.state_dir)
    reconciler = Reconciler(
        client,
        workspace,
        state_store,
        media_endpoint=config.media_endpoint,
        policy=ConflictPolicy(config.conflict_policy),
        codec=codec,
        content_dir=config.content_dir,
        uploads_dir=config.uploads_dir,
    )
    return ServiceContext(
        config=config,
        client=client,
        workspace=workspace,
        codec=codec,
        state_store=state_store,
        reconciler=reconciler,
        publisher=PublishPipeline(
            client,
            reconciler,
            workspace,
            state_store,
            codec,
            content_dir=config.content_dir,
        ),
        uploader=UploadPipeline(
            client,
            workspace,
            media_endpoint=config.media_endpoint,
            discover=config.discover_media_endpoint,
            reconciler=reconciler,
        ),
    )
