"""Pull a remote entry into the workspace as a Markdown file."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from ..content.models import ContentEntity, EntityKind, EntityStatus, slugify
from ..converters.frontmatter import DEFAULT_CODEC, FrontMatterCodec
from ..core.async_utils import run_sync
from ..errors import ConflictError, ValidationError

if TYPE_CHECKING:
    from ..file_handler import Workspace
    from ..sync.reconciler import Reconciler
    from ..sync.state import SyncStateStore

logger = logging.getLogger(__name__)

MAX_NAME_ATTEMPTS = 1000


def target_directory(entity: ContentEntity, content_dir: str) -> str:
    if entity.kind == EntityKind.PAGE:
        return f"{content_dir}/pages"
    if entity.status == EntityStatus.REMOTE_DRAFT:
        return f"{content_dir}/drafts"
    return f"{content_dir}/published"


async def free_path(workspace: Workspace, directory: str, slug: str) -> str:
    """First ``<slug>.md``, ``<slug>-2.md``, ... not present in *directory*."""
    candidate = f"{directory}/{slug}.md"
    for n in range(2, MAX_NAME_ATTEMPTS):
        if not await workspace.exists(candidate):
            return candidate
        candidate = f"{directory}/{slug}-{n}.md"
    raise ConflictError(f"No free file name for {slug} in {directory}")


async def pull(
    entity: ContentEntity,
    workspace: Workspace,
    state_store: SyncStateStore | None = None,
    codec: FrontMatterCodec | None = None,
    content_dir: str = "content",
    *,
    reconciler: Reconciler | None = None,
    path: str | None = None,
) -> ContentEntity:
    """Write a remote entry to a local file and record the sync baseline.

    Args:
        entity: Remote entity, as decoded from a listing.
        workspace: Destination workspace.
        state_store: Receives the baseline (remote body + timestamp).
        codec: FrontMatter codec for the file.
        content_dir: Workspace directory for posts and pages.
        reconciler: Told about the new local copy.
        path: Overwrite this file instead of choosing a new one.

    Returns:
        The joined entity, now backed by the written file.

    Raises:
        ValidationError: If the entity has no remote URL or is an upload.
    """
    if not entity.remote_url:
        raise ValidationError("Only remote entries can be pulled")
    if entity.kind == EntityKind.UPLOAD:
        raise ValidationError("Uploads cannot be pulled as Markdown files")

    codec = codec or DEFAULT_CODEC
    if path is None:
        slug = entity.slug or slugify(entity.title) or "untitled"
        path = await free_path(
            workspace, target_directory(entity, content_dir), slug
        )

    local = entity.model_copy(
        deep=True,
        update={
            "local_path": path,
            "declared_status": (
                "draft"
                if entity.status == EntityStatus.REMOTE_DRAFT
                else "published"
            ),
            "extra": {**entity.extra, "url": entity.remote_url},
        },
    )
    await workspace.write_text(path, codec.encode(local))
    logger.info("Pulled %s into %s", entity.remote_url, path)

    if state_store is not None:
        now = datetime.now(timezone.utc)
        synced_at = max(entity.published_at, now) if entity.published_at else now
        await run_sync(
            state_store.record_baseline,
            entity.remote_url,
            local.body,
            remote_url=entity.remote_url,
            local_path=path,
            synced_at=synced_at,
        )
    if reconciler is not None:
        reconciler.record_published(local)
    return local
