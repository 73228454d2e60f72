"""Create new local drafts in the workspace."""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from ..content.models import ContentEntity, EntityKind, EntityStatus, slugify
from ..converters.frontmatter import DEFAULT_CODEC, FrontMatterCodec
from ..errors import ValidationError
from ..validators import validate_title
from .pull import free_path

if TYPE_CHECKING:
    from ..file_handler import Workspace
    from ..sync.reconciler import Reconciler

logger = logging.getLogger(__name__)


def draft_directory(kind: EntityKind, content_dir: str) -> str:
    if kind == EntityKind.PAGE:
        return f"{content_dir}/pages"
    return f"{content_dir}/drafts"


async def create_draft(
    workspace: Workspace,
    title: str,
    body: str = "",
    *,
    kind: EntityKind = EntityKind.POST,
    codec: FrontMatterCodec | None = None,
    content_dir: str = "content",
    reconciler: Reconciler | None = None,
) -> ContentEntity:
    """Write a new draft file named after the slug of *title*.

    Posts go to ``<content_dir>/drafts`` and pages to ``<content_dir>/pages``;
    an existing file of the same name gets a numbered sibling instead of
    being overwritten.

    Returns:
        The local-draft entity backed by the new file.

    Raises:
        ValidationError: If the title is empty or *kind* is an upload.
    """
    ok, message = validate_title(title)
    if not ok:
        raise ValidationError(message)
    if kind == EntityKind.UPLOAD:
        raise ValidationError("Uploads are added with media_upload")

    title = title.strip()
    slug = slugify(title) or "untitled"
    path = await free_path(workspace, draft_directory(kind, content_dir), slug)
    entity = ContentEntity(
        id=slugify(PurePosixPath(path).stem) or slug,
        title=title,
        body=body.strip(),
        kind=kind,
        status=EntityStatus.LOCAL_DRAFT,
        declared_status="draft",
        local_path=path,
    )

    await workspace.write_text(path, (codec or DEFAULT_CODEC).encode(entity))
    logger.info("Created draft %s", path)

    if reconciler is not None:
        reconciler.record_local(entity)
    return entity
