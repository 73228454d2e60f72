"""Content model shared by the codecs, the reconciler and the pipelines."""

from .models import (
    REMOTE_STATUSES,
    ContentEntity,
    EntityKind,
    EntityStatus,
    MediaItem,
    slug_from_url,
    slugify,
)

__all__ = [
    "REMOTE_STATUSES",
    "ContentEntity",
    "EntityKind",
    "EntityStatus",
    "MediaItem",
    "slug_from_url",
    "slugify",
]
