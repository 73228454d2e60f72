"""Draft, publish, upload and pull pipelines."""

from .drafts import create_draft
from .publish import PublishPipeline, PublishResult, PublishState, link_snippets
from .pull import pull
from .upload import (
    MediaAsset,
    UploadPipeline,
    UploadResult,
    UploadState,
    embed_snippets,
    html_embed,
    markdown_embed,
)

__all__ = [
    "create_draft",
    "MediaAsset",
    "PublishPipeline",
    "PublishResult",
    "PublishState",
    "UploadPipeline",
    "UploadResult",
    "UploadState",
    "embed_snippets",
    "html_embed",
    "link_snippets",
    "markdown_embed",
    "pull",
]
