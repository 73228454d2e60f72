"""Canonical in-memory content model.

``ContentEntity`` represents a post, page or upload regardless of where it
came from: the FrontMatter codec builds one from a local Markdown file, the
RemoteEntry codec from a Micropub entry, and the reconciler joins the two.

Models here are mutable (the reconciler and the publish pipeline update
identity fields in place); the structural invariants are checked once at
construction.
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from pathlib import PurePosixPath
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, Field, model_validator


class EntityKind(str, Enum):
    """What a piece of content is."""

    POST = "post"
    PAGE = "page"
    UPLOAD = "upload"


class EntityStatus(str, Enum):
    """Where a piece of content lives.

    ``local-draft`` has no remote identity; ``remote-draft`` and
    ``published`` both carry a remote URL and differ only in the remote
    post-status flag.
    """

    LOCAL_DRAFT = "local-draft"
    REMOTE_DRAFT = "remote-draft"
    PUBLISHED = "published"


REMOTE_STATUSES = (EntityStatus.REMOTE_DRAFT, EntityStatus.PUBLISHED)


class MediaItem(BaseModel):
    """Binary payload of an upload entity.

    Attributes:
        url: Remote URL once uploaded.
        alt: Alt text for embeds.
        mime_type: MIME type of the bytes.
        file_name: Original file name.
        data: Raw bytes when held in memory.
        source_path: Workspace-relative reference when not held in memory.
    """

    url: str | None = None
    alt: str = ""
    mime_type: str | None = None
    file_name: str | None = None
    data: bytes | None = Field(default=None, repr=False)
    source_path: str | None = None


class ContentEntity(BaseModel):
    """A post, page or upload.

    Attributes:
        id: Slug of the file stem for local-only content, the canonical
            remote URL otherwise.
        title: Display title; empty is allowed but cannot be published.
        body: Markdown source.
        kind: Post, page or upload.
        status: Local draft, remote draft or published.
        declared_status: ``status`` value written in the front-matter block
            (``draft`` or ``published``).
        local_path: Workspace-relative POSIX path of the backing file.
        remote_url: Canonical remote URL.
        published_at: Remote publication time.
        categories: Remote ``category`` values.
        extra: Front-matter fields this package does not interpret, in file
            order.  ``url`` links a local file to its remote entry.
        media: Upload payload.
    """

    id: str
    title: str = ""
    body: str = ""
    kind: EntityKind = EntityKind.POST
    status: EntityStatus = EntityStatus.LOCAL_DRAFT
    declared_status: str = "draft"
    local_path: str | None = None
    remote_url: str | None = None
    published_at: datetime | None = None
    categories: list[str] = Field(default_factory=list)
    extra: dict[str, Any] = Field(default_factory=dict)
    media: MediaItem | None = None

    @model_validator(mode="after")
    def _check_identity(self) -> ContentEntity:
        if self.status == EntityStatus.LOCAL_DRAFT:
            if not self.local_path:
                raise ValueError("a local draft needs a local_path")
            if self.remote_url:
                raise ValueError("a local draft cannot have a remote_url")
        elif not self.remote_url:
            raise ValueError(f"a {self.status.value} entity needs a remote_url")
        if self.kind == EntityKind.UPLOAD and self.extra:
            raise ValueError("uploads do not carry front-matter fields")
        return self

    @property
    def linked_url(self) -> str | None:
        """Remote URL recorded in the front-matter, if any."""
        value = self.extra.get("url")
        return value if isinstance(value, str) and value else None

    @property
    def is_remote(self) -> bool:
        return self.status in REMOTE_STATUSES

    @property
    def slug(self) -> str:
        """Join key used to match local files with remote entries."""
        if self.local_path:
            return slugify(PurePosixPath(self.local_path).stem)
        if self.remote_url:
            return slug_from_url(self.remote_url)
        return slugify(self.id)

    def summary(self) -> dict[str, Any]:
        """Presentation fields of this entity (no body or bytes)."""
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "kind": self.kind.value,
            "status": self.status.value,
            "localPath": self.local_path,
            "remoteUrl": self.remote_url,
            "publishedAt": (
                self.published_at.isoformat() if self.published_at else None
            ),
        }
        if self.media is not None:
            data["mimeType"] = self.media.mime_type
        return data


# ---------------------------------------------------------------------------
# Slugs
# ---------------------------------------------------------------------------

_NON_SLUG = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_DASHES = re.compile(r"-+")


def slugify(text: str) -> str:
    """Lower-case, strip punctuation, and join words with single dashes.

    >>> slugify("My Test Post!")
    'my-test-post'
    """
    slug = _NON_SLUG.sub("", text.lower())
    slug = _WHITESPACE.sub("-", slug.strip())
    slug = _DASHES.sub("-", slug)
    return slug.strip("-")


def slug_from_url(url: str) -> str:
    """Slug of the last non-empty path segment of *url*, extension dropped.

    ``https://example.com/2024/01/05/my-test-post.html`` gives
    ``my-test-post``; a URL without a path gives ``""``.
    """
    segments = [s for s in urlparse(url).path.split("/") if s]
    if not segments:
        return ""
    return slugify(PurePosixPath(segments[-1]).stem)
