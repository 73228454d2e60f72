"""Upload pipeline: validate an asset, find the media endpoint, submit.

State machine::

    pending -> validating -> endpoint-resolved -> submitting -> uploaded
                         \\-> rejected         \\-> failed
    (any in-flight state) -> cancelled

Validation and endpoint resolution never send the asset.  Without a
configured, cached or (when enabled) discovered media endpoint the upload
fails with ``ConfigurationError`` before any request is made.
"""

from __future__ import annotations

import asyncio
import html
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

from ..content.models import ContentEntity, EntityKind, EntityStatus, MediaItem
from ..converters.common import escape_link_text, link_destination
from ..core.responses import error_for_response, expect_json, send
from ..errors import (
    ConfigurationError,
    ErrorKind,
    MicropubSyncError,
    RateLimitError,
    SchemaError,
    ValidationError,
)
from ..validators import guess_media_type, validate_media

if TYPE_CHECKING:
    from ..core.client import ApiClient
    from ..file_handler import Workspace
    from ..sync.reconciler import Reconciler

logger = logging.getLogger(__name__)


class UploadState(str, Enum):
    PENDING = "pending"
    VALIDATING = "validating"
    ENDPOINT_RESOLVED = "endpoint-resolved"
    SUBMITTING = "submitting"
    UPLOADED = "uploaded"
    REJECTED = "rejected"
    FAILED = "failed"
    CANCELLED = "cancelled"


# ---------------------------------------------------------------------------
# Assets and embed snippets
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MediaAsset:
    """A binary asset to upload.

    Either ``data`` holds the bytes or ``source_path`` names a workspace
    file to read them from at submission time.
    """

    file_name: str
    mime_type: str
    size: int
    data: bytes | None = field(default=None, repr=False)
    source_path: str | None = None

    @classmethod
    def from_bytes(
        cls, file_name: str, data: bytes, mime_type: str | None = None
    ) -> MediaAsset:
        return cls(
            file_name=file_name,
            mime_type=mime_type or guess_media_type(file_name) or "",
            size=len(data),
            data=data,
        )

    @classmethod
    def from_file(
        cls, path: str, size: int, mime_type: str | None = None
    ) -> MediaAsset:
        """Reference a workspace file; the MIME type follows the extension."""
        name = PurePosixPath(path).name
        return cls(
            file_name=name,
            mime_type=mime_type or guess_media_type(name) or "",
            size=size,
            source_path=path,
        )


def default_alt(url: str) -> str:
    """Alt text derived from the URL's file name stem."""
    return PurePosixPath(urlparse(url).path).stem


def markdown_embed(url: str, alt: str | None = None) -> str:
    alt = default_alt(url) if alt is None else alt
    return f"![{escape_link_text(alt)}]({link_destination(url)})"


def html_embed(url: str, alt: str | None = None) -> str:
    alt = default_alt(url) if alt is None else alt
    return f'<img src="{html.escape(url)}" alt="{html.escape(alt)}">'


def embed_snippets(url: str, alt: str | None = None) -> dict[str, str]:
    return {
        "markdown": markdown_embed(url, alt),
        "html": html_embed(url, alt),
    }


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


@dataclass
class UploadResult:
    """Outcome of one upload attempt."""

    ok: bool
    state: UploadState
    file_name: str
    url: str | None = None
    embed_snippets: dict[str, str] = field(default_factory=dict)
    kind: ErrorKind | None = None
    message: str | None = None
    retry_after: int | None = None
    transitions: list[UploadState] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        if self.ok:
            return {
                "ok": True,
                "url": self.url,
                "embedSnippets": dict(self.embed_snippets),
            }
        data: dict[str, Any] = {
            "ok": False,
            "kind": self.kind.value if self.kind else None,
            "message": self.message,
        }
        if self.retry_after is not None:
            data["retryAfter"] = self.retry_after
        return data


class UploadPipeline:
    """Upload media assets to the service's media endpoint.

    Args:
        client: API client used for discovery and submission.
        workspace: Source of bytes for assets given by reference.
        media_endpoint: Configured media endpoint URL.
        discover: Query ``q=config`` for the endpoint when none is
            configured.
        reconciler: Told about every uploaded asset.
    """

    def __init__(
        self,
        client: ApiClient,
        workspace: Workspace | None = None,
        *,
        media_endpoint: str | None = None,
        discover: bool = False,
        reconciler: Reconciler | None = None,
    ) -> None:
        self.client = client
        self.workspace = workspace
        self.media_endpoint = media_endpoint
        self.discover = discover
        self.reconciler = reconciler
        self._cached_endpoint: str | None = None

    def validate(self, asset: MediaAsset) -> None:
        ok, message = validate_media(
            asset.file_name, asset.mime_type, asset.size
        )
        if not ok:
            raise ValidationError(message)
        if asset.data is None and not (
            asset.source_path and self.workspace is not None
        ):
            raise ValidationError("Asset has neither data nor a workspace file")

    async def resolve_endpoint(self) -> str:
        """Configured endpoint, else the cached one, else discovery.

        Raises:
            ConfigurationError: If no endpoint is known and discovery is off
                or finds none.
        """
        if self.media_endpoint:
            return self.media_endpoint
        if self._cached_endpoint:
            return self._cached_endpoint
        if not self.discover:
            raise ConfigurationError("No media endpoint configured")

        response = await send(
            self.client, "discover media endpoint", "GET",
            query={"q": "config"},
        )
        body = expect_json(response, "discover media endpoint")
        endpoint = (
            body.get("media-endpoint") if isinstance(body, Mapping) else None
        )
        if not isinstance(endpoint, str) or not endpoint:
            raise ConfigurationError(
                "The service does not advertise a media endpoint"
            )
        logger.info("Discovered media endpoint %s", endpoint)
        self._cached_endpoint = endpoint
        return endpoint

    async def upload(
        self, asset: MediaAsset, alt: str | None = None
    ) -> UploadResult:
        """Run the pipeline for *asset*.

        Args:
            asset: The asset to upload.
            alt: Alt text for the embed snippets; the file stem of the
                returned URL by default.
        """
        transitions = [UploadState.PENDING]
        try:
            transitions.append(UploadState.VALIDATING)
            try:
                self.validate(asset)
            except ValidationError as e:
                transitions.append(UploadState.REJECTED)
                logger.info("Rejected upload of %s: %s", asset.file_name, e)
                return self._failure(asset, UploadState.REJECTED, e, transitions)

            try:
                endpoint = await self.resolve_endpoint()
                transitions.append(UploadState.ENDPOINT_RESOLVED)
                transitions.append(UploadState.SUBMITTING)
                url = await self._submit(asset, endpoint)
            except MicropubSyncError as e:
                transitions.append(UploadState.FAILED)
                logger.warning("Upload of %s failed: %s", asset.file_name, e)
                return self._failure(asset, UploadState.FAILED, e, transitions)

            transitions.append(UploadState.UPLOADED)
            logger.info("Uploaded %s to %s", asset.file_name, url)
            if self.reconciler is not None:
                self.reconciler.record_published(
                    self._uploaded_entity(asset, url, alt)
                )
            return UploadResult(
                ok=True,
                state=UploadState.UPLOADED,
                file_name=asset.file_name,
                url=url,
                embed_snippets=embed_snippets(url, alt),
                transitions=transitions,
            )
        except asyncio.CancelledError:
            transitions.append(UploadState.CANCELLED)
            logger.info("Upload of %s cancelled", asset.file_name)
            raise

    async def _submit(self, asset: MediaAsset, endpoint: str) -> str:
        data = asset.data
        if data is None:
            try:
                data = await self.workspace.read_bytes(asset.source_path)
            except OSError as e:
                raise ValidationError(
                    f"Cannot read {asset.source_path}: {e}"
                ) from e

        response = await send(
            self.client,
            "upload",
            "POST",
            endpoint,
            files={"file": (asset.file_name, data, asset.mime_type)},
        )
        error = error_for_response(response, "upload")
        if error is not None:
            raise error
        if response.parse_error is not None:
            raise SchemaError(
                f"upload: response body is not valid JSON "
                f"({response.parse_error})"
            )
        body = response.body if isinstance(response.body, Mapping) else {}
        url = response.headers.get("Location") or body.get("url")
        if not isinstance(url, str) or not url:
            raise SchemaError("upload: response carried no URL")
        return url

    @staticmethod
    def _uploaded_entity(
        asset: MediaAsset, url: str, alt: str | None
    ) -> ContentEntity:
        return ContentEntity(
            id=url,
            title=asset.file_name,
            kind=EntityKind.UPLOAD,
            status=EntityStatus.PUBLISHED,
            declared_status="published",
            remote_url=url,
            published_at=datetime.now(timezone.utc),
            media=MediaItem(
                url=url,
                alt=default_alt(url) if alt is None else alt,
                mime_type=asset.mime_type,
                file_name=asset.file_name,
                source_path=asset.source_path,
            ),
        )

    @staticmethod
    def _failure(
        asset: MediaAsset,
        state: UploadState,
        error: MicropubSyncError,
        transitions: list[UploadState],
    ) -> UploadResult:
        return UploadResult(
            ok=False,
            state=state,
            file_name=asset.file_name,
            kind=error.kind,
            message=error.message,
            retry_after=(
                error.retry_after if isinstance(error, RateLimitError) else None
            ),
            transitions=transitions,
        )
