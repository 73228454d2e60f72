"""Publish pipeline: validate, submit and adopt the remote identity.

State machine::

    draft -> validating -> submitting -> published
                       \\-> rejected    \\-> failed
    (any in-flight state) -> cancelled

``rejected`` never touches the network.  At most one publish runs per
entity id; a second request while one is in flight is rejected with a
``ConflictError``.  Nothing is retried: a failed result carries the error
kind (and the ``Retry-After`` hint for rate limits) for the caller to act
on.
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

from ..content.models import ContentEntity, EntityKind, EntityStatus
from ..converters.common import escape_link_text, link_destination
from ..converters.frontmatter import DEFAULT_CODEC, FrontMatterCodec
from ..converters.remote_entry import (
    parse_published,
    to_delete_payload,
    to_publish_payload,
    to_update_payload,
)
from ..core.async_utils import run_sync
from ..core.responses import error_for_response, send
from ..errors import (
    ConflictError,
    ErrorKind,
    MicropubSyncError,
    RateLimitError,
    SchemaError,
    ValidationError,
)
from ..validators import validate_body, validate_title
from .pull import free_path, target_directory

if TYPE_CHECKING:
    from ..core.client import ApiClient, ApiResponse
    from ..file_handler import Workspace
    from ..sync.reconciler import Reconciler
    from ..sync.state import SyncStateStore

logger = logging.getLogger(__name__)


class PublishState(str, Enum):
    DRAFT = "draft"
    VALIDATING = "validating"
    SUBMITTING = "submitting"
    PUBLISHED = "published"
    DELETED = "deleted"
    REJECTED = "rejected"
    FAILED = "failed"
    CANCELLED = "cancelled"


def link_snippets(url: str, title: str = "") -> dict[str, str]:
    """Markdown and HTML links to a published entry."""
    label = title.strip() or url
    return {
        "markdown": f"[{escape_link_text(label)}]({link_destination(url)})",
        "html": f'<a href="{html.escape(url)}">{html.escape(label)}</a>',
    }


@dataclass
class PublishResult:
    """Outcome of one publish (or delete) attempt.

    Attributes:
        ok: Whether the terminal state is a success.
        state: Terminal state.
        entity_id: Id of the entity at the start of the attempt.
        url: Remote URL on success.
        kind: Error kind on failure.
        message: Failure description, or a warning on success.
        retry_after: Seconds to wait before retrying a rate-limited call.
        transitions: Every state visited, in order.
        embed_snippets: Link snippets on success.
    """

    ok: bool
    state: PublishState
    entity_id: str
    url: str | None = None
    kind: ErrorKind | None = None
    message: str | None = None
    retry_after: int | None = None
    transitions: list[PublishState] = field(default_factory=list)
    embed_snippets: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Presentation shape for notification UIs and tool output."""
        if self.ok:
            data: dict[str, Any] = {
                "ok": True,
                "url": self.url,
                "embedSnippets": dict(self.embed_snippets),
            }
            if self.message:
                data["warning"] = self.message
            return data
        data = {
            "ok": False,
            "kind": self.kind.value if self.kind else None,
            "message": self.message,
        }
        if self.retry_after is not None:
            data["retryAfter"] = self.retry_after
        return data


def _failure(
    entity_id: str,
    state: PublishState,
    error: MicropubSyncError,
    transitions: list[PublishState],
) -> PublishResult:
    return PublishResult(
        ok=False,
        state=state,
        entity_id=entity_id,
        kind=error.kind,
        message=error.message,
        retry_after=(
            error.retry_after if isinstance(error, RateLimitError) else None
        ),
        transitions=transitions,
    )


def _first(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    return value


class PublishPipeline:
    """Publish local entities to a Micropub endpoint.

    Args:
        client: API client used for the submission.
        reconciler: Reconciler told about every successful publish.
        workspace: When set, the entity's file is rewritten with the new
            ``url`` linkage after a successful publish, and a file in
            ``<content_dir>/drafts`` moves to the published (or pages)
            directory.
        state_store: Records the sync baseline after a successful publish.
        codec: FrontMatter codec used to rewrite the file.
        content_dir: Workspace directory for posts and pages.
    """

    def __init__(
        self,
        client: ApiClient,
        reconciler: Reconciler | None = None,
        workspace: Workspace | None = None,
        state_store: SyncStateStore | None = None,
        codec: FrontMatterCodec | None = None,
        content_dir: str = "content",
    ) -> None:
        self.client = client
        self.reconciler = reconciler
        self.workspace = workspace
        self.state_store = state_store
        self.codec = codec or DEFAULT_CODEC
        self.content_dir = content_dir
        self._in_flight: set[str] = set()

    def in_flight(self, entity_id: str) -> bool:
        return entity_id in self._in_flight

    # ------------------------------------------------------------------
    # Publish
    # ------------------------------------------------------------------

    @staticmethod
    def validate(entity: ContentEntity) -> None:
        """Local checks run before any network call.

        Raises:
            ValidationError: For uploads, entities with no local file, an
                empty title or an empty body.
        """
        if entity.kind == EntityKind.UPLOAD:
            raise ValidationError(
                "Uploads are sent through the media endpoint"
            )
        if not entity.local_path:
            raise ValidationError(
                "Only entities backed by a local file can be published; "
                "pull the remote entry first"
            )
        for ok, message in (
            validate_title(entity.title),
            validate_body(entity.body),
        ):
            if not ok:
                raise ValidationError(message)

    async def publish(
        self, entity: ContentEntity, *, post_status: str | None = None
    ) -> PublishResult:
        """Run the pipeline for *entity*.

        On success the entity is updated in place: its ``id`` and
        ``remote_url`` become the returned URL, ``status`` and
        ``published_at`` follow the service, and ``extra["url"]`` records
        the linkage.  On failure the entity is left untouched.

        Args:
            entity: Entity to publish; a joined entity (one with a
                ``remote_url``) is sent as an update of that entry.
            post_status: ``"draft"`` to create a remote draft; published
                otherwise.
        """
        entity_id = entity.id
        transitions = [PublishState.DRAFT]

        if entity_id in self._in_flight:
            transitions.append(PublishState.REJECTED)
            logger.info("Rejected duplicate publish of %s", entity_id)
            return _failure(
                entity_id,
                PublishState.REJECTED,
                ConflictError("publish already in progress"),
                transitions,
            )

        self._in_flight.add(entity_id)
        try:
            transitions.append(PublishState.VALIDATING)
            try:
                self.validate(entity)
            except ValidationError as e:
                transitions.append(PublishState.REJECTED)
                logger.info("Rejected publish of %s: %s", entity_id, e)
                return _failure(
                    entity_id, PublishState.REJECTED, e, transitions
                )

            transitions.append(PublishState.SUBMITTING)
            try:
                url, published_at = await self._submit(entity, post_status)
            except MicropubSyncError as e:
                transitions.append(PublishState.FAILED)
                logger.warning("Publish of %s failed: %s", entity_id, e)
                return _failure(
                    entity_id, PublishState.FAILED, e, transitions
                )

            warning = await self._adopt(entity, url, published_at, post_status)
            transitions.append(PublishState.PUBLISHED)
            logger.info("Published %s as %s", entity_id, url)
            return PublishResult(
                ok=True,
                state=PublishState.PUBLISHED,
                entity_id=entity_id,
                url=url,
                message=warning,
                transitions=transitions,
                embed_snippets=link_snippets(url, entity.title),
            )
        except asyncio.CancelledError:
            transitions.append(PublishState.CANCELLED)
            logger.info("Publish of %s cancelled", entity_id)
            raise
        finally:
            self._in_flight.discard(entity_id)

    async def _submit(
        self, entity: ContentEntity, post_status: str | None
    ) -> tuple[str, datetime]:
        if entity.remote_url:
            payload = to_update_payload(entity, post_status)
        else:
            payload = to_publish_payload(entity, post_status)

        response = await send(self.client, "publish", "POST", body=payload)
        error = error_for_response(response, "publish")
        if error is not None:
            raise error
        return self._interpret_success(response, entity.remote_url)

    @staticmethod
    def _interpret_success(
        response: ApiResponse, fallback_url: str | None
    ) -> tuple[str, datetime]:
        if response.parse_error is not None:
            raise SchemaError(
                f"publish: response body is not valid JSON "
                f"({response.parse_error})"
            )
        body = response.body if isinstance(response.body, Mapping) else {}
        url = (
            _first(body.get("url"))
            or response.headers.get("Location")
            or fallback_url
        )
        if not isinstance(url, str) or not url:
            raise SchemaError("publish: response carried no URL")
        published_at = parse_published(body.get("published"))
        return url, published_at or datetime.now(timezone.utc)

    async def _adopt(
        self,
        entity: ContentEntity,
        url: str,
        published_at: datetime,
        post_status: str | None,
    ) -> str | None:
        """Apply the new remote identity locally; returns a warning, if any."""
        draft = post_status == "draft"
        entity.id = url
        entity.remote_url = url
        entity.published_at = published_at
        entity.status = (
            EntityStatus.REMOTE_DRAFT if draft else EntityStatus.PUBLISHED
        )
        entity.declared_status = "draft" if draft else "published"
        entity.extra["url"] = url

        warning = None
        previous_path = None
        if self.workspace is not None and entity.local_path:
            source = entity.local_path
            try:
                target = await self._published_path(entity)
                await self.workspace.write_text(
                    target or source, self.codec.encode(entity)
                )
                if target is not None:
                    entity.local_path, previous_path = target, source
                    logger.info("Moved %s to %s", source, target)
                    await self.workspace.delete(source)
            except OSError as e:
                if previous_path is None:
                    warning = f"published, but {source} was not updated: {e}"
                else:
                    warning = (
                        f"published and copied to {entity.local_path}, "
                        f"but {source} was not removed: {e}"
                    )
                logger.error("%s", warning)

        if self.state_store is not None:
            synced_at = max(published_at, datetime.now(timezone.utc))
            await run_sync(
                self.state_store.record_baseline,
                url,
                entity.body,
                remote_url=url,
                local_path=entity.local_path,
                synced_at=synced_at,
            )
        if self.reconciler is not None:
            self.reconciler.record_published(entity, previous_path)
        return warning

    async def _published_path(self, entity: ContentEntity) -> str | None:
        """New home for a published entity whose file sits in the drafts folder."""
        drafts = f"{self.content_dir}/drafts/"
        if entity.status == EntityStatus.REMOTE_DRAFT or not (
            entity.local_path and entity.local_path.startswith(drafts)
        ):
            return None
        slug = PurePosixPath(entity.local_path).stem
        try:
            return await free_path(
                self.workspace, target_directory(entity, self.content_dir), slug
            )
        except ConflictError as e:
            logger.warning("Leaving %s in place: %s", entity.local_path, e)
            return None

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete(self, entity: ContentEntity) -> PublishResult:
        """Delete the remote entry (if any), then the local file and record.

        Local-only entities are removed without a network call.
        """
        entity_id = entity.id
        transitions = [PublishState.DRAFT]
        if entity_id in self._in_flight:
            transitions.append(PublishState.REJECTED)
            return _failure(
                entity_id,
                PublishState.REJECTED,
                ConflictError("publish already in progress"),
                transitions,
            )

        self._in_flight.add(entity_id)
        try:
            transitions.append(PublishState.VALIDATING)
            if not entity.remote_url and not (
                entity.local_path and self.workspace is not None
            ):
                transitions.append(PublishState.REJECTED)
                return _failure(
                    entity_id,
                    PublishState.REJECTED,
                    ValidationError("Nothing to delete"),
                    transitions,
                )

            if entity.remote_url:
                transitions.append(PublishState.SUBMITTING)
                try:
                    response = await send(
                        self.client,
                        "delete",
                        "POST",
                        body=to_delete_payload(entity.remote_url),
                    )
                    error = error_for_response(response, "delete")
                    if error is not None:
                        raise error
                except MicropubSyncError as e:
                    transitions.append(PublishState.FAILED)
                    logger.warning("Delete of %s failed: %s", entity_id, e)
                    return _failure(
                        entity_id, PublishState.FAILED, e, transitions
                    )

            warning = None
            if self.workspace is not None and entity.local_path:
                try:
                    await self.workspace.delete(entity.local_path)
                except OSError as e:
                    if not entity.remote_url:
                        raise
                    warning = (
                        f"deleted remotely, but {entity.local_path} "
                        f"was not removed: {e}"
                    )
                    logger.error("%s", warning)
            if self.state_store is not None:
                await run_sync(self.state_store.remove, entity_id)
            if self.reconciler is not None:
                self.reconciler.forget(entity_id)

            transitions.append(PublishState.DELETED)
            logger.info("Deleted %s", entity_id)
            return PublishResult(
                ok=True,
                state=PublishState.DELETED,
                entity_id=entity_id,
                url=entity.remote_url,
                message=warning,
                transitions=transitions,
            )
        except asyncio.CancelledError:
            transitions.append(PublishState.CANCELLED)
            raise
        finally:
            self._in_flight.discard(entity_id)
