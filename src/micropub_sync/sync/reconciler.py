"""Reconciliation of local and remote content into one view.

``merge_entities`` is the pure core: it joins local and remote snapshots,
flags conflicts, drops duplicate ids and buckets everything into ordered
sections.  ``Reconciler`` owns the snapshots, fetches remote sections as
independent tasks and swaps in a freshly built view after every change.

Join rules
----------
A local entity matches a remote one when its ``url`` front-matter field
equals the remote URL or, for files without that field, when its file slug
equals the slug of the remote URL.  Uploads only join uploads; posts and
pages join each other.  Each remote entity joins at most one local file.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from ..content.models import (
    ContentEntity,
    EntityKind,
    EntityStatus,
    MediaItem,
    slugify,
)
from ..converters.frontmatter import DEFAULT_CODEC, FrontMatterCodec
from ..converters.remote_entry import (
    from_media_item,
    from_remote,
    parse_source_response,
)
from ..core.async_utils import run_sync
from ..core.responses import expect_json, send
from ..errors import ConfigurationError, MicropubSyncError, ParseError
from ..validators import SUPPORTED_MEDIA_TYPES, guess_media_type
from .merger import attempt_merge, generate_diff
from .models import (
    REMOTE_SECTIONS,
    ConflictInfo,
    ConflictPolicy,
    ReconciledView,
    Section,
    SectionView,
    SyncRecord,
    section_for,
)
from .state import content_hash

if TYPE_CHECKING:
    from ..core.client import ApiClient
    from ..file_handler import Workspace
    from .state import SyncStateStore

logger = logging.getLogger(__name__)

MARKDOWN_SUFFIXES = (".md", ".markdown")
CONTENT_SUBDIRS = ("", "drafts", "published", "pages")
MEDIA_SUFFIXES = tuple(
    ext for exts in SUPPORTED_MEDIA_TYPES.values() for ext in exts
)


# ---------------------------------------------------------------------------
# Pure merge
# ---------------------------------------------------------------------------


def _family(entity: ContentEntity) -> str:
    return "upload" if entity.kind == EntityKind.UPLOAD else "content"


def _sort_key(entity: ContentEntity) -> tuple:
    if entity.published_at is not None:
        return (0, -entity.published_at.timestamp(), "", entity.id)
    return (1, 0.0, entity.local_path or entity.id, entity.id)


def _dedupe(
    entities: Iterable[ContentEntity], origin: str, duplicates: list[str]
) -> list[ContentEntity]:
    seen: set[str] = set()
    unique: list[ContentEntity] = []
    for entity in entities:
        if entity.id in seen:
            where = entity.local_path or entity.remote_url or entity.id
            duplicates.append(f"{origin} {entity.id} ({where})")
            continue
        seen.add(entity.id)
        unique.append(entity)
    return unique


def is_conflict(
    local: ContentEntity,
    remote: ContentEntity,
    record: SyncRecord | None,
    policy: ConflictPolicy,
) -> bool:
    """Apply *policy* to a joined pair; no record means no conflict."""
    if record is None or policy == ConflictPolicy.NEVER:
        return False

    remote_is_newer = (
        remote.published_at is not None
        and record.last_synced is not None
        and remote.published_at > record.last_synced
    )
    local_changed = content_hash(local.body) != record.base_hash

    match policy:
        case ConflictPolicy.STALE_LOCAL_EDIT:
            return remote_is_newer and local_changed
        case ConflictPolicy.REMOTE_NEWER:
            return remote_is_newer
        case ConflictPolicy.BOTH_CHANGED:
            remote_changed = content_hash(remote.body) != record.base_hash
            return local_changed and remote_changed
    return False


def describe_conflict(
    local: ContentEntity,
    remote: ContentEntity,
    record: SyncRecord,
    policy: ConflictPolicy,
) -> ConflictInfo:
    merged = None
    has_markers = False
    if record.base_content is not None:
        merged, has_markers = attempt_merge(
            record.base_content, local.body, remote.body
        )
    return ConflictInfo(
        id=remote.id,
        policy=policy,
        local_path=local.local_path,
        remote_url=remote.remote_url,
        last_synced=record.last_synced,
        remote_published_at=remote.published_at,
        diff=generate_diff(
            remote.body,
            local.body,
            label_old=f"remote:{remote.remote_url}",
            label_new=f"local:{local.local_path}",
        ),
        merged_preview=merged,
        has_markers=has_markers,
    )


def _join(local: ContentEntity, remote: ContentEntity) -> ContentEntity:
    media = local.media
    if media is not None and remote.media is not None:
        media = media.model_copy(update={"url": remote.media.url})
    return local.model_copy(
        deep=True,
        update={
            "id": remote.id,
            "status": remote.status,
            "remote_url": remote.remote_url,
            "published_at": remote.published_at,
            "categories": list(remote.categories or local.categories),
            "media": media if media is not None else remote.media,
        },
    )


def merge_entities(
    local: Iterable[ContentEntity],
    remote: Iterable[ContentEntity],
    records: Mapping[str, SyncRecord] | None = None,
    policy: ConflictPolicy = ConflictPolicy.STALE_LOCAL_EDIT,
    *,
    unavailable: Mapping[Section, str] | None = None,
    parse_errors: Mapping[str, str] | None = None,
) -> ReconciledView:
    """Merge local and remote snapshots into a ``ReconciledView``.

    Inputs are never modified; the view holds copies.  The same inputs
    always produce an equal view.

    Args:
        local: Entities decoded from workspace files.
        remote: Entities decoded from remote listings.
        records: Sync baselines by id, for conflict detection.
        policy: Conflict policy to apply to joined pairs.
        unavailable: Sections whose data is stale, with the reason.
        parse_errors: Local files that could not be decoded.
    """
    records = records or {}
    duplicates: list[str] = []

    local_list = _dedupe(
        sorted(local, key=lambda e: (e.local_path or "", e.id)),
        "local",
        duplicates,
    )
    remote_list = _dedupe(remote, "remote", duplicates)

    by_url: dict[str, ContentEntity] = {}
    by_slug: dict[tuple[str, str], list[ContentEntity]] = {}
    for entity in remote_list:
        if entity.remote_url:
            by_url.setdefault(entity.remote_url, entity)
        by_slug.setdefault((_family(entity), entity.slug), []).append(entity)

    joined_ids: set[str] = set()
    merged: list[ContentEntity] = []
    conflicts: list[ConflictInfo] = []

    for entity in local_list:
        family = _family(entity)
        partner: ContentEntity | None = None
        linked = entity.linked_url
        if linked:
            candidate = by_url.get(linked)
            if (
                candidate is not None
                and candidate.id not in joined_ids
                and _family(candidate) == family
            ):
                partner = candidate
        elif entity.slug:
            for candidate in by_slug.get((family, entity.slug), []):
                if candidate.id not in joined_ids:
                    partner = candidate
                    break

        if partner is None:
            merged.append(entity.model_copy(deep=True))
            continue

        joined_ids.add(partner.id)
        merged.append(_join(entity, partner))
        record = records.get(partner.id)
        if is_conflict(entity, partner, record, policy):
            conflicts.append(
                describe_conflict(entity, partner, record, policy)
            )

    merged.extend(
        entity.model_copy(deep=True)
        for entity in remote_list
        if entity.id not in joined_ids
    )
    merged = _dedupe(merged, "merged", duplicates)

    buckets: dict[Section, list[ContentEntity]] = {s: [] for s in Section}
    for entity in merged:
        buckets[section_for(entity)].append(entity)

    unavailable = unavailable or {}
    sections = {
        section: SectionView(
            section=section,
            entities=sorted(buckets[section], key=_sort_key),
            available=section not in unavailable,
            error=unavailable.get(section),
        )
        for section in Section
    }

    return ReconciledView(
        sections=sections,
        conflicts=sorted(conflicts, key=lambda c: c.id),
        duplicates=duplicates,
        parse_errors=dict(sorted((parse_errors or {}).items())),
    )


# ---------------------------------------------------------------------------
# Stateful reconciler
# ---------------------------------------------------------------------------


def _as_page(entry) -> ContentEntity:
    entity = from_remote(entry)
    entity.kind = EntityKind.PAGE
    return entity


def _remote_projection(entity: ContentEntity) -> ContentEntity:
    """The remote-only half of a joined entity."""
    return entity.model_copy(
        deep=True, update={"local_path": None, "extra": {}}
    )


def _local_projection(entity: ContentEntity) -> ContentEntity:
    """The file-backed half of a joined entity, as decoding would give it."""
    stem = PurePosixPath(entity.local_path or entity.id).stem
    if entity.kind == EntityKind.UPLOAD:
        entity_id = entity.local_path
    else:
        entity_id = slugify(stem) or stem
    return entity.model_copy(
        deep=True,
        update={
            "id": entity_id,
            "status": EntityStatus.LOCAL_DRAFT,
            "remote_url": None,
            "published_at": None,
        },
    )


class Reconciler:
    """Keep a ``ReconciledView`` of a workspace and a Micropub service.

    The view is built from snapshots: one local snapshot and one remote
    snapshot per remote section.  Every change builds a new view and swaps
    it in, so readers of ``view`` never observe a half-merged state.

    Args:
        client: API client for listings; ``None`` leaves remote sections
            unavailable.
        workspace: Workspace to read local files from.
        state_store: Sync baselines for conflict detection.
        media_endpoint: URL listing uploads; without it the upload section
            is unavailable.
        policy: Conflict policy.
        codec: FrontMatter codec for local files.
        content_dir: Workspace directory holding posts and pages.
        uploads_dir: Workspace directory holding local media.
    """

    def __init__(
        self,
        client: ApiClient | None = None,
        workspace: Workspace | None = None,
        state_store: SyncStateStore | None = None,
        *,
        media_endpoint: str | None = None,
        policy: ConflictPolicy = ConflictPolicy.STALE_LOCAL_EDIT,
        codec: FrontMatterCodec | None = None,
        content_dir: str = "content",
        uploads_dir: str = "uploads",
    ) -> None:
        self.client = client
        self.workspace = workspace
        self.state_store = state_store
        self.media_endpoint = media_endpoint
        self.policy = ConflictPolicy(policy)
        self.codec = codec or DEFAULT_CODEC
        self.content_dir = content_dir
        self.uploads_dir = uploads_dir

        self._local: list[ContentEntity] = []
        self._remote: dict[Section, list[ContentEntity]] = {
            s: [] for s in REMOTE_SECTIONS
        }
        self._errors: dict[Section, str] = {}
        self._parse_errors: dict[str, str] = {}
        self._fetches: dict[Section, asyncio.Task] = {}
        self._view = ReconciledView.empty()

    @property
    def view(self) -> ReconciledView:
        return self._view

    # ------------------------------------------------------------------
    # View building
    # ------------------------------------------------------------------

    def _records(self) -> dict[str, SyncRecord]:
        return self.state_store.records() if self.state_store else {}

    def _rebuild(self) -> ReconciledView:
        remote = [e for s in REMOTE_SECTIONS for e in self._remote[s]]
        view = merge_entities(
            self._local,
            remote,
            self._records(),
            self.policy,
            unavailable=self._errors,
            parse_errors=self._parse_errors,
        )
        self._view = view
        return view

    def merge(
        self,
        local: Iterable[ContentEntity],
        remote: Iterable[ContentEntity],
    ) -> ReconciledView:
        """Replace both snapshots with the given entities and rebuild."""
        self._local = list(local)
        self._remote = {s: [] for s in REMOTE_SECTIONS}
        for entity in remote:
            self._remote[section_for(entity)].append(entity)
        self._errors = {}
        return self._rebuild()

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh(
        self, sections: Iterable[Section | str] | None = None
    ) -> ReconciledView:
        """Reload local files and re-fetch remote sections concurrently.

        A section whose fetch fails or is cancelled keeps its previous
        snapshot and is marked unavailable; other sections are unaffected.

        Args:
            sections: Remote sections to fetch; all of them by default.
        """
        wanted = [
            Section(s) for s in (sections or REMOTE_SECTIONS)
            if Section(s) in REMOTE_SECTIONS
        ]

        for section in wanted:
            previous = self._fetches.get(section)
            if previous is not None and not previous.done():
                previous.cancel()
            self._fetches[section] = asyncio.create_task(
                self._fetch_section(section),
                name=f"fetch-{section.value}",
            )
        fetches = [self._fetches[s] for s in wanted]

        if self.workspace is not None:
            try:
                self._local, self._parse_errors = await self._load_local()
            except BaseException:
                for task in fetches:
                    task.cancel()
                raise
        results = await asyncio.gather(*fetches, return_exceptions=True)

        for section, task, result in zip(wanted, fetches, results):
            if self._fetches.get(section) is task:
                del self._fetches[section]
            self._apply_fetch(section, result)

        if self.state_store is not None:
            await run_sync(self.state_store.load)
        view = self._rebuild()
        logger.info(
            "Reconciled %d entities (%d conflicts, unavailable: %s)",
            len(view.entities()),
            len(view.conflicts),
            ", ".join(s.value for s in view.unavailable) or "none",
        )
        return view

    def _apply_fetch(self, section: Section, result) -> None:
        if isinstance(result, list):
            self._remote[section] = result
            self._errors.pop(section, None)
            return
        if isinstance(result, asyncio.CancelledError):
            message = "fetch cancelled"
        elif isinstance(result, MicropubSyncError):
            message = f"{result.kind.value}: {result.message}"
        elif isinstance(result, Exception):
            logger.error(
                "Unexpected error fetching %s", section.value, exc_info=result
            )
            message = f"{type(result).__name__}: {result}"
        else:
            raise result
        logger.warning(
            "Section %s unavailable, keeping last snapshot: %s",
            section.value,
            message,
        )
        self._errors[section] = message

    def cancel(self, section: Section | str) -> bool:
        """Cancel the in-flight fetch of one section only."""
        task = self._fetches.get(Section(section))
        if task is None or task.done():
            return False
        return task.cancel()

    async def _fetch_section(self, section: Section) -> list[ContentEntity]:
        if self.client is None:
            raise ConfigurationError("No Micropub client configured")

        match section:
            case Section.UPLOAD:
                if not self.media_endpoint:
                    raise ConfigurationError("No media endpoint configured")
                response = await send(
                    self.client, "list media", "GET",
                    self.media_endpoint, query={"q": "source"},
                )
                decoder = from_media_item
            case Section.PAGE:
                response = await send(
                    self.client, "list pages", "GET",
                    query={"q": "source", "mp-channel": "pages"},
                )
                decoder = _as_page
            case Section.REMOTE_DRAFT:
                response = await send(
                    self.client, "list drafts", "GET",
                    query={"q": "source", "post-status": "draft"},
                )
                decoder = from_remote
            case _:
                response = await send(
                    self.client, "list posts", "GET",
                    query={"q": "source"},
                )
                decoder = from_remote

        body = expect_json(response, f"list {section.value}")
        entities, skipped = parse_source_response(body, decoder)
        if skipped:
            logger.warning(
                "%s: skipped %d malformed items", section.value, skipped
            )
        # listings may include entries of other sections
        return [e for e in entities if section_for(e) == section]

    async def _load_local(
        self,
    ) -> tuple[list[ContentEntity], dict[str, str]]:
        paths: list[str] = []
        for sub in CONTENT_SUBDIRS:
            rel_dir = f"{self.content_dir}/{sub}" if sub else self.content_dir
            paths.extend(
                await self.workspace.list_files(rel_dir, MARKDOWN_SUFFIXES)
            )
        media_paths = await self.workspace.list_files(
            self.uploads_dir, MEDIA_SUFFIXES
        )

        results = await asyncio.gather(
            *(self._decode_file(p) for p in paths), return_exceptions=True
        )
        entities: list[ContentEntity] = []
        errors: dict[str, str] = {}
        for path, result in zip(paths, results):
            if isinstance(result, ContentEntity):
                entities.append(result)
            elif isinstance(result, (ParseError, OSError, ValueError)):
                logger.warning("Cannot read %s: %s", path, result)
                errors[path] = str(result)
            else:
                raise result

        entities.extend(self._upload_entity(p) for p in media_paths)
        return entities, errors

    async def _decode_file(self, path: str) -> ContentEntity:
        text = await self.workspace.read_text(path)
        return self.codec.decode(text, path)

    @staticmethod
    def _upload_entity(path: str) -> ContentEntity:
        name = PurePosixPath(path).name
        return ContentEntity(
            id=path,
            title=name,
            kind=EntityKind.UPLOAD,
            status=EntityStatus.LOCAL_DRAFT,
            local_path=path,
            media=MediaItem(
                file_name=name,
                mime_type=guess_media_type(name),
                source_path=path,
            ),
        )

    # ------------------------------------------------------------------
    # Updates from the pipelines
    # ------------------------------------------------------------------

    def record_published(
        self, entity: ContentEntity, previous_path: str | None = None
    ) -> ReconciledView:
        """Adopt the remote identity of a freshly published entity.

        The remote copy replaces any snapshot entry with the same id, and
        the local snapshot entry for the same file is refreshed.

        Args:
            entity: The published entity, already carrying its remote URL.
            previous_path: Where the file lived before it was moved; that
                local entry is dropped.
        """
        remote = _remote_projection(entity)
        for section in REMOTE_SECTIONS:
            self._remote[section] = [
                e for e in self._remote[section] if e.id != remote.id
            ]
        self._remote[section_for(remote)].append(remote)

        if previous_path:
            self._local = [e for e in self._local if e.local_path != previous_path]
            self._parse_errors.pop(previous_path, None)
        if entity.local_path:
            self._replace_local(_local_projection(entity))

        logger.debug("Recorded publish of %s", remote.id)
        return self._rebuild()

    def record_local(self, entity: ContentEntity) -> ReconciledView:
        """Add (or refresh) a local file entry without rescanning the workspace."""
        if not entity.local_path:
            raise ValueError("record_local needs an entity with a local_path")
        self._replace_local(_local_projection(entity))
        logger.debug("Recorded local file %s", entity.local_path)
        return self._rebuild()

    def _replace_local(self, local: ContentEntity) -> None:
        self._local = [
            e for e in self._local if e.local_path != local.local_path
        ] + [local]
        self._parse_errors.pop(local.local_path, None)

    def remote_entity(self, entity_id: str) -> ContentEntity | None:
        """The remote snapshot copy of an entity, as the service sent it."""
        current = self._view.find(entity_id)
        wanted = {entity_id}
        if current is not None and current.remote_url:
            wanted.add(current.remote_url)
        for section in REMOTE_SECTIONS:
            for entity in self._remote[section]:
                if entity.id in wanted:
                    return entity.model_copy(deep=True)
        return None

    def forget(self, entity_id: str) -> ReconciledView:
        """Drop an entity (and its local file entry) from the snapshots."""
        current = self._view.find(entity_id)
        ids = {entity_id}
        paths: set[str] = set()
        if current is not None:
            ids.add(current.id)
            if current.local_path:
                paths.add(current.local_path)

        for section in REMOTE_SECTIONS:
            self._remote[section] = [
                e for e in self._remote[section] if e.id not in ids
            ]
        self._local = [
            e
            for e in self._local
            if e.id not in ids and e.local_path not in paths
        ]
        return self._rebuild()

