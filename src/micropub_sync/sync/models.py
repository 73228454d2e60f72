"""Pydantic models for reconciliation.

- ``Section``: the buckets a reconciled view is split into.
- ``ConflictPolicy``: when a joined local/remote pair counts as a conflict.
- ``SyncRecord``: persisted baseline of the last successful sync of an id.
- ``ConflictInfo``: details about one detected conflict.
- ``SectionView`` / ``ReconciledView``: the merged, ordered result.

Records, conflicts and views are frozen; a new view replaces the old one
wholesale.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from ..content.models import ContentEntity, EntityKind, EntityStatus


class Section(str, Enum):
    """Buckets of a reconciled view, in display order."""

    PUBLISHED = "published"
    REMOTE_DRAFT = "remote-draft"
    LOCAL_DRAFT = "local-draft"
    PAGE = "page"
    UPLOAD = "upload"


REMOTE_SECTIONS = (
    Section.PUBLISHED,
    Section.REMOTE_DRAFT,
    Section.PAGE,
    Section.UPLOAD,
)


def section_for(entity: ContentEntity) -> Section:
    if entity.kind == EntityKind.UPLOAD:
        return Section.UPLOAD
    if entity.kind == EntityKind.PAGE:
        return Section.PAGE
    match entity.status:
        case EntityStatus.PUBLISHED:
            return Section.PUBLISHED
        case EntityStatus.REMOTE_DRAFT:
            return Section.REMOTE_DRAFT
        case _:
            return Section.LOCAL_DRAFT


class ConflictPolicy(str, Enum):
    """When a joined local/remote pair is reported as a conflict.

    All policies require a sync record for the id; content never synced
    before cannot conflict.

    - ``stale-local-edit``: the remote was published after the last sync
      and the local body differs from the last synced content.
    - ``remote-newer``: the remote was published after the last sync.
    - ``both-changed``: local and remote bodies both differ from the last
      synced content.
    - ``never``: conflicts are not reported.
    """

    STALE_LOCAL_EDIT = "stale-local-edit"
    REMOTE_NEWER = "remote-newer"
    BOTH_CHANGED = "both-changed"
    NEVER = "never"


class SyncRecord(BaseModel):
    """Baseline of the last successful publish or pull of one entity.

    Attributes:
        id: Entity id (the remote URL).
        remote_url: Remote URL at that time.
        local_path: Local file written or read, if any.
        last_synced: When the baseline was recorded.
        base_hash: Normalised hash of the synced body.
        base_content: The synced body, used for merge previews.
    """

    id: str
    remote_url: str | None = None
    local_path: str | None = None
    last_synced: datetime | None = None
    base_hash: str | None = None
    base_content: str | None = None

    model_config = {"frozen": True}


class ConflictInfo(BaseModel):
    """A joined pair that changed on both sides since the last sync.

    Attributes:
        id: Entity id.
        policy: Policy that flagged the pair.
        local_path: Local file.
        remote_url: Remote entry.
        last_synced: Baseline timestamp.
        remote_published_at: Remote timestamp that is newer than the baseline.
        diff: Unified diff from the remote body to the local body.
        merged_preview: Three-way merge of the bodies when a base is known.
        has_markers: Whether ``merged_preview`` contains conflict markers.
    """

    id: str
    policy: ConflictPolicy
    local_path: str | None = None
    remote_url: str | None = None
    last_synced: datetime | None = None
    remote_published_at: datetime | None = None
    diff: str = ""
    merged_preview: str | None = None
    has_markers: bool = False

    model_config = {"frozen": True}


class SectionView(BaseModel):
    """One section of a view.

    An unavailable section keeps the entities of its last successful fetch
    and carries the error that prevented a fresh one.
    """

    section: Section
    entities: list[ContentEntity] = Field(default_factory=list)
    available: bool = True
    error: str | None = None

    model_config = {"frozen": True}


class ReconciledView(BaseModel):
    """Merged, sectioned, ordered view of local and remote content.

    Attributes:
        sections: One ``SectionView`` per ``Section``.
        conflicts: Joined pairs flagged by the conflict policy.
        duplicates: Descriptions of entities dropped for a repeated id.
        parse_errors: Workspace path -> reason, for local files that could
            not be read.
    """

    sections: dict[Section, SectionView] = Field(default_factory=dict)
    conflicts: list[ConflictInfo] = Field(default_factory=list)
    duplicates: list[str] = Field(default_factory=list)
    parse_errors: dict[str, str] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @classmethod
    def empty(cls) -> ReconciledView:
        return cls(sections={s: SectionView(section=s) for s in Section})

    def section(self, section: Section | str) -> SectionView:
        return self.sections[Section(section)]

    def entities(self) -> list[ContentEntity]:
        """All entities in section display order."""
        return [
            entity
            for section in Section
            if section in self.sections
            for entity in self.sections[section].entities
        ]

    def find(self, entity_id: str) -> ContentEntity | None:
        """Look up an entity by id, local path or remote URL."""
        for entity in self.entities():
            if entity_id in (entity.id, entity.local_path, entity.remote_url):
                return entity
        return None

    def section_of(self, entity_id: str) -> Section | None:
        for section in Section:
            view = self.sections.get(section)
            if view and any(e.id == entity_id for e in view.entities):
                return section
        return None

    @property
    def unavailable(self) -> list[Section]:
        return [s for s, v in self.sections.items() if not v.available]
