"""Reconciliation of a local workspace with a Micropub service.

Modules:

- ``models``     -- ``Section``, ``ConflictPolicy``, ``SyncRecord``,
  ``ConflictInfo``, ``SectionView``, ``ReconciledView``.
- ``reconciler`` -- ``merge_entities`` (pure) and ``Reconciler`` (owns the
  snapshots and the current view).
- ``state``      -- ``SyncStateStore``: per-entity sync baselines on disk.
- ``merger``     -- three-way merge previews via ``merge3``.
- ``reporter``   -- text and JSON renderings of a view.

Usage example
-------------
::

    reconciler = Reconciler(
        client=MicropubClient(config),
        workspace=Workspace("."),
        state_store=SyncStateStore(Path(".micropub")),
        media_endpoint=config.media_endpoint,
    )
    view = await reconciler.refresh()
    print(format_view(view))
"""

from .models import (
    ConflictInfo,
    ConflictPolicy,
    ReconciledView,
    Section,
    SectionView,
    SyncRecord,
    section_for,
)
from .reconciler import Reconciler, merge_entities
from .reporter import format_conflict, format_view, view_to_json
from .state import SyncStateStore, content_hash

__all__ = [
    "ConflictInfo",
    "ConflictPolicy",
    "ReconciledView",
    "Reconciler",
    "Section",
    "SectionView",
    "SyncRecord",
    "SyncStateStore",
    "content_hash",
    "format_conflict",
    "format_view",
    "merge_entities",
    "section_for",
    "view_to_json",
]
