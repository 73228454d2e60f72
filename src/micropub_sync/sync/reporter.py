"""Text and JSON renderings of a ``ReconciledView``.

- ``format_view`` -- section-by-section listing for humans.
- ``format_conflict`` -- diff and merge preview of one conflict.
- ``view_to_json`` -- structured dict for MCP ``structuredContent``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .models import Section

if TYPE_CHECKING:
    from .models import ConflictInfo, ReconciledView

SECTION_TITLES = {
    Section.PUBLISHED: "Published",
    Section.REMOTE_DRAFT: "Remote drafts",
    Section.LOCAL_DRAFT: "Local drafts",
    Section.PAGE: "Pages",
    Section.UPLOAD: "Uploads",
}

MERGE_PREVIEW_LINES = 20


# ------------------------------------------------------------------
# Human-readable
# ------------------------------------------------------------------


def format_view(view: ReconciledView) -> str:
    """Format every section of *view*, then conflicts and problems.

    Unavailable sections are labelled as such and still list the entities
    of their last successful fetch.
    """
    lines: list[str] = []

    for section in Section:
        section_view = view.sections.get(section)
        if section_view is None:
            continue
        header = f"{SECTION_TITLES[section]} ({len(section_view.entities)})"
        if not section_view.available:
            header += f" [unavailable: {section_view.error}]"
        lines.append(header)
        for entity in section_view.entities:
            title = entity.title or "(untitled)"
            where = entity.local_path or entity.remote_url or entity.id
            stamp = (
                entity.published_at.strftime("%Y-%m-%d")
                if entity.published_at
                else "-"
            )
            lines.append(f"  {stamp}  {title}  <{where}>")
        lines.append("")

    if view.conflicts:
        lines.append("Conflicts:")
        for conflict in view.conflicts:
            lines.append(
                f"  {conflict.local_path} <-> {conflict.remote_url}"
                f" ({conflict.policy.value})"
            )
        lines.append("")

    if view.parse_errors:
        lines.append("Unreadable files:")
        for path, message in view.parse_errors.items():
            lines.append(f"  {path}: {message}")
        lines.append("")

    if view.duplicates:
        lines.append("Dropped duplicates:")
        for description in view.duplicates:
            lines.append(f"  {description}")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_conflict(conflict: ConflictInfo) -> str:
    """Format a single conflict for review: diff, then merge preview."""
    lines: list[str] = []
    lines.append(f"Conflict: {conflict.local_path} <-> {conflict.remote_url}")
    if conflict.last_synced:
        lines.append(f"Last synced: {conflict.last_synced.isoformat()}")
    if conflict.remote_published_at:
        lines.append(
            f"Remote published: {conflict.remote_published_at.isoformat()}"
        )
    lines.append("")

    if conflict.diff:
        lines.append(conflict.diff.rstrip())
    else:
        lines.append("(no textual differences)")
    lines.append("")

    if conflict.merged_preview is not None:
        lines.append("--- Merge result preview ---")
        merged = conflict.merged_preview.splitlines()
        for line in merged[:MERGE_PREVIEW_LINES]:
            lines.append(f"  {line}")
        if len(merged) > MERGE_PREVIEW_LINES:
            lines.append(
                f"  ... ({len(merged) - MERGE_PREVIEW_LINES} more lines)"
            )
        lines.append("")

    if conflict.has_markers:
        lines.append("WARNING: Merged content contains conflict markers.")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def view_to_json(view: ReconciledView) -> dict:
    """Convert a view to a JSON-serialisable dict.

    Entities are summarised (no bodies); conflicts omit their diffs.
    """
    sections = {}
    for section in Section:
        section_view = view.sections.get(section)
        if section_view is None:
            continue
        entry: dict = {
            "available": section_view.available,
            "entities": [e.summary() for e in section_view.entities],
        }
        if section_view.error:
            entry["error"] = section_view.error
        sections[section.value] = entry

    return {
        "sections": sections,
        "conflicts": [
            {
                "id": c.id,
                "policy": c.policy.value,
                "localPath": c.local_path,
                "remoteUrl": c.remote_url,
                "hasMarkers": c.has_markers,
            }
            for c in view.conflicts
        ],
        "duplicates": list(view.duplicates),
        "parseErrors": dict(view.parse_errors),
    }
