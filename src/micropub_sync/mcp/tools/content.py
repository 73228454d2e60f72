"""MCP tool handlers for posts, pages and drafts.

Defines seven tools:

- ``content_refresh`` -- reload the workspace and re-fetch remote sections.
- ``content_conflicts`` -- diff and merge preview of flagged conflicts.
- ``content_preview`` -- render an entity as HTML.
- ``content_create`` -- write a new local draft file.
- ``content_publish`` -- publish (or update) an entity.
- ``content_pull`` -- write a remote entry into the workspace.
- ``content_delete`` -- delete an entity remotely and locally.

Entities are addressed by id, workspace path or remote URL, as found in the
current view.  Handlers work on copies; the view itself is only replaced by
the reconciler.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import mcp.types as types

from ...content.models import ContentEntity, EntityKind
from ...converters.preview import excerpt, preview_entity
from ...errors import ConflictError, ValidationError
from ...pipeline.drafts import create_draft
from ...pipeline.pull import pull
from ...sync.models import REMOTE_SECTIONS
from ...sync.reporter import format_conflict, format_view, view_to_json
from .errors import result_error
from .registry import ToolSpec

if TYPE_CHECKING:
    from ..context import ServiceContext

logger = logging.getLogger(__name__)

_ID_PROPERTY = {
    "type": "string",
    "description": "Entity id, workspace path or remote URL",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require(args: dict[str, Any], key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{key} is required")
    return value.strip()


def _lookup(context: ServiceContext, entity_id: str) -> ContentEntity:
    """Copy of the entity in the current view.

    Raises:
        ValidationError: If the view has no such entity.
    """
    entity = context.reconciler.view.find(entity_id)
    if entity is None:
        raise ValidationError(
            f"No entity '{entity_id}' in the current view. "
            "Run content_refresh to reload it."
        )
    return entity.model_copy(deep=True)


def _text(text: str, structured: dict[str, Any]) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
    )


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_refresh(
    context: ServiceContext, args: dict[str, Any]
) -> types.CallToolResult:
    sections = args.get("sections") or None
    view = await context.reconciler.refresh(sections)
    return _text(format_view(view) or "Nothing to show.", view_to_json(view))


async def _handle_conflicts(
    context: ServiceContext, args: dict[str, Any]
) -> types.CallToolResult:
    conflicts = context.reconciler.view.conflicts
    wanted = args.get("id")
    if wanted:
        conflicts = [
            c
            for c in conflicts
            if wanted in (c.id, c.local_path, c.remote_url)
        ]
        if not conflicts:
            raise ValidationError(f"No conflict recorded for '{wanted}'")

    if not conflicts:
        return _text("No conflicts.", {"conflicts": []})
    return _text(
        "\n\n".join(format_conflict(c) for c in conflicts),
        {"conflicts": [c.model_dump(mode="json") for c in conflicts]},
    )


async def _handle_preview(
    context: ServiceContext, args: dict[str, Any]
) -> types.CallToolResult:
    entity = _lookup(context, _require(args, "id"))
    result = preview_entity(entity)
    return _text(
        result.text,
        {
            "id": entity.id,
            "html": result.text,
            "excerpt": excerpt(entity.body),
            "warnings": list(result.warnings),
        },
    )


async def _handle_create(
    context: ServiceContext, args: dict[str, Any]
) -> types.CallToolResult:
    title = _require(args, "title")
    body = args.get("body") or ""
    kind = EntityKind.PAGE if args.get("type") == "page" else EntityKind.POST
    entity = await create_draft(
        context.workspace,
        title,
        body,
        kind=kind,
        codec=context.codec,
        content_dir=context.config.content_dir,
        reconciler=context.reconciler,
    )
    return _text(f"Created {entity.local_path}", entity.summary())


async def _handle_publish(
    context: ServiceContext, args: dict[str, Any]
) -> types.CallToolResult:
    entity = _lookup(context, _require(args, "id"))
    post_status = "draft" if args.get("as_draft") else None
    result = await context.publisher.publish(entity, post_status=post_status)
    if not result.ok:
        return result_error(result)

    lines = [f"Published {result.entity_id} at {result.url}"]
    if result.message:
        lines.append(f"Warning: {result.message}")
    lines.append("")
    lines.append(f"Markdown: {result.embed_snippets['markdown']}")
    lines.append(f"HTML: {result.embed_snippets['html']}")
    return _text("\n".join(lines), result.to_dict())


async def _handle_pull(
    context: ServiceContext, args: dict[str, Any]
) -> types.CallToolResult:
    entity_id = _require(args, "id")
    entity = _lookup(context, entity_id)
    remote = context.reconciler.remote_entity(entity.id)
    if remote is None:
        raise ValidationError(
            f"'{entity_id}' has no remote entry to pull"
        )

    path = None
    if entity.local_path:
        if not args.get("overwrite", False):
            raise ConflictError(
                f"'{entity_id}' is already linked to {entity.local_path}; "
                "pass overwrite=true to replace that file"
            )
        path = entity.local_path

    local = await pull(
        remote,
        context.workspace,
        context.state_store,
        context.codec,
        context.config.content_dir,
        reconciler=context.reconciler,
        path=path,
    )
    return _text(
        f"Pulled {remote.remote_url} into {local.local_path}",
        local.summary(),
    )


async def _handle_delete(
    context: ServiceContext, args: dict[str, Any]
) -> types.CallToolResult:
    entity = _lookup(context, _require(args, "id"))
    result = await context.publisher.delete(entity)
    if not result.ok:
        return result_error(result)
    where = " and ".join(
        part for part in (entity.remote_url, entity.local_path) if part
    )
    text = f"Deleted {where}"
    payload = {"ok": True, "id": result.entity_id, "url": result.url}
    if result.message:
        text += f"\nWarning: {result.message}"
        payload["warning"] = result.message
    return _text(text, payload)


# ---------------------------------------------------------------------------
# Tool specs
# ---------------------------------------------------------------------------


CONTENT_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=types.Tool(
            name="content_refresh",
            description=(
                "Reload local Markdown files and re-fetch remote posts, "
                "drafts, pages and uploads. Returns the reconciled view by "
                "section; a section that could not be fetched is marked "
                "unavailable and keeps its last known entries."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=True,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "sections": {
                        "type": "array",
                        "items": {
                            "type": "string",
                            "enum": [s.value for s in REMOTE_SECTIONS],
                        },
                        "description": (
                            "Remote sections to re-fetch (default: all)"
                        ),
                    },
                },
                "required": [],
            },
        ),
        handler=_handle_refresh,
    ),
    ToolSpec(
        tool=types.Tool(
            name="content_conflicts",
            description=(
                "Show the conflicts found by the last refresh: a unified "
                "diff from the remote to the local body and, when a sync "
                "baseline exists, a three-way merge preview."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=True,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema={
                "type": "object",
                "properties": {"id": _ID_PROPERTY},
                "required": [],
            },
        ),
        handler=_handle_conflicts,
    ),
    ToolSpec(
        tool=types.Tool(
            name="content_preview",
            description=(
                "Render an entity's title and Markdown body as HTML, with "
                "a plain-text excerpt."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=True,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema={
                "type": "object",
                "properties": {"id": _ID_PROPERTY},
                "required": ["id"],
            },
        ),
        handler=_handle_preview,
    ),
    ToolSpec(
        tool=types.Tool(
            name="content_create",
            description=(
                "Create a new local draft file named after the title's "
                "slug, in the drafts folder (posts) or the pages folder. "
                "Nothing is sent to the site until content_publish."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=False,
                idempotentHint=False,
                openWorldHint=False,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "title": {"type": "string", "description": "Post title"},
                    "body": {
                        "type": "string",
                        "description": "Markdown body (default: empty)",
                    },
                    "type": {
                        "type": "string",
                        "enum": ["post", "page"],
                        "default": "post",
                    },
                },
                "required": ["title"],
            },
        ),
        handler=_handle_create,
    ),
    ToolSpec(
        tool=types.Tool(
            name="content_publish",
            description=(
                "Publish a local draft, or push the local version of an "
                "already published entry as an update. The file's "
                "front-matter gains the remote url. Failures report the "
                "error kind; rate limits include the seconds to wait. "
                "Nothing is retried automatically."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=False,
                idempotentHint=False,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "id": _ID_PROPERTY,
                    "as_draft": {
                        "type": "boolean",
                        "default": False,
                        "description": "Create a remote draft instead",
                    },
                },
                "required": ["id"],
            },
        ),
        handler=_handle_publish,
    ),
    ToolSpec(
        tool=types.Tool(
            name="content_pull",
            description=(
                "Write a remote post, draft or page into the workspace as "
                "a Markdown file with front-matter, and record it as the "
                "sync baseline."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=False,
                idempotentHint=False,
                openWorldHint=False,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "id": _ID_PROPERTY,
                    "overwrite": {
                        "type": "boolean",
                        "default": False,
                        "description": (
                            "Replace the linked local file if there is one"
                        ),
                    },
                },
                "required": ["id"],
            },
        ),
        handler=_handle_pull,
    ),
    ToolSpec(
        tool=types.Tool(
            name="content_delete",
            description=(
                "Delete an entity: the remote entry (if published) and the "
                "local file (if any), plus its sync record."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=True,
                idempotentHint=False,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {"id": _ID_PROPERTY},
                "required": ["id"],
            },
        ),
        handler=_handle_delete,
    ),
]
