"""MCP tool handler for media uploads.

Defines one tool:

- ``media_upload`` -- upload a workspace image to the media endpoint and
  return Markdown and HTML embed snippets.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import mcp.types as types

from ...errors import ValidationError
from ...pipeline.upload import MediaAsset
from .errors import result_error
from .registry import ToolSpec

if TYPE_CHECKING:
    from ..context import ServiceContext

logger = logging.getLogger(__name__)


async def _handle_media_upload(
    context: ServiceContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``media_upload`` tool."""
    path = args.get("path")
    if not isinstance(path, str) or not path.strip():
        raise ValidationError("path is required")
    path = path.strip()

    try:
        size = await context.workspace.size(path)
    except OSError as e:
        raise ValidationError(f"Cannot read {path}: {e}") from e

    asset = MediaAsset.from_file(path, size, args.get("mime_type"))
    result = await context.uploader.upload(asset, alt=args.get("alt"))
    if not result.ok:
        return result_error(result)

    text = "\n".join(
        [
            f"Uploaded {asset.file_name} to {result.url}",
            "",
            f"Markdown: {result.embed_snippets['markdown']}",
            f"HTML: {result.embed_snippets['html']}",
        ]
    )
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=result.to_dict(),
    )


MEDIA_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=types.Tool(
            name="media_upload",
            description=(
                "Upload a JPEG, PNG or GIF file from the workspace (up to "
                "10 MB) to the media endpoint. Returns the hosted URL with "
                "Markdown and HTML embed snippets."
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
                    "path": {
                        "type": "string",
                        "description": "Workspace-relative file path",
                    },
                    "alt": {
                        "type": "string",
                        "description": (
                            "Alt text for the snippets (default: file name "
                            "of the hosted URL)"
                        ),
                    },
                    "mime_type": {
                        "type": "string",
                        "description": (
                            "MIME type (default: from the file extension)"
                        ),
                    },
                },
                "required": ["path"],
            },
        ),
        handler=_handle_media_upload,
    ),
]
