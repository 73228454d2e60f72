"""Conversion between file text, Micropub JSON, HTML and Markdown."""

from .common import (
    ConversionResult,
    escape_link_text,
    link_destination,
    looks_like_html,
)
from .frontmatter import DEFAULT_CODEC, FrontMatterCodec
from .html_to_markdown import HtmlToMarkdown, html_to_markdown
from .preview import excerpt, preview_entity, render_html
from .remote_entry import (
    DecodeResult,
    decode_result,
    from_media_item,
    from_remote,
    parse_published,
    parse_source_response,
    to_delete_payload,
    to_publish_payload,
    to_update_payload,
)

__all__ = [
    "DEFAULT_CODEC",
    "ConversionResult",
    "DecodeResult",
    "FrontMatterCodec",
    "HtmlToMarkdown",
    "decode_result",
    "escape_link_text",
    "excerpt",
    "from_media_item",
    "from_remote",
    "html_to_markdown",
    "link_destination",
    "looks_like_html",
    "parse_published",
    "parse_source_response",
    "preview_entity",
    "render_html",
    "to_delete_payload",
    "to_publish_payload",
    "to_update_payload",
]
