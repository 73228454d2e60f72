"""Markdown rendering for previews using mistune.

Produces the HTML a reader would roughly see once the service renders the
post, plus a plain-text excerpt for listings.
"""

from typing import Any

import mistune

from ..content.models import ContentEntity
from .common import ConversionResult

_PLUGINS = ["table", "strikethrough", "url"]


class PreviewRenderer(mistune.HTMLRenderer):
    """HTML renderer with lazy-loading images."""

    NAME = "html"

    def image(self, text: str, url: str, title=None) -> str:
        """Render image with ``loading="lazy"``."""
        rendered = super().image(text, url, title)
        return rendered.replace("<img ", '<img loading="lazy" ', 1)


def render_html(markdown_text: str) -> str:
    """
    Render Markdown to HTML.

    Args:
        markdown_text: Markdown formatted text

    Returns:
        HTML string (raw HTML in the source is escaped)
    """
    markdown = mistune.create_markdown(
        renderer=PreviewRenderer(escape=True), plugins=_PLUGINS
    )
    result: str = markdown(markdown_text)  # type: ignore[assignment]
    return result.strip()


def _collect_text(tokens: list[dict[str, Any]], parts: list[str]) -> None:
    for token in tokens:
        if token.get("type") in ("text", "codespan") and "raw" in token:
            parts.append(token["raw"])
        elif token.get("type") in ("softbreak", "linebreak"):
            parts.append(" ")
        if "children" in token:
            _collect_text(token["children"], parts)
            parts.append(" ")


def excerpt(markdown_text: str, limit: int = 160) -> str:
    """Plain-text excerpt of *markdown_text*, cut at a word boundary."""
    parse = mistune.create_markdown(renderer="ast", plugins=_PLUGINS)
    tokens: list = parse(markdown_text)  # type: ignore[assignment]
    parts: list[str] = []
    _collect_text(tokens, parts)
    text = " ".join("".join(parts).split())
    if len(text) <= limit:
        return text
    cut = text[:limit].rsplit(" ", 1)[0]
    return cut.rstrip(".,;:") + "…"


def preview_entity(entity: ContentEntity) -> ConversionResult:
    """Render an entity's title and body as one HTML document fragment."""
    body = entity.body
    if entity.title.strip():
        body = f"# {entity.title.strip()}\n\n{body}"
    warnings = []
    if "<" in entity.body and "</" in entity.body:
        warnings.append(
            "Raw HTML is escaped in the preview; the service may render it."
        )
    return ConversionResult(
        text=render_html(body),
        source_format="markdown",
        target_format="html",
        converted=True,
        warnings=warnings,
    )
