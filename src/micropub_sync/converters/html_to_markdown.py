"""Best-effort HTML to Markdown rendering using lxml.

Remote entries usually carry rendered HTML; the local workspace holds
Markdown.  The conversion is one-directional and lossy: block tags map to
their Markdown equivalents, recognised inline tags become emphasis, code,
links and images, and anything else is stripped while its text is kept.
"""

import re

from lxml import html as lxml_html

from .common import ConversionResult

_BLOCK_CONTAINERS = frozenset(
    {
        "article", "aside", "body", "dd", "div", "dl", "dt", "figcaption",
        "figure", "footer", "header", "main", "nav", "section", "table",
        "tbody", "td", "tfoot", "th", "thead", "tr",
    }
)
_BLOCK_TAGS = _BLOCK_CONTAINERS | {
    "blockquote", "h1", "h2", "h3", "h4", "h5", "h6", "hr", "ol", "p",
    "pre", "ul",
}
_DROPPED = frozenset({"script", "style", "template", "noscript"})
_PLAIN_INLINE = frozenset(
    {"abbr", "cite", "mark", "q", "small", "span", "sub", "sup", "time", "u"}
)
_TABLE_TAGS = frozenset({"table", "tr", "td", "th"})

_WHITESPACE = re.compile(r"\s+")
_BLANK_RUNS = re.compile(r"\n{3,}")


def _squash(text: str | None) -> str:
    return _WHITESPACE.sub(" ", text) if text else ""


def _finish_paragraph(text: str) -> str:
    return "\n".join(line.strip() for line in text.split("\n")).strip()


def _wrap(inner: str, marker: str) -> str:
    """Wrap *inner* in *marker*, keeping surrounding spaces outside it."""
    core = inner.strip()
    if not core:
        return inner
    lead = " " if inner[:1].isspace() else ""
    trail = " " if inner[-1:].isspace() else ""
    return f"{lead}{marker}{core}{marker}{trail}"


class HtmlToMarkdown:
    """Converter from an HTML fragment to Markdown text."""

    def __init__(self):
        self.warnings: list[str] = []
        self._stripped: set[str] = set()

    def convert(self, html_text: str) -> ConversionResult:
        """
        Render an HTML fragment as Markdown.

        Args:
            html_text: HTML fragment (or full document)

        Returns:
            ConversionResult with Markdown text and warnings naming the tags
            that were stripped
        """
        self.warnings = []
        self._stripped = set()

        if not html_text or not html_text.strip():
            return ConversionResult(
                text="",
                source_format="html",
                target_format="markdown",
                converted=True,
            )

        root = lxml_html.fragment_fromstring(html_text, create_parent="div")
        text = _BLANK_RUNS.sub("\n\n", self._blocks(root)).strip()

        if self._stripped & _TABLE_TAGS:
            self.warnings.append("Tables flattened to paragraphs")
        unknown = sorted(self._stripped - _TABLE_TAGS)
        if unknown:
            self.warnings.append(
                "Unsupported tags stripped (text kept): " + ", ".join(unknown)
            )

        return ConversionResult(
            text=text,
            source_format="html",
            target_format="markdown",
            converted=True,
            warnings=self.warnings,
        )

    # -- block level ---------------------------------------------------------

    def _blocks(self, node, sep: str = "\n\n") -> str:
        """Render the children of a block container."""
        blocks: list[str] = []
        pending: list[str] = [_squash(node.text)]

        for child in node:
            if isinstance(child.tag, str):
                tag = child.tag.lower()
                if tag in _BLOCK_TAGS:
                    paragraph = _finish_paragraph("".join(pending))
                    if paragraph:
                        blocks.append(paragraph)
                    pending = []
                    rendered = self._block(child, tag)
                    if rendered:
                        blocks.append(rendered)
                elif tag not in _DROPPED:
                    pending.append(self._inline(child, tag))
            pending.append(_squash(child.tail))

        paragraph = _finish_paragraph("".join(pending))
        if paragraph:
            blocks.append(paragraph)
        return sep.join(blocks)

    def _block(self, node, tag: str) -> str:
        match tag:
            case "p":
                return _finish_paragraph(self._inline_children(node))
            case "h1" | "h2" | "h3" | "h4" | "h5" | "h6":
                title = _finish_paragraph(self._inline_children(node))
                title = title.replace("\n", " ")
                return f"{'#' * int(tag[1])} {title}" if title else ""
            case "hr":
                return "---"
            case "pre":
                return self._code_block(node)
            case "blockquote":
                inner = self._blocks(node)
                return "\n".join(
                    f"> {line}" if line else ">" for line in inner.split("\n")
                )
            case "ul" | "ol":
                return self._list(node, ordered=tag == "ol")
            case _:
                if tag in _TABLE_TAGS:
                    self._stripped.add(tag)
                return self._blocks(node)

    def _code_block(self, node) -> str:
        language = ""
        code = next(node.iter("code"), None)
        if code is not None:
            for cls in (code.get("class") or "").split():
                if cls.startswith("language-"):
                    language = cls[len("language-"):]
                    break
        code_text = node.text_content().strip("\n")
        return f"```{language}\n{code_text}\n```"

    def _list(self, node, ordered: bool) -> str:
        items: list[str] = []
        number = 0
        for child in node:
            if not isinstance(child.tag, str) or child.tag.lower() != "li":
                continue
            number += 1
            marker = f"{number}. " if ordered else "- "
            content = self._blocks(child, sep="\n") or ""
            lines = content.split("\n")
            indent = " " * len(marker)
            rendered = [marker + lines[0]] + [
                indent + line if line else "" for line in lines[1:]
            ]
            items.append("\n".join(rendered))
        return "\n".join(items)

    # -- inline level --------------------------------------------------------

    def _inline_children(self, node) -> str:
        parts = [_squash(node.text)]
        for child in node:
            if isinstance(child.tag, str):
                tag = child.tag.lower()
                if tag not in _DROPPED:
                    parts.append(self._inline(child, tag))
            parts.append(_squash(child.tail))
        return "".join(parts)

    def _inline(self, node, tag: str) -> str:
        match tag:
            case "br":
                return "\n"
            case "img":
                src = node.get("src") or ""
                alt = node.get("alt") or ""
                return f"![{alt}]({src})" if src else alt
            case "a":
                label = self._inline_children(node).strip()
                href = node.get("href")
                if not href:
                    return label
                return f"[{label or href}]({href})"
            case "strong" | "b":
                return _wrap(self._inline_children(node), "**")
            case "em" | "i":
                return _wrap(self._inline_children(node), "*")
            case "del" | "s" | "strike":
                return _wrap(self._inline_children(node), "~~")
            case "code" | "kbd" | "samp":
                text = node.text_content()
                fence = "``" if "`" in text else "`"
                return f"{fence}{text}{fence}" if text else ""
            case _:
                if tag in _BLOCK_TAGS:
                    # block inside inline context (e.g. <a><div>..</div></a>)
                    return " " + self._inline_children(node) + " "
                if tag not in _PLAIN_INLINE:
                    self._stripped.add(tag)
                return self._inline_children(node)


def html_to_markdown(html_text: str) -> ConversionResult:
    """
    Convert an HTML fragment to Markdown.

    Args:
        html_text: HTML formatted text

    Returns:
        ConversionResult with Markdown text and warnings about lossy conversions
    """
    return HtmlToMarkdown().convert(html_text)
