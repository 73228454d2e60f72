"""Common types and helpers for content conversion."""

import re
from dataclasses import dataclass, field

_HTML_TAG = re.compile(r"<(?:[a-zA-Z][a-zA-Z0-9]*)(?:\s[^>]*)?/?>")


@dataclass
class ConversionResult:
    """Result of a format conversion with lossy-conversion warnings.

    Attributes:
        text: Converted text output
        source_format: Format of the input ('html', 'markdown')
        target_format: Format of the output ('markdown', 'html')
        converted: False when the input was passed through unchanged
        warnings: Elements that could not be represented faithfully
    """

    text: str
    source_format: str = "unknown"
    target_format: str = "unknown"
    converted: bool = False
    warnings: list[str] = field(default_factory=list)


def looks_like_html(text: str) -> bool:
    """True when *text* contains at least one HTML start tag."""
    return bool(_HTML_TAG.search(text))


_LINK_TEXT_SPECIAL = re.compile(r"([\\\[\]])")
_BARE_DESTINATION = re.compile(r"^[^\s()<>]*$")


def escape_link_text(text: str) -> str:
    """Backslash-escape the characters that end Markdown link text early."""
    return _LINK_TEXT_SPECIAL.sub(r"\\\1", text)


def link_destination(url: str) -> str:
    """Markdown link destination for *url*.

    Plain URLs are returned unchanged; one with whitespace, parentheses or
    angle brackets is wrapped in ``<...>`` with angle brackets and line
    breaks percent-encoded.
    """
    if _BARE_DESTINATION.match(url):
        return url
    for char, code in (("<", "%3C"), (">", "%3E"), ("\r", "%0D"), ("\n", "%0A")):
        url = url.replace(char, code)
    return f"<{url}>"
