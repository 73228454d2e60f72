"""FrontMatter codec: Markdown file text <-> ``ContentEntity``.

A file is an optional YAML block fenced by a delimiter line (``---`` by
default) followed by a Markdown body::

    ---
    title: My Test Post
    status: draft
    type: post
    url: https://example.com/2024/my-test-post
    ---

    # My Test Post

    Body text.

``title``, ``status`` and ``type`` are interpreted; any other key is kept
in ``ContentEntity.extra`` and written back in its original position.
The field names and delimiter are a persisted contract: drafts written by
earlier versions must keep decoding.
"""

from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath
from typing import Any

import yaml

from ..content.models import ContentEntity, EntityKind, EntityStatus, slugify
from ..errors import ParseError

logger = logging.getLogger(__name__)

STATUS_VALUES = ("draft", "published")
TYPE_VALUES = ("post", "page")
RESERVED_FIELDS = ("title", "status", "type")

_HEADING = re.compile(r"^#[ \t]+(?P<text>.*?)(?:[ \t]+#+)?[ \t]*$")
_LEADING_BLANK_LINES = re.compile(r"\A(?:[ \t]*\n)+")


def _heading_text(line: str) -> str | None:
    match = _HEADING.match(line)
    return match.group("text").strip() if match else None


def _is_title_heading(line: str, title: str) -> bool:
    # "# Issue #" reads as "Issue" but is also the heading written for "Issue #"
    if _HEADING.match(line) is None:
        return False
    return title in (_heading_text(line), line[1:].strip())


def _strip_leading_blank_lines(text: str) -> str:
    return _LEADING_BLANK_LINES.sub("", text)


def _strip_title_headings(body: str, title: str) -> str:
    """Remove every leading ``# title`` heading (and the blank lines after it)."""
    wanted = title.strip()
    if not wanted:
        return body
    while True:
        first, _, rest = body.partition("\n")
        if not _is_title_heading(first, wanted):
            return body
        body = _strip_leading_blank_lines(rest)


class FrontMatterCodec:
    """Convert between file text and ``ContentEntity``.

    Args:
        delimiter: Fence line around the front-matter block.
    """

    def __init__(self, delimiter: str = "---"):
        self.delimiter = delimiter

    def split(self, text: str, path: str = "<memory>") -> tuple[str | None, str]:
        """Separate the front-matter block from the body.

        Returns:
            ``(block, body)``; ``block`` is ``None`` when the file has none.

        Raises:
            ParseError: If the opening fence is never closed.
        """
        text = text.lstrip("\ufeff").replace("\r\n", "\n")
        lines = text.split("\n")
        if not lines or lines[0].rstrip() != self.delimiter:
            return None, text

        for index in range(1, len(lines)):
            if lines[index].rstrip() == self.delimiter:
                block = "\n".join(lines[1:index])
                body = "\n".join(lines[index + 1:])
                return block, body

        raise ParseError(path, "front-matter block is not closed")

    def _parse_block(self, block: str, path: str) -> dict[str, Any]:
        try:
            data = yaml.safe_load(block)
        except yaml.YAMLError as e:
            raise ParseError(path, f"invalid front-matter: {e}") from e
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ParseError(
                path, "front-matter must be a block of key: value pairs"
            )
        return data

    def decode(self, text: str, path: str) -> ContentEntity:
        """Parse file text into a local-draft entity.

        Args:
            text: Full file content.
            path: Workspace-relative POSIX path; the slug of its stem
                becomes the entity id.

        Raises:
            ParseError: If a front-matter block is present but is not a
                valid mapping.
        """
        block, body = self.split(text, path)

        if block is None:
            fields: dict[str, Any] = {}
            title, body = self._title_from_heading(body)
        else:
            fields = self._parse_block(block, path)
            raw_title = fields.get("title")
            title = "" if raw_title is None else str(raw_title)

        status = fields.get("status", "draft")
        if status not in STATUS_VALUES:
            logger.debug("%s: unknown status %r, using draft", path, status)
            status = "draft"
        kind = fields.get("type", "post")
        if kind not in TYPE_VALUES:
            logger.debug("%s: unknown type %r, using post", path, kind)
            kind = "post"

        extra = {k: v for k, v in fields.items() if k not in RESERVED_FIELDS}

        body = _strip_title_headings(_strip_leading_blank_lines(body), title)
        stem = PurePosixPath(path).stem

        return ContentEntity(
            id=slugify(stem) or stem,
            title=title,
            body=body.rstrip(),
            kind=EntityKind(kind),
            status=EntityStatus.LOCAL_DRAFT,
            declared_status=status,
            local_path=path,
            extra=extra,
        )

    @staticmethod
    def _title_from_heading(body: str) -> tuple[str, str]:
        lines = body.split("\n")
        for index, line in enumerate(lines):
            heading = _heading_text(line)
            if heading is not None:
                rest = lines[:index] + lines[index + 1:]
                return heading, "\n".join(rest)
        return "", body

    def encode(self, entity: ContentEntity) -> str:
        """Render an entity as file text.

        Fields are written as ``title``, ``status``, ``type`` and then the
        preserved extras in order.  A ``# title`` heading opens the body
        unless the body already starts with one.

        Raises:
            ValueError: For upload entities, which have no file form.
        """
        if entity.kind == EntityKind.UPLOAD:
            raise ValueError("upload entities have no front-matter form")

        fields: dict[str, Any] = {
            "title": entity.title,
            "status": entity.declared_status,
            "type": entity.kind.value,
        }
        fields.update(
            (k, v) for k, v in entity.extra.items() if k not in RESERVED_FIELDS
        )
        header = yaml.safe_dump(
            fields, sort_keys=False, allow_unicode=True, default_flow_style=False
        )

        parts: list[str] = []
        title = entity.title.strip()
        if title and "\n" not in title:
            first_line = entity.body.split("\n", 1)[0]
            if not _is_title_heading(first_line, title):
                parts.append(f"# {title}")
        if entity.body:
            parts.append(entity.body)

        text = f"{self.delimiter}\n{header}{self.delimiter}\n"
        if parts:
            text += "\n" + "\n\n".join(parts) + "\n"
        return text


DEFAULT_CODEC = FrontMatterCodec()


def decode(text: str, path: str) -> ContentEntity:
    return DEFAULT_CODEC.decode(text, path)


def encode(entity: ContentEntity) -> str:
    return DEFAULT_CODEC.encode(entity)
