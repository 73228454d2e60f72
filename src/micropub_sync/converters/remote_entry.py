"""RemoteEntry codec: Micropub JSON <-> ``ContentEntity``.

Inbound, a ``q=source`` item looks like::

    {
        "type": ["h-entry"],
        "properties": {
            "name": ["My Test Post"],
            "content": ["<p>Hello</p>"],
            "url": ["https://example.com/2024/01/05/my-test-post.html"],
            "published": ["2024-01-05T10:00:00+00:00"],
            "post-status": ["published"]
        }
    }

Every property may be a single value or a list; the first element wins.
``decode_result`` never raises: it returns a tagged ``DecodeResult`` so
listing code can skip bad items without assuming any field is present.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any, Callable
from urllib.parse import urlparse

from ..content.models import (
    ContentEntity,
    EntityKind,
    EntityStatus,
    MediaItem,
)
from ..errors import SchemaError
from ..validators import guess_media_type
from .common import looks_like_html
from .html_to_markdown import html_to_markdown

logger = logging.getLogger(__name__)

ENTRY_TYPES: dict[str, EntityKind] = {
    "h-entry": EntityKind.POST,
    "h-page": EntityKind.PAGE,
}
PAGES_CHANNEL = "pages"


@dataclass(frozen=True)
class DecodeResult:
    """Either a decoded entity or the ``SchemaError`` explaining why not."""

    entity: ContentEntity | None = None
    error: SchemaError | None = None

    @property
    def ok(self) -> bool:
        return self.entity is not None


# ---------------------------------------------------------------------------
# Property helpers
# ---------------------------------------------------------------------------


def _first(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _optional_str(props: Mapping, key: str) -> str | None:
    value = _first(props.get(key))
    if value is None:
        return None
    if not isinstance(value, str):
        raise SchemaError(
            f"property '{key}' must be a string, got {type(value).__name__}"
        )
    return value


_TIMESTAMP = re.compile(
    r"^(?P<head>\d{4}-\d{2}-\d{2}[Tt ]\d{2}:\d{2}(?::\d{2})?)"
    r"(?:[.,](?P<fraction>\d+))?"
    r"(?:(?P<sign>[+-])(?P<hours>\d{2}):?(?P<minutes>\d{2})?)?$"
)


def _normalise_timestamp(text: str) -> str:
    """Rewrite ``+HHMM``/``+HH`` offsets and odd fractions for ``fromisoformat``."""
    match = _TIMESTAMP.match(text)
    if match is None:
        return text
    result = match["head"]
    if match["fraction"]:
        result += "." + match["fraction"][:6].ljust(6, "0")
    if match["sign"]:
        result += f"{match['sign']}{match['hours']}:{match['minutes'] or '00'}"
    return result


def parse_published(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC.

    Accepts ``Z`` and offsets with or without a colon (``+0000``).

    Raises:
        SchemaError: If *value* is present but not an ISO-8601 string.
    """
    value = _first(value)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise SchemaError(f"'published' must be a string, got {value!r}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(_normalise_timestamp(text))
    except ValueError as e:
        raise SchemaError(f"'published' is not ISO-8601: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def content_to_markdown(content: Any) -> str:
    """Render a ``content`` property value as Markdown.

    Accepts a plain string (converted only if it contains HTML tags), an
    ``{"html": ...}`` object, or a ``{"value": ...}`` object.
    """
    content = _first(content)
    if content is None:
        return ""
    if isinstance(content, str):
        if looks_like_html(content):
            return html_to_markdown(content).text
        return content.strip()
    if isinstance(content, Mapping):
        html = content.get("html")
        if isinstance(html, str):
            result = html_to_markdown(html)
            for warning in result.warnings:
                logger.debug("content conversion: %s", warning)
            return result.text
        value = content.get("value")
        if isinstance(value, str):
            return value.strip()
    raise SchemaError(
        f"unsupported content shape: {type(content).__name__}"
    )


# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------


def from_remote(entry: Any) -> ContentEntity:
    """Decode one Micropub entry.

    Raises:
        SchemaError: If the entry is not an object, declares no recognised
            microformat type, has no URL, or carries malformed values.
    """
    if not isinstance(entry, Mapping):
        raise SchemaError("entry is not a JSON object")

    types = entry.get("type")
    if isinstance(types, str):
        types = [types]
    if not isinstance(types, list):
        raise SchemaError("entry has no microformat type")
    entry_type = next((t for t in types if t in ENTRY_TYPES), None)
    if entry_type is None:
        raise SchemaError(f"unrecognised entry type: {types!r}")

    props = entry.get("properties", {})
    if not isinstance(props, Mapping):
        raise SchemaError("entry 'properties' is not an object")

    url = _optional_str(props, "url")
    if not url:
        raise SchemaError("entry has no url")

    post_status = _optional_str(props, "post-status")
    status = (
        EntityStatus.REMOTE_DRAFT
        if post_status == "draft"
        else EntityStatus.PUBLISHED
    )
    kind = ENTRY_TYPES[entry_type]
    if _first(props.get("mp-channel")) == PAGES_CHANNEL:
        kind = EntityKind.PAGE

    categories = props.get("category", [])
    if not isinstance(categories, list):
        categories = [categories]

    return ContentEntity(
        id=url,
        title=_optional_str(props, "name") or "",
        body=content_to_markdown(props.get("content")),
        kind=kind,
        status=status,
        declared_status=(
            "draft" if status == EntityStatus.REMOTE_DRAFT else "published"
        ),
        remote_url=url,
        published_at=parse_published(props.get("published")),
        categories=[c for c in categories if isinstance(c, str)],
    )


def decode_result(
    entry: Any, decoder: Callable[[Any], ContentEntity] = from_remote
) -> DecodeResult:
    """Tagged-variant form of *decoder*: never raises ``SchemaError``."""
    try:
        return DecodeResult(entity=decoder(entry))
    except SchemaError as e:
        return DecodeResult(error=e)
    except ValueError as e:
        # model invariants rejected the decoded values
        return DecodeResult(error=SchemaError(str(e)))


def from_media_item(item: Any) -> ContentEntity:
    """Decode a media endpoint listing item into an upload entity.

    Raises:
        SchemaError: If the item is not an object or has no URL.
    """
    if not isinstance(item, Mapping):
        raise SchemaError("media item is not a JSON object")
    url = item.get("url")
    if not isinstance(url, str) or not url:
        raise SchemaError("media item has no url")

    file_name = PurePosixPath(urlparse(url).path).name or url
    alt = item.get("alt")
    return ContentEntity(
        id=url,
        title=file_name,
        kind=EntityKind.UPLOAD,
        status=EntityStatus.PUBLISHED,
        declared_status="published",
        remote_url=url,
        published_at=parse_published(item.get("published")),
        media=MediaItem(
            url=url,
            alt=alt if isinstance(alt, str) else "",
            mime_type=guess_media_type(file_name),
            file_name=file_name,
        ),
    )


def parse_source_response(
    body: Any, decoder: Callable[[Any], ContentEntity] = from_remote
) -> tuple[list[ContentEntity], int]:
    """Decode a ``q=source`` style listing.

    Returns:
        ``(entities, skipped)`` where ``skipped`` counts items that failed
        to decode (each logged as a warning).

    Raises:
        SchemaError: If the body is not an object or ``items`` is not a list.
    """
    if not isinstance(body, Mapping):
        raise SchemaError("listing is not a JSON object")
    items = body.get("items", [])
    if not isinstance(items, list):
        raise SchemaError("listing 'items' is not a list")

    entities: list[ContentEntity] = []
    skipped = 0
    for index, item in enumerate(items):
        result = decode_result(item, decoder)
        if result.ok:
            entities.append(result.entity)
        else:
            skipped += 1
            logger.warning("Skipping listing item %d: %s", index, result.error)
    return entities, skipped


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------


def _properties(entity: ContentEntity, post_status: str) -> dict[str, list]:
    properties: dict[str, list] = {
        "name": [entity.title],
        "content": [entity.body],
        "post-status": [post_status],
    }
    if entity.categories:
        properties["category"] = list(entity.categories)
    if entity.kind == EntityKind.PAGE:
        properties["mp-channel"] = [PAGES_CHANNEL]
    return properties


def to_publish_payload(
    entity: ContentEntity, post_status: str | None = None
) -> dict[str, Any]:
    """Build the JSON body creating *entity* as a new h-entry.

    The body is sent as Markdown; the service renders it.  ``url`` and
    ``published`` are server-assigned and never sent.
    """
    if entity.kind == EntityKind.UPLOAD:
        raise ValueError("uploads are sent to the media endpoint")
    return {
        "type": ["h-entry"],
        "properties": _properties(entity, post_status or "published"),
    }


def to_update_payload(
    entity: ContentEntity, post_status: str | None = None
) -> dict[str, Any]:
    """Build a Micropub ``update`` action replacing an existing entry's content."""
    if not entity.remote_url:
        raise ValueError("only entries with a remote URL can be updated")
    return {
        "action": "update",
        "url": entity.remote_url,
        "replace": _properties(entity, post_status or "published"),
    }


def to_delete_payload(url: str) -> dict[str, str]:
    return {"action": "delete", "url": url}
