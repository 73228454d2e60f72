"""Interpretation of Micropub responses into the error taxonomy.

Shared by the reconciler's listing fetches and the publish/upload
pipelines so every caller maps status codes the same way:

* 2xx -> success (the body may still fail ``expect_json``)
* 401/403 -> ``AuthError``
* 429 -> ``RateLimitError`` with the ``Retry-After`` hint in seconds
* anything else, or a transport failure -> ``ServiceError``
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

from ..errors import (
    AuthError,
    MicropubSyncError,
    RateLimitError,
    SchemaError,
    ServiceError,
)
from .client import ApiClient, ApiResponse, TransportError

logger = logging.getLogger(__name__)


def parse_retry_after(
    value: str | None, now: datetime | None = None
) -> int | None:
    """Convert a ``Retry-After`` header into whole seconds.

    Accepts delta-seconds (``"60"``) or an HTTP date.  Dates in the past
    give ``0``; unparseable values give ``None``.
    """
    if value is None:
        return None
    value = value.strip()
    if value.isdigit():
        return int(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.debug("Ignoring unparseable Retry-After: %r", value)
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0, int((when - now).total_seconds()))


def _describe(response: ApiResponse) -> str:
    body = response.body
    if isinstance(body, Mapping):
        for key in ("error_description", "error", "message"):
            if isinstance(body.get(key), str):
                return body[key]
    return response.text.strip()[:200]


def error_for_response(
    response: ApiResponse, action: str
) -> MicropubSyncError | None:
    """Return the error a non-2xx response stands for, or ``None`` on 2xx."""
    if response.ok:
        return None

    status = response.status
    detail = _describe(response)
    suffix = f": {detail}" if detail else ""

    if status in (401, 403):
        return AuthError(
            f"{action} failed: credentials rejected (HTTP {status}){suffix}"
        )
    if status == 429:
        retry_after = parse_retry_after(response.headers.get("Retry-After"))
        return RateLimitError(
            f"{action} failed: rate limited (HTTP 429)", retry_after
        )
    return ServiceError(
        f"{action} failed: HTTP {status}{suffix}", status=status
    )


def expect_json(response: ApiResponse, action: str) -> Any:
    """Return the JSON body of a response, raising for any failure.

    Raises:
        AuthError, RateLimitError, ServiceError: For non-2xx statuses.
        SchemaError: For a 2xx response whose body is not valid JSON.
    """
    error = error_for_response(response, action)
    if error is not None:
        raise error
    if response.parse_error is not None:
        raise SchemaError(
            f"{action}: response body is not valid JSON ({response.parse_error})"
        )
    return response.body


async def send(
    client: ApiClient, action: str, method: str, path: str = "", **kwargs
) -> ApiResponse:
    """Issue a request, converting transport failures into ``ServiceError``."""
    try:
        return await client.request(method, path, **kwargs)
    except TransportError as e:
        raise ServiceError(f"{action} failed: {e}") from e
