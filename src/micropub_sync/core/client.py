"""HTTP access to a Micropub endpoint.

The reconciliation and pipeline code only depends on the ``ApiClient``
protocol: one coroutine issuing a request and returning an ``ApiResponse``
with status, headers and a JSON body (or a parse failure).  ``MicropubClient``
is the ``requests``-backed implementation used by the server.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

import requests
from requests.structures import CaseInsensitiveDict

from ..config import Config
from .async_utils import RequestLimiter

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """The request never produced an HTTP response (DNS, TLS, timeout...)."""


@dataclass
class ApiResponse:
    """Outcome of one HTTP request.

    ``body`` is ``None`` with ``parse_error`` unset for an empty body; a body
    that is present but not valid JSON leaves ``body`` as ``None`` and sets
    ``parse_error``.
    """

    status: int
    headers: Mapping[str, str] = field(default_factory=CaseInsensitiveDict)
    body: Any = None
    parse_error: str | None = None
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @classmethod
    def from_payload(
        cls,
        status: int,
        text: str,
        headers: Mapping[str, str] | None = None,
    ) -> ApiResponse:
        """Build a response from raw text, parsing JSON when present."""
        body = None
        parse_error = None
        if text.strip():
            try:
                body = json.loads(text)
            except ValueError as e:
                parse_error = str(e)
        return cls(
            status=status,
            headers=CaseInsensitiveDict(headers or {}),
            body=body,
            parse_error=parse_error,
            text=text,
        )


class ApiClient(Protocol):
    """Minimal request primitive consumed by the core."""

    async def request(
        self,
        method: str,
        path: str = "",
        query: Mapping[str, Any] | None = None,
        body: Any = None,
        files: Mapping[str, Any] | None = None,
    ) -> ApiResponse: ...


class MicropubClient:
    """``ApiClient`` over ``requests`` with Bearer token authentication.

    Relative paths resolve against the Micropub endpoint; absolute URLs
    (such as a media endpoint) are used as-is.  Blocking calls run in worker
    threads bounded by ``max_parallel_requests``.
    """

    def __init__(self, config: Config):
        self.config = config
        self.endpoint = config.micropub_url
        self._thread_local = threading.local()
        self._limiter = RequestLimiter(config.max_parallel_requests)

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers["Authorization"] = f"Bearer {self.config.token}"
        session.headers["Accept"] = "application/json"
        session.verify = not self.config.insecure
        return session

    def resolve_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        if not path:
            return self.endpoint
        return f"{self.endpoint.rstrip('/')}/{path.lstrip('/')}"

    def _send(
        self,
        method: str,
        url: str,
        query: Mapping[str, Any] | None,
        body: Any,
        files: Mapping[str, Any] | None,
    ) -> ApiResponse:
        session = self._get_session()
        kwargs: dict[str, Any] = {
            "params": query,
            "timeout": self.config.timeout,
        }
        if files:
            kwargs["files"] = files
            kwargs["data"] = body
        elif body is not None:
            kwargs["json"] = body

        logger.debug("%s %s params=%s", method, url, query)
        try:
            response = session.request(method, url, **kwargs)
        except requests.RequestException as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        logger.debug("%s %s -> %d", method, url, response.status_code)
        return ApiResponse.from_payload(
            response.status_code, response.text, response.headers
        )

    async def request(
        self,
        method: str,
        path: str = "",
        query: Mapping[str, Any] | None = None,
        body: Any = None,
        files: Mapping[str, Any] | None = None,
    ) -> ApiResponse:
        url = self.resolve_url(path)
        return await self._limiter.run(
            self._send, method.upper(), url, query, body, files
        )

    async def fetch_config(self) -> ApiResponse:
        """Query ``q=config`` (media endpoint, channels)."""
        return await self.request("GET", query={"q": "config"})

    async def verify(self) -> dict[str, Any]:
        """Check that the endpoint accepts our token.

        Returns:
            The ``q=config`` body (empty dict when the service sends none).

        Raises:
            TransportError: If the endpoint cannot be reached.
            PermissionError: If the token is rejected.
            ConnectionError: For any other non-2xx answer.
        """
        response = await self.fetch_config()
        if response.status in (401, 403):
            raise PermissionError(
                f"Micropub endpoint rejected the token (HTTP {response.status})"
            )
        if not response.ok:
            raise ConnectionError(
                f"Micropub endpoint answered HTTP {response.status}"
            )
        return response.body if isinstance(response.body, dict) else {}
