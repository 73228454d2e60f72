"""Shared pytest fixtures for micropub-sync tests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from micropub_sync.config import Config
from micropub_sync.core.client import ApiResponse, TransportError
from micropub_sync.file_handler import Workspace
from micropub_sync.sync.state import SyncStateStore


class FakeApiClient:
    """``ApiClient`` double that records every request.

    Responses are queued per ``(method, query)`` key or matched by a
    ``route`` callable; unmatched requests get a 404.
    """

    def __init__(self):
        self.calls: list[dict[str, Any]] = []
        self._routes: list[tuple[Any, Any]] = []

    def route(self, predicate, response) -> None:
        """Answer requests matching *predicate* with *response*.

        *response* is an ``ApiResponse``, an exception instance to raise,
        or a callable taking the call dict.
        """
        self._routes.append((predicate, response))

    def on(
        self,
        method: str,
        response,
        *,
        path: str | None = None,
        **query: str,
    ) -> None:
        """Route by method, optional path and, when given, the exact query.

        Query keyword names use underscores for dashes
        (``post_status="draft"`` matches ``post-status=draft``).
        """
        wanted = {k.replace("_", "-"): v for k, v in query.items()}

        def predicate(call):
            if call["method"] != method:
                return False
            if path is not None and call["path"] != path:
                return False
            return not wanted or (call["query"] or {}) == wanted

        self.route(predicate, response)

    async def request(
        self,
        method: str,
        path: str = "",
        query=None,
        body=None,
        files=None,
    ) -> ApiResponse:
        call = {
            "method": method,
            "path": path,
            "query": dict(query) if query else None,
            "body": body,
            "files": files,
        }
        self.calls.append(call)
        for predicate, response in reversed(self._routes):
            if predicate(call):
                if isinstance(response, BaseException):
                    raise response
                if callable(response):
                    return response(call)
                return response
        return json_response(404, {"error": "not_found"})


def json_response(
    status: int, body: Any = None, headers: dict[str, str] | None = None
) -> ApiResponse:
    """Build an ``ApiResponse`` the way the real client would."""
    text = "" if body is None else json.dumps(body)
    return ApiResponse.from_payload(status, text, headers)


def h_entry(
    url: str,
    name: str = "",
    content: Any = "",
    published: str | None = "2024-01-05T10:00:00+00:00",
    status: str | None = None,
    **extra_props: Any,
) -> dict[str, Any]:
    """Build a ``q=source`` item."""
    props: dict[str, Any] = {"url": [url], "name": [name], "content": [content]}
    if published is not None:
        props["published"] = [published]
    if status is not None:
        props["post-status"] = [status]
    for key, value in extra_props.items():
        props[key.replace("_", "-")] = value
    return {"type": ["h-entry"], "properties": props}


@pytest.fixture
def fake_client():
    return FakeApiClient()


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    return Workspace(tmp_path)


@pytest.fixture
def state_store(tmp_path: Path) -> SyncStateStore:
    return SyncStateStore(tmp_path / ".micropub")


@pytest.fixture
def write_file(tmp_path: Path):
    """Write a workspace file; returns its workspace-relative path."""

    def _write(rel_path: str, content: str | bytes) -> str:
        target = tmp_path / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            target.write_bytes(content)
        else:
            target.write_text(content, encoding="utf-8")
        return rel_path

    return _write


@pytest.fixture
def mock_config(tmp_path: Path) -> Config:
    """A valid Config rooted at the test's temporary directory."""
    return Config(
        micropub_url="https://example.com/micropub",
        token="test-token",
        media_endpoint="https://example.com/media",
        workspace=str(tmp_path),
    )


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep developer environment variables out of config tests."""
    for key in (
        "MICROPUB_URL",
        "MICROPUB_TOKEN",
        "MICROPUB_MEDIA_ENDPOINT",
        "MICROPUB_WORKSPACE",
        "MICROPUB_INSECURE",
        "MICROPUB_DEBUG",
        "MICROPUB_MAX_PARALLEL_REQUESTS",
        "MICROPUB_TIMEOUT",
        "MICROPUB_SYNC_CONFIG",
        "LOG_LEVEL",
        "LOG_FILE",
    ):
        monkeypatch.delenv(key, raising=False)
