"""Tests for pipeline/upload.py -- media uploads.

Covers:
- MediaAsset construction and embed snippets
- validation failures rejected before any request
- endpoint resolution: configured, discovered, cached, missing
- multipart submission and success URL sources
- remote failures and reconciler updates
"""

from __future__ import annotations

import pytest

from micropub_sync.errors import ErrorKind
from micropub_sync.pipeline.upload import (
    MediaAsset,
    UploadPipeline,
    UploadState,
    default_alt,
    embed_snippets,
    markdown_embed,
)
from micropub_sync.sync.models import Section
from micropub_sync.sync.reconciler import Reconciler
from micropub_sync.validators import MAX_UPLOAD_BYTES

from .conftest import json_response

MEDIA = "https://example.com/media"
FILE_URL = "https://example.com/media/2024/cat.png"
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


@pytest.fixture
def uploader(fake_client, workspace):
    return UploadPipeline(fake_client, workspace, media_endpoint=MEDIA)


# ---------------------------------------------------------------------------
# Assets and snippets
# ---------------------------------------------------------------------------


class TestMediaAsset:
    def test_from_bytes_guesses_type(self):
        asset = MediaAsset.from_bytes("cat.PNG", PNG)
        assert asset.mime_type == "image/png"
        assert asset.size == len(PNG)

    def test_from_bytes_explicit_type(self):
        asset = MediaAsset.from_bytes("photo.jpg", b"x", "image/jpeg")
        assert asset.mime_type == "image/jpeg"

    def test_unknown_extension_has_empty_type(self):
        assert MediaAsset.from_bytes("notes.txt", b"x").mime_type == ""

    def test_from_file(self):
        asset = MediaAsset.from_file("uploads/2024/cat.gif", 12)
        assert asset.file_name == "cat.gif"
        assert asset.mime_type == "image/gif"
        assert asset.source_path == "uploads/2024/cat.gif"
        assert asset.data is None


class TestSnippets:
    def test_default_alt_is_url_stem(self):
        assert default_alt(FILE_URL) == "cat"

    def test_snippets(self):
        assert embed_snippets(FILE_URL) == {
            "markdown": f"![cat]({FILE_URL})",
            "html": f'<img src="{FILE_URL}" alt="cat">',
        }

    def test_explicit_alt_escaped_in_html(self):
        snippets = embed_snippets(FILE_URL, 'A "cat"')
        assert snippets["markdown"] == f'![A "cat"]({FILE_URL})'
        assert snippets["html"] == (
            f'<img src="{FILE_URL}" alt="A &quot;cat&quot;">'
        )

    def test_empty_alt_kept(self):
        assert embed_snippets(FILE_URL, "")["markdown"] == f"![]({FILE_URL})"

    @pytest.mark.parametrize(
        "alt, expected",
        [
            ("see [1]", r"see \[1\]"),
            ("a]b", r"a\]b"),
            ("back\\slash", "back\\\\slash"),
        ],
    )
    def test_markdown_alt_escaped(self, alt, expected):
        assert markdown_embed(FILE_URL, alt) == f"![{expected}]({FILE_URL})"

    @pytest.mark.parametrize(
        "url, destination",
        [
            (
                "https://example.com/media/my cat.png",
                "<https://example.com/media/my cat.png>",
            ),
            (
                "https://example.com/media/cat_(1).png",
                "<https://example.com/media/cat_(1).png>",
            ),
            (
                "https://example.com/media/a>b.png",
                "<https://example.com/media/a%3Eb.png>",
            ),
        ],
    )
    def test_markdown_url_wrapped(self, url, destination):
        assert markdown_embed(url, "cat") == f"![cat]({destination})"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    @pytest.mark.parametrize(
        "asset, message",
        [
            (MediaAsset.from_bytes("notes.txt", b"text"), "Invalid file type"),
            (
                MediaAsset.from_bytes("cat.png", PNG, "image/jpeg"),
                "Invalid file type",
            ),
            (MediaAsset.from_bytes("empty.png", b""), "File is empty"),
            (
                MediaAsset("huge.png", "image/png", MAX_UPLOAD_BYTES + 1, b"x"),
                "File is too large",
            ),
        ],
    )
    async def test_rejected_without_request(
        self, uploader, fake_client, asset, message
    ):
        result = await uploader.upload(asset)

        assert not result.ok
        assert result.state == UploadState.REJECTED
        assert result.kind == ErrorKind.VALIDATION
        assert result.message.startswith(message)
        assert result.transitions == [
            UploadState.PENDING,
            UploadState.VALIDATING,
            UploadState.REJECTED,
        ]
        assert fake_client.calls == []

    async def test_file_reference_needs_workspace(self, fake_client):
        uploader = UploadPipeline(fake_client, media_endpoint=MEDIA)
        asset = MediaAsset.from_file("uploads/cat.png", 10)

        result = await uploader.upload(asset)

        assert result.state == UploadState.REJECTED
        assert fake_client.calls == []


# ---------------------------------------------------------------------------
# Endpoint resolution
# ---------------------------------------------------------------------------


class TestEndpoint:
    async def test_no_endpoint_fails_before_request(self, fake_client, workspace):
        uploader = UploadPipeline(fake_client, workspace)

        result = await uploader.upload(MediaAsset.from_bytes("cat.png", PNG))

        assert result.state == UploadState.FAILED
        assert result.kind == ErrorKind.CONFIGURATION
        assert result.message == "No media endpoint configured"
        assert result.transitions == [
            UploadState.PENDING,
            UploadState.VALIDATING,
            UploadState.FAILED,
        ]
        assert fake_client.calls == []

    async def test_configured_endpoint(self, uploader, fake_client):
        assert await uploader.resolve_endpoint() == MEDIA
        assert fake_client.calls == []

    async def test_discovery_is_cached(self, fake_client, workspace):
        fake_client.on(
            "GET", json_response(200, {"media-endpoint": MEDIA}), q="config"
        )
        uploader = UploadPipeline(fake_client, workspace, discover=True)

        assert await uploader.resolve_endpoint() == MEDIA
        assert await uploader.resolve_endpoint() == MEDIA

        assert [c["query"] for c in fake_client.calls] == [{"q": "config"}]

    async def test_discovery_without_advertised_endpoint(
        self, fake_client, workspace
    ):
        fake_client.on("GET", json_response(200, {"syndicate-to": []}), q="config")
        uploader = UploadPipeline(fake_client, workspace, discover=True)

        result = await uploader.upload(MediaAsset.from_bytes("cat.png", PNG))

        assert result.kind == ErrorKind.CONFIGURATION
        assert result.message == "The service does not advertise a media endpoint"
        assert all(c["method"] == "GET" for c in fake_client.calls)

    async def test_discovery_auth_failure(self, fake_client, workspace):
        fake_client.on("GET", json_response(401), q="config")
        uploader = UploadPipeline(fake_client, workspace, discover=True)

        result = await uploader.upload(MediaAsset.from_bytes("cat.png", PNG))

        assert result.kind == ErrorKind.AUTH


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


class TestSubmit:
    async def test_url_from_location_header(self, uploader, fake_client):
        fake_client.on(
            "POST", json_response(201, headers={"Location": FILE_URL}), path=MEDIA
        )

        result = await uploader.upload(MediaAsset.from_bytes("cat.png", PNG))

        assert result.ok
        assert result.url == FILE_URL
        assert result.transitions == [
            UploadState.PENDING,
            UploadState.VALIDATING,
            UploadState.ENDPOINT_RESOLVED,
            UploadState.SUBMITTING,
            UploadState.UPLOADED,
        ]
        assert result.to_dict() == {
            "ok": True,
            "url": FILE_URL,
            "embedSnippets": embed_snippets(FILE_URL),
        }

    async def test_multipart_payload(self, uploader, fake_client):
        fake_client.on(
            "POST", json_response(201, headers={"Location": FILE_URL}), path=MEDIA
        )

        await uploader.upload(MediaAsset.from_bytes("cat.png", PNG))

        call = fake_client.calls[0]
        assert call["path"] == MEDIA
        assert call["files"] == {"file": ("cat.png", PNG, "image/png")}

    async def test_url_from_body(self, uploader, fake_client):
        fake_client.on("POST", json_response(200, {"url": FILE_URL}), path=MEDIA)

        result = await uploader.upload(MediaAsset.from_bytes("cat.png", PNG))

        assert result.url == FILE_URL

    async def test_bytes_read_from_workspace(
        self, uploader, fake_client, write_file
    ):
        write_file("uploads/cat.png", PNG)
        fake_client.on(
            "POST", json_response(201, headers={"Location": FILE_URL}), path=MEDIA
        )

        result = await uploader.upload(
            MediaAsset.from_file("uploads/cat.png", len(PNG)), alt="Cat"
        )

        assert result.ok
        assert fake_client.calls[0]["files"]["file"][1] == PNG
        assert result.embed_snippets["markdown"] == f"![Cat]({FILE_URL})"

    async def test_missing_workspace_file(self, uploader, fake_client):
        result = await uploader.upload(
            MediaAsset.from_file("uploads/gone.png", 10)
        )

        assert result.state == UploadState.FAILED
        assert result.kind == ErrorKind.VALIDATION
        assert result.message.startswith("Cannot read uploads/gone.png")
        assert fake_client.calls == []

    @pytest.mark.parametrize(
        "response, kind",
        [
            (json_response(201), ErrorKind.SCHEMA),
            (json_response(413, {"error": "too big"}), ErrorKind.SERVICE),
            (json_response(403), ErrorKind.AUTH),
        ],
    )
    async def test_failures(self, uploader, fake_client, response, kind):
        fake_client.on("POST", response, path=MEDIA)

        result = await uploader.upload(MediaAsset.from_bytes("cat.png", PNG))

        assert result.state == UploadState.FAILED
        assert result.kind == kind

    async def test_rate_limited(self, uploader, fake_client):
        fake_client.on(
            "POST", json_response(429, headers={"Retry-After": "30"}), path=MEDIA
        )

        result = await uploader.upload(MediaAsset.from_bytes("cat.png", PNG))

        assert result.to_dict() == {
            "ok": False,
            "kind": "RateLimitError",
            "message": "upload failed: rate limited (HTTP 429)",
            "retryAfter": 30,
        }

    async def test_reconciler_sees_upload(
        self, fake_client, workspace, state_store
    ):
        reconciler = Reconciler(fake_client, workspace, state_store)
        uploader = UploadPipeline(
            fake_client, workspace, media_endpoint=MEDIA, reconciler=reconciler
        )
        fake_client.on(
            "POST", json_response(201, headers={"Location": FILE_URL}), path=MEDIA
        )

        await uploader.upload(MediaAsset.from_bytes("cat.png", PNG))

        uploads = reconciler.view.section(Section.UPLOAD).entities
        assert [e.id for e in uploads] == [FILE_URL]
        assert uploads[0].media.alt == "cat"
