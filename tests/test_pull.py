"""Tests for pipeline/pull.py -- writing remote entries into the workspace."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from micropub_sync.content.models import ContentEntity, EntityKind, EntityStatus
from micropub_sync.converters.frontmatter import decode
from micropub_sync.errors import ValidationError
from micropub_sync.pipeline.pull import free_path, pull, target_directory
from micropub_sync.sync.models import Section
from micropub_sync.sync.reconciler import Reconciler

URL = "https://example.com/2024/01/05/hello-world.html"
WHEN = datetime(2024, 1, 5, 10, 0, tzinfo=timezone.utc)


def _remote(**kwargs) -> ContentEntity:
    defaults = {
        "id": URL,
        "title": "Hello World",
        "body": "Remote body",
        "status": EntityStatus.PUBLISHED,
        "remote_url": URL,
        "published_at": WHEN,
    }
    defaults.update(kwargs)
    return ContentEntity(**defaults)


class TestTargetDirectory:
    @pytest.mark.parametrize(
        "kwargs, expected",
        [
            ({}, "content/published"),
            ({"status": EntityStatus.REMOTE_DRAFT}, "content/drafts"),
            ({"kind": EntityKind.PAGE}, "content/pages"),
        ],
    )
    def test_directories(self, kwargs, expected):
        assert target_directory(_remote(**kwargs), "content") == expected


class TestFreePath:
    async def test_first_free_name(self, workspace, write_file):
        assert await free_path(workspace, "content/published", "a") == (
            "content/published/a.md"
        )
        write_file("content/published/a.md", "x")
        write_file("content/published/a-2.md", "x")
        assert await free_path(workspace, "content/published", "a") == (
            "content/published/a-3.md"
        )


class TestPull:
    async def test_writes_file(self, workspace, tmp_path):
        local = await pull(_remote(), workspace)

        assert local.local_path == "content/published/hello-world.md"
        text = (tmp_path / local.local_path).read_text(encoding="utf-8")
        decoded = decode(text, local.local_path)
        assert decoded.title == "Hello World"
        assert decoded.body == "Remote body"
        assert decoded.declared_status == "published"
        assert decoded.linked_url == URL

    async def test_draft_declared_status(self, workspace):
        local = await pull(
            _remote(status=EntityStatus.REMOTE_DRAFT), workspace
        )
        assert local.local_path == "content/drafts/hello-world.md"
        assert local.declared_status == "draft"

    async def test_name_collision(self, workspace, write_file):
        write_file("content/published/hello-world.md", "someone else's")

        local = await pull(_remote(), workspace)

        assert local.local_path == "content/published/hello-world-2.md"

    async def test_explicit_path_overwrites(self, workspace, write_file, tmp_path):
        write_file("content/mine.md", "old")

        local = await pull(_remote(), workspace, path="content/mine.md")

        assert local.local_path == "content/mine.md"
        assert "Remote body" in (tmp_path / "content/mine.md").read_text(
            encoding="utf-8"
        )

    async def test_records_baseline(self, workspace, state_store):
        await pull(_remote(), workspace, state_store)

        record = state_store.get(URL)
        assert record.base_content == "Remote body"
        assert record.local_path == "content/published/hello-world.md"
        assert record.last_synced >= WHEN

    async def test_reconciler_joins_new_file(self, workspace, state_store):
        reconciler = Reconciler(None, workspace, state_store)
        reconciler.merge([], [_remote()])

        await pull(_remote(), workspace, state_store, reconciler=reconciler)

        published = reconciler.view.section(Section.PUBLISHED).entities
        assert [(e.id, e.local_path) for e in published] == [
            (URL, "content/published/hello-world.md")
        ]
        assert reconciler.view.conflicts == []

    async def test_local_entity_rejected(self, workspace):
        local = ContentEntity(id="x", local_path="content/x.md")
        with pytest.raises(ValidationError, match="Only remote entries"):
            await pull(local, workspace)

    async def test_upload_rejected(self, workspace):
        upload = _remote(kind=EntityKind.UPLOAD)
        with pytest.raises(ValidationError, match="Uploads cannot be pulled"):
            await pull(upload, workspace)
