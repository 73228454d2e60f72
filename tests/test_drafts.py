"""Tests for pipeline/drafts.py -- creating new local draft files."""

from __future__ import annotations

import pytest

from micropub_sync.content.models import EntityKind, EntityStatus
from micropub_sync.converters.frontmatter import decode
from micropub_sync.errors import ValidationError
from micropub_sync.pipeline.drafts import create_draft
from micropub_sync.sync.models import Section
from micropub_sync.sync.reconciler import Reconciler


class TestCreateDraft:
    async def test_post_written_to_drafts(self, workspace, tmp_path):
        entity = await create_draft(workspace, "My Test Post", "Hello there.")

        assert entity.local_path == "content/drafts/my-test-post.md"
        assert entity.id == "my-test-post"
        assert entity.status == EntityStatus.LOCAL_DRAFT
        assert entity.declared_status == "draft"
        assert entity.kind == EntityKind.POST

        text = (tmp_path / entity.local_path).read_text(encoding="utf-8")
        assert text.startswith("---\ntitle: My Test Post\nstatus: draft\n")
        decoded = decode(text, entity.local_path)
        assert decoded.title == "My Test Post"
        assert decoded.body == "Hello there."

    async def test_page_written_to_pages(self, workspace):
        entity = await create_draft(workspace, "About", kind=EntityKind.PAGE)
        assert entity.local_path == "content/pages/about.md"

    async def test_existing_file_not_overwritten(
        self, workspace, write_file, tmp_path
    ):
        write_file("content/drafts/my-test-post.md", "keep me\n")

        entity = await create_draft(workspace, "My Test Post")

        assert entity.local_path == "content/drafts/my-test-post-2.md"
        assert entity.id == "my-test-post-2"
        assert (tmp_path / "content/drafts/my-test-post.md").read_text(
            encoding="utf-8"
        ) == "keep me\n"

    async def test_untitled_slug(self, workspace):
        entity = await create_draft(workspace, "!!!")
        assert entity.local_path == "content/drafts/untitled.md"
        assert entity.title == "!!!"

    async def test_custom_content_dir(self, workspace):
        entity = await create_draft(workspace, "Note", content_dir="site/posts")
        assert entity.local_path == "site/posts/drafts/note.md"

    @pytest.mark.parametrize("title", ["", "   "])
    async def test_empty_title_rejected(self, workspace, tmp_path, title):
        with pytest.raises(ValidationError, match="Title is required"):
            await create_draft(workspace, title)
        assert not (tmp_path / "content").exists()

    async def test_upload_kind_rejected(self, workspace):
        with pytest.raises(ValidationError):
            await create_draft(workspace, "Cat", kind=EntityKind.UPLOAD)

    async def test_reconciler_view_updated(
        self, fake_client, workspace, state_store
    ):
        reconciler = Reconciler(fake_client, workspace, state_store)

        entity = await create_draft(
            workspace, "My Test Post", "Body", reconciler=reconciler
        )

        drafts = reconciler.view.section(Section.LOCAL_DRAFT).entities
        assert [(e.id, e.local_path) for e in drafts] == [
            ("my-test-post", entity.local_path)
        ]
        assert fake_client.calls == []
