"""Tests for file_handler module: workspace containment, encoding-aware read/write, listing."""

from pathlib import Path

import pytest

from micropub_sync.file_handler import Workspace, decode_bytes, write_file

# =============================================================================
# decode_bytes / write_file
# =============================================================================


class TestDecodeBytes:
    def test_empty(self):
        assert decode_bytes(b"") == ("", "utf-8")

    def test_ascii_reported_as_utf8(self):
        assert decode_bytes(b"hello world") == ("hello world", "utf-8")

    def test_utf8(self):
        text = "Café naïve résumé – déjà vu"
        content, encoding = decode_bytes(text.encode("utf-8"))
        assert content == text
        assert encoding.replace("_", "-") == "utf-8"


class TestWriteFile:
    def test_creates_parents(self, tmp_path):
        target = tmp_path / "a" / "b" / "post.md"
        written = write_file(target, "héllo")
        assert target.read_text(encoding="utf-8") == "héllo"
        assert written == len("héllo".encode("utf-8"))

    def test_no_temp_file_left(self, tmp_path):
        write_file(tmp_path / "post.md", "x")
        assert [p.name for p in tmp_path.iterdir()] == ["post.md"]


# =============================================================================
# Workspace
# =============================================================================


class TestResolve:
    def test_relative(self, tmp_path):
        ws = Workspace(tmp_path)
        assert ws.resolve("content/a.md") == (tmp_path / "content/a.md").resolve()

    def test_absolute_rejected(self, tmp_path):
        with pytest.raises(ValueError, match="workspace-relative"):
            Workspace(tmp_path).resolve("/etc/passwd")

    def test_escape_rejected(self, tmp_path):
        with pytest.raises(ValueError, match="outside the workspace"):
            Workspace(tmp_path / "site").resolve("../secret.md")

    def test_relative_roundtrip(self, tmp_path):
        ws = Workspace(tmp_path)
        assert ws.relative(tmp_path / "content" / "a.md") == "content/a.md"


class TestWorkspaceIO:
    async def test_write_then_read(self, tmp_path):
        ws = Workspace(tmp_path)
        await ws.write_text("content/a.md", "body\n")
        assert await ws.read_text("content/a.md") == "body\n"
        assert await ws.exists("content/a.md")
        assert await ws.size("content/a.md") == 5

    async def test_read_bytes(self, tmp_path):
        (tmp_path / "cat.png").write_bytes(b"\x89PNG")
        assert await Workspace(tmp_path).read_bytes("cat.png") == b"\x89PNG"

    async def test_read_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            await Workspace(tmp_path).read_text("missing.md")

    async def test_delete(self, tmp_path):
        ws = Workspace(tmp_path)
        await ws.write_text("a.md", "x")
        assert await ws.delete("a.md") is True
        assert await ws.delete("a.md") is False
        assert not (tmp_path / "a.md").exists()


class TestListFiles:
    async def test_sorted_filtered(self, tmp_path):
        content = tmp_path / "content"
        content.mkdir()
        for name in ("b.md", "a.MD", "notes.txt", ".hidden.md"):
            (content / name).write_text("x")
        (content / "drafts").mkdir()
        (content / "drafts" / "c.md").write_text("x")

        files = await Workspace(tmp_path).list_files("content", (".md",))

        assert files == ["content/a.MD", "content/b.md"]

    async def test_no_suffix_filter(self, tmp_path):
        (tmp_path / "uploads").mkdir()
        (tmp_path / "uploads" / "cat.png").write_bytes(b"x")
        (tmp_path / "uploads" / "notes.txt").write_text("x")

        files = await Workspace(tmp_path).list_files("uploads")

        assert files == ["uploads/cat.png", "uploads/notes.txt"]

    async def test_missing_directory(self, tmp_path):
        assert await Workspace(tmp_path).list_files("nope") == []

    async def test_root_is_resolved(self, tmp_path):
        ws = Workspace(Path(tmp_path) / "." / "site")
        assert ws.root == (tmp_path / "site").resolve()
