"""Workspace-rooted file access: path containment, encoding-aware reads.

Paths handed to ``Workspace`` are POSIX-style and relative to the workspace
root.  The sync helpers are plain functions; the ``Workspace`` coroutines
wrap them with ``run_sync()`` so the event loop never blocks on disk.
"""

import logging
import os
from pathlib import Path, PurePosixPath

from charset_normalizer import from_bytes

from micropub_sync.core.async_utils import run_sync

logger = logging.getLogger(__name__)

# =============================================================================
# Sync helpers
# =============================================================================


def decode_bytes(raw: bytes) -> tuple[str, str]:
    """Decode file bytes with automatic encoding detection.

    Returns:
        Tuple of (content_string, detected_encoding).  Empty input and
        failed detection both fall back to UTF-8.
    """
    if not raw:
        return ("", "utf-8")

    result = from_bytes(raw).best()
    if result is None:
        return (raw.decode("utf-8", errors="replace"), "utf-8")

    encoding = result.encoding
    # ascii is a strict subset of utf-8
    if encoding == "ascii":
        encoding = "utf-8"
    return (str(result), encoding)


def write_file(path: Path, content: str, encoding: str = "utf-8") -> int:
    """Write *content* atomically, creating parent directories as needed.

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    encoded = content.encode(encoding)
    tmp = path.with_name(f".{path.name}.tmp")
    tmp.write_bytes(encoded)
    os.replace(tmp, path)
    return len(encoded)


def _list_files(
    directory: Path, suffixes: tuple[str, ...] | None
) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(
        p
        for p in directory.iterdir()
        if p.is_file()
        and not p.name.startswith(".")
        and (suffixes is None or p.suffix.lower() in suffixes)
    )


# =============================================================================
# Workspace
# =============================================================================


class Workspace:
    """Read/write/list/delete within a single root directory.

    Args:
        root: Workspace root; created lazily on first write.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).expanduser().resolve()

    def resolve(self, rel_path: str) -> Path:
        """Map a workspace-relative path to an absolute one.

        Raises:
            ValueError: If the path is absolute or escapes the root.
        """
        if PurePosixPath(rel_path).is_absolute():
            raise ValueError(f"Path must be workspace-relative: {rel_path}")
        resolved = (self.root / rel_path).resolve()
        if not resolved.is_relative_to(self.root):
            raise ValueError(
                f"Path is outside the workspace: {rel_path}"
            )
        return resolved

    def relative(self, path: Path) -> str:
        """Inverse of ``resolve``: POSIX path relative to the root."""
        return path.resolve().relative_to(self.root).as_posix()

    async def read_text(self, rel_path: str) -> str:
        raw = await run_sync(self.resolve(rel_path).read_bytes)
        content, encoding = decode_bytes(raw)
        if encoding != "utf-8":
            logger.debug("Read %s as %s", rel_path, encoding)
        return content

    async def read_bytes(self, rel_path: str) -> bytes:
        return await run_sync(self.resolve(rel_path).read_bytes)

    async def write_text(self, rel_path: str, content: str) -> int:
        written = await run_sync(write_file, self.resolve(rel_path), content)
        logger.debug("Wrote %d bytes to %s", written, rel_path)
        return written

    async def list_files(
        self, rel_dir: str, suffixes: tuple[str, ...] | None = None
    ) -> list[str]:
        """List regular files directly under *rel_dir*, sorted by name.

        A missing directory yields an empty list rather than an error.
        Hidden files are skipped.
        """
        paths = await run_sync(_list_files, self.resolve(rel_dir), suffixes)
        return [self.relative(p) for p in paths]

    async def delete(self, rel_path: str) -> bool:
        """Remove a file; returns False when it did not exist."""
        path = self.resolve(rel_path)
        try:
            await run_sync(path.unlink)
        except FileNotFoundError:
            return False
        logger.debug("Deleted %s", rel_path)
        return True

    async def exists(self, rel_path: str) -> bool:
        return await run_sync(self.resolve(rel_path).is_file)

    async def size(self, rel_path: str) -> int:
        stat = await run_sync(self.resolve(rel_path).stat)
        return stat.st_size
