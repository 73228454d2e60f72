"""Sync state persistence.

One JSON file (``sync_state.json`` in the state directory) holds a
``SyncRecord`` per entity id: the remote URL, the local file, when the last
publish or pull happened, and the body content at that moment.  The
reconciler uses these baselines for conflict detection.

Writes are atomic (temp file + ``os.replace``) so readers never see partial
data.  The store keeps the loaded state in memory; callers on the event
loop wrap the disk-touching methods with ``run_sync``.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from .models import SyncRecord

logger = logging.getLogger(__name__)

STATE_FILE = "sync_state.json"
STATE_VERSION = 1


def content_hash(content: str) -> str:
    """Compute a normalised SHA-256 hex digest of *content*.

    BOM, line endings, trailing whitespace per line and trailing empty lines
    do not affect the result.
    """
    text = content.lstrip("\ufeff").replace("\r\n", "\n")
    lines = [line.rstrip() for line in text.split("\n")]
    while lines and lines[-1] == "":
        lines.pop()
    return hashlib.sha256("\n".join(lines).encode("utf-8")).hexdigest()


class SyncStateStore:
    """Load, save and query per-entity sync records.

    Args:
        state_dir: Directory holding the state file (typically
            ``.micropub/`` in the workspace).
    """

    def __init__(self, state_dir: Path) -> None:
        self._state_dir = Path(state_dir)
        self._records: dict[str, SyncRecord] | None = None

    @property
    def path(self) -> Path:
        return self._state_dir / STATE_FILE

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> dict[str, SyncRecord]:
        """Read the state file (once) and return the records by id.

        A missing file is an empty state.  Entries that do not validate are
        dropped with a warning.
        """
        if self._records is not None:
            return self._records

        records: dict[str, SyncRecord] = {}
        if self.path.exists():
            with open(self.path, encoding="utf-8") as fh:
                data = json.load(fh)
            for entity_id, entry in data.get("entries", {}).items():
                try:
                    records[entity_id] = SyncRecord(id=entity_id, **entry)
                except (TypeError, ValueError) as e:
                    logger.warning(
                        "Dropping invalid sync record %s: %s", entity_id, e
                    )
        self._records = records
        return records

    def save(self) -> None:
        """Persist the in-memory records atomically."""
        records = self.load()
        self._state_dir.mkdir(parents=True, exist_ok=True)
        state = {
            "version": STATE_VERSION,
            "last_sync": datetime.now(timezone.utc).isoformat(),
            "entries": {
                entity_id: record.model_dump(mode="json", exclude={"id"})
                for entity_id, record in records.items()
            },
        }

        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._state_dir), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(state, fh, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def records(self) -> dict[str, SyncRecord]:
        return dict(self.load())

    def get(self, entity_id: str) -> SyncRecord | None:
        return self.load().get(entity_id)

    def record_baseline(
        self,
        entity_id: str,
        content: str,
        *,
        remote_url: str | None = None,
        local_path: str | None = None,
        synced_at: datetime | None = None,
    ) -> SyncRecord:
        """Store the body that is now identical on both sides, then save."""
        record = SyncRecord(
            id=entity_id,
            remote_url=remote_url,
            local_path=local_path,
            last_synced=synced_at or datetime.now(timezone.utc),
            base_hash=content_hash(content),
            base_content=content,
        )
        self.load()[entity_id] = record
        self.save()
        logger.debug("Recorded sync baseline for %s", entity_id)
        return record

    def remove(self, entity_id: str) -> bool:
        """Drop a record and save; returns False when there was none."""
        if self.load().pop(entity_id, None) is None:
            return False
        self.save()
        return True
