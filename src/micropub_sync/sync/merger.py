"""Three-way merge and diff helpers for conflict reports.

Uses ``merge3`` for the three-way merge and ``difflib`` for unified diffs.
Merging only produces a preview; the reconciler never writes it anywhere.
Conflict markers follow Git convention: ``<<<<<<< LOCAL``, ``=======``,
``>>>>>>> REMOTE``.
"""

from __future__ import annotations

import difflib

from merge3 import Merge3

# merge_lines appends the side names to the bare markers
START_MARKER = "<<<<<<< LOCAL"
MID_MARKER = "======="
END_MARKER = ">>>>>>> REMOTE"


def _lines(text: str) -> list[str]:
    # merge3 compares whole lines; make sure the last one is terminated
    if text and not text.endswith("\n"):
        text += "\n"
    return text.splitlines(True)


def attempt_merge(
    base_content: str,
    local_content: str,
    remote_content: str,
) -> tuple[str, bool]:
    """Three-way merge of local and remote bodies against the synced base.

    Returns:
        ``(merged_text, has_conflicts)``.
    """
    m3 = Merge3(
        _lines(base_content), _lines(local_content), _lines(remote_content)
    )
    merged_text = "".join(
        m3.merge_lines(
            name_a="LOCAL",
            name_b="REMOTE",
            start_marker="<<<<<<<",
            mid_marker=MID_MARKER,
            end_marker=">>>>>>>",
        )
    )
    return merged_text, START_MARKER in merged_text


def generate_diff(
    old_content: str,
    new_content: str,
    label_old: str = "old",
    label_new: str = "new",
) -> str:
    """Unified diff between two strings; empty when they are identical."""
    return "".join(
        difflib.unified_diff(
            _lines(old_content),
            _lines(new_content),
            fromfile=label_old,
            tofile=label_new,
        )
    )
