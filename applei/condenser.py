"""Transcript condensation used to recover from context-window overflow."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")

DEFAULT_KEEP_RECENT = 6


def condense_transcript(entries: Sequence[T], keep_recent: int = DEFAULT_KEEP_RECENT) -> list[T]:
    """
    Keep the first transcript entry plus the most recent ``keep_recent`` entries.

    The first entry usually carries the session instructions, so it always
    survives. Entries are treated as opaque and selected purely by position;
    relative order is preserved and the first entry is never included twice.
    Transcripts of ``keep_recent + 1`` entries or fewer are returned unchanged,
    which makes repeated condensation a no-op.

    Raises:
        ValueError: If *entries* is empty or *keep_recent* is negative.
    """
    if keep_recent < 0:
        raise ValueError("keep_recent must be >= 0")
    size = len(entries)
    if size == 0:
        raise ValueError("cannot condense an empty transcript")
    if size <= keep_recent + 1:
        return list(entries)

    tail_start = size - keep_recent
    return [entries[0], *(entries[i] for i in range(tail_start, size))]
