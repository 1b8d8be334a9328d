"""
File-backed conversation snapshots.

Each named conversation is one JSON array of ``{role, content, timestamp}``
records. Writes always replace the whole file (temp file + ``os.replace``);
loads are best effort and never raise.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from collections.abc import Iterable
from pathlib import Path
from typing import Union

from .config import DEFAULT_CONVERSATIONS_DIR
from .history import Message

logger = logging.getLogger("applei")

__all__ = ["DEFAULT_CONVERSATION", "ConversationStore"]

DEFAULT_CONVERSATION = "current"
_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")


def _validate_name(name: str) -> str:
    if not _NAME_RE.fullmatch(name) or ".." in name:
        raise ValueError(
            f"Invalid conversation name {name!r}: use letters, digits, '.', '_' or '-'"
        )
    return name


class ConversationStore:
    """Directory of ``<name>.json`` conversation snapshots."""

    def __init__(self, directory: Union[str, Path, None] = None) -> None:
        self._dir = Path(directory) if directory is not None else DEFAULT_CONVERSATIONS_DIR

    @property
    def directory(self) -> Path:
        return self._dir

    def path_for(self, name: str = DEFAULT_CONVERSATION) -> Path:
        return self._dir / f"{_validate_name(name)}.json"

    def save(self, messages: Iterable[Message], name: str = DEFAULT_CONVERSATION) -> Path:
        """Write a full replacement snapshot and return its path."""
        target = self.path_for(name)
        target.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps([m.to_dict() for m in messages], ensure_ascii=False, indent=2)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.stem}.", suffix=".tmp", dir=target.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("[Applei Persist] Saved conversation %r to %s", name, target)
        return target

    def load(self, name: str = DEFAULT_CONVERSATION) -> list[Message]:
        """Load a snapshot; a missing or corrupt file yields an empty history."""
        target = self.path_for(name)
        if not target.is_file():
            return []
        try:
            records = json.loads(target.read_text(encoding="utf-8"))
            if not isinstance(records, list):
                raise ValueError(f"expected a JSON array, got {type(records).__name__}")
            return [Message.from_dict(record) for record in records]
        except (OSError, ValueError) as exc:
            logger.warning("[Applei Persist] Ignoring unreadable conversation %s: %s", target, exc)
            return []

    def list_conversations(self) -> list[str]:
        if not self._dir.is_dir():
            return []
        return sorted(p.stem for p in self._dir.glob("*.json") if _NAME_RE.fullmatch(p.stem))

    def delete(self, name: str) -> bool:
        target = self.path_for(name)
        if not target.exists():
            return False
        target.unlink()
        return True
