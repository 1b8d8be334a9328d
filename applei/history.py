"""
Bounded, display-oriented conversation history.

The store is a FIFO log capped at ``max_history`` messages. It is distinct
from the backend's own transcript: the backend keeps every turn until a
context overflow forces condensation, while this store only mirrors the most
recent exchanges for display, ``context`` output and persistence.
"""

from __future__ import annotations

import enum
from collections import deque
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

__all__ = ["Message", "MessageStore", "Role", "utc_now"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class Message:
    """One immutable conversation entry."""

    role: Role
    content: str
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, str]:
        return {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        """Rebuild a message from its persisted form.

        Raises:
            ValueError: If the role is unknown or a field is missing/invalid.
        """
        try:
            role = Role(data["role"])
            content = data["content"]
            raw_timestamp = data["timestamp"]
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Malformed message record: {data!r}") from exc
        if not isinstance(content, str) or not isinstance(raw_timestamp, str):
            raise ValueError(f"Malformed message record: {data!r}")
        timestamp = datetime.fromisoformat(raw_timestamp.replace("Z", "+00:00"))
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return cls(role=role, content=content, timestamp=timestamp)

    def preview(self, width: int = 50) -> str:
        """First *width* characters, with ``...`` only when something was cut."""
        if len(self.content) <= width:
            return self.content
        return f"{self.content[:width]}..."


class MessageStore:
    """
    An ordered, size-bounded message log with FIFO eviction.

    ``append`` never fails; once ``max_history`` is reached the oldest entry is
    dropped. Timestamps never go backwards: an append whose clock reading is
    earlier than the newest stored message reuses that message's timestamp.
    """

    def __init__(self, max_history: int = 10) -> None:
        if max_history < 1:
            raise ValueError("max_history must be >= 1")
        self._max_history = max_history
        self._messages: deque[Message] = deque(maxlen=max_history)

    @property
    def max_history(self) -> int:
        return self._max_history

    def append(self, role: Role | str, content: str) -> Message:
        timestamp = utc_now()
        if self._messages and timestamp < self._messages[-1].timestamp:
            timestamp = self._messages[-1].timestamp
        message = Message(role=Role(role), content=content, timestamp=timestamp)
        self._messages.append(message)
        return message

    def recent(self, n: int) -> list[Message]:
        if n <= 0:
            return []
        return list(self._messages)[-n:]

    def count(self) -> int:
        return len(self._messages)

    def clear(self) -> None:
        self._messages.clear()

    def snapshot(self) -> list[Message]:
        return list(self._messages)

    def replace(self, messages: Iterable[Message]) -> None:
        """Swap in a full replacement (used when loading a saved conversation)."""
        self._messages = deque(messages, maxlen=self._max_history)

    def render_context(self, n: int = 10) -> str:
        """Render the most recent messages as ``role: content`` lines."""
        return "\n".join(f"{m.role.value}: {m.content}" for m in self.recent(n))

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))
