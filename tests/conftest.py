"""
Shared fixtures and fakes for the Applei test suite.

All tests run against :class:`FakeBackend`, a scripted in-memory model
backend, because the real Apple Foundation Model requires macOS 26+ on Apple
Silicon. The fake streams cumulative snapshots (each chunk carries the full
text so far), records every call, and keeps a per-session transcript so
condensation can be asserted on.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from applei.config import ChatConfig
from applei.protocols import Availability, UnavailableReason

# ---------------------------------------------------------------------------
# Fake backend
# ---------------------------------------------------------------------------


class FakeSession:
    """Opaque session handle with a list-backed transcript."""

    def __init__(self, use_case: str, instructions: str, transcript: list[Any] | None = None):
        self.use_case = use_case
        self.instructions = instructions
        if transcript is None:
            self.entries: list[Any] = [("instructions", instructions)]
        else:
            self.entries = list(transcript)

    def __repr__(self):
        return f"FakeSession(entries={len(self.entries)})"


class FakeBackend:
    """
    Scripted model backend.

    Args:
        chunks_by_turn: 1-based generation call -> cumulative snapshots to stream.
            Unscripted calls stream ``["rep", "reply <n>"]``.
        failures: call -> exception raised after that call's scripted chunks.
        gates: call -> event awaited after the chunks (simulates a slow stream).
        available / reason: what :meth:`availability` reports.
    """

    def __init__(
        self,
        chunks_by_turn: dict[int, list[str]] | None = None,
        *,
        failures: dict[int, BaseException] | None = None,
        gates: dict[int, asyncio.Event] | None = None,
        available: bool = True,
        reason: UnavailableReason | None = None,
    ) -> None:
        self.chunks_by_turn = chunks_by_turn or {}
        self.failures = failures or {}
        self.gates = gates or {}
        self.available = available
        self.reason = reason
        self.sessions: list[FakeSession] = []
        self.calls: list[tuple[FakeSession, str, float]] = []
        self.prewarmed: list[FakeSession] = []
        self.prewarm_error: BaseException | None = None
        self.transcript_error: BaseException | None = None

    def availability(self, use_case: str) -> Availability:
        if self.available:
            return Availability.ok()
        return Availability.unavailable(self.reason or UnavailableReason.OTHER, "fake")

    def create_session(self, use_case, instructions, transcript=None) -> FakeSession:
        session = FakeSession(use_case, instructions, transcript)
        self.sessions.append(session)
        return session

    def _chunks(self, call: int) -> list[str]:
        if call in self.chunks_by_turn:
            return self.chunks_by_turn[call]
        if call in self.failures:
            return []
        text = f"reply {call}"
        return [text[:3], text]

    async def stream_generate(self, session, prompt, temperature):
        self.calls.append((session, prompt, temperature))
        call = len(self.calls)
        session.entries.append(("prompt", prompt))
        chunks = self._chunks(call)
        for chunk in chunks:
            await asyncio.sleep(0)
            yield chunk
        if call in self.gates:
            await self.gates[call].wait()
        if call in self.failures:
            raise self.failures[call]
        session.entries.append(("response", chunks[-1] if chunks else ""))

    def transcript(self, session):
        if self.transcript_error is not None:
            raise self.transcript_error
        return session.entries

    def prewarm(self, session) -> None:
        if self.prewarm_error is not None:
            raise self.prewarm_error
        self.prewarmed.append(session)


def make_config(tmp_path=None, **overrides) -> ChatConfig:
    """A ChatConfig whose conversations directory lives under *tmp_path*."""
    if tmp_path is not None:
        overrides.setdefault("conversations_dir", tmp_path / "conversations")
    return ChatConfig(**overrides)


async def drain(agen) -> list[str]:
    """Collect every delta from an async generator."""
    return [delta async for delta in agen]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def config(tmp_path):
    return make_config(tmp_path)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep APPLEI_* settings from the developer's shell out of the tests."""
    for key in (
        "APPLEI_TEMPERATURE",
        "APPLEI_MODEL",
        "APPLEI_SYSTEM",
        "APPLEI_FETCHER",
        "APPLEI_MAX_CONTENT_CHARS",
        "APPLEI_FETCH_TIMEOUT",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("APPLEI_CONVERSATIONS_DIR", str(tmp_path / "env-conversations"))


@pytest.fixture
def sample_transcript():
    return [f"entry-{i}" for i in range(12)]
