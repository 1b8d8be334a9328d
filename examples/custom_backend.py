"""
Custom backend example for Applei.

Shows how ``set_backend()`` redirects the session controller away from Apple
FM, here to an in-memory echo backend with a tiny context window so the
overflow-recovery path can be watched without real hardware.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from typing import Any

from applei import (
    Availability,
    BackendGenerationError,
    ContextOverflowError,
    GenerationErrorKind,
    SessionController,
    get_backend,
    set_backend,
)


class DemoSession:
    def __init__(self, instructions: str, transcript: Sequence[Any] | None = None) -> None:
        if transcript:
            self.entries: list[Any] = list(transcript)
        else:
            self.entries = [f"instructions: {instructions}"]


class DemoBackend:
    """Echoes prompts word by word; overflows once the transcript passes ``max_entries``."""

    def __init__(self, max_entries: int = 9) -> None:
        self.max_entries = max_entries

    def availability(self, use_case: str) -> Availability:
        return Availability.ok()

    def create_session(
        self, use_case: str, instructions: str, transcript: Sequence[Any] | None = None
    ) -> DemoSession:
        return DemoSession(instructions, transcript)

    async def stream_generate(
        self, session: DemoSession, prompt: str, temperature: float
    ) -> AsyncIterator[str]:
        session.entries.append(f"prompt: {prompt}")
        if len(session.entries) > self.max_entries:
            raise BackendGenerationError(GenerationErrorKind.CONTEXT_OVERFLOW)
        text = ""
        for word in f"echo: {prompt}".split():
            text = f"{text} {word}".strip()
            await asyncio.sleep(0.01)
            yield text
        session.entries.append(f"response: {text}")

    def transcript(self, session: DemoSession) -> Sequence[Any]:
        return session.entries

    def prewarm(self, session: DemoSession) -> None:
        pass


async def main() -> None:
    original = get_backend()
    set_backend(DemoBackend())
    try:
        controller = SessionController()
        for i in range(1, 7):
            prompt = f"message number {i}"
            try:
                reply = await controller.ask(prompt)
            except ContextOverflowError as exc:
                print(f"[WARNING] {exc.user_message}")
                reply = await controller.ask(prompt)
            print(f"{prompt!r} -> {reply!r} (turn {controller.turn_count})")
        controller.close()
    finally:
        set_backend(original)


if __name__ == "__main__":
    asyncio.run(main())
