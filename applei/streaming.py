"""
Streaming response accumulation.

The backend re-sends the *entire* response generated so far on every update.
:class:`StreamAccumulator` turns that into deltas for progressive display
while remembering the latest full text.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, AsyncIterable, Iterable, Iterator
from typing import Any, Union

logger = logging.getLogger("applei")

__all__ = ["StreamAccumulator", "accumulate_deltas", "next_delta"]


def next_delta(previous_length: int, chunk: str) -> str:
    """Return the unseen suffix of *chunk*; empty when the chunk shrank."""
    if len(chunk) <= previous_length:
        return ""
    return chunk[previous_length:]


class StreamAccumulator:
    """
    Single-use consumer of a full-content-so-far stream.

    Usage::

        acc = StreamAccumulator()
        async for delta in acc.consume(backend.stream_generate(session, prompt, 0.7)):
            print(delta, end="", flush=True)
        text = acc.final_text()

    If the source raises, the exception propagates unchanged and
    :meth:`final_text` still returns the partial text received before the
    failure.
    """

    def __init__(self) -> None:
        self._text = ""
        self._started = False
        self._done = False
        self._error: BaseException | None = None
        self.chunk_count = 0

    @property
    def done(self) -> bool:
        return self._done

    @property
    def failed(self) -> bool:
        return self._error is not None

    @property
    def error(self) -> BaseException | None:
        return self._error

    @property
    def partial_text(self) -> str:
        """Text received so far, readable at any point."""
        return self._text

    def _start(self) -> None:
        if self._started:
            raise RuntimeError("StreamAccumulator is single-use; create a new one per stream")
        self._started = True

    def _advance(self, snapshot: Any) -> str:
        chunk = str(snapshot)
        delta = next_delta(len(self._text), chunk)
        if len(chunk) < len(self._text):
            logger.debug(
                "[Applei Stream] Regressive chunk (%d < %d chars); emitting empty delta",
                len(chunk),
                len(self._text),
            )
        self._text = chunk
        self.chunk_count += 1
        return delta

    async def consume(
        self, stream: Union[AsyncIterable[Any], Iterable[Any]]
    ) -> AsyncGenerator[str, None]:
        """Yield one delta per snapshot received from *stream*."""
        self._start()
        try:
            if isinstance(stream, AsyncIterable):
                async for snapshot in stream:
                    yield self._advance(snapshot)
            else:
                for snapshot in stream:
                    yield self._advance(snapshot)
        except Exception as exc:
            self._error = exc
            raise
        finally:
            self._done = True
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    def consume_sync(self, stream: Iterable[Any]) -> Iterator[str]:
        """Synchronous counterpart of :meth:`consume`."""
        self._start()
        try:
            for snapshot in stream:
                yield self._advance(snapshot)
        except Exception as exc:
            self._error = exc
            raise
        finally:
            self._done = True

    def final_text(self) -> str:
        """Return the last full-content value seen.

        Raises:
            RuntimeError: While the stream is still being consumed.
        """
        if self._started and not self._done:
            raise RuntimeError("final_text() is only available once the stream has ended")
        return self._text


def accumulate_deltas(chunks: Iterable[Any]) -> tuple[list[str], str]:
    """Run *chunks* through a fresh accumulator; return ``(deltas, final_text)``."""
    acc = StreamAccumulator()
    deltas = list(acc.consume_sync(chunks))
    return deltas, acc.final_text()
