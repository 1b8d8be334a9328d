"""
Tests for applei.streaming: converting full-content-so-far snapshots into deltas.
"""

import pytest

from applei.streaming import StreamAccumulator, accumulate_deltas, next_delta


async def _snapshots(*chunks, error=None):
    for chunk in chunks:
        yield chunk
    if error is not None:
        raise error


class TestNextDelta:
    def test_suffix_after_previous_length(self):
        assert next_delta(2, "Hi there") == " there"

    def test_equal_length_is_empty(self):
        assert next_delta(5, "Hello") == ""

    def test_shorter_chunk_is_empty(self):
        assert next_delta(5, "Hel") == ""


class TestAccumulateDeltas:
    def test_growing_snapshots(self):
        deltas, final = accumulate_deltas(["Hi", "Hi there", "Hi there!"])
        assert deltas == ["Hi", " there", "!"]
        assert final == "Hi there!"

    def test_deltas_concatenate_to_final_text(self):
        chunks = ["H", "He", "Hel", "Hello", "Hello, world"]
        deltas, final = accumulate_deltas(chunks)
        assert "".join(deltas) == final

    def test_regressive_chunk_yields_empty_delta(self):
        deltas, final = accumulate_deltas(["Hello", "Hel"])
        assert deltas == ["Hello", ""]
        assert final == "Hel"

    def test_no_chunks(self):
        assert accumulate_deltas([]) == ([], "")

    def test_non_string_snapshots_are_stringified(self):
        deltas, final = accumulate_deltas([12, 123])
        assert deltas == ["12", "3"]
        assert final == "123"


class TestStreamAccumulator:
    async def test_async_consume(self):
        acc = StreamAccumulator()
        deltas = [d async for d in acc.consume(_snapshots("H", "He", "Hello"))]
        assert deltas == ["H", "e", "llo"]
        assert acc.final_text() == "Hello"
        assert acc.done
        assert acc.chunk_count == 3

    async def test_consume_accepts_sync_iterable(self):
        acc = StreamAccumulator()
        deltas = [d async for d in acc.consume(["a", "ab"])]
        assert deltas == ["a", "b"]

    async def test_error_propagates_and_keeps_partial_text(self):
        acc = StreamAccumulator()
        seen = []
        with pytest.raises(ValueError, match="boom"):
            async for delta in acc.consume(_snapshots("Par", "Partial", error=ValueError("boom"))):
                seen.append(delta)

        assert seen == ["Par", "tial"]
        assert acc.failed
        assert isinstance(acc.error, ValueError)
        assert acc.final_text() == "Partial"

    async def test_final_text_unavailable_mid_stream(self):
        acc = StreamAccumulator()
        agen = acc.consume(_snapshots("a", "ab"))
        await agen.__anext__()

        with pytest.raises(RuntimeError):
            acc.final_text()
        assert acc.partial_text == "a"
        await agen.aclose()
        assert acc.final_text() == "a"

    def test_final_text_before_start_is_empty(self):
        assert StreamAccumulator().final_text() == ""

    async def test_single_use(self):
        acc = StreamAccumulator()
        [d async for d in acc.consume(["x"])]
        with pytest.raises(RuntimeError, match="single-use"):
            [d async for d in acc.consume(["y"])]

    async def test_source_stream_closed_when_consumer_stops_early(self):
        closed = []

        async def source():
            try:
                yield "a"
                yield "ab"
            finally:
                closed.append(True)

        acc = StreamAccumulator()
        agen = acc.consume(source())
        await agen.__anext__()
        await agen.aclose()
        assert closed == [True]

    def test_consume_sync_error(self):
        def source():
            yield "ok"
            raise KeyError("gone")

        acc = StreamAccumulator()
        with pytest.raises(KeyError):
            list(acc.consume_sync(source()))
        assert acc.done
        assert acc.final_text() == "ok"
