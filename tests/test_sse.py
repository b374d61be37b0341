"""Tests for the incremental SSE decoder."""

import asyncio
import json

import pytest

from core.cancellation import CancelSignal
from core.errors import Cancelled
from engines.sse import SseDecoder, iter_sse_events
from tests.conftest import assistant_message, response_completed, response_started, sse

STREAM = sse(
    response_started("resp_1"),
    assistant_message("Hi! ünïcödé ✓", "item_1"),
    response_completed("resp_1"),
)


def decode_chunks(chunks: list[bytes]) -> list[dict]:
    decoder = SseDecoder()
    events = []
    for chunk in chunks:
        events.extend(decoder.feed(chunk))
    return events


def split_every(data: bytes, size: int) -> list[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


class TestSseDecoder:
    def test_single_chunk(self):
        events = decode_chunks([STREAM])
        assert [e["type"] for e in events] == [
            "response.created",
            "response.output_item.done",
            "response.completed",
        ]
        assert events[1]["item"]["content"][0]["text"] == "Hi! ünïcödé ✓"

    @pytest.mark.parametrize("size", [1, 2, 3, 7, 64])
    def test_chunk_boundaries_do_not_change_output(self, size):
        """Splitting anywhere, including inside multi-byte characters, is invisible."""
        assert decode_chunks(split_every(STREAM, size)) == decode_chunks([STREAM])

    def test_partial_segment_is_held_back(self):
        decoder = SseDecoder()
        payload = json.dumps({"type": "a"})
        assert decoder.feed(f"data: {payload}\n".encode()) == []
        assert decoder.pending == f"data: {payload}\n"
        assert decoder.feed(b"\n") == [{"type": "a"}]
        assert decoder.pending == ""

    def test_segments_without_data_are_skipped(self):
        raw = b": keep-alive\n\nevent: ping\n\ndata: {\"type\": \"x\"}\n\n"
        assert decode_chunks([raw]) == [{"type": "x"}]

    def test_crlf_delimiters(self):
        raw = b"data: {\"type\": \"one\"}\r\n\r\ndata: {\"type\": \"two\"}\r\n\r\n"
        assert decode_chunks(split_every(raw, 1)) == [{"type": "one"}, {"type": "two"}]

    def test_crlf_split_across_chunks(self):
        decoder = SseDecoder()
        assert decoder.feed(b"data: {\"type\": \"one\"}\r") == []
        assert decoder.pending == "data: {\"type\": \"one\"}\r"
        assert decoder.feed(b"\n\r") == []
        assert decoder.feed(b"\n") == [{"type": "one"}]
        assert decoder.pending == ""

    def test_long_undelimited_segment_is_buffered(self):
        decoder = SseDecoder()
        text = "x" * 1000
        assert decoder.feed(b"data: \"") == []
        for _ in range(200):
            assert decoder.feed(text.encode()) == []
        assert decoder.feed(b"\"\n\n") == [text * 200]

    def test_invalid_utf8_is_replaced(self):
        events = decode_chunks([b'data: {"type": "a\xffb"}\n\n'])
        assert events == [{"type": "a\ufffdb"}]

    def test_multiple_data_lines_are_joined(self):
        raw = b"data: {\"type\":\ndata: \"joined\"}\n\n"
        assert decode_chunks([raw]) == [{"type": "joined"}]

    def test_invalid_json_raises(self):
        with pytest.raises(json.JSONDecodeError):
            decode_chunks([b"data: {not json\n\n"])


async def _chunks(*parts: bytes):
    for part in parts:
        yield part


class TestIterSseEvents:
    @pytest.mark.asyncio
    async def test_yields_events_in_order(self):
        events = [e async for e in iter_sse_events(_chunks(*split_every(STREAM, 5)))]
        assert [e["type"] for e in events] == [
            "response.created",
            "response.output_item.done",
            "response.completed",
        ]

    @pytest.mark.asyncio
    async def test_cancellation_during_pending_read(self):
        signal = CancelSignal()
        never = asyncio.Event()

        async def stalled():
            yield sse(response_started())
            await never.wait()
            yield sse(response_completed())

        received = []
        with pytest.raises(Cancelled) as exc_info:
            async for event in iter_sse_events(stalled(), signal):
                received.append(event)
                asyncio.get_running_loop().call_later(0.01, signal.cancel, "user stop")

        assert [e["type"] for e in received] == ["response.created"]
        assert exc_info.value.reason == "user stop"

    @pytest.mark.asyncio
    async def test_already_cancelled_signal(self):
        signal = CancelSignal()
        signal.cancel("too late")
        with pytest.raises(Cancelled, match="too late"):
            async for _ in iter_sse_events(_chunks(STREAM), signal):
                pass
