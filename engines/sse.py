"""Incremental server-sent events decoder"""
import codecs
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from core.cancellation import CancelSignal, guarded

logger = logging.getLogger(__name__)


class SseDecoder:
    """Turns arbitrarily chunked bytes into parsed ``data:`` payloads.

    Only fully delimited events are emitted; the trailing partial segment
    stays buffered until the next chunk completes it.
    Multiple ``data:`` lines in one event are joined with a newline.
    """

    def __init__(self):
        # Malformed bytes become U+FFFD instead of failing the stream
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        # A trailing "\r" may be the first half of a CRLF split across chunks
        self._carry = ""

    def feed(self, chunk: bytes) -> List[Dict[str, Any]]:
        text = self._carry + self._decoder.decode(chunk)
        self._carry = ""
        if text.endswith("\r"):
            self._carry = "\r"
            text = text[:-1]

        # Only the new text is normalized and searched; a delimiter can
        # straddle the old buffer by at most one character
        start = max(len(self._buffer) - 1, 0)
        self._buffer += text.replace("\r\n", "\n")

        events = []
        while True:
            index = self._buffer.find("\n\n", start)
            if index < 0:
                break
            segment = self._buffer[:index]
            self._buffer = self._buffer[index + 2:]
            start = 0

            data = self._extract_data(segment)
            if data is None:
                continue
            events.append(json.loads(data))
        return events

    @staticmethod
    def _extract_data(segment: str) -> Optional[str]:
        data_lines = [line[5:].strip() for line in segment.split("\n") if line.startswith("data:")]
        if not data_lines:
            return None
        data = "\n".join(data_lines).strip()
        return data or None

    @property
    def pending(self) -> str:
        """Undelimited text still waiting for more bytes"""
        return self._buffer + self._carry


async def iter_sse_events(
    chunks: AsyncIterator[bytes],
    signal: Optional[CancelSignal] = None,
) -> AsyncIterator[Dict[str, Any]]:
    """Decode an async byte stream, honoring cancellation on every read"""
    decoder = SseDecoder()
    iterator = chunks.__aiter__()

    while True:
        if signal:
            signal.raise_if_aborted()
        try:
            chunk = await guarded(iterator.__anext__(), signal)
        except StopAsyncIteration:
            break
        for event in decoder.feed(chunk):
            yield event

    if decoder.pending.strip():
        logger.debug(f"Discarding undelimited SSE tail: {decoder.pending[:100]}")
