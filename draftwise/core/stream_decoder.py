"""Incremental decoder for SSE-style completion streams.

The model endpoint answers with `data: <json>` lines terminated by a
`data: [DONE]` sentinel. Network chunks split those lines (and multi-byte
characters) at arbitrary points, so bytes are buffered until a full line
is available.

Usage:
    decoder = CompletionStreamDecoder()
    for raw in chunks:
        for delta in decoder.feed(raw):
            ...
    for delta in decoder.finish():
        ...
"""

import asyncio
import codecs
import json
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

from draftwise.core.logging import get_logger

logger = get_logger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


def extract_delta(payload: Any) -> str | None:
    """Pull the text delta out of a parsed frame.

    Two shapes are recognized: `{"response": "..."}` and the chat-delta shape
    `{"choices": [{"delta": {"content": "..."}}]}`. Empty strings yield None.
    """
    if not isinstance(payload, dict):
        return None

    response = payload.get("response")
    if isinstance(response, str):
        return response or None

    choices = payload.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        delta = choices[0].get("delta")
        if isinstance(delta, dict):
            content = delta.get("content")
            if isinstance(content, str) and content:
                return content

    return None


class CompletionStreamDecoder:
    """Turns raw byte chunks into ordered text deltas."""

    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.done = False

    def feed(self, chunk: bytes) -> list[str]:
        """Consume one network chunk and return the deltas it completed."""
        if self.done:
            return []

        self._buffer += self._utf8.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")

        deltas: list[str] = []
        for line in lines:
            delta = self._process_line(line)
            if self.done:
                logger.debug("Received [DONE] signal")
                self._buffer = ""
                break
            if delta:
                deltas.append(delta)
        return deltas

    def finish(self) -> list[str]:
        """Flush whatever is buffered when the stream closes without [DONE]."""
        if self.done:
            return []

        remaining = self._buffer + self._utf8.decode(b"", final=True)
        self._buffer = ""

        deltas: list[str] = []
        for line in remaining.split("\n"):
            delta = self._process_line(line)
            if self.done:
                break
            if delta:
                deltas.append(delta)

        self.done = True
        return deltas

    def _process_line(self, line: str) -> str | None:
        line = line.rstrip("\r")
        if not line.strip() or not line.startswith(DATA_PREFIX):
            return None

        payload = line[len(DATA_PREFIX) :].strip()
        if payload == DONE_SENTINEL:
            self.done = True
            return None

        try:
            parsed = json.loads(payload)
        except json.JSONDecodeError:
            # Fragmented or malformed frame: drop it, keep decoding
            logger.debug(f"Skipping unparsable stream frame ({len(payload)} chars)")
            return None

        return extract_delta(parsed)


_CANCELLED = object()
_EXHAUSTED = object()


async def _next_chunk(source: AsyncIterator[bytes], cancel: asyncio.Event | None) -> Any:
    """Await the next chunk, giving up as soon as `cancel` is set."""
    if cancel is None:
        try:
            return await source.__anext__()
        except StopAsyncIteration:
            return _EXHAUSTED

    if cancel.is_set():
        return _CANCELLED

    read = asyncio.ensure_future(source.__anext__())
    cancelled = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({read, cancelled}, return_when=asyncio.FIRST_COMPLETED)
    except BaseException:
        read.cancel()
        cancelled.cancel()
        raise
    cancelled.cancel()

    if read not in done:
        # Interrupt the stalled read so the source can be closed afterwards
        read.cancel()
        await asyncio.wait({read})
        return _CANCELLED

    try:
        return read.result()
    except StopAsyncIteration:
        return _EXHAUSTED


async def decode_stream(
    chunks: AsyncIterable[bytes],
    cancel: asyncio.Event | None = None,
) -> AsyncIterator[str]:
    """
    Decode an async byte stream into text deltas as they become available.

    Stops at [DONE], at end of stream (after flushing the buffer), or as soon
    as `cancel` is set, even while waiting on a stalled source. The source is
    closed on the way out. Transport errors raised by `chunks` propagate.

    Args:
        chunks: Raw byte chunks from the response body
        cancel: Optional cancellation token

    Yields:
        Non-empty text deltas in decode order
    """
    decoder = CompletionStreamDecoder()
    source = chunks.__aiter__()

    try:
        while True:
            chunk = await _next_chunk(source, cancel)
            if chunk is _CANCELLED:
                logger.debug("Stream decoding cancelled")
                return
            if chunk is _EXHAUSTED:
                break
            for delta in decoder.feed(chunk):
                if cancel is not None and cancel.is_set():
                    return
                yield delta
            if decoder.done:
                return

        if cancel is not None and cancel.is_set():
            return
        for delta in decoder.finish():
            yield delta
    finally:
        aclose = getattr(source, "aclose", None)
        if aclose is not None:
            await aclose()
