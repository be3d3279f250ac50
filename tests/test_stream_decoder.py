"""Tests for the incremental completion stream decoder."""

import asyncio

import pytest

from draftwise.core.stream_decoder import CompletionStreamDecoder, decode_stream, extract_delta

FRAMES = (
    'data: {"response": "Hel"}\n\n'
    'data: {"response": "lo"}\n\n'
    'data: {"choices": [{"delta": {"content": " café"}}]}\n\n'
    "data: [DONE]\n\n"
).encode("utf-8")

EXPECTED = ["Hel", "lo", " café"]


def _decode_all(chunks: list[bytes]) -> list[str]:
    decoder = CompletionStreamDecoder()
    out: list[str] = []
    for chunk in chunks:
        out.extend(decoder.feed(chunk))
    out.extend(decoder.finish())
    return out


async def _aiter(chunks):
    for chunk in chunks:
        yield chunk


# ──────────────────────────────────────────────────────────────────────
# extract_delta
# ──────────────────────────────────────────────────────────────────────


def test_extract_delta_shapes():
    assert extract_delta({"response": "hi"}) == "hi"
    assert extract_delta({"choices": [{"delta": {"content": "yo"}}]}) == "yo"
    assert extract_delta({"response": ""}) is None
    assert extract_delta({"choices": []}) is None
    assert extract_delta({"choices": [{"delta": {}}]}) is None
    assert extract_delta(["not", "a", "dict"]) is None


# ──────────────────────────────────────────────────────────────────────
# Decoder
# ──────────────────────────────────────────────────────────────────────


def test_decode_unsplit_stream():
    decoder = CompletionStreamDecoder()
    assert decoder.feed(FRAMES) == EXPECTED
    assert decoder.done is True


def test_decode_split_at_every_byte_boundary_matches_unsplit():
    for i in range(1, len(FRAMES)):
        assert _decode_all([FRAMES[:i], FRAMES[i:]]) == EXPECTED, f"split at byte {i}"


def test_decode_one_byte_at_a_time():
    chunks = [FRAMES[i : i + 1] for i in range(len(FRAMES))]
    assert _decode_all(chunks) == EXPECTED


def test_decode_three_way_splits():
    for i in range(1, len(FRAMES), 7):
        for j in range(i + 1, len(FRAMES), 11):
            assert _decode_all([FRAMES[:i], FRAMES[i:j], FRAMES[j:]]) == EXPECTED


def test_decode_skips_bad_frame_and_continues():
    raw = b'data: {"response": "a"}\ndata: {not json}\ndata: {"response": "b"}\ndata: [DONE]\n'
    assert _decode_all([raw]) == ["a", "b"]


def test_decode_ignores_non_data_lines():
    raw = b': keep-alive\nevent: message\ndata: {"response": "x"}\n\ndata: [DONE]\n'
    assert _decode_all([raw]) == ["x"]


def test_decode_handles_crlf_lines():
    raw = b'data: {"response": "x"}\r\n\r\ndata: [DONE]\r\n'
    assert _decode_all([raw]) == ["x"]


def test_decode_flushes_buffer_without_done():
    decoder = CompletionStreamDecoder()
    assert decoder.feed(b'data: {"response": "tail"}') == []
    assert decoder.finish() == ["tail"]
    assert decoder.done is True


def test_decode_stops_at_done():
    decoder = CompletionStreamDecoder()
    out = decoder.feed(b'data: {"response": "a"}\ndata: [DONE]\ndata: {"response": "late"}\n')
    assert out == ["a"]
    assert decoder.feed(b'data: {"response": "later"}\n') == []
    assert decoder.finish() == []


def test_decode_drops_empty_deltas():
    raw = b'data: {"response": ""}\ndata: {"response": "ok"}\ndata: [DONE]\n'
    assert _decode_all([raw]) == ["ok"]


# ──────────────────────────────────────────────────────────────────────
# Async sequence
# ──────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_decode_stream_yields_in_order():
    chunks = [FRAMES[:10], FRAMES[10:45], FRAMES[45:]]
    out = [delta async for delta in decode_stream(_aiter(chunks))]
    assert out == EXPECTED


@pytest.mark.asyncio
async def test_decode_stream_stops_when_cancelled():
    cancel = asyncio.Event()
    chunks = [b'data: {"response": "a"}\n', b'data: {"response": "b"}\n', b"data: [DONE]\n"]

    out = []
    async for delta in decode_stream(_aiter(chunks), cancel):
        out.append(delta)
        cancel.set()

    assert out == ["a"]


@pytest.mark.asyncio
async def test_decode_stream_cancel_while_source_stalled_closes_source():
    closed = asyncio.Event()

    async def stalled():
        try:
            yield b'data: {"response": "a"}\n'
            await asyncio.sleep(30)
            yield b'data: {"response": "late"}\n'
        finally:
            closed.set()

    cancel = asyncio.Event()
    out = []

    async def consume():
        async for delta in decode_stream(stalled(), cancel):
            out.append(delta)

    task = asyncio.create_task(consume())
    await asyncio.sleep(0.1)
    cancel.set()

    await asyncio.wait_for(task, timeout=2)
    assert out == ["a"]
    assert closed.is_set()


@pytest.mark.asyncio
async def test_decode_stream_closes_source_at_done():
    closed = asyncio.Event()

    async def source():
        try:
            yield b'data: {"response": "a"}\ndata: [DONE]\n'
            yield b'data: {"response": "never"}\n'
        finally:
            closed.set()

    out = [delta async for delta in decode_stream(source())]

    assert out == ["a"]
    assert closed.is_set()


@pytest.mark.asyncio
async def test_decode_stream_propagates_transport_error():
    async def broken():
        yield b'data: {"response": "a"}\n'
        raise ConnectionError("reset")

    out = []
    with pytest.raises(ConnectionError):
        async for delta in decode_stream(broken()):
            out.append(delta)

    assert out == ["a"]
