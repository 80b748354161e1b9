# tests/test_stream.py
import pytest

from interview_trainer.core.exceptions import FrameParseError
from interview_trainer.processors.stream import iter_sse_frames, parse_frame

from conftest import ByteSource, chat_delta, sse_body


async def collect(source):
    return [frame async for frame in iter_sse_frames(source)]


@pytest.mark.asyncio
async def test_frames_are_decoded_in_order():
    source = ByteSource([sse_body(chat_delta("你好"), chat_delta("世界"))])
    frames = await collect(source)
    assert frames == [chat_delta("你好"), chat_delta("世界")]
    assert source.closed == 1


@pytest.mark.asyncio
async def test_done_sentinel_ends_stream_without_a_frame():
    body = sse_body(chat_delta("a"), "[DONE]", chat_delta("never"))
    source = ByteSource([body])
    frames = await collect(source)
    assert frames == [chat_delta("a")]
    assert source.closed == 1


@pytest.mark.asyncio
async def test_malformed_frame_between_good_frames_is_skipped():
    body = sse_body(chat_delta("a"), "{not json", chat_delta("b"))
    frames = await collect(ByteSource([body]))
    assert frames == [chat_delta("a"), chat_delta("b")]


@pytest.mark.asyncio
async def test_multibyte_character_split_across_reads():
    body = sse_body(chat_delta("面试"))
    split = body.index("面".encode("utf-8")) + 1
    frames = await collect(ByteSource([body[:split], body[split:]]))
    assert frames == [chat_delta("面试")]


@pytest.mark.asyncio
async def test_partial_line_is_flushed_at_end_of_data():
    # No trailing newline after the last frame.
    body = b'data: {"n": 1}\ndata: {"n"' + b': 2}'
    frames = await collect(ByteSource([body[:20], body[20:]]))
    assert frames == [{"n": 1}, {"n": 2}]


@pytest.mark.asyncio
async def test_non_data_lines_and_carriage_returns_are_ignored():
    body = b'event: message\r\nid: 7\r\ndata: {"ok": true}\r\n\r\n: comment\n'
    frames = await collect(ByteSource([body]))
    assert frames == [{"ok": True}]


@pytest.mark.asyncio
async def test_source_closed_when_consumer_stops_early():
    source = ByteSource([sse_body(chat_delta("a"), chat_delta("b"), chat_delta("c"))])
    stream = iter_sse_frames(source)
    first = await stream.__anext__()
    await stream.aclose()
    assert first == chat_delta("a")
    assert source.closed == 1


def test_parse_frame_raises_frame_parse_error():
    with pytest.raises(FrameParseError) as exc_info:
        parse_frame("{broken")
    assert exc_info.value.payload == "{broken"
