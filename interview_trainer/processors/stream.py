"""
Server-sent-event decoding for streaming upstream responses.

Turns an async byte source into the JSON payloads carried on its
``data: `` lines. A ``[DONE]`` payload ends the stream; a payload that is
not valid JSON is logged and skipped so one bad frame never aborts a reply.
"""
import codecs
import json
from typing import Any, AsyncIterable, AsyncIterator, Optional

import structlog

from ..core.exceptions import FrameParseError

logger = structlog.get_logger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


def parse_frame(payload: str) -> Any:
    try:
        return json.loads(payload)
    except ValueError as e:
        raise FrameParseError(payload) from e


def _data_payload(line: str) -> Optional[str]:
    line = line.rstrip("\r")
    if not line.startswith(DATA_PREFIX):
        return None
    return line[len(DATA_PREFIX):]


async def iter_sse_frames(source: AsyncIterable[bytes]) -> AsyncIterator[Any]:
    """
    Decode ``source`` into event-stream frames.

    A multi-byte character or a line split across two reads is carried over
    to the next read and flushed at end-of-data. The source is closed on
    completion, on ``[DONE]`` and when the consumer stops iterating early.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    pending = ""
    exhausted = False
    try:
        iterator = source.__aiter__()
        while not exhausted:
            try:
                chunk = await iterator.__anext__()
            except StopAsyncIteration:
                exhausted = True
                pending += decoder.decode(b"", final=True)
                lines, pending = [pending], ""
            else:
                pending += decoder.decode(chunk)
                *lines, pending = pending.split("\n")

            for line in lines:
                payload = _data_payload(line)
                if payload is None:
                    continue
                if payload.strip() == DONE_SENTINEL:
                    logger.debug("stream_done_sentinel")
                    return
                try:
                    frame = parse_frame(payload)
                except FrameParseError as e:
                    logger.warning("stream_frame_skipped", error=str(e))
                    continue
                yield frame
    finally:
        aclose = getattr(source, "aclose", None)
        if aclose is not None:
            await aclose()
