"""Line framing for streamed text deltas.

A stream body is a sequence of records, one per line, each
``<tag>:<JSON-encoded string>``. Only the text tag ``0`` is defined;
lines with any other tag are ignored by the decoder.
"""

from __future__ import annotations
import codecs
import json
from typing import AsyncIterable, AsyncIterator, List, Optional

TEXT_TAG = "0:"
MEDIA_TYPE = "text/plain; charset=utf-8"


def encode_text_delta(delta: str) -> bytes:
    return (TEXT_TAG + json.dumps(delta, ensure_ascii=False) + "\n").encode("utf-8")


async def frame_text_stream(deltas: AsyncIterable[str]) -> AsyncIterator[bytes]:
    async for delta in deltas:
        if delta:
            yield encode_text_delta(delta)


def parse_line(line: str) -> Optional[str]:
    """Return the text carried by a ``0:`` line, or None for any other line."""
    line = line.rstrip("\r")
    if not line.startswith(TEXT_TAG):
        return None
    payload = line[len(TEXT_TAG):]
    try:
        value = json.loads(payload)
    except ValueError:
        value = None
    if isinstance(value, str):
        return value
    # not a JSON string: strip one quote at each end
    if payload.startswith('"'):
        payload = payload[1:]
    if payload.endswith('"'):
        payload = payload[:-1]
    return payload


class StreamDecoder:
    """Stateful decoder for a chunked stream body.

    Bytes are decoded incrementally so multi-byte UTF-8 sequences may span
    chunks, and a line is only parsed once its newline has arrived.
    """

    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes) -> List[str]:
        self._pending += self._utf8.decode(chunk)
        *lines, self._pending = self._pending.split("\n")
        return self._texts(lines)

    def close(self) -> List[str]:
        tail = self._pending + self._utf8.decode(b"", final=True)
        self._pending = ""
        return self._texts([tail]) if tail else []

    @staticmethod
    def _texts(lines: List[str]) -> List[str]:
        out: List[str] = []
        for line in lines:
            text = parse_line(line)
            if text:
                out.append(text)
        return out


async def decode_text_stream(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    decoder = StreamDecoder()
    async for chunk in chunks:
        for text in decoder.feed(chunk):
            yield text
    for text in decoder.close():
        yield text
