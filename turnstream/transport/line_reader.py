"""Incremental line reassembly for chunked response streams.

Chunks arrive at arbitrary byte boundaries: a multi-byte character or a
whole event line may be split across two reads. LineReader decodes
statefully and only hands out complete lines, holding back the trailing
fragment until the next chunk (or the end of the stream) completes it.
"""

import codecs
from typing import AsyncIterable, AsyncIterator, Iterable, Optional

from ..constants import DEFAULT_ENCODING


class LineReader:
    """Reassembles logical lines from a sequence of byte chunks.

    Usage:
        reader = LineReader()
        for chunk in chunks:
            for line in reader.feed(chunk):
                handle(line)
        for line in reader.flush():
            handle(line)

    At most one incomplete trailing fragment is buffered at any time.
    """

    def __init__(self, encoding: str = DEFAULT_ENCODING) -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._fragment = ""
        self._closed = False

    @property
    def pending(self) -> str:
        """The incomplete fragment waiting for the rest of its line."""
        return self._fragment

    def feed(self, chunk: bytes) -> list[str]:
        """Decode a chunk and return every line it completes.

        Args:
            chunk: Raw bytes read from the stream

        Returns:
            Complete lines, without line terminators
        """
        if self._closed:
            raise ValueError("LineReader has already been flushed")
        if not chunk:
            return []

        text = self._fragment + self._decoder.decode(chunk)
        parts = text.split("\n")
        self._fragment = parts.pop()
        return [part.rstrip("\r") for part in parts]

    def flush(self) -> list[str]:
        """Finish decoding and return the final buffered fragment, if any."""
        if self._closed:
            return []
        self._closed = True

        tail = self._fragment + self._decoder.decode(b"", final=True)
        self._fragment = ""
        if not tail:
            return []
        return [tail.rstrip("\r")]


def iter_lines(chunks: Iterable[bytes], encoding: str = DEFAULT_ENCODING) -> list[str]:
    """Split an in-memory sequence of chunks into logical lines."""
    reader = LineReader(encoding)
    lines: list[str] = []
    for chunk in chunks:
        lines.extend(reader.feed(chunk))
    lines.extend(reader.flush())
    return lines


async def aiter_lines(
    chunks: AsyncIterable[bytes],
    encoding: str = DEFAULT_ENCODING,
    reader: Optional[LineReader] = None,
) -> AsyncIterator[str]:
    """Yield logical lines from an async chunk source, pulling one chunk at a time.

    Lines are only produced while the consumer keeps iterating; a consumer
    that stops early stops the underlying reads as well. The final fragment
    is flushed only when the source ends naturally.
    """
    reader = reader or LineReader(encoding)
    async for chunk in chunks:
        for line in reader.feed(chunk):
            yield line
    for line in reader.flush():
        yield line
