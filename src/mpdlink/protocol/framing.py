"""Streaming decoder turning raw byte chunks into line and blob tokens.

Wire layout::

    <text>\\n                       -> str token
    binary: <N>\\n<N raw bytes>\\n  -> bytes token (exactly N bytes)

The transport gives no framing guarantee, so a chunk boundary may split a line,
a UTF-8 sequence or a binary blob. The decoder keeps the unconsumed tail between
calls and only emits complete tokens.
Binary bytes are never text-decoded and may contain any byte value.
"""

from __future__ import annotations

from typing import Iterable, Iterator

from .errors import FramingError
from .messages import BINARY_PREFIX, Token

LINE_FEED = b"\n"


def parse_binary_length(line: str) -> int:
    """Return N from a ``binary: N`` header line."""
    text = line[len(BINARY_PREFIX):]
    # plain ASCII decimal only; int() would also take signs, spaces and "_"
    if not (text.isascii() and text.isdigit()):
        raise FramingError(f"Invalid binary length: {line!r}")
    return int(text)


class FrameDecoder:
    """Incremental byte-to-token decoder for one connection."""

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding
        self._buffer = bytearray()
        self._binary_length: int | None = None

    @property
    def buffered(self) -> int:
        """Number of bytes held back waiting for more input."""
        return len(self._buffer)

    @property
    def awaiting_binary(self) -> bool:
        return self._binary_length is not None

    def feed(self, chunk: bytes) -> Iterator[Token]:
        """Append a chunk and return an iterator over the tokens it completes.

        The chunk is buffered immediately; tokens are produced as the iterator
        is consumed.
        """
        self._buffer += chunk
        return self._drain()

    def _drain(self) -> Iterator[Token]:
        buffer = self._buffer
        while True:
            if self._binary_length is None:
                index = buffer.find(LINE_FEED)
                if index < 0:
                    return
                line = bytes(buffer[:index]).decode(self.encoding, errors="replace")
                del buffer[: index + 1]
                if line.startswith(BINARY_PREFIX):
                    self._binary_length = parse_binary_length(line)
                else:
                    yield line
            else:
                length = self._binary_length
                # payload plus the trailing delimiter
                if len(buffer) <= length:
                    return
                if buffer[length] != LINE_FEED[0]:
                    raise FramingError(
                        f"Binary payload of {length} bytes not followed by a line feed"
                    )
                blob = bytes(buffer[:length])
                del buffer[: length + 1]
                self._binary_length = None
                yield blob


def decode_chunks(chunks: Iterable[bytes], encoding: str = "utf-8") -> Iterator[Token]:
    """Decode a whole chunk sequence with a fresh decoder."""
    decoder = FrameDecoder(encoding)
    for chunk in chunks:
        yield from decoder.feed(chunk)
