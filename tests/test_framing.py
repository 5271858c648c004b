"""Tests for the streaming frame decoder."""

from __future__ import annotations

import pytest

from mpdlink.protocol.errors import FramingError
from mpdlink.protocol.framing import FrameDecoder, decode_chunks, parse_binary_length

STREAM = (
    "OK MPD 0.23.5\n"
    "file: Ärzte/Schrei nach Liebe.flac\n"
    "Title: Schrei nach Liebe\n"
    "OK\n"
    "size: 11\n"
    "type: image/jpeg\n"
).encode("utf-8") + b"binary: 11\n\x00\n\xffJPEG\nOK\n\n" + b"OK\n"

EXPECTED = [
    "OK MPD 0.23.5",
    "file: Ärzte/Schrei nach Liebe.flac",
    "Title: Schrei nach Liebe",
    "OK",
    "size: 11",
    "type: image/jpeg",
    b"\x00\n\xffJPEG\nOK\n",
    "OK",
]


def chunked(data: bytes, size: int) -> list[bytes]:
    return [data[i : i + size] for i in range(0, len(data), size)]


class TestFrameDecoder:
    """Tests for FrameDecoder."""

    def test_single_chunk(self):
        """Test decoding a complete stream in one chunk."""
        assert list(decode_chunks([STREAM])) == EXPECTED

    @pytest.mark.parametrize("size", [1, 2, 3, 5, 7, 13, 64])
    def test_chunk_boundaries_do_not_matter(self, size):
        """Test that any chunking yields the same tokens."""
        assert list(decode_chunks(chunked(STREAM, size))) == EXPECTED

    def test_every_split_point(self):
        """Test splitting the stream in two at every offset."""
        for cut in range(len(STREAM) + 1):
            tokens = list(decode_chunks([STREAM[:cut], STREAM[cut:]]))
            assert tokens == EXPECTED, f"split at {cut}"

    def test_split_inside_codepoint(self):
        """Test a chunk boundary inside a multi-byte UTF-8 sequence."""
        data = "Title: Ärzte\n".encode("utf-8")
        cut = data.index(b"\xc3") + 1
        decoder = FrameDecoder()

        assert list(decoder.feed(data[:cut])) == []
        assert list(decoder.feed(data[cut:])) == ["Title: Ärzte"]

    def test_partial_line_is_buffered(self):
        """Test that nothing is emitted before the line feed arrives."""
        decoder = FrameDecoder()

        assert list(decoder.feed(b"volume: 10")) == []
        assert decoder.buffered == 10
        assert list(decoder.feed(b"0\n")) == ["volume: 100"]
        assert decoder.buffered == 0

    def test_binary_payload(self):
        """Test the binary example: exactly five bytes, no residue."""
        decoder = FrameDecoder()
        tokens = list(decoder.feed(b"binary: 5\nHELLO\nOK\n"))

        assert tokens == [b"HELLO", "OK"]
        assert decoder.buffered == 0
        assert not decoder.awaiting_binary

    def test_binary_waits_for_delimiter(self):
        """Test that a blob is held until its trailing delimiter arrives."""
        decoder = FrameDecoder()

        assert list(decoder.feed(b"binary: 5\nHEL")) == []
        assert decoder.awaiting_binary
        assert list(decoder.feed(b"LO")) == []
        assert list(decoder.feed(b"\nOK\n")) == [b"HELLO", "OK"]

    def test_binary_with_line_feeds(self):
        """Test that line feeds inside the payload are not line breaks."""
        tokens = list(decode_chunks([b"binary: 3\n\n\n\n\nOK\n"]))
        assert tokens == [b"\n\n\n", "OK"]

    def test_empty_binary(self):
        """Test a zero-length payload."""
        assert list(decode_chunks([b"binary: 0\n\nOK\n"])) == [b"", "OK"]

    def test_binary_without_delimiter(self):
        """Test that a payload not followed by a line feed is rejected."""
        with pytest.raises(FramingError):
            list(decode_chunks([b"binary: 2\nABCOK\n"]))

    def test_invalid_utf8_is_replaced(self):
        """Test that undecodable text does not break the stream."""
        tokens = list(decode_chunks([b"file: \xff.mp3\nOK\n"]))
        assert tokens == ["file: �.mp3", "OK"]

    def test_empty_line(self):
        """Test that an empty line is a token of its own."""
        assert list(decode_chunks([b"\nOK\n"])) == ["", "OK"]

    def test_chunk_buffered_before_iteration(self):
        """Test that feed() keeps the chunk even if tokens are read later."""
        decoder = FrameDecoder()
        decoder.feed(b"a\n")
        assert list(decoder.feed(b"b\n")) == ["a", "b"]


class TestBinaryLength:
    """Tests for binary header parsing."""

    def test_valid(self):
        assert parse_binary_length("binary: 8192") == 8192

    def test_not_a_number(self):
        with pytest.raises(FramingError, match="Invalid binary length"):
            parse_binary_length("binary: lots")

    def test_negative(self):
        with pytest.raises(FramingError):
            parse_binary_length("binary: -1")

    @pytest.mark.parametrize(
        "line",
        ["binary: 1_0", "binary: +3", "binary:  4 ", "binary: ٣", "binary: "],
    )
    def test_only_plain_decimal(self, line):
        """Test that only ASCII digits are accepted as a length."""
        with pytest.raises(FramingError, match="Invalid binary length"):
            parse_binary_length(line)

    def test_zero(self):
        assert parse_binary_length("binary: 0") == 0
