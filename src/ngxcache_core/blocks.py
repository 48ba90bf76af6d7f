"""Readers for the variable-length regions after the fixed header.

    [fixed header | padding] [\\nKEY: <key>] [\\n] [status line] [headers] [\\r\\n] [body]
    0                        H              HeaderStart - 1                   BodyStart

All offset math is checked before the stream is touched.
"""
from __future__ import annotations

import io
from typing import BinaryIO, Iterator

from .errors import HeaderParseError, Malformed, RecordIOError, Stage, Truncated
from .header import CacheHeader
from .headers import HeaderMap
from .protocol import BLOCK_SENTINEL, DEFAULT_LAYOUT, RecordLayout


def key_length(header: CacheHeader, layout: RecordLayout = DEFAULT_LAYOUT) -> int:
    # One separator byte sits between the key and the status line.
    return header.header_start - layout.header_len - 1


def _read_exact(stream: BinaryIO, offset: int, length: int, what: str) -> bytes:
    try:
        stream.seek(offset)
        data = stream.read(length)
    except OSError as e:
        raise RecordIOError(Stage.EXTRACT, f"read {what}", e) from e
    if len(data) != length:
        raise Truncated(Stage.EXTRACT, f"{what} at offset {offset} needs {length} bytes, got {len(data)}")
    return data


def read_key(stream: BinaryIO, header: CacheHeader, layout: RecordLayout = DEFAULT_LAYOUT) -> bytes:
    """Return the cache key block, marker included."""
    length = key_length(header, layout)
    if length < len(layout.key_marker):
        raise Malformed(
            Stage.EXTRACT,
            f"HeaderStart {header.header_start} leaves {length} bytes for the cache key",
        )

    key = _read_exact(stream, layout.header_len, length, "cache key")
    if not key.startswith(layout.key_marker):
        raise Malformed(Stage.EXTRACT, f"cache key does not start with {layout.key_marker!r}")
    return key


def split_status_line(block: bytes) -> tuple[bytes, bytes]:
    end = block.find(b"\n")
    if end == -1:
        raise HeaderParseError(Stage.EXTRACT, "status line is not terminated")
    return block[: end + 1], block[end + 1 :]


def _trim_eol(line: bytes) -> bytes:
    if line.endswith(b"\r\n"):
        return line[:-2]
    return line[:-1]


def _logical_lines(data: bytes) -> Iterator[bytes]:
    """Yield header lines with continuations folded in, up to the blank line."""
    buf = io.BytesIO(data)
    current: bytes | None = None
    while True:
        line = buf.readline()
        if not line.endswith(b"\n"):
            raise HeaderParseError(Stage.EXTRACT, "header block ends without a blank line")
        line = _trim_eol(line)

        if line[:1] in (b" ", b"\t"):
            if current is None:
                raise HeaderParseError(Stage.EXTRACT, f"continuation before first field: {line!r}")
            folded = line.strip(b" \t")
            if folded:
                current += b" " + folded
            continue

        if current is not None:
            yield current
        if not line:
            return
        current = line


def parse_header_block(data: bytes) -> HeaderMap:
    """Parse ``name: value`` lines terminated by an empty line."""
    headers = HeaderMap()
    for line in _logical_lines(data):
        name, sep, value = line.partition(b":")
        if not sep:
            raise HeaderParseError(Stage.EXTRACT, f"missing colon in header line {line!r}")
        if not name or b" " in name or b"\t" in name:
            raise HeaderParseError(Stage.EXTRACT, f"malformed header name in {line!r}")
        headers.add(
            name.decode("utf-8", "surrogateescape"),
            value.strip(b" \t").decode("utf-8", "surrogateescape"),
        )
    return headers


def read_header_block(
    stream: BinaryIO, header: CacheHeader, layout: RecordLayout = DEFAULT_LAYOUT
) -> tuple[bytes, HeaderMap]:
    """Return the raw status line and the parsed header fields."""
    if header.header_start <= layout.header_len:
        raise Malformed(Stage.EXTRACT, f"HeaderStart {header.header_start} inside the fixed header")
    if header.body_start <= header.header_start:
        raise Malformed(
            Stage.EXTRACT,
            f"BodyStart {header.body_start} does not follow HeaderStart {header.header_start}",
        )

    block = _read_exact(
        stream, header.header_start, header.body_start - header.header_start, "header block"
    )
    status_line, rest = split_status_line(block + BLOCK_SENTINEL)
    return status_line, parse_header_block(rest)
