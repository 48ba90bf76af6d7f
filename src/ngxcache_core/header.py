"""Fixed cache header codec.

The first ``HEADER_LEN`` bytes of every nginx cache file hold
``ngx_http_file_cache_header_t`` in host (little-endian) byte order, followed
by alignment padding. Only the two offsets are ever changed by this package;
the timing fields, ETag, Vary, variant and CRC32 pass through untouched.
"""
from __future__ import annotations

import struct
from dataclasses import astuple, dataclass
from typing import BinaryIO

from .errors import Malformed, RecordIOError, Stage, Truncated, UnsupportedVersion
from .protocol import (
    DEFAULT_LAYOUT,
    LAYOUTS,
    NGX_HTTP_CACHE_ETAG_LEN,
    NGX_HTTP_CACHE_KEY_LEN,
    NGX_HTTP_CACHE_VARY_LEN,
    RecordLayout,
)

_BUFFERS = {
    "etag": NGX_HTTP_CACHE_ETAG_LEN,
    "vary": NGX_HTTP_CACHE_VARY_LEN,
    "variant": NGX_HTTP_CACHE_KEY_LEN,
}


@dataclass(frozen=True)
class CacheHeader:
    version: int
    valid_sec: int = 0
    updating_sec: int = 0
    error_sec: int = 0
    last_modified: int = 0
    date: int = 0
    crc32: int = 0
    valid_msec: int = 0
    header_start: int = 0
    body_start: int = 0
    etag_len: int = 0
    etag: bytes = b""
    vary_len: int = 0
    vary: bytes = b""
    variant: bytes = b""

    def __post_init__(self) -> None:
        # Fixed buffers are always held at full width so decode(encode(h)) == h.
        for name, width in _BUFFERS.items():
            value = bytes(getattr(self, name))
            if len(value) > width:
                raise Malformed(Stage.WRITE, f"{name} is {len(value)} bytes, buffer holds {width}")
            object.__setattr__(self, name, value.ljust(width, b"\x00"))

    @property
    def etag_value(self) -> bytes:
        return self.etag[: self.etag_len]


def decode(data: bytes, layout: RecordLayout = DEFAULT_LAYOUT) -> CacheHeader:
    """Decode the fixed header from the first ``layout.header_len`` bytes of ``data``."""
    if len(data) < layout.header_len:
        raise Truncated(Stage.DECODE, f"fixed header needs {layout.header_len} bytes, got {len(data)}")

    (version,) = struct.unpack_from("<Q", data)
    if version != layout.version:
        supported = ", ".join(str(v) for v in sorted(LAYOUTS))
        raise UnsupportedVersion(Stage.DECODE, f"found {version}, supported: {supported}")

    return CacheHeader(*struct.unpack_from(layout.header_fmt, data))


def encode(header: CacheHeader, layout: RecordLayout = DEFAULT_LAYOUT) -> bytes:
    """Encode ``header`` as exactly ``layout.header_len`` bytes, padding included."""
    try:
        packed = struct.pack(layout.header_fmt, *astuple(header))
    except struct.error as e:
        raise Malformed(Stage.WRITE, f"header field out of range: {e}") from e
    return packed + b"\x00" * layout.padding_len


def read_header(stream: BinaryIO, layout: RecordLayout = DEFAULT_LAYOUT) -> CacheHeader:
    try:
        stream.seek(0)
        data = stream.read(layout.header_len)
    except OSError as e:
        raise RecordIOError(Stage.DECODE, "read fixed header", e) from e
    return decode(data, layout)
