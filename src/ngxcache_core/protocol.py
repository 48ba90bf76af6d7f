"""nginx proxy cache record layout constants.

Single source of truth for on-disk widths, markers and the fixed header
struct. A new cache format version gets its own ``RecordLayout`` instance
here; nothing else should hard-code these numbers.
"""
from __future__ import annotations

import struct
from dataclasses import dataclass

# ngx_http_file_cache.h buffer sizes
NGX_HTTP_CACHE_KEY_LEN = 16
NGX_HTTP_CACHE_ETAG_LEN = 128
NGX_HTTP_CACHE_VARY_LEN = 128

# Record markers
KEY_MARKER = b"\nKEY: "
KEY_SEPARATOR = b"\n"
HEADER_TERMINATOR = b"\r\n\r\n"
BLOCK_SENTINEL = b"\r\n"  # appended when reading so the header block always terminates

# Content-type rewrite applied when a body is replaced
CONTENT_TYPE_REWRITES = {
    "image/png": "image/webp",
}


@dataclass(frozen=True)
class RecordLayout:
    """Fixed widths of one cache format version."""

    version: int
    # Header: [Version(8) | ValidSec(8) | UpdatingSec(8) | ErrorSec(8) |
    #          LastModified(8) | Date(8) | CRC32(4) | ValidMsec(2) |
    #          HeaderStart(2) | BodyStart(2) | ETagLen(1) | ETag(128) |
    #          VaryLen(1) | Vary(128) | Variant(16)] = 332 bytes
    header_fmt: str
    padding_len: int
    key_marker: bytes = KEY_MARKER
    etag_len: int = NGX_HTTP_CACHE_ETAG_LEN
    vary_len: int = NGX_HTTP_CACHE_VARY_LEN
    variant_len: int = NGX_HTTP_CACHE_KEY_LEN

    @property
    def packed_len(self) -> int:
        return struct.calcsize(self.header_fmt)

    @property
    def header_len(self) -> int:
        """Width of the fixed region, padding included. The key starts here."""
        return self.packed_len + self.padding_len


NGINX_V5 = RecordLayout(
    version=5,
    header_fmt="<6QIHHHB128sB128s16s",
    # nginx's struct is 8-byte aligned: 332 packed bytes land on 336
    padding_len=4,
)

LAYOUTS = {NGINX_V5.version: NGINX_V5}
DEFAULT_LAYOUT = NGINX_V5

HEADER_LEN = DEFAULT_LAYOUT.header_len  # 336
PACKED_HEADER_LEN = DEFAULT_LAYOUT.packed_len  # 332

# Offsets are stored as unsigned 16-bit integers
MAX_OFFSET = 0xFFFF
