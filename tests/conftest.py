"""Shared builders for synthetic nginx cache records."""
from __future__ import annotations

import pytest

from ngxcache_core.header import CacheHeader, encode
from ngxcache_core.protocol import HEADER_LEN, KEY_MARKER

PNG_HEADERS = [
    ("Content-Type", "image/png"),
    ("Content-Length", "4321"),
    ("Cache-Control", "max-age=3600"),
]


def build_record(
    key: bytes = b"https://cdn.example.com/img/logo.png",
    status: bytes = b"HTTP/1.1 200 OK\r\n",
    headers: list[tuple[str, str]] | None = None,
    body: bytes = b"\x89PNG\r\n\x1a\n-original-png-bytes-",
    version: int = 5,
    **fields,
) -> bytes:
    """Lay out a record the way nginx writes one."""
    if headers is None:
        headers = PNG_HEADERS
    key_block = KEY_MARKER + key
    header_block = status + b"".join(f"{n}: {v}\r\n".encode() for n, v in headers) + b"\r\n"

    header_start = HEADER_LEN + len(key_block) + 1
    fields.setdefault("valid_sec", 1_790_000_000)
    fields.setdefault("date", 1_789_990_000)
    fields.setdefault("crc32", 0xDEADBEEF)
    fields.setdefault("etag_len", 6)
    fields.setdefault("etag", b'"abc1"')
    header = CacheHeader(
        version=version,
        header_start=header_start,
        body_start=header_start + len(header_block),
        **fields,
    )
    return encode(header) + key_block + b"\n" + header_block + body


@pytest.fixture
def make_record():
    return build_record


@pytest.fixture
def record_file(tmp_path):
    """Write a record (default: png response) and return its path."""

    def _write(name: str = "c9f1a2b3d4e5f60718293a4b5c6d7e8f", **kwargs):
        path = tmp_path / name
        path.write_bytes(build_record(**kwargs))
        return path

    return _write


@pytest.fixture
def data_file(tmp_path):
    def _write(content: bytes = b"RIFFwebp!!", name: str = "replacement.webp"):
        path = tmp_path / name
        path.write_bytes(content)
        return path

    return _write
