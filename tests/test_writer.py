import io

import pytest

from ngxcache_core.errors import RecordIOError, Stage
from ngxcache_core.header import CacheHeader, decode, encode
from ngxcache_core.protocol import HEADER_LEN, PACKED_HEADER_LEN
from ngxcache_core.writer import write

KEY = b"\nKEY: http://example.com/x"
STATUS = b"HTTP/1.1 200 OK\r\n"
HEADERS = b"Content-Type: text/plain\r\n"


class BrokenSink(io.BytesIO):
    def write(self, data):
        raise OSError(28, "No space left on device")


def test_layout_with_gap():
    header_start = HEADER_LEN + len(KEY) + 1
    body_start = header_start + 100
    h = CacheHeader(version=5, header_start=header_start, body_start=body_start)
    dest = io.BytesIO()

    n = write(dest, h, KEY, STATUS, HEADERS, io.BytesIO(b"hello body"))

    out = dest.getvalue()
    assert n == 10
    assert out[:HEADER_LEN] == encode(h)
    assert out[PACKED_HEADER_LEN:HEADER_LEN] == b"\x00" * 4
    assert out[HEADER_LEN : header_start] == KEY + b"\n"
    head_end = header_start + len(STATUS) + len(HEADERS) + 4
    assert out[header_start:head_end] == STATUS + HEADERS + b"\r\n\r\n"
    assert out[head_end:body_start] == b"\x00" * (body_start - head_end)
    assert out[body_start:] == b"hello body"
    assert decode(out) == h


def test_body_overwrites_header_tail():
    header_start = HEADER_LEN + len(KEY) + 1
    # Same arithmetic as the offset recalculator: one header name.
    body_start = header_start + len(HEADERS) + 1 + 2
    h = CacheHeader(version=5, header_start=header_start, body_start=body_start)
    dest = io.BytesIO()

    write(dest, h, KEY, STATUS, HEADERS, io.BytesIO(b"BODY"))

    out = dest.getvalue()
    assert out[body_start:] == b"BODY"
    assert len(out) == body_start + 4
    assert out[header_start:body_start] == (STATUS + HEADERS)[: body_start - header_start]


def test_rewrite_into_existing_file_truncates(tmp_path):
    path = tmp_path / "rec"
    path.write_bytes(b"x" * 5000)
    header_start = HEADER_LEN + len(KEY) + 1
    h = CacheHeader(version=5, header_start=header_start, body_start=header_start + 64)
    with open(path, "r+b") as f:
        write(f, h, KEY, STATUS, HEADERS, io.BytesIO(b"short"))
    assert path.stat().st_size == header_start + 64 + 5


def test_write_failure_names_operation():
    h = CacheHeader(version=5, header_start=400, body_start=500)
    with pytest.raises(RecordIOError) as exc:
        write(BrokenSink(), h, KEY, STATUS, HEADERS, io.BytesIO(b""))
    assert exc.value.stage is Stage.WRITE
    assert exc.value.operation == "write record header"
    assert isinstance(exc.value.__cause__, OSError)
