import io
from dataclasses import replace

import pytest

from ngxcache_core.blocks import parse_header_block, read_header_block, read_key, split_status_line
from ngxcache_core.errors import HeaderParseError, Malformed, Stage, Truncated
from ngxcache_core.header import decode
from ngxcache_core.protocol import HEADER_LEN


class UnreadableStream(io.BytesIO):
    def read(self, *args):
        raise AssertionError("stream must not be read")


def _open(data: bytes):
    stream = io.BytesIO(data)
    return stream, decode(data)


def test_read_key(make_record):
    stream, header = _open(make_record(key=b"http://example.com/a.png"))
    assert read_key(stream, header) == b"\nKEY: http://example.com/a.png"


@pytest.mark.parametrize("header_start", [0, HEADER_LEN - 1, HEADER_LEN, HEADER_LEN + 1, HEADER_LEN + 6])
def test_key_offsets_checked_before_reading(make_record, header_start):
    header = replace(decode(make_record()), header_start=header_start)
    with pytest.raises(Malformed) as exc:
        read_key(UnreadableStream(), header)
    assert exc.value.stage is Stage.EXTRACT


def test_key_without_marker(make_record):
    data = bytearray(make_record())
    data[HEADER_LEN + 1 : HEADER_LEN + 4] = b"XYZ"
    stream, header = _open(bytes(data))
    with pytest.raises(Malformed):
        read_key(stream, header)


def test_key_truncated(make_record):
    data = make_record()
    stream, header = _open(data[: HEADER_LEN + 10])
    with pytest.raises(Truncated):
        read_key(stream, header)


def test_read_header_block(make_record):
    stream, header = _open(
        make_record(
            headers=[
                ("content-type", "text/html"),
                ("Set-Cookie", "a=1"),
                ("X-Cache", "HIT"),
                ("set-cookie", "b=2"),
            ]
        )
    )
    status, headers = read_header_block(stream, header)
    assert status == b"HTTP/1.1 200 OK\r\n"
    assert list(headers) == ["Content-Type", "Set-Cookie", "X-Cache"]
    assert headers.get_all("Set-Cookie") == ["a=1", "b=2"]
    assert headers.get("content-type") == "text/html"
    assert len(headers) == 3


def test_block_without_blank_line_is_terminated(make_record):
    data = make_record(headers=[("Content-Type", "image/png")])
    header = decode(data)
    # Drop the blank line: BodyStart moves back two bytes.
    short = replace(header, body_start=header.body_start - 2)
    status, headers = read_header_block(io.BytesIO(data), short)
    assert headers.get("Content-Type") == "image/png"


def test_block_offsets_checked(make_record):
    header = decode(make_record())
    with pytest.raises(Malformed):
        read_header_block(UnreadableStream(), replace(header, body_start=header.header_start))
    with pytest.raises(Malformed):
        read_header_block(UnreadableStream(), replace(header, header_start=HEADER_LEN))


def test_block_truncated(make_record):
    data = make_record()
    header = decode(data)
    with pytest.raises(Truncated):
        read_header_block(io.BytesIO(data[: header.body_start - 5]), header)


def test_split_status_line():
    assert split_status_line(b"HTTP/1.1 404 Not Found\nA: b\r\n") == (b"HTTP/1.1 404 Not Found\n", b"A: b\r\n")
    with pytest.raises(HeaderParseError):
        split_status_line(b"no newline")


def test_parse_continuation_and_whitespace():
    headers = parse_header_block(b"X-Long:  first\r\n  second\r\n\tthird\r\nVary:Accept \n\r\n")
    assert headers.get("X-Long") == "first second third"
    assert headers.get("Vary") == "Accept"


def test_parse_keeps_non_ascii_bytes():
    headers = parse_header_block("X-Name: café\r\n".encode() + b"X-Raw: \xff\xfe\r\n\r\n")
    assert headers.get("X-Name") == "café"
    assert headers.get("X-Raw").encode("utf-8", "surrogateescape") == b"\xff\xfe"


@pytest.mark.parametrize(
    "block",
    [
        b"no colon here\r\n\r\n",
        b"Bad Name: x\r\n\r\n",
        b": empty name\r\n\r\n",
        b" leading: continuation\r\n\r\n",
        b"A: b\r\n",
        b"",
    ],
)
def test_parse_errors(block):
    with pytest.raises(HeaderParseError) as exc:
        parse_header_block(block)
    assert exc.value.code == "E_HEADER_PARSE"
