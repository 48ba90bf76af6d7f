"""Cache record assembly."""
from __future__ import annotations

import shutil
from typing import BinaryIO

from .errors import RecordIOError, Stage
from .header import CacheHeader, encode
from .protocol import DEFAULT_LAYOUT, HEADER_TERMINATOR, KEY_SEPARATOR, RecordLayout

COPY_CHUNK = 64 * 1024


def write(
    dest: BinaryIO,
    header: CacheHeader,
    cache_key: bytes,
    status_line: bytes,
    serialized_headers: bytes,
    body_source: BinaryIO,
    layout: RecordLayout = DEFAULT_LAYOUT,
) -> int:
    """Write a complete record to ``dest`` and return the body byte count.

    ``header`` must already carry the new offsets. The body is copied starting
    at ``header.body_start`` whatever was written before it; ``dest`` has to be
    seekable.
    """
    head = b"".join(
        [
            encode(header, layout),
            cache_key,
            KEY_SEPARATOR,
            status_line,
            serialized_headers,
            HEADER_TERMINATOR,
        ]
    )

    try:
        dest.seek(0)
        dest.write(head)
    except OSError as e:
        raise RecordIOError(Stage.WRITE, "write record header", e) from e

    try:
        dest.seek(header.body_start)
    except OSError as e:
        raise RecordIOError(Stage.WRITE, "seek to body", e) from e

    start = header.body_start
    try:
        shutil.copyfileobj(body_source, dest, COPY_CHUNK)
        end = dest.tell()
        # A short body must not leave header bytes behind it.
        dest.truncate(end)
    except OSError as e:
        raise RecordIOError(Stage.WRITE, "copy body", e) from e
    return end - start
