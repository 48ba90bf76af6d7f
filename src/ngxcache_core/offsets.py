"""HeaderStart / BodyStart recomputation.

The arithmetic below matches what nginx's cache reader expects from records
produced by this tool and must not be "corrected":

    HeaderStart = H + len(key) + 1
    BodyStart   = HeaderStart + len(serialized headers) + header_count + 2

``header_count`` is the number of distinct header names.
"""
from __future__ import annotations

from dataclasses import replace

from .errors import Malformed, Stage
from .header import CacheHeader
from .protocol import DEFAULT_LAYOUT, MAX_OFFSET, RecordLayout


def recompute(
    cache_key: bytes,
    serialized_headers: bytes,
    header_count: int,
    layout: RecordLayout = DEFAULT_LAYOUT,
) -> tuple[int, int]:
    if header_count < 0:
        raise Malformed(Stage.RECOMPUTE, f"negative header count {header_count}")

    header_start = layout.header_len + len(cache_key) + 1
    body_start = header_start + len(serialized_headers) + header_count + 2

    if body_start > MAX_OFFSET:
        raise Malformed(
            Stage.RECOMPUTE,
            f"BodyStart {body_start} does not fit the 16-bit offset field",
        )
    return header_start, body_start


def apply(
    header: CacheHeader,
    cache_key: bytes,
    serialized_headers: bytes,
    header_count: int,
    layout: RecordLayout = DEFAULT_LAYOUT,
) -> CacheHeader:
    """Copy of ``header`` carrying the recomputed offsets."""
    header_start, body_start = recompute(cache_key, serialized_headers, header_count, layout)
    return replace(header, header_start=header_start, body_start=body_start)
