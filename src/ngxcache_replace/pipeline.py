"""Replace or extract the body of an nginx cache record.

decode -> read key / header block -> rewrite headers -> recompute offsets -> write
"""
from __future__ import annotations

import logging
import os
import shutil
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from ngxcache_core import offsets, writer
from ngxcache_core.blocks import read_header_block, read_key
from ngxcache_core.errors import (
    CacheRecordError,
    FormatError,
    RecordIOError,
    RecordWarning,
    Stage,
    Truncated,
)
from ngxcache_core.header import read_header
from ngxcache_core.headers import HeaderMap, rewrite_for_new_body, serialize
from ngxcache_core.protocol import DEFAULT_LAYOUT, HEADER_TERMINATOR, RecordLayout

from .files import TempRecord

log = logging.getLogger(__name__)


def _display(value: bytes | str) -> str:
    if isinstance(value, str):
        value = value.encode("utf-8", "surrogateescape")
    return value.decode("utf-8", "replace")


@dataclass
class RewriteReport:
    cache_key: bytes  # without the "\nKEY: " marker
    key_length: int
    headers_length: int
    header_start: int
    body_start: int
    headers: HeaderMap
    status_line: bytes
    body_length: int
    original_content_type: str | None
    content_type_rewritten: bool
    dry_run: bool = False
    path: str = ""

    def as_dict(self) -> dict:
        return {
            "path": self.path,
            "cache_key": _display(self.cache_key),
            "key_length": self.key_length,
            "headers_length": self.headers_length,
            "header_start": self.header_start,
            "body_start": self.body_start,
            "status_line": _display(self.status_line).rstrip("\r\n"),
            "headers": {
                name: [_display(v) for v in values] for name, values in self.headers.items()
            },
            "body_length": self.body_length,
            "original_content_type": self.original_content_type,
            "content_type_rewritten": self.content_type_rewritten,
            "dry_run": self.dry_run,
        }


@dataclass
class ExtractReport:
    content_type: str | None
    content_length: str | None
    body_start: int
    body_length: int
    path: str = ""

    def as_dict(self) -> dict:
        return {
            "path": self.path,
            "content_type": self.content_type,
            "content_length": self.content_length,
            "body_start": self.body_start,
            "body_length": self.body_length,
        }


def rewrite_record(
    source: BinaryIO,
    body: BinaryIO,
    body_length: int,
    dest: BinaryIO,
    layout: RecordLayout = DEFAULT_LAYOUT,
) -> RewriteReport:
    """Write ``source`` to ``dest`` with its body replaced by ``body``.

    ``body_length`` is the total size of ``body``; it feeds the Content-Length
    of the png -> webp rewrite. ``source`` is only read.
    """
    header = read_header(source, layout)
    log.debug(
        "Decoded header: version=%d header_start=%d body_start=%d",
        header.version, header.header_start, header.body_start,
    )

    cache_key = read_key(source, header, layout)
    status_line, headers = read_header_block(source, header, layout)
    log.debug("Cache key %d bytes, %d header names", len(cache_key), len(headers))

    original_content_type = headers.get("Content-Type")
    new_headers = rewrite_for_new_body(headers, body_length, original_content_type)
    rewritten = new_headers != headers

    declared = new_headers.get("Content-Length")
    if declared is not None and declared != str(body_length):
        warnings.warn(
            f"Content-Length {declared} kept, replacement body is {body_length} bytes",
            RecordWarning,
            stacklevel=2,
        )

    serialized = serialize(new_headers)
    new_header = offsets.apply(header, cache_key, serialized, len(new_headers), layout)
    log.debug(
        "Recomputed offsets: header_start=%d body_start=%d",
        new_header.header_start, new_header.body_start,
    )

    head_end = (
        new_header.header_start
        + len(status_line)
        + len(serialized)
        + len(HEADER_TERMINATOR)
    )
    if head_end > new_header.body_start:
        log.debug("Header region ends at %d, body overwrites %d bytes", head_end, head_end - new_header.body_start)

    written = writer.write(dest, new_header, cache_key, status_line, serialized, body, layout)

    return RewriteReport(
        cache_key=cache_key[len(layout.key_marker):],
        key_length=len(cache_key),
        headers_length=len(serialized),
        header_start=new_header.header_start,
        body_start=new_header.body_start,
        headers=new_headers,
        status_line=status_line,
        body_length=written,
        original_content_type=original_content_type,
        content_type_rewritten=rewritten,
    )


def _open(path: Path, stage: Stage, what: str) -> BinaryIO:
    try:
        return open(path, "rb")
    except OSError as e:
        raise RecordIOError(stage, f"open {what}", e) from e


def replace_body(
    cache_path: str | Path,
    data_path: str | Path,
    dry_run: bool = False,
    layout: RecordLayout = DEFAULT_LAYOUT,
) -> RewriteReport:
    """Replace the body of the record at ``cache_path`` with ``data_path``.

    The new record is built in a temporary file beside the original and
    swapped in atomically. With ``dry_run`` the temporary file is removed and
    the original stays as it was.
    """
    cache_path = Path(cache_path)
    data_path = Path(data_path)

    with _open(data_path, Stage.DECODE, "replacement body") as body, \
            _open(cache_path, Stage.DECODE, "cache record") as source, \
            TempRecord(cache_path) as tmp:
        try:
            body_length = os.fstat(body.fileno()).st_size
        except OSError as e:
            raise RecordIOError(Stage.DECODE, "stat replacement body", e) from e

        report = rewrite_record(source, body, body_length, tmp.file, layout)
        report.path = str(cache_path)
        report.dry_run = dry_run

        if dry_run:
            tmp.discard()
        else:
            tmp.commit()
    return report


def inspect_record(source: BinaryIO, layout: RecordLayout = DEFAULT_LAYOUT) -> ExtractReport:
    """Validate ``source`` for extraction and describe its body.

    Only the fixed header and the record size decide whether the body can be
    extracted. The header block is read for the report alone: after a body
    swap the body may overwrite its tail, so a block that no longer parses
    leaves Content-Type and Content-Length as ``None``.
    """
    header = read_header(source, layout)

    content_type = content_length = None
    try:
        _status, headers = read_header_block(source, header, layout)
    except FormatError as e:
        log.warning("Header block not readable, reporting body only: %s", e)
    else:
        content_type = headers.get("Content-Type")
        content_length = headers.get("Content-Length")

    try:
        size = source.seek(0, os.SEEK_END)
    except OSError as e:
        raise RecordIOError(Stage.EXTRACT, "seek to end of record", e) from e
    if size < header.body_start:
        raise Truncated(Stage.EXTRACT, f"record is {size} bytes, BodyStart is {header.body_start}")

    return ExtractReport(
        content_type=content_type,
        content_length=content_length,
        body_start=header.body_start,
        body_length=size - header.body_start,
    )


def _copy_body(source: BinaryIO, dest: BinaryIO, report: ExtractReport) -> None:
    try:
        source.seek(report.body_start)
        shutil.copyfileobj(source, dest, writer.COPY_CHUNK)
    except OSError as e:
        raise RecordIOError(Stage.EXTRACT, "copy body", e) from e


def extract_stream(
    source: BinaryIO, dest: BinaryIO, layout: RecordLayout = DEFAULT_LAYOUT
) -> ExtractReport:
    """Copy the body of ``source`` to ``dest``."""
    report = inspect_record(source, layout)
    _copy_body(source, dest, report)
    return report


def extract_body(
    cache_path: str | Path, out_path: str | Path, layout: RecordLayout = DEFAULT_LAYOUT
) -> ExtractReport:
    """Write the body of the record at ``cache_path`` to ``out_path``.

    ``out_path`` is not opened until the record has been validated, so a
    rejected record leaves an existing output file untouched.
    """
    out_path = Path(out_path)
    with _open(Path(cache_path), Stage.DECODE, "cache record") as source:
        report = inspect_record(source, layout)
        try:
            out = open(out_path, "wb")
        except OSError as e:
            raise RecordIOError(Stage.EXTRACT, "create output file", e) from e
        try:
            with out:
                _copy_body(source, out, report)
        except CacheRecordError:
            out_path.unlink(missing_ok=True)
            raise
    report.path = str(out_path)
    return report


__all__ = [
    "ExtractReport",
    "RewriteReport",
    "extract_body",
    "extract_stream",
    "inspect_record",
    "replace_body",
    "rewrite_record",
]
