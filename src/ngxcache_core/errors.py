"""Error codes and exception types for cache record processing."""
from __future__ import annotations

from enum import Enum

ERRORS = {
    "E_UNSUPPORTED_VERSION": "Cache record format version not supported",
    "E_TRUNCATED": "Cache record shorter than its layout requires",
    "E_MALFORMED": "Cache record offsets or lengths are inconsistent",
    "E_HEADER_PARSE": "Status line or header block is not well-formed",
    "E_IO": "I/O failure while processing cache record",
}


class Stage(str, Enum):
    DECODE = "decode"
    EXTRACT = "extract"
    TRANSFORM = "transform"
    RECOMPUTE = "recompute"
    WRITE = "write"


class CacheRecordError(Exception):
    """Fatal error raised while reading, rewriting or writing a cache record.

    Every instance carries the ``code`` from ``ERRORS`` and the pipeline
    ``stage`` that raised it.
    """

    code = ""

    def __init__(self, stage: Stage, detail: str = "") -> None:
        self.stage = Stage(stage)
        self.detail = detail
        message = ERRORS[self.code]
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)

    def as_dict(self) -> dict:
        return {
            "code": self.code,
            "stage": self.stage.value,
            "message": ERRORS[self.code],
            "detail": self.detail,
        }


class FormatError(CacheRecordError):
    """The input record is corrupt or not in the supported format."""


class UnsupportedVersion(FormatError):
    code = "E_UNSUPPORTED_VERSION"


class Truncated(FormatError):
    code = "E_TRUNCATED"


class Malformed(FormatError):
    code = "E_MALFORMED"


class HeaderParseError(FormatError):
    code = "E_HEADER_PARSE"


class RecordIOError(CacheRecordError):
    """An underlying read, write, seek or rename failed."""

    code = "E_IO"

    def __init__(self, stage: Stage, operation: str, cause: OSError) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(stage, f"{operation} failed: {cause}")


class RecordWarning(UserWarning):
    """Non-fatal inconsistency in a rewritten record."""
