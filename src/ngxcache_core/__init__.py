"""nginx cache record codec: fixed header, key and header block, offsets."""
from .errors import (
    CacheRecordError,
    FormatError,
    HeaderParseError,
    Malformed,
    RecordIOError,
    RecordWarning,
    Stage,
    Truncated,
    UnsupportedVersion,
)
from .header import CacheHeader, decode, encode, read_header
from .headers import HeaderMap, rewrite_for_new_body, serialize
from .protocol import HEADER_LEN, NGINX_V5, RecordLayout

__all__ = [
    "CacheHeader",
    "CacheRecordError",
    "FormatError",
    "HEADER_LEN",
    "HeaderMap",
    "HeaderParseError",
    "Malformed",
    "NGINX_V5",
    "RecordIOError",
    "RecordLayout",
    "RecordWarning",
    "Stage",
    "Truncated",
    "UnsupportedVersion",
    "decode",
    "encode",
    "read_header",
    "rewrite_for_new_body",
    "serialize",
]
