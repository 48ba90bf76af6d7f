"""Response header map, the content-type rewrite rule and wire serialization."""
from __future__ import annotations

import io
from typing import Iterable, Iterator

from .errors import Malformed, Stage
from .protocol import CONTENT_TYPE_REWRITES

_TOKEN_CHARS = frozenset(
    "!#$%&'*+-.^_`|~0123456789"
    "abcdefghijklmnopqrstuvwxyz"
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
)


def canonical_name(name: str) -> str:
    """Canonical MIME form of a header name: ``content-type`` -> ``Content-Type``.

    Names containing characters outside the token set are returned as is.
    """
    if not name or any(c not in _TOKEN_CHARS for c in name):
        return name
    return "-".join(part[:1].upper() + part[1:].lower() for part in name.split("-"))


class HeaderMap:
    """Ordered header fields, several values per name.

    Names keep the order they were first seen in; values keep their order
    within a name. ``len()`` counts distinct names.
    """

    def __init__(self, items: Iterable[tuple[str, str]] | None = None) -> None:
        self._fields: dict[str, list[str]] = {}
        for name, value in items or ():
            self.add(name, value)

    def add(self, name: str, value: str) -> None:
        self._fields.setdefault(canonical_name(name), []).append(value)

    def set(self, name: str, value: str) -> None:
        # Assigning an existing key keeps its position in the dict.
        self._fields[canonical_name(name)] = [value]

    def get(self, name: str, default: str | None = None) -> str | None:
        values = self._fields.get(canonical_name(name))
        if values:
            return values[0]
        return default

    def get_all(self, name: str) -> list[str]:
        return list(self._fields.get(canonical_name(name), []))

    def items(self) -> list[tuple[str, list[str]]]:
        return [(name, list(values)) for name, values in self._fields.items()]

    def copy(self) -> HeaderMap:
        new = HeaderMap()
        new._fields = {name: list(values) for name, values in self._fields.items()}
        return new

    def as_dict(self) -> dict[str, list[str]]:
        return dict(self.items())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and canonical_name(name) in self._fields

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._fields))

    def __len__(self) -> int:
        return len(self._fields)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HeaderMap):
            return NotImplemented
        return list(self._fields.items()) == list(other._fields.items())

    def __repr__(self) -> str:
        return f"HeaderMap({self._fields!r})"


def rewrite_for_new_body(
    headers: HeaderMap, new_body_length: int, original_content_type: str | None
) -> HeaderMap:
    """Return a copy of ``headers`` adjusted for a replacement body.

    Only a response whose original Content-Type is listed in
    ``CONTENT_TYPE_REWRITES`` (``image/png``) is changed: it gets the new
    content type and a Content-Length equal to ``new_body_length``. Every
    other map comes back unchanged; reconciling an existing Content-Length
    with the new body is up to the caller.
    """
    if new_body_length < 0:
        raise Malformed(Stage.TRANSFORM, f"negative body length {new_body_length}")

    out = headers.copy()
    replacement = CONTENT_TYPE_REWRITES.get(original_content_type or "")
    if replacement is not None:
        out.set("Content-Type", replacement)
        out.set("Content-Length", str(new_body_length))
    return out


def _raw(text: str) -> bytes:
    return text.encode("utf-8", "surrogateescape")


def needs_encoding(value: str) -> bool:
    return any((b < 0x20 and b != 0x09) or b > 0x7E for b in _raw(value))


ENCODED_WORD_CHARSET = "UTF-8"
MAX_ENCODED_WORD_LEN = 75
_WORD_OPEN = f"=?{ENCODED_WORD_CHARSET}?q?"
_WORD_CLOSE = "?="


def _q_safe(b: int) -> bool:
    return 0x21 <= b <= 0x7E and b not in b"=?_"


def _rune_len(raw: bytes, i: int) -> int:
    lead = raw[i]
    if 0xC2 <= lead <= 0xDF:
        n = 2
    elif 0xE0 <= lead <= 0xEF:
        n = 3
    elif 0xF0 <= lead <= 0xF4:
        n = 4
    else:
        return 1
    try:
        raw[i : i + n].decode("utf-8")
    except UnicodeDecodeError:
        return 1
    return n


def encode_word(value: str) -> str:
    """UTF-8 Q-encoded MIME encoded-word(s) for ``value``.

    Words longer than 75 characters are split on character boundaries into
    several encoded-words separated by a space.
    """
    raw = _raw(value)
    max_content = MAX_ENCODED_WORD_LEN - len(_WORD_OPEN) - len(_WORD_CLOSE)
    words: list[str] = []
    current: list[str] = []
    current_len = 0
    i = 0
    while i < len(raw):
        if raw[i] == 0x20 or _q_safe(raw[i]):
            n, enc_len = 1, 1
        else:
            n = _rune_len(raw, i)
            enc_len = 3 * n
        if current_len + enc_len > max_content:
            words.append("".join(current))
            current, current_len = [], 0
        for b in raw[i : i + n]:
            if b == 0x20:
                current.append("_")
            elif _q_safe(b):
                current.append(chr(b))
            else:
                current.append(f"={b:02X}")
        current_len += enc_len
        i += n
    words.append("".join(current))
    return " ".join(f"{_WORD_OPEN}{word}{_WORD_CLOSE}" for word in words)


def serialize(headers: HeaderMap) -> bytes:
    """``name: value\\r\\n`` for every value, in order. No closing blank line."""
    buf = io.BytesIO()
    for name, values in headers.items():
        for value in values:
            if needs_encoding(value):
                value = encode_word(value)
            buf.write(_raw(name))
            buf.write(b": ")
            buf.write(_raw(value))
            buf.write(b"\r\n")
    return buf.getvalue()
