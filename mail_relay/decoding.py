"""Charset detection and transfer-encoding decoders for raw message content.

Every function in this module degrades gracefully: an unknown charset falls
back to UTF-8 and malformed base64 or quoted-printable input is passed
through, so a badly encoded message never aborts the relay pipeline.
"""

from __future__ import annotations

import base64
import binascii
import codecs
import re
from typing import Optional

DEFAULT_CHARSET = "utf-8"

# Number of leading bytes inspected for a charset declaration
HEADER_SCAN_BYTES = 2000

# Upstream relays sometimes label Central European bodies as UTF-8.
LEGACY_CHARSET = "windows-1250"
ACCENTED_CHARS = frozenset("ąćęłńóśźżĄĆĘŁŃÓŚŹŻ")

_CHARSET_RE = re.compile(
    r"content-type:(?:[^\r\n]|\r?\n[ \t])*?charset\s*=\s*\"?([^\";\s]+)",
    re.IGNORECASE,
)
_SOFT_LINE_BREAK_RE = re.compile(r"=\r?\n")
_QP_ESCAPE_RE = re.compile(rb"=([0-9A-Fa-f]{2})")
_WHITESPACE_RE = re.compile(r"\s+")


def detect_charset(raw: bytes) -> str:
    """Return the charset declared by the first Content-Type header, or UTF-8."""
    head = raw[:HEADER_SCAN_BYTES].decode("ascii", errors="ignore")
    match = _CHARSET_RE.search(head)
    if match is None:
        return DEFAULT_CHARSET
    return match.group(1).strip().lower()


def _resolve_codec(charset: str) -> str:
    try:
        return codecs.lookup(charset).name
    except LookupError:
        return DEFAULT_CHARSET


def decode_bytes(raw: bytes, charset: str) -> str:
    """Decode ``raw`` with ``charset``; unsupported names fall back to UTF-8."""
    return raw.decode(_resolve_codec(charset), errors="replace")


def _count_accented(text: str) -> int:
    return sum(1 for char in text if char in ACCENTED_CHARS)


def decode_content(raw: bytes) -> str:
    """Decode a whole raw message into text.

    When the declared charset is UTF-8, the bytes are also read as
    ``windows-1250``; that reading wins only if it yields strictly more
    Polish diacritics than the UTF-8 one.
    """
    charset = detect_charset(raw)
    primary = decode_bytes(raw, charset)
    if _resolve_codec(charset) != "utf-8":
        return primary
    legacy = raw.decode(LEGACY_CHARSET, errors="replace")
    if _count_accented(legacy) > _count_accented(primary):
        return legacy
    return primary


def decode_quoted_printable(text: str) -> str:
    """Reverse quoted-printable encoding and read the result as UTF-8.

    ``=XX`` sequences that are not two hex digits stay literal.
    """
    unfolded = _SOFT_LINE_BREAK_RE.sub("", text)
    raw = _QP_ESCAPE_RE.sub(lambda match: bytes.fromhex(match.group(1).decode("ascii")), unfolded.encode("utf-8"))
    return raw.decode("utf-8", errors="replace")


def decode_base64(text: str) -> str:
    """Decode base64 text as UTF-8, returning ``text`` unchanged on failure."""
    compact = _WHITESPACE_RE.sub("", text)
    try:
        return base64.b64decode(compact, validate=True).decode("utf-8")
    except (binascii.Error, ValueError):
        return text


def decode_by_transfer_encoding(text: str, encoding: Optional[str] = None) -> str:
    """Apply the decoder matching a Content-Transfer-Encoding value.

    ``7bit``, ``8bit``, ``binary``, unknown and missing values are identity.
    """
    if not encoding:
        return text
    name = encoding.strip().lower()
    if name == "quoted-printable":
        return decode_quoted_printable(text)
    if name == "base64":
        return decode_base64(text)
    return text
