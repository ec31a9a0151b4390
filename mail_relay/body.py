"""Extraction of the text/plain and text/html sections of a message body."""

from __future__ import annotations

import re
from typing import Optional

from .decoding import decode_by_transfer_encoding
from .models import EmailBody


def _section_pattern(mime_type: str) -> re.Pattern[str]:
    # Part headers after the Content-Type line run up to the first blank line;
    # the body runs up to the next boundary marker or the end of the content.
    return re.compile(
        r"Content-Type:[ \t]*" + re.escape(mime_type)
        + r"(?P<headers>[\s\S]*?)\r?\n\r?\n"
        + r"(?P<body>[\s\S]*?)(?=\r?\n--|\s*\Z)",
        re.IGNORECASE,
    )


_TEXT_SECTION_RE = _section_pattern("text/plain")
_HTML_SECTION_RE = _section_pattern("text/html")
_TRANSFER_ENCODING_RE = re.compile(r"Content-Transfer-Encoding:[ \t]*([^\s;]+)", re.IGNORECASE)


def _extract_section(pattern: re.Pattern[str], raw_content: str) -> Optional[str]:
    match = pattern.search(raw_content)
    if match is None:
        return None
    encoding_match = _TRANSFER_ENCODING_RE.search(match.group("headers"))
    encoding = encoding_match.group(1) if encoding_match else None
    content = match.group("body").strip()
    return decode_by_transfer_encoding(content, encoding)


def extract_body(raw_content: str) -> EmailBody:
    """Locate and decode the plain text and HTML sections of ``raw_content``."""
    return EmailBody(
        text=_extract_section(_TEXT_SECTION_RE, raw_content),
        html=_extract_section(_HTML_SECTION_RE, raw_content),
    )
