"""Inbound message representation and structured email builder."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from email import policy
from email.parser import BytesHeaderParser
from typing import Dict, Iterable, Iterator, Tuple

from .addresses import parse_address, parse_address_list
from .body import extract_body
from .decoding import decode_content
from .models import EmailBody, StructuredEmail

# Headers surfaced as top-level StructuredEmail fields
TOP_LEVEL_HEADERS = ("subject", "from", "to", "cc", "bcc", "date", "message-id")

# Set by auto-forwarding relays that rewrite the envelope sender
FORWARDING_HEADERS = ("x-forwarded-to", "x-forwarded-for")


def normalize_header_name(name: str) -> str:
    """Lower-case a header name and turn hyphens into underscores."""
    return name.lower().replace("-", "_")


class HeaderMap(Mapping):
    """Ordered, case-insensitive view of message headers.

    Names are stored lower-cased; repeated headers are joined with ``", "``.
    """

    def __init__(self, items: Iterable[Tuple[str, str]] = ()):
        self._items: Dict[str, str] = {}
        for name, value in items:
            key = name.strip().lower()
            if key in self._items:
                self._items[key] = f"{self._items[key]}, {value}"
            else:
                self._items[key] = value

    @classmethod
    def from_bytes(cls, raw: bytes) -> "HeaderMap":
        """Parse the header block of a raw RFC 822 message.

        Values come back unfolded with RFC 2047 encoded-words decoded;
        raw 8-bit values are read as UTF-8.
        """
        parsed = BytesHeaderParser(policy=policy.default).parsebytes(raw)
        return cls((name, str(value).strip()) for name, value in parsed.items())

    def __getitem__(self, key: str) -> str:
        return self._items[key.lower()]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"HeaderMap({self._items!r})"

    def normalized(self, remove: Iterable[str] = ()) -> Dict[str, str]:
        """Return a plain dict with normalized names, minus ``remove``.

        Each removed name is dropped in both its original and normalized
        spelling.
        """
        result = {normalize_header_name(name): value for name, value in self._items.items()}
        for name in remove:
            result.pop(name.lower(), None)
            result.pop(normalize_header_name(name), None)
        return result


@dataclass(frozen=True)
class InboundMessage:
    """An inbound message as handed over by the mail trigger."""

    mail_from: str
    rcpt_to: str
    headers: HeaderMap = field(default_factory=HeaderMap)
    raw: bytes = b""

    @classmethod
    def from_bytes(cls, raw: bytes, mail_from: str, rcpt_to: str) -> "InboundMessage":
        return cls(mail_from=mail_from, rcpt_to=rcpt_to, headers=HeaderMap.from_bytes(raw), raw=raw)


def is_forwarded(headers: Mapping) -> bool:
    """Return whether an auto-forwarding relay marked the message."""
    if not isinstance(headers, HeaderMap):
        headers = HeaderMap(headers.items())
    return any(headers.get(name) for name in FORWARDING_HEADERS)


def resolve_original_sender(envelope_from: str, headers: Mapping) -> str:
    """Return the true originator of a message.

    Forwarded mail (marked by ``X-Forwarded-To``/``X-Forwarded-For``) that
    carries a ``Return-Path`` is attributed to that address, brackets
    stripped. Anything else keeps the envelope sender.
    """
    if not isinstance(headers, HeaderMap):
        headers = HeaderMap(headers.items())
    if not is_forwarded(headers):
        return envelope_from
    return_path = headers.get("return-path")
    if not return_path:
        return envelope_from
    return return_path.replace("<", "").replace(">", "").strip()


def build_structured_email(message: InboundMessage, body: EmailBody, raw_content: str) -> StructuredEmail:
    """Compose the canonical record from headers, envelope and decoded body.

    ``to`` prefers the ``To`` header: the envelope recipient is the alias or
    BCC address in blind-copy deliveries.
    """
    headers = message.headers
    return StructuredEmail(
        subject=headers.get("subject", ""),
        from_=parse_address(resolve_original_sender(message.mail_from, headers)),
        to=parse_address_list(headers.get("to") or message.rcpt_to),
        cc=parse_address_list(headers.get("cc", "")),
        bcc=parse_address_list(headers.get("bcc", "")),
        date=headers.get("date", ""),
        message_id=headers.get("message-id", ""),
        headers=headers.normalized(remove=TOP_LEVEL_HEADERS),
        body=body,
        raw_content=raw_content,
    )


def structure_message(message: InboundMessage) -> StructuredEmail:
    """Run the full normalization pipeline on an inbound message."""
    raw_content = decode_content(message.raw)
    return build_structured_email(message, extract_body(raw_content), raw_content)
