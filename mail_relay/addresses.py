"""Parsing helpers for address header values."""

from __future__ import annotations

import re
from typing import List

from .models import EmailAddress

_NAMED_ADDRESS_RE = re.compile(r"^(?P<name>.*?)\s*<(?P<email>[^<>]*)>$", re.DOTALL)
_BRACKETED_RE = re.compile(r"<(.+@.+)>")


def _strip_quotes(value: str) -> str:
    return value.strip().strip('"').strip()


def parse_address(raw: str) -> EmailAddress:
    """Parse ``"Display Name" <local@domain>`` or a bare address."""
    value = (raw or "").strip()
    if not value:
        return EmailAddress(name="", email="")
    match = _NAMED_ADDRESS_RE.match(value)
    if match is None:
        return EmailAddress(name="", email=_strip_quotes(value.strip("<>")))
    return EmailAddress(
        name=_strip_quotes(match.group("name")),
        email=_strip_quotes(match.group("email")),
    )


def split_addresses(raw: str) -> List[str]:
    """Split an address list on commas that are not inside double quotes."""
    parts: List[str] = []
    current: List[str] = []
    quoted = False
    for char in raw or "":
        if char == '"':
            quoted = not quoted
        if char == "," and not quoted:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    parts.append("".join(current))
    return [part for part in (p.strip() for p in parts) if part]


def parse_address_list(raw: str) -> List[EmailAddress]:
    """Parse a comma separated header value, dropping entries without an address."""
    addresses = (parse_address(part) for part in split_addresses(raw))
    return [address for address in addresses if address.email]


def extract_domain(raw: str) -> str:
    """Return the domain of an address, or ``""`` when there is no ``@``."""
    value = raw or ""
    match = _BRACKETED_RE.search(value)
    address = match.group(1) if match else value
    parts = address.split("@")
    if len(parts) < 2:
        return ""
    return parts[1]
