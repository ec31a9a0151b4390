"""Logging helpers for the mail relay."""

import logging
from typing import Iterable

DEFAULT_LOGGER_NAME = "MailRelay"


def get_logger(name: str = DEFAULT_LOGGER_NAME) -> logging.Logger:
    """Return the relay's :class:`logging.Logger` instance.

    Handlers and levels are configured once via logging.basicConfig()
    in main.py; this helper never attaches handlers itself.
    """
    return logging.getLogger(name)


def preview_ids(ids: Iterable[str], limit: int = 5) -> str:
    """Return a short comma separated preview of record ids for log lines."""
    items = [str(item) for item in ids if item]
    preview = ", ".join(items[:limit])
    if len(items) > limit:
        preview = f"{preview}, ..."
    return preview or "-"


logger = get_logger()
