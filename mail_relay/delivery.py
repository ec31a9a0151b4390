"""Single webhook POST attempt and classification of its outcome."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import aiohttp

from .logger import get_logger
from .models import StructuredEmail

DEFAULT_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of one delivery attempt."""

    success: bool
    error: Optional[str] = None


class WebhookDelivery:
    """POST structured emails to the webhook with bearer authorization.

    Endpoint and token are passed on every call and never retained, so a
    rotated credential is used from the next attempt on.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT_SECONDS, logger=None):
        self._timeout = aiohttp.ClientTimeout(total=float(timeout))
        self.logger = logger or get_logger()

    async def attempt(self, email: StructuredEmail, endpoint: str, token: str) -> DeliveryResult:
        """Perform one POST; never raises."""
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.post(endpoint, json=email.to_payload(), headers=headers) as resp:
                    if 200 <= resp.status < 300:
                        return DeliveryResult(success=True)
                    error = f"Webhook failed with status {resp.status}"
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            self.logger.warning("Error sending HTTP request to %s: %s", endpoint, error)
            return DeliveryResult(success=False, error=error)
        self.logger.warning("Webhook request to %s failed: %s", endpoint, error)
        return DeliveryResult(success=False, error=error)
