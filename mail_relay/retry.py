"""Durable retry queue with exponential backoff and a dead-letter namespace.

Pending entries live under ``retry:<nextRetryTimestampMillis>:<id>`` so a
prefix scan returns them ordered by due time. Entries that exhaust their
attempts are copied once to ``failed:<timestampMillis>:<id>`` and never
touched again.
"""

from __future__ import annotations

import random
import string
import time
from typing import Callable, List, Optional, Tuple

from pydantic import ValidationError

from .logger import get_logger
from .models import FailedRequest, StructuredEmail
from .persistence import KeyValueStore

PENDING_PREFIX = "retry:"
DEAD_LETTER_PREFIX = "failed:"

# 1m, 2m, 4m ... 8h: roughly 15 hours before the tenth failure
MAX_RETRY_ATTEMPTS = 10
BASE_RETRY_DELAY = 60
DEFAULT_LIST_LIMIT = 100

_ID_ALPHABET = string.ascii_lowercase + string.digits


def calculate_retry_delay(attempt_count: int) -> int:
    """Return the delay in seconds before the next attempt (no upper cap)."""
    return BASE_RETRY_DELAY * 2 ** attempt_count


def generate_request_id(now_ms: int, rng: random.Random) -> str:
    """Build an id from the current time and a random suffix."""
    suffix = "".join(rng.choice(_ID_ALPHABET) for _ in range(11))
    return f"{now_ms}-{suffix}"


def pending_key(due_ms: int, request_id: str) -> str:
    return f"{PENDING_PREFIX}{due_ms}:{request_id}"


def dead_letter_key(failed_ms: int, request_id: str) -> str:
    return f"{DEAD_LETTER_PREFIX}{failed_ms}:{request_id}"


def parse_key_timestamp(key: str) -> Optional[int]:
    """Return the timestamp embedded in a store key, or ``None`` if malformed."""
    parts = key.split(":", 2)
    if len(parts) < 3 or not parts[2]:
        return None
    try:
        return int(parts[1])
    except ValueError:
        return None


def _now_ms() -> int:
    return int(time.time() * 1000)


class RetryStore:
    """Gateway owning every write to the retry and dead-letter namespaces."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        max_attempts: int = MAX_RETRY_ATTEMPTS,
        clock: Optional[Callable[[], int]] = None,
        rng: Optional[random.Random] = None,
        logger=None,
    ):
        self.store = store
        self.max_attempts = max(1, int(max_attempts))
        self._clock = clock or _now_ms
        self._rng = rng or random.Random()
        self.logger = logger or get_logger()

    async def save_failure(self, email: StructuredEmail, error: Optional[str] = None) -> str:
        """Queue a message whose first delivery failed; return the new id."""
        now = self._clock()
        request_id = generate_request_id(now, self._rng)
        delay = calculate_retry_delay(0)
        request = FailedRequest(
            id=request_id,
            email=email,
            attempt_count=0,
            first_attempt_timestamp=now,
            last_attempt_timestamp=now,
            next_retry_timestamp=now + delay * 1000,
            last_error=error,
        )
        await self.store.put(pending_key(request.next_retry_timestamp, request_id), request.to_json())
        self.logger.info("Saved failed request %s for retry in %dm", request_id, delay // 60)
        return request_id

    async def record_outcome(
        self,
        existing_key: str,
        request: FailedRequest,
        success: bool,
        error: Optional[str] = None,
    ) -> Optional[str]:
        """Apply the result of a replay to a pending entry.

        The old key is always deleted first. Returns the new pending or
        dead-letter key, or ``None`` when the request succeeded.
        """
        await self.store.delete(existing_key)

        if success:
            self.logger.info(
                "Request %s succeeded after %d attempts", request.id, request.attempt_count + 1
            )
            return None

        now = self._clock()
        attempt_count = request.attempt_count + 1
        if attempt_count >= self.max_attempts:
            dead = request.model_copy(
                update={
                    "attempt_count": attempt_count,
                    "last_attempt_timestamp": now,
                    "last_error": error,
                    "permanently_failed": True,
                }
            )
            key = dead_letter_key(now, request.id)
            await self.store.put(key, dead.to_json())
            self.logger.error(
                "Request %s permanently failed after %d attempts. Moved to dead letter queue.",
                request.id,
                attempt_count,
            )
            return key

        delay = calculate_retry_delay(attempt_count)
        updated = request.model_copy(
            update={
                "attempt_count": attempt_count,
                "last_attempt_timestamp": now,
                "next_retry_timestamp": now + delay * 1000,
                "last_error": error,
            }
        )
        key = pending_key(updated.next_retry_timestamp, request.id)
        await self.store.put(key, updated.to_json())
        self.logger.info(
            "Updated request %s for retry in %dm (attempt %d/%d)",
            request.id,
            delay // 60,
            attempt_count + 1,
            self.max_attempts,
        )
        return key

    async def _load_entries(self, prefix: str, limit: int, due_before: Optional[int]) -> List[Tuple[str, FailedRequest]]:
        results: List[Tuple[str, FailedRequest]] = []
        for key in await self.store.list_keys(prefix, limit):
            timestamp = parse_key_timestamp(key)
            if timestamp is None:
                self.logger.error("Skipping malformed retry key %s", key)
                continue
            if due_before is not None and timestamp > due_before:
                continue
            value = await self.store.get(key)
            if value is None:
                # Deleted between listing and reading: nothing to recover.
                continue
            try:
                results.append((key, FailedRequest.model_validate_json(value)))
            except ValidationError as exc:
                self.logger.error("Failed to parse retry request %s: %s", key, exc)
        return results

    async def list_due(self, limit: int = DEFAULT_LIST_LIMIT) -> List[Tuple[str, FailedRequest]]:
        """Return pending entries whose due timestamp is not in the future."""
        return await self._load_entries(PENDING_PREFIX, limit, self._clock())

    async def list_dead_letters(self, limit: int = DEFAULT_LIST_LIMIT) -> List[Tuple[str, FailedRequest]]:
        """Return permanently failed entries for manual review."""
        return await self._load_entries(DEAD_LETTER_PREFIX, limit, None)

    async def pending_count(self) -> int:
        """Return the number of pending entries."""
        return await self.store.count_keys(PENDING_PREFIX)
