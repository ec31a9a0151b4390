"""Core orchestration logic for the inbound mail relay."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from .addresses import extract_domain
from .delivery import DEFAULT_TIMEOUT_SECONDS, DeliveryResult, WebhookDelivery
from .logger import get_logger, preview_ids
from .message import InboundMessage, is_forwarded, structure_message
from .models import FailedRequest
from .persistence import KeyValueStore, Persistence
from .prometheus import RelayMetrics
from .retry import DEAD_LETTER_PREFIX, DEFAULT_LIST_LIMIT, MAX_RETRY_ATTEMPTS, RetryStore

CredentialsProvider = Callable[[], Tuple[Optional[str], Optional[str]]]


class RelayConfigurationError(RuntimeError):
    """Raised when the webhook URL or token needed for delivery is missing."""

    def __init__(self, message: str = "Missing webhook configuration"):
        super().__init__(message)
        self.code = "missing_webhook_configuration"


@dataclass(frozen=True)
class InboundOutcome:
    """Result of relaying one inbound message."""

    delivered: bool
    retry_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class RetryCycleReport:
    """Counters describing one retry sweep."""

    processed: int = 0
    succeeded: int = 0
    rescheduled: int = 0
    dead_lettered: int = 0
    errors: int = 0


class MailRelayCore:
    """Coordinate normalization, delivery and the retry queue."""

    def __init__(
        self,
        *,
        db_path: str | None = "/data/mail_relay.db",
        webhook_url: str | None = None,
        webhook_token: str | None = None,
        credentials_provider: Optional[CredentialsProvider] = None,
        store: Optional[KeyValueStore] = None,
        delivery: Optional[WebhookDelivery] = None,
        metrics: RelayMetrics | None = None,
        logger=None,
        max_attempts: int = MAX_RETRY_ATTEMPTS,
        retry_batch_size: int = DEFAULT_LIST_LIMIT,
        webhook_timeout: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Optional[Callable[[], int]] = None,
    ):
        """Prepare the runtime collaborators.

        ``credentials_provider`` is called before every delivery so that the
        webhook URL and token can change without touching queued entries; by
        default it returns ``webhook_url`` and ``webhook_token``.
        """
        self.logger = logger or get_logger()
        self.persistence = store if store is not None else Persistence(db_path or ":memory:")
        self.retry = RetryStore(self.persistence, max_attempts=max_attempts, clock=clock, logger=self.logger)
        self.delivery = delivery or WebhookDelivery(timeout=webhook_timeout, logger=self.logger)
        self.metrics = metrics or RelayMetrics()
        self._credentials_provider = credentials_provider or (lambda: (webhook_url, webhook_token))
        self._retry_batch_size = max(1, int(retry_batch_size))

    async def init(self) -> None:
        """Initialise persistence and the pending gauge."""
        init_db = getattr(self.persistence, "init_db", None)
        if init_db is not None:
            await init_db()
        await self._refresh_pending_gauge()

    def _credentials(self) -> Tuple[str, str]:
        url, token = self._credentials_provider()
        if not url:
            raise RelayConfigurationError("Missing required webhook URL")
        if not token:
            raise RelayConfigurationError("Missing required webhook API token")
        return url, token

    # ------------------------------------------------------------ live path
    async def handle_inbound(self, message: InboundMessage) -> InboundOutcome:
        """Normalize an inbound message, deliver it, and queue it on failure."""
        url, token = self._credentials()
        email = structure_message(message)
        self.metrics.inc_received(is_forwarded(message.headers))
        self.logger.info(
            "Relaying message %s from %s (domain=%s, subject=%r)",
            email.message_id or "-",
            email.from_.email or "-",
            extract_domain(email.from_.email) or "-",
            email.subject,
        )

        result = await self.delivery.attempt(email, url, token)
        if result.success:
            self.metrics.inc_delivered("live")
            self.logger.info("Successfully sent HTTP request to webhook.")
            return InboundOutcome(delivered=True)

        self.metrics.inc_failed("live")
        retry_id = await self.retry.save_failure(email, result.error)
        await self._refresh_pending_gauge()
        return InboundOutcome(delivered=False, retry_id=retry_id, error=result.error)

    # ----------------------------------------------------------- retry path
    async def process_retry_cycle(self, limit: Optional[int] = None) -> RetryCycleReport:
        """Replay every due entry once, in due-time order.

        A fault while handling one entry is logged and does not stop the
        remaining entries of the batch.
        """
        url, token = self._credentials()
        report = RetryCycleReport()
        due = await self.retry.list_due(limit or self._retry_batch_size)
        if due:
            self.logger.info(
                "Processing %d due retry request(s) (ids=%s)",
                len(due),
                preview_ids(request.id for _, request in due),
            )
        for key, request in due:
            report.processed += 1
            try:
                await self._replay(key, request, url, token, report)
            except Exception as exc:
                report.errors += 1
                self.logger.exception("Unhandled error while retrying request %s: %s", request.id, exc)
        await self._refresh_pending_gauge()
        return report

    async def _replay(self, key: str, request: FailedRequest, url: str, token: str, report: RetryCycleReport) -> None:
        result: DeliveryResult = await self.delivery.attempt(request.email, url, token)
        if result.success:
            self.metrics.inc_delivered("retry")
        else:
            self.metrics.inc_failed("retry")
        new_key = await self.retry.record_outcome(key, request, result.success, result.error)
        if new_key is None:
            report.succeeded += 1
        elif new_key.startswith(DEAD_LETTER_PREFIX):
            report.dead_lettered += 1
            self.metrics.inc_dead_lettered()
        else:
            report.rescheduled += 1

    async def list_dead_letters(self, limit: int = DEFAULT_LIST_LIMIT) -> List[FailedRequest]:
        """Return permanently failed requests for manual inspection."""
        return [request for _, request in await self.retry.list_dead_letters(limit)]

    async def pending_count(self) -> int:
        """Return the number of requests waiting for a retry."""
        return await self.retry.pending_count()

    async def _refresh_pending_gauge(self) -> None:
        """Refresh the metric describing queued retries."""
        try:
            count = await self.pending_count()
        except Exception:
            self.logger.exception("Failed to refresh pending gauge")
            return
        self.metrics.set_pending(count)
