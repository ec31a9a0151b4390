"""Prometheus metrics exposed by the mail relay."""

from prometheus_client import Counter, Gauge, CollectorRegistry, generate_latest

class RelayMetrics:
    """Wrapper around the Prometheus registry used by the relay."""

    def __init__(self, registry: CollectorRegistry | None = None):
        """Create counters and gauges inside the provided registry."""
        self.registry = registry or CollectorRegistry()
        self.received = Counter("relay_received_total", "Inbound messages received", ["forwarded"], registry=self.registry)
        self.delivered = Counter("relay_delivered_total", "Successful webhook deliveries", ["path"], registry=self.registry)
        self.failed = Counter("relay_failed_total", "Failed webhook deliveries", ["path"], registry=self.registry)
        self.dead_lettered = Counter("relay_dead_lettered_total", "Requests moved to the dead letter queue", registry=self.registry)
        self.pending = Gauge("relay_pending_retries", "Requests waiting for a retry", registry=self.registry)

    def inc_received(self, forwarded: bool):
        """Increase the ``received`` counter, split by auto-forwarded or direct mail."""
        self.received.labels(forwarded="yes" if forwarded else "no").inc()

    def inc_delivered(self, path: str):
        """Increase the ``delivered`` counter for ``live`` or ``retry``."""
        self.delivered.labels(path=path).inc()

    def inc_failed(self, path: str):
        """Increase the ``failed`` counter for ``live`` or ``retry``."""
        self.failed.labels(path=path).inc()

    def inc_dead_lettered(self):
        """Increase the counter of requests moved to the dead letter queue."""
        self.dead_lettered.inc()

    def set_pending(self, value: int):
        """Update the gauge tracking pending retries."""
        self.pending.set(value)

    def generate_latest(self) -> bytes:
        """Return the latest metrics snapshot in Prometheus text format."""
        return generate_latest(self.registry)
