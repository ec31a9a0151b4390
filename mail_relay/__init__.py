"""Inbound email relay that forwards normalized messages to a webhook.

This package turns raw inbound messages into a structured JSON record and
posts it to a single HTTP webhook, with the following features:

- Charset detection and transfer-encoding decoding for message bodies
- Address parsing and recovery of the original sender of forwarded mail
- Durable retry queue with exponential backoff and a dead-letter namespace
- Prometheus metrics for monitoring
- FastAPI REST API for inbound submission and retry sweeps
- SQLite persistence for reliability

Example:
    Basic usage with the FastAPI application::

        from mail_relay.core import MailRelayCore
        from mail_relay.api import create_app

        core = MailRelayCore(db_path="/data/mail_relay.db", webhook_url="https://hooks.example.com/mail", webhook_token="secret")
        app = create_app(core, api_token="secret")
"""
