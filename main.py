import os
import logging
import configparser
from pathlib import Path
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from mail_relay.core import MailRelayCore
from mail_relay.api import create_app

# Configure logging level from environment
log_level = os.getenv("RELAY_LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format='[%(asctime)s] [%(levelname)s] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
    force=True  # Force reconfiguration to avoid duplicate handlers
)


def load_settings() -> dict[str, object]:
    """
    Load configuration from an INI file (default: config.ini) with environment variables as fallbacks.

    Environment variables (all prefixed with RELAY_):
      RELAY_CONFIG - Path to config.ini file (default: config.ini)
      RELAY_LOG_LEVEL - Logging level (default: INFO)
      RELAY_DB_PATH - Database path (default: /data/mail_relay.db)
      RELAY_HOST - Server host (default: 0.0.0.0)
      RELAY_PORT - Server port (default: 8000)
      RELAY_API_TOKEN - API authentication token
      RELAY_WEBHOOK_URL - Webhook receiving structured emails
      RELAY_WEBHOOK_TOKEN - Bearer token sent to the webhook
      RELAY_WEBHOOK_TIMEOUT - Webhook request timeout in seconds (default: 30)
      RELAY_RETRY_BATCH_SIZE - Due entries replayed per sweep (default: 100)
      RELAY_MAX_RETRY_ATTEMPTS - Attempts before dead-lettering (default: 10)

    Config file sections/keys:
      [storage] db_path
      [server] host, port, api_token
      [webhook] url, token, timeout_seconds
      [retry] batch_size, max_attempts
    """
    config_path = Path(os.getenv("RELAY_CONFIG", "config.ini"))
    parser = configparser.ConfigParser()
    parser.read(config_path)

    def get(section: str, option: str, fallback: str | None = None) -> str | None:
        if parser.has_option(section, option):
            return parser.get(section, option)
        return fallback

    def get_int(section: str, option: str, fallback: str | None = None, default: int | None = None) -> int | None:
        value = get(section, option, fallback)
        if value is None:
            return default
        return int(value)

    def get_float(section: str, option: str, fallback: str | None = None, default: float | None = None) -> float | None:
        value = get(section, option, fallback)
        if value is None:
            return default
        return float(value)

    def get_secret(section: str, option: str, fallback: str | None = None) -> str | None:
        value = get(section, option, fallback)
        if isinstance(value, str):
            value = value.strip() or None
        return value

    settings = {
        "db_path": get("storage", "db_path", os.getenv("RELAY_DB_PATH", "/data/mail_relay.db")),
        "http_host": get("server", "host", os.getenv("RELAY_HOST", "0.0.0.0")),
        "http_port": get_int("server", "port", os.getenv("RELAY_PORT", "8000")),
        "api_token": get_secret("server", "api_token", os.getenv("RELAY_API_TOKEN")),
        "webhook_url": get_secret("webhook", "url", os.getenv("RELAY_WEBHOOK_URL")),
        "webhook_token": get_secret("webhook", "token", os.getenv("RELAY_WEBHOOK_TOKEN")),
        "webhook_timeout": get_float("webhook", "timeout_seconds", os.getenv("RELAY_WEBHOOK_TIMEOUT"), default=30.0),
        "retry_batch_size": get_int("retry", "batch_size", os.getenv("RELAY_RETRY_BATCH_SIZE"), default=100),
        "max_attempts": get_int("retry", "max_attempts", os.getenv("RELAY_MAX_RETRY_ATTEMPTS"), default=10),
    }

    db_path = settings["db_path"]
    if isinstance(db_path, str):
        settings["db_path"] = os.path.expanduser(db_path)
    return settings


def webhook_credentials() -> tuple[str | None, str | None]:
    """Re-read the webhook URL and token so rotation applies to the next attempt."""
    settings = load_settings()
    return settings.get("webhook_url"), settings.get("webhook_token")


def build_service(settings: dict[str, object]) -> MailRelayCore:
    return MailRelayCore(
        db_path=settings["db_path"],
        credentials_provider=webhook_credentials,
        webhook_timeout=float(settings["webhook_timeout"]),
        retry_batch_size=int(settings["retry_batch_size"]),
        max_attempts=int(settings["max_attempts"]),
    )


if __name__ == "__main__":
    settings = load_settings()
    service = build_service(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await service.init()
        yield

    app = create_app(service, api_token=settings.get("api_token"), lifespan=lifespan)

    uvicorn.run(app, host=str(settings["http_host"]), port=int(settings["http_port"]))
