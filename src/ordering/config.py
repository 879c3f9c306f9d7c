"""Service settings read from the environment.

Protean's own configuration (databases, brokers, processing mode) lives in
``domain.toml`` next to ``domain.py``; these are the knobs for the
collaborators around the workflow.
"""

import os
from dataclasses import dataclass


def _csv(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(part.strip() for part in value.split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    environment: str
    gateway_backend: str
    gateway_base_url: str
    gateway_store_id: str
    gateway_store_password: str
    gateway_timeout: float
    gateway_max_attempts: int
    gateway_backoff: float
    admin_ids: tuple[str, ...]
    notification_webhook_url: str | None
    notification_timeout: float


def load_settings() -> Settings:
    """Build settings from ``MARKETPLACE_*`` environment variables."""
    return Settings(
        environment=os.getenv("PROTEAN_ENV", "development"),
        gateway_backend=os.getenv("MARKETPLACE_GATEWAY", "fake"),
        gateway_base_url=os.getenv("MARKETPLACE_GATEWAY_URL", "https://sandbox.sslcommerz.com"),
        gateway_store_id=os.getenv("MARKETPLACE_GATEWAY_STORE_ID", ""),
        gateway_store_password=os.getenv("MARKETPLACE_GATEWAY_STORE_PASSWORD", ""),
        gateway_timeout=float(os.getenv("MARKETPLACE_GATEWAY_TIMEOUT", "10")),
        gateway_max_attempts=int(os.getenv("MARKETPLACE_GATEWAY_MAX_ATTEMPTS", "3")),
        gateway_backoff=float(os.getenv("MARKETPLACE_GATEWAY_BACKOFF", "0.5")),
        admin_ids=_csv(os.getenv("MARKETPLACE_ADMIN_IDS")),
        notification_webhook_url=os.getenv("MARKETPLACE_NOTIFICATION_WEBHOOK_URL") or None,
        notification_timeout=float(os.getenv("MARKETPLACE_NOTIFICATION_TIMEOUT", "5")),
    )
