"""Notification channel registry.

Uses the in-memory FakeChannel unless MARKETPLACE_NOTIFICATION_WEBHOOK_URL
points at a delivery service.
"""

from ordering.config import load_settings
from ordering.notifications.channel.fake_adapter import FakeChannel
from ordering.notifications.channel.port import NotificationChannel
from ordering.notifications.channel.webhook_adapter import WebhookChannel

_current_channel: NotificationChannel | None = None


def get_channel() -> NotificationChannel:
    global _current_channel
    if _current_channel is None:
        settings = load_settings()
        if settings.notification_webhook_url:
            _current_channel = WebhookChannel(settings.notification_webhook_url, timeout=settings.notification_timeout)
        else:
            _current_channel = FakeChannel()
    return _current_channel


def set_channel(channel: NotificationChannel) -> None:
    global _current_channel
    _current_channel = channel


def reset_channel() -> None:
    global _current_channel
    _current_channel = None
