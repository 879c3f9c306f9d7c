"""Webhook notification channel: posts each notification to the delivery service."""

import requests
import structlog

from ordering.notifications.channel.port import NotificationChannel

logger = structlog.get_logger(__name__)


class WebhookChannel(NotificationChannel):
    def __init__(self, url: str, timeout: float = 5.0, session: requests.Session | None = None) -> None:
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, recipient_id: str, notification_type: str, message: str) -> dict:
        payload = {"recipient_id": recipient_id, "type": notification_type, "message": message}
        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Notification webhook failed", url=self.url, error=str(exc))
            return {"message_id": None, "status": "failed", "error": str(exc)}

        body = response.json() if response.content else {}
        return {"message_id": body.get("id"), "status": "sent"}
