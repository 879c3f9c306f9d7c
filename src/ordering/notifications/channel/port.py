"""Notification channel port: outbound delivery of order notifications."""

from abc import ABC, abstractmethod


class NotificationChannel(ABC):
    @abstractmethod
    def send(self, recipient_id: str, notification_type: str, message: str) -> dict:
        """Deliver one notification.

        Returns:
            dict with keys: message_id, status ("sent" or "failed"), error (optional)
        """
        ...
