"""Fake notification channel: records deliveries in memory for tests and development."""

from uuid import uuid4

from ordering.notifications.channel.port import NotificationChannel


class FakeChannel(NotificationChannel):
    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Delivery failed"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Delivery failed") -> None:
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def send(self, recipient_id: str, notification_type: str, message: str) -> dict:
        if not self.should_succeed:
            return {"message_id": None, "status": "failed", "error": self.failure_reason}

        message_id = f"ntf-{uuid4().hex[:12]}"
        self.sent.append(
            {
                "message_id": message_id,
                "recipient_id": recipient_id,
                "notification_type": notification_type,
                "message": message,
            }
        )
        return {"message_id": message_id, "status": "sent"}

    def reset(self) -> None:
        self.sent.clear()
        self.should_succeed = True
        self.failure_reason = "Delivery failed"
